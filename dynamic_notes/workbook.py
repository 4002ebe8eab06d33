"""Workbook and file I/O around the pure engine.

Values are read from a ``data_only`` view so formula cells show their
cached results. Notes are written into a formula-preserving view of the same
file, so saving keeps formulas intact. Only the comment layer of target cells is touched.
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Sequence

import chardet
import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.comments import Comment
from openpyxl.utils.cell import range_boundaries

from dynamic_notes.config import SourceConfig

WORKBOOK_FORMATS = {".xlsx", ".xlsm"}
TEXT_FORMATS = {".csv", ".tsv", ".txt"}
SEPARATORS = {".csv": ",", ".tsv": "\t"}
COMMENT_WIDTH = 320
COMMENT_LINE_HEIGHT = 18


class _Unchanged:
    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = _Unchanged()


def open_workbook(path: Path | str, *, data_only: bool = True) -> Workbook:
    workbook_path = Path(path)
    suffix = workbook_path.suffix.lower()
    if suffix not in WORKBOOK_FORMATS:
        raise ValueError(
            f"Unsupported workbook type '{suffix or '[missing extension]'}'. "
            f"Supported: {', '.join(sorted(WORKBOOK_FORMATS))}"
        )
    return load_workbook(workbook_path, data_only=data_only, keep_vba=suffix == ".xlsm")


def get_sheet(workbook: Workbook, name: str):
    if name in workbook.sheetnames:
        return workbook[name]
    return None


def sheet_rows(sheet) -> list[list[Any]]:
    return [list(row) for row in sheet.iter_rows(values_only=True)]


def read_range_values(sheet, cell_range: str) -> list[Any]:
    min_col, min_row, max_col, max_row = range_boundaries(cell_range)
    values = []
    for row in sheet.iter_rows(
        min_row=min_row,
        max_row=max_row or sheet.max_row,
        min_col=min_col,
        max_col=max_col,
        values_only=True,
    ):
        values.extend(row)
    return values


def column_values(sheet, column: int, start_row: int) -> list[Any]:
    if sheet.max_row < start_row:
        return []
    return [
        row[0]
        for row in sheet.iter_rows(
            min_row=start_row,
            max_row=sheet.max_row,
            min_col=column,
            max_col=column,
            values_only=True,
        )
    ]


def detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    encoding = result.get("encoding")
    if not encoding or encoding.lower() == "ascii":
        return "utf-8"
    return encoding


def read_csv_rows(path: Path | str) -> list[list[Any]]:
    """All rows of a delimited file as strings; the header stays in row 0."""
    csv_path = Path(path)
    raw = csv_path.read_bytes()
    text = raw.decode(detect_encoding(raw), errors="replace").lstrip("\ufeff")
    separator = SEPARATORS.get(csv_path.suffix.lower())
    frame = pd.read_csv(
        io.StringIO(text),
        sep=separator,
        engine="python",
        header=None,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
    )
    return frame.values.tolist()


def read_external_rows(source: SourceConfig) -> list[list[Any]] | None:
    source_path = Path(source.path)
    if not source_path.exists():
        return None
    suffix = source_path.suffix.lower()
    if suffix in TEXT_FORMATS:
        return read_csv_rows(source_path)
    external = open_workbook(source_path)
    try:
        sheet = get_sheet(external, source.name)
        if sheet is None:
            sheet = external.active
        return sheet_rows(sheet)
    finally:
        external.close()


def read_source_rows(workbook: Workbook, source: SourceConfig) -> list[list[Any]] | None:
    """Rows for ``source`` or ``None`` when the sheet/file does not exist."""
    if source.path:
        return read_external_rows(source)
    sheet = get_sheet(workbook, source.name)
    if sheet is None:
        return None
    return sheet_rows(sheet)


def make_comment(text: str, author: str) -> Comment:
    comment = Comment(text, author)
    comment.width = COMMENT_WIDTH
    comment.height = COMMENT_LINE_HEIGHT * (text.count("\n") + 2)
    return comment


def write_notes(sheet, start_row: int, column: int, notes: Sequence[Any], author: str) -> int:
    """Write one note per row from ``start_row`` down; returns cells touched.

    ``None`` or ``""`` removes an existing comment, ``UNCHANGED`` leaves the
    cell alone. Any other text is written as-is.
    """
    touched = 0
    for offset, note in enumerate(notes):
        if note is UNCHANGED:
            continue
        cell = sheet.cell(row=start_row + offset, column=column)
        if note is None or note == "":
            cell.comment = None
        else:
            cell.comment = make_comment(note, author)
        touched += 1
    return touched


def save_workbook(workbook: Workbook, path: Path | str) -> Path:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(output_path)
    return output_path
