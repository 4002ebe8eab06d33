"""Fuzzy table loading: header row + data rows -> {RID: record}.

Headers are matched through :func:`dynamic_notes.keys.normalize`, so two
tables that spell a column differently still land on the same record key.
Cell values are stored exactly as the host returned them; tagging happens
later in :mod:`dynamic_notes.cells`.
"""

from __future__ import annotations

import math
from typing import Any, Sequence

from dynamic_notes.keys import normalize

Row = Sequence[Any]
Record = dict[str, Any]


class MissingSourceError(LookupError):
    """A required sheet or file is absent; the run aborts for that scope."""

    def __init__(self, source: str, detail: str | None = None) -> None:
        message = f'Missing source: "{source}"'
        if detail:
            message = f"{message}. {detail}"
        super().__init__(message)
        self.source = source


def _is_falsy_id(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (int, float)):
        return value == 0 or (isinstance(value, float) and math.isnan(value))
    return False


def record_id(value: Any) -> str | None:
    """Stringify and trim an ID cell; ``None`` when the cell is empty."""
    if _is_falsy_id(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    rid = str(value).strip()
    return rid or None


def normalize_headers(header_row: Row) -> list[str]:
    return [normalize(cell) for cell in header_row]


def build_record(keys: Sequence[str], row: Row) -> Record:
    record: Record = {}
    for index, key in enumerate(keys):
        if not key:
            continue
        record[key] = row[index] if index < len(row) else None
    return record


def load_table(
    rows: Sequence[Row],
    header_row_index: int,
    id_column_index: int = 0,
) -> dict[str, Record]:
    """Map trimmed RIDs to normalized-key records.

    ``header_row_index`` is the 0-based position of the header inside
    ``rows``; everything after it is data. Rows with an empty ID are skipped
    and repeated IDs keep the last row seen.
    """
    if header_row_index < 0 or header_row_index >= len(rows):
        return {}
    keys = normalize_headers(rows[header_row_index])
    table: dict[str, Record] = {}
    for row in rows[header_row_index + 1:]:
        if id_column_index >= len(row):
            continue
        rid = record_id(row[id_column_index])
        if rid is None:
            continue
        table[rid] = build_record(keys, row)
    return table


def find_column(header_row: Row, name: str) -> int | None:
    """0-based index of the first header matching ``name`` after normalization."""
    wanted = normalize(name)
    if not wanted:
        return None
    for index, key in enumerate(normalize_headers(header_row)):
        if key == wanted:
            return index
    return None
