"""Tagged cell values shared by the evaluator and the note formatter.

Spreadsheet hosts hand back a loose mix of Python objects: floats for every
number, datetimes, booleans, ``"TRUE"`` strings from CSV exports, NaN from
pandas and error sentinels such as ``#DIV/0!``. ``Cell.from_raw`` folds all
of them into a closed set of kinds so formatting never guesses at runtime
types.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

import pandas as pd


class CellKind(str, Enum):
    NUMBER = "number"
    TEXT = "text"
    BOOLEAN = "boolean"
    DATE = "date"
    EMPTY = "empty"


ERROR_SENTINELS = {
    "#N/A",
    "#DIV/0!",
    "#REF!",
    "#VALUE!",
    "#NAME?",
    "#NUM!",
    "#NULL!",
    "#ERROR!",
}
BOOLEAN_TEXT = {"TRUE": True, "FALSE": False}


def _parse_number(text: str) -> float | None:
    try:
        return float(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class Cell:
    kind: CellKind
    value: Any = None
    text: str | None = None

    @classmethod
    def from_raw(cls, value: Any) -> "Cell":
        if value is None:
            return EMPTY_CELL
        if isinstance(value, Cell):
            return value
        if isinstance(value, bool):
            return cls(CellKind.BOOLEAN, value)
        if isinstance(value, (pd.Timestamp, datetime, date)):
            if pd.isna(value):
                return EMPTY_CELL
            if isinstance(value, pd.Timestamp):
                value = value.to_pydatetime()
            return cls(CellKind.DATE, value)
        if isinstance(value, (int, float)):
            if isinstance(value, float) and math.isnan(value):
                return EMPTY_CELL
            return cls(CellKind.NUMBER, value)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or stripped.upper() in ERROR_SENTINELS:
                return EMPTY_CELL
            if stripped.upper() in BOOLEAN_TEXT:
                return cls(CellKind.BOOLEAN, BOOLEAN_TEXT[stripped.upper()], text=value)
            number = _parse_number(stripped)
            if number is not None and not math.isnan(number):
                return cls(CellKind.NUMBER, number, text=value)
            return cls(CellKind.TEXT, value, text=value)
        try:
            if pd.isna(value):
                return EMPTY_CELL
        except (TypeError, ValueError):
            pass
        # numpy scalars and Decimals
        try:
            return cls(CellKind.NUMBER, float(value))
        except (TypeError, ValueError):
            return cls(CellKind.TEXT, str(value))

    @property
    def is_empty(self) -> bool:
        return self.kind is CellKind.EMPTY

    @property
    def is_number(self) -> bool:
        return self.kind is CellKind.NUMBER


EMPTY_CELL = Cell(CellKind.EMPTY)


def is_blank(value: Any) -> bool:
    return Cell.from_raw(value).is_empty


def plain_number(value: float | int) -> str:
    """Render a number the way a spreadsheet shows it: ``5`` not ``5.0``."""
    if isinstance(value, int):
        return str(value)
    if math.isfinite(value) and value == int(value):
        return str(int(value))
    return repr(float(value))


def display_text(cell: Cell) -> str:
    """Raw rendering: source text verbatim, otherwise a spreadsheet-style value."""
    if cell.kind is CellKind.EMPTY:
        return ""
    if cell.text is not None:
        return cell.text
    if cell.kind is CellKind.NUMBER:
        return plain_number(cell.value)
    if cell.kind is CellKind.BOOLEAN:
        return "TRUE" if cell.value else "FALSE"
    if cell.kind is CellKind.DATE:
        value = cell.value
        if isinstance(value, datetime) and (value.hour or value.minute or value.second):
            return value.isoformat(sep=" ", timespec="seconds")
        return value.strftime("%Y-%m-%d")
    return str(cell.value)
