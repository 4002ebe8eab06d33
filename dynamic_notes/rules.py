"""The NOTE_CONFIG rule table.

Each row is ``expression | format | template | line break``. Rows whose
first cell is empty (ghost checkbox rows, spacing) are dropped here so the
engine only ever sees real rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from dynamic_notes.cells import is_blank

FORMAT_NUMBER = "number"
FORMAT_PERCENT = "percent"
FORMAT_DATE = "date"
FORMAT_SEPARATOR = "separator"
KNOWN_FORMATS = {FORMAT_NUMBER, FORMAT_PERCENT, FORMAT_DATE, FORMAT_SEPARATOR, ""}

TRUTHY_FLAGS = {"true", "yes", "y", "1", "x"}


@dataclass(frozen=True)
class Rule:
    expression: str
    format_type: str = ""
    template: str = ""
    break_after: bool = False

    @property
    def is_separator(self) -> bool:
        return self.format_type == FORMAT_SEPARATOR


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return _text(value).strip().lower() in TRUTHY_FLAGS


def parse_rule(row: Sequence[Any]) -> Rule:
    cells = list(row[:4]) + [None] * (4 - min(len(row), 4))
    expression, format_type, template, break_after = cells
    return Rule(
        expression=_text(expression).strip(),
        format_type=_text(format_type).strip().lower(),
        template=_text(template),
        break_after=parse_flag(break_after),
    )


def parse_rules(rows: Sequence[Sequence[Any]]) -> tuple[Rule, ...]:
    """Turn raw rule-table rows (header already removed) into ordered rules."""
    rules = []
    for row in rows:
        if not row or is_blank(row[0]):
            continue
        rules.append(parse_rule(row))
    return tuple(rules)


def describe_rules(rules: Sequence[Rule]) -> list[dict[str, Any]]:
    return [
        {
            "position": index,
            "expression": rule.expression,
            "format": rule.format_type,
            "template": rule.template,
            "break_after": rule.break_after,
            "known_format": rule.format_type in KNOWN_FORMATS,
        }
        for index, rule in enumerate(rules, start=1)
    ]
