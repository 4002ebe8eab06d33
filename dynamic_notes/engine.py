"""The note builder.

``build_note`` walks the rule table once per record with a two-part state:
finished ``lines`` and the ``current`` line being assembled. Rules without a
line break keep appending to ``current`` so several short values can share
one visual line; separators and breaks close it out.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Mapping, Sequence

from dynamic_notes.cells import EMPTY_CELL, Cell, CellKind, display_text, plain_number
from dynamic_notes.config import RenderOptions
from dynamic_notes.expression import evaluate, has_placeholders
from dynamic_notes.keys import normalize
from dynamic_notes.rules import FORMAT_DATE, FORMAT_NUMBER, FORMAT_PERCENT, Rule

logger = logging.getLogger(__name__)

DEFAULT_RENDER_OPTIONS = RenderOptions()
VALUE_PLACEHOLDER = "{{val}}"


def round_half_up(value: float, digits: int = 0) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def resolve_value(rule: Rule, record: Mapping[str, Any]) -> Any:
    if has_placeholders(rule.expression):
        return evaluate(rule.expression, record)
    return record.get(normalize(rule.expression))


def format_date(value: Any, options: RenderOptions) -> str:
    if isinstance(value, datetime) and value.tzinfo is not None:
        value = value.astimezone(options.zone())
    return value.strftime(options.date_format)


def format_value(cell: Cell, format_type: str, options: RenderOptions = DEFAULT_RENDER_OPTIONS) -> str:
    if format_type == FORMAT_NUMBER:
        if cell.is_number and math.isfinite(cell.value):
            return plain_number(round_half_up(float(cell.value), 1))
        return display_text(cell)
    if format_type == FORMAT_PERCENT:
        if not cell.is_number or not math.isfinite(cell.value):
            return "0%"
        return f"{int(round_half_up(float(cell.value) * 100))}%"
    if format_type == FORMAT_DATE and cell.kind is CellKind.DATE:
        return format_date(cell.value, options)
    return display_text(cell)


def apply_template(template: str, display: str) -> str:
    if not template:
        return display
    return template.replace(VALUE_PLACEHOLDER, display, 1)


def build_note(
    record: Mapping[str, Any],
    rules: Sequence[Rule],
    options: RenderOptions = DEFAULT_RENDER_OPTIONS,
) -> str:
    """Render ``record`` through ``rules``; ``""`` means no annotation."""
    lines: list[str] = []
    current = ""

    for position, rule in enumerate(rules, start=1):
        if rule.is_separator:
            if current:
                lines.append(current)
            current = ""
            lines.append(rule.template or options.default_separator)
            continue

        try:
            cell = Cell.from_raw(resolve_value(rule, record))
        except Exception as exc:
            logger.debug("Rule %d (%r) failed to resolve: %s", position, rule.expression, exc)
            cell = EMPTY_CELL

        if cell.is_empty:
            if rule.break_after and current:
                lines.append(current)
                current = ""
            continue

        current += apply_template(rule.template, format_value(cell, rule.format_type, options))

        if rule.break_after:
            lines.append(current)
            current = ""

    if current:
        lines.append(current)
    return "\n".join(lines)
