"""Group counts used to derive ``activeGroupCount`` for every record."""

from __future__ import annotations

from collections import Counter
from typing import Any, Mapping, Sequence

from dynamic_notes.cells import is_blank

ACTIVE_GROUP_COUNT_KEY = "activegroupcount"
LEGACY_GROUP_COUNT_KEY = "activerids"


def count_by_field(rows: Sequence[Sequence[Any]], field_column_index: int) -> dict[Any, int]:
    """Count non-empty values in one column using exact equality."""
    counts: Counter = Counter()
    for row in rows:
        if field_column_index >= len(row):
            continue
        value = row[field_column_index]
        if is_blank(value):
            continue
        counts[value] += 1
    return dict(counts)


def active_group_count(record: Mapping[str, Any], counts: Mapping[Any, int], group_key: str) -> int:
    parent = record.get(group_key) if group_key else None
    if is_blank(parent):
        return 1
    return counts.get(parent, 0) or 1
