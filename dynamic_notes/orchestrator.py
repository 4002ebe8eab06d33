"""Batch and preview drivers.

The orchestrator is the only part of the package that reaches into a
workbook. It loads both sources and the rule table once per run into a
:class:`NotesContext`. Every record then goes through :func:`render_record`,
for a whole fleet of target sheets or for a single previewed RID alike.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from dynamic_notes.config import NotesConfig, SourceConfig
from dynamic_notes.counter import (
    ACTIVE_GROUP_COUNT_KEY,
    LEGACY_GROUP_COUNT_KEY,
    active_group_count,
    count_by_field,
)
from dynamic_notes.engine import build_note
from dynamic_notes.keys import normalize
from dynamic_notes.loader import MissingSourceError, Record, find_column, load_table, record_id
from dynamic_notes.rules import Rule, parse_rules
from dynamic_notes.workbook import (
    UNCHANGED,
    column_values,
    get_sheet,
    read_range_values,
    read_source_rows,
    sheet_rows,
    write_notes,
)

logger = logging.getLogger(__name__)

Pacer = Callable[[], None]

STATUS_WRITTEN = "written"
STATUS_CLEARED = "cleared"
STATUS_SKIPPED = "skipped"
DEBUG_SAMPLE_ROWS = 3


def make_pacer(config: NotesConfig) -> Pacer:
    """Yield point between large reads and between target sheets."""
    pause = float(config.pause_seconds)

    def pace() -> None:
        if pause > 0:
            time.sleep(pause)

    return pace


def merge_records(primary: Mapping[str, Any], secondary: Mapping[str, Any]) -> Record:
    """Combine two records for one RID; secondary values win on shared keys."""
    merged: Record = dict(primary)
    merged.update(secondary)
    return merged


@dataclass(frozen=True)
class LoadedSource:
    rows: list[list[Any]]
    records: dict[str, Record]


@dataclass(frozen=True)
class NotesContext:
    config: NotesConfig
    primary: Mapping[str, Record]
    secondary: Mapping[str, Record]
    group_counts: Mapping[Any, int]
    rules: tuple[Rule, ...]
    warnings: tuple[str, ...] = ()

    @property
    def group_key(self) -> str:
        return normalize(self.config.group_field)


@dataclass(frozen=True)
class NoteOutcome:
    rid: str | None
    status: str
    note: str | None = None

    @property
    def cell_value(self) -> Any:
        if self.status == STATUS_WRITTEN:
            return self.note
        if self.status == STATUS_CLEARED:
            return None
        return UNCHANGED


@dataclass(frozen=True)
class PreviewResult:
    rid: str
    found: bool
    note: str = ""

    @property
    def is_blank(self) -> bool:
        return self.found and not self.note.strip()


@dataclass
class SheetResult:
    name: str
    scanned: int = 0
    updated: int = 0
    skipped: int = 0


@dataclass
class BatchSummary:
    status: str = "ok"
    groups_processed: int = 0
    records_scanned: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    rules_loaded: int = 0
    primary_records: int = 0
    secondary_records: int = 0
    duration_seconds: float = 0.0
    sheets: list[SheetResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def metrics(self) -> dict[str, Any]:
        payload = asdict(self)
        payload.pop("warnings")
        payload.pop("status")
        return payload


def _source_table(rows: Sequence[Sequence[Any]], header_row: int, id_column: int) -> dict[str, Record]:
    return load_table(rows, header_row - 1, id_column - 1)


def _group_counts(rows: Sequence[Sequence[Any]], config: NotesConfig, warnings: list[str]) -> dict[Any, int]:
    header_index = config.primary.header_row - 1
    if header_index >= len(rows):
        return {}
    column = find_column(rows[header_index], config.group_field)
    if column is None:
        message = (
            f'Group column "{config.group_field}" not found in {config.primary.name}; '
            "every record counts as its own group."
        )
        logger.warning(message)
        warnings.append(message)
        return {}
    return count_by_field(rows[header_index + 1:], column)


def load_rules(workbook, config: NotesConfig) -> tuple[Rule, ...]:
    sheet = get_sheet(workbook, config.rules_sheet)
    if sheet is None:
        raise MissingSourceError(config.rules_sheet, "Execution aborted.")
    rows = sheet_rows(sheet)[config.rules_header_row:]
    return parse_rules([row[:4] for row in rows])


def load_source(workbook, source: SourceConfig, pacer: Pacer | None = None) -> LoadedSource | None:
    """Read ``source`` through the host adapter and key its rows by RID.

    ``None`` when the sheet or file does not exist. A source with nothing
    below its header loads with empty ``records``.
    """
    if pacer is not None:
        pacer()
    rows = read_source_rows(workbook, source)
    if rows is None:
        return None
    records = _source_table(rows, source.header_row, source.id_column)
    logger.debug("Source %s: %d row(s), %d RID(s)", source.name, len(rows), len(records))
    return LoadedSource(rows=rows, records=records)


def build_context(workbook, config: NotesConfig, pacer: Pacer | None = None) -> NotesContext:
    """Load sources, group counts and rules for one run.

    Raises :class:`MissingSourceError` when the primary source or the rule
    sheet is absent. A missing secondary source only adds a warning.
    """
    pace = pacer or make_pacer(config)
    warnings: list[str] = []

    rules = load_rules(workbook, config)
    logger.info("Loaded %d rule(s) from %s", len(rules), config.rules_sheet)

    loaded_primary = load_source(workbook, config.primary, pace)
    if loaded_primary is None:
        raise MissingSourceError(config.primary.name, "Execution aborted.")
    primary = loaded_primary.records
    group_counts = _group_counts(loaded_primary.rows, config, warnings)

    loaded_secondary = load_source(workbook, config.secondary, pace)
    if loaded_secondary is None:
        message = f'Secondary source "{config.secondary.name}" not found; continuing without it.'
        logger.warning(message)
        warnings.append(message)
        secondary: dict[str, Record] = {}
    else:
        secondary = loaded_secondary.records

    logger.info(
        "Sources loaded: %s=%d RIDs, %s=%d RIDs",
        config.primary.name,
        len(primary),
        config.secondary.name,
        len(secondary),
    )
    return NotesContext(
        config=config,
        primary=primary,
        secondary=secondary,
        group_counts=group_counts,
        rules=rules,
        warnings=tuple(warnings),
    )


def record_for(context: NotesContext, rid: Any) -> Record | None:
    """Merged record with the derived group count, or ``None`` for unknown RIDs."""
    lookup = record_id(rid)
    if lookup is None:
        return None
    primary = context.primary.get(lookup)
    if primary is None:
        return None
    record = merge_records(primary, context.secondary.get(lookup, {}))
    count = active_group_count(primary, context.group_counts, context.group_key)
    record[ACTIVE_GROUP_COUNT_KEY] = count
    record[LEGACY_GROUP_COUNT_KEY] = count
    return record


def render_record(context: NotesContext, rid: Any) -> str | None:
    record = record_for(context, rid)
    if record is None:
        return None
    return build_note(record, context.rules, context.config.render)


def annotate_group(context: NotesContext, rids: Iterable[Any]) -> list[NoteOutcome]:
    outcomes = []
    for index, raw_rid in enumerate(rids):
        lookup = record_id(raw_rid)
        if lookup is None:
            outcomes.append(NoteOutcome(None, STATUS_CLEARED))
            continue
        note = render_record(context, lookup)
        if index < DEBUG_SAMPLE_ROWS:
            logger.debug("Row %d: RID %r matched=%s", index + 1, lookup, note is not None)
        if note is None:
            outcomes.append(NoteOutcome(lookup, STATUS_SKIPPED))
        elif note == "":
            outcomes.append(NoteOutcome(lookup, STATUS_CLEARED))
        else:
            outcomes.append(NoteOutcome(lookup, STATUS_WRITTEN, note))
    return outcomes


def preview_note(context: NotesContext, rid: Any) -> PreviewResult:
    lookup = record_id(rid) or ""
    note = render_record(context, lookup) if lookup else None
    if note is None:
        return PreviewResult(lookup, found=False)
    return PreviewResult(lookup, found=True, note=note)


def resolve_targets(workbook, config: NotesConfig) -> list[str]:
    if config.targets:
        return list(config.targets)
    setup = get_sheet(workbook, config.setup_sheet)
    if setup is None:
        raise MissingSourceError(config.setup_sheet, "No target sheets configured.")
    names = []
    for value in read_range_values(setup, config.target_list_range):
        if value is None:
            continue
        name = str(value).strip()
        if name:
            names.append(name)
    return names


def annotate_sheet(context: NotesContext, sheet, output_sheet=None) -> SheetResult:
    target = context.config.target
    rids = column_values(sheet, target.rid_column, target.data_start_row)
    outcomes = annotate_group(context, rids)
    touched = write_notes(
        output_sheet if output_sheet is not None else sheet,
        target.data_start_row,
        target.note_column,
        [outcome.cell_value for outcome in outcomes],
        context.config.comment_author,
    )
    skipped = sum(1 for outcome in outcomes if outcome.status == STATUS_SKIPPED)
    return SheetResult(name=sheet.title, scanned=len(rids), updated=touched, skipped=skipped)


def run_batch(workbook, config: NotesConfig, *, output=None, pacer: Pacer | None = None) -> BatchSummary:
    """Annotate every target sheet.

    ``workbook`` is read for values; notes go to ``output`` (a
    formula-preserving copy of the same file) when given, else to
    ``workbook`` itself.
    """
    started = time.perf_counter()
    pace = pacer or make_pacer(config)
    context = build_context(workbook, config, pace)
    summary = BatchSummary(
        rules_loaded=len(context.rules),
        primary_records=len(context.primary),
        secondary_records=len(context.secondary),
        warnings=list(context.warnings),
    )
    destination = output if output is not None else workbook

    target_names = resolve_targets(workbook, config)
    if not target_names:
        message = f"No target sheets listed in {config.setup_sheet}!{config.target_list_range}"
        logger.warning(message)
        summary.warnings.append(message)
        summary.status = "noop"
        summary.duration_seconds = round(time.perf_counter() - started, 3)
        return summary

    missing = 0
    for name in target_names:
        sheet = get_sheet(workbook, name)
        output_sheet = get_sheet(destination, name)
        if sheet is None or output_sheet is None:
            message = f'Sheet "{name}" listed as a target but not found.'
            logger.warning(message)
            summary.warnings.append(message)
            missing += 1
            continue
        logger.info("Processing %s", name)
        result = annotate_sheet(context, sheet, output_sheet)
        summary.sheets.append(result)
        summary.groups_processed += 1
        summary.records_scanned += result.scanned
        summary.records_updated += result.updated
        summary.records_skipped += result.skipped
        pace()

    if missing:
        summary.status = "partial"
    summary.duration_seconds = round(time.perf_counter() - started, 3)
    logger.info(
        "Done: sheets=%d scanned=%d updated=%d",
        summary.groups_processed,
        summary.records_scanned,
        summary.records_updated,
    )
    return summary
