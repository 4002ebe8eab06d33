from __future__ import annotations

import argparse
import json
import logging
import sys
import zipfile
from pathlib import Path
from typing import Any

from openpyxl.utils.exceptions import InvalidFileException

from dynamic_notes import __version__ as TOOL_VERSION
from dynamic_notes.config import ConfigError, NotesConfig, default_config_payload, load_config
from dynamic_notes.contracts import TOOL_NAME, build_payload, build_run_summary
from dynamic_notes.loader import MissingSourceError
from dynamic_notes.orchestrator import BatchSummary, build_context, load_rules, preview_note, run_batch
from dynamic_notes.rules import describe_rules
from dynamic_notes.workbook import open_workbook, save_workbook

DEFAULT_CONFIG_PATH = "dynamic-notes.json"
BLANK_PREVIEW_MESSAGE = "(Result is blank. Check your 'Hide if Empty' logic)"

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_SOURCE_FAILED = 2
EXIT_NOT_FOUND = 3
EXIT_PARTIAL = 6


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class NotesArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True, default=str)


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, ConfigError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (MissingSourceError, InvalidFileException, zipfile.BadZipFile, ValueError)):
        return EXIT_SOURCE_FAILED
    return EXIT_COMMAND_ERROR


def describe_exception(exc: Exception) -> str:
    if isinstance(exc, (InvalidFileException, zipfile.BadZipFile)):
        return f"Could not read workbook: {exc}"
    return str(exc)


def require_input(args: argparse.Namespace) -> Path:
    input_path = Path(args.input)
    if not input_path.exists():
        raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)
    return input_path


def default_output_path(input_path: Path) -> Path:
    return input_path.with_name(f"{input_path.stem}-notes{input_path.suffix}")


def run_output_path(args: argparse.Namespace, input_path: Path) -> Path:
    if args.in_place and args.output:
        raise CliError("Use either --output or --in-place, not both.", EXIT_COMMAND_ERROR)
    if args.in_place:
        return input_path
    path = Path(args.output) if args.output else default_output_path(input_path)
    if path.exists() and not args.dry_run:
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def render_run_text(summary: BatchSummary, output_path: Path | None) -> str:
    lines = [
        "dynamic-notes run",
        f"Status: {summary.status}",
        f"Rules loaded: {summary.rules_loaded}",
        f"Primary RIDs: {summary.primary_records}",
        f"Secondary RIDs: {summary.secondary_records}",
        f"Tabs: {summary.groups_processed} | Scanned: {summary.records_scanned} | Updated: {summary.records_updated}",
    ]
    if summary.records_skipped:
        lines.append(f"Unknown RIDs left unchanged: {summary.records_skipped}")
    for sheet in summary.sheets:
        lines.append(f"- {sheet.name}: scanned {sheet.scanned}, updated {sheet.updated}")
    if summary.warnings:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in summary.warnings)
    if output_path is not None:
        lines.append(f"Output: {output_path}")
    return "\n".join(lines) + "\n"


def build_run_payload(summary: BatchSummary, input_path: Path, output_path: Path | None) -> dict[str, Any]:
    return build_payload(
        "dynamic_notes.run_summary",
        TOOL_VERSION,
        run_summary=build_run_summary(summary, command="run", input_path=input_path, output_path=output_path),
    )


def exit_code_for_summary(summary: BatchSummary) -> int:
    if summary.status == "partial":
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def run_run(args: argparse.Namespace) -> int:
    input_path = require_input(args)
    config = load_config(args.config)
    output_path = run_output_path(args, input_path)

    values_workbook = open_workbook(input_path, data_only=True)
    editable_workbook = open_workbook(input_path, data_only=False)
    summary = run_batch(values_workbook, config, output=editable_workbook)

    written_path = None
    if not args.dry_run and summary.status != "noop":
        written_path = save_workbook(editable_workbook, output_path)

    payload = build_run_payload(summary, input_path, written_path)
    if args.summary:
        write_text(Path(args.summary), json_dumps(payload))
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(render_run_text(summary, written_path).rstrip(), quiet=args.quiet)
        if args.summary:
            emit_human(f"Run summary: {args.summary}", quiet=args.quiet)
    return exit_code_for_summary(summary)


def load_preview_context(input_path: Path, config: NotesConfig):
    workbook = open_workbook(input_path, data_only=True)
    return build_context(workbook, config)


def run_preview(args: argparse.Namespace) -> int:
    input_path = require_input(args)
    config = load_config(args.config)
    rid = str(args.rid).strip()
    if not rid:
        raise CliError("Enter a RID to preview.", EXIT_COMMAND_ERROR)
    context = load_preview_context(input_path, config)
    result = preview_note(context, rid)

    if args.json:
        maybe_emit_json_stdout(
            build_payload(
                "dynamic_notes.preview",
                TOOL_VERSION,
                rid=result.rid,
                found=result.found,
                blank=result.is_blank,
                note=result.note,
            ),
            True,
        )
    elif not result.found:
        eprint(f'RID "{result.rid}" NOT FOUND in {config.primary.name}.')
    elif result.is_blank:
        print(BLANK_PREVIEW_MESSAGE)
    else:
        print(result.note)
    return EXIT_SUCCESS if result.found else EXIT_NOT_FOUND


def render_rules_text(described: list[dict[str, Any]]) -> str:
    lines = [f"{len(described)} rule(s)"]
    for item in described:
        flags = []
        if item["break_after"]:
            flags.append("break")
        if not item["known_format"]:
            flags.append("unknown format -> raw")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        lines.append(
            f"{item['position']:>3}. {item['expression']!r} "
            f"format={item['format'] or 'raw'} template={item['template']!r}{suffix}"
        )
    return "\n".join(lines) + "\n"


def run_rules(args: argparse.Namespace) -> int:
    input_path = require_input(args)
    config = load_config(args.config)
    workbook = open_workbook(input_path, data_only=True)
    described = describe_rules(load_rules(workbook, config))
    if args.json:
        maybe_emit_json_stdout(build_payload("dynamic_notes.rules", TOOL_VERSION, rules=described), True)
    else:
        print(render_rules_text(described).rstrip())
    return EXIT_SUCCESS


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_text(config_path, json_dumps(default_config_payload()) + "\n")
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = NotesArgumentParser(prog=TOOL_NAME, description="Rule-driven account notes for spreadsheet workbooks.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Annotate every target sheet and save the workbook.")
    run.add_argument("input", help="Workbook path (.xlsx/.xlsm)")
    run.add_argument("--config", help="JSON config path")
    run.add_argument("-o", "--output", help="Output workbook path (default: <name>-notes.xlsx)")
    run.add_argument("--in-place", action="store_true", help="Overwrite the input workbook")
    run.add_argument("--summary", help="Write the JSON run summary to this path")
    run.add_argument("--dry-run", action="store_true", help="Render notes without saving the workbook")
    run.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    run.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    run.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    preview = subparsers.add_parser("preview", help="Render the note for one RID.")
    preview.add_argument("input", help="Workbook path (.xlsx/.xlsm)")
    preview.add_argument("--rid", required=True, help="RID to preview")
    preview.add_argument("--config", help="JSON config path")
    preview.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    preview.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    preview.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    rules = subparsers.add_parser("rules", help="List the parsed rule table.")
    rules.add_argument("input", help="Workbook path (.xlsx/.xlsm)")
    rules.add_argument("--config", help="JSON config path")
    rules.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default=DEFAULT_CONFIG_PATH, help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "run":
            return run_run(args)
        if args.command == "preview":
            return run_preview(args)
        if args.command == "rules":
            return run_rules(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except (CliError, ConfigError, MissingSourceError, InvalidFileException, zipfile.BadZipFile, ValueError, OSError) as exc:
        eprint(describe_exception(exc))
        return classify_exception(exc)


if __name__ == "__main__":
    raise SystemExit(main())
