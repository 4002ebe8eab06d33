"""Run configuration.

Everything the engine needs to know about a workbook layout lives in
frozen dataclasses built once per run and passed down explicitly. Files are
JSON; rows and columns are 1-based like openpyxl.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from datetime import timezone, tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}
DEFAULT_SEPARATOR = "-" * 25


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class SourceConfig:
    name: str
    header_row: int = 1
    id_column: int = 1
    path: str | None = None


@dataclass(frozen=True)
class TargetConfig:
    header_row: int = 2
    data_start_row: int = 3
    rid_column: int = 3
    note_column: int = 8


@dataclass(frozen=True)
class RenderOptions:
    timezone: str = "UTC"
    default_separator: str = DEFAULT_SEPARATOR
    date_format: str = "%m/%d/%y"

    def zone(self) -> tzinfo:
        if self.timezone.upper() in {"UTC", "Z", "GMT"}:
            return timezone.utc
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"Unknown timezone: {self.timezone!r}") from exc


@dataclass(frozen=True)
class NotesConfig:
    primary: SourceConfig = field(default_factory=lambda: SourceConfig("STATCORE", header_row=2))
    secondary: SourceConfig = field(default_factory=lambda: SourceConfig("DISTRO", header_row=1))
    rules_sheet: str = "NOTE_CONFIG"
    rules_header_row: int = 1
    setup_sheet: str = "SETUP"
    target_list_range: str = "C3:C23"
    targets: tuple[str, ...] = ()
    group_field: str = "Parent Account"
    target: TargetConfig = field(default_factory=TargetConfig)
    render: RenderOptions = field(default_factory=RenderOptions)
    pause_seconds: float = 0.0
    comment_author: str = "dynamic-notes"


DEFAULT_CONFIG = NotesConfig()


def _build(cls, payload: Any, section: str):
    if not isinstance(payload, dict):
        raise ConfigError(f"Config section '{section}' must be a JSON object.")
    known = {item.name for item in fields(cls)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{section}': {', '.join(unknown)}")
    try:
        return cls(**payload)
    except TypeError as exc:
        raise ConfigError(f"Invalid '{section}' section: {exc}") from exc


def _positive_int(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"'{name}' must be a positive integer (1-based), got {value!r}")


def validate_config(config: NotesConfig) -> NotesConfig:
    for label, source in (("primary", config.primary), ("secondary", config.secondary)):
        if not source.name:
            raise ConfigError(f"'{label}.name' is required")
        _positive_int(source.header_row, f"{label}.header_row")
        _positive_int(source.id_column, f"{label}.id_column")
    _positive_int(config.rules_header_row, "rules_header_row")
    for name in ("header_row", "data_start_row", "rid_column", "note_column"):
        _positive_int(getattr(config.target, name), f"target.{name}")
    if config.target.data_start_row <= config.target.header_row:
        raise ConfigError("'target.data_start_row' must come after 'target.header_row'")
    pause = config.pause_seconds
    if isinstance(pause, bool) or not isinstance(pause, (int, float)) or pause < 0:
        raise ConfigError(f"'pause_seconds' must be a non-negative number, got {pause!r}")
    config.render.zone()
    return config


def config_from_dict(payload: dict[str, Any]) -> NotesConfig:
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    data = dict(payload)
    nested = {
        "primary": SourceConfig,
        "secondary": SourceConfig,
        "target": TargetConfig,
        "render": RenderOptions,
    }
    for key, cls in nested.items():
        if key in data:
            data[key] = _build(cls, data[key], key)
    if "targets" in data:
        targets = data["targets"]
        if not isinstance(targets, list) or not all(isinstance(name, str) for name in targets):
            raise ConfigError("'targets' must be a list of sheet names.")
        data["targets"] = tuple(name.strip() for name in targets if name.strip())
    return validate_config(_build(NotesConfig, data, "root"))


def load_config(path: Path | str | None) -> NotesConfig:
    if path is None:
        return DEFAULT_CONFIG
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise ConfigError("YAML configs are not supported yet. Use JSON for now.")
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    return config_from_dict(payload)


def default_config_payload() -> dict[str, Any]:
    payload = asdict(DEFAULT_CONFIG)
    payload["targets"] = list(DEFAULT_CONFIG.targets)
    return payload
