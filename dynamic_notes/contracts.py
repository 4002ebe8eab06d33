"""Versioned contracts for dynamic-notes machine outputs.

Every JSON document the CLI or the web app emits carries a ``contract``
block naming its schema, so downstream scripts can refuse shapes they do
not know.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

TOOL_NAME = "dynamic-notes"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

CONTRACT_VERSIONS = {
    "dynamic_notes.run_summary": "1.0.0",
    "dynamic_notes.preview": "1.0.0",
    "dynamic_notes.rules": "1.0.0",
}


def generated_at() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def build_payload(name: str, tool_version: str, **body: Any) -> dict[str, Any]:
    """Wrap ``body`` with the contract header for ``name``; unknown names raise ``KeyError``."""
    version = CONTRACT_VERSIONS[name]
    return {
        "contract": {"name": name, "version": version},
        "schema_version": version,
        "tool_version": tool_version,
        **body,
    }


def build_run_summary(summary, *, command: str, input_path: Path, output_path: Path | None = None) -> dict[str, Any]:
    """Flatten a batch summary (status, ``metrics()``, warnings) into the run block."""
    warnings = list(summary.warnings)
    return {
        "tool": TOOL_NAME,
        "command": command,
        "status": summary.status,
        "generated_at": generated_at(),
        "input_file": str(input_path),
        "output_file": None if output_path is None else str(output_path),
        "warnings_count": len(warnings),
        "warnings": warnings,
        "metrics": summary.metrics(),
    }
