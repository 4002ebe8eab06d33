#!/usr/bin/env python3
from __future__ import annotations

import io
import json
import sys
import zipfile
from pathlib import Path
from typing import Any, Optional

import pandas as pd
import streamlit as st
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dynamic_notes.cli import describe_exception
from dynamic_notes.config import DEFAULT_CONFIG, ConfigError, NotesConfig, config_from_dict
from dynamic_notes.loader import MissingSourceError
from dynamic_notes.orchestrator import BatchSummary, build_context, load_rules, preview_note, run_batch
from dynamic_notes.rules import describe_rules

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLSM_MIME = "application/vnd.ms-excel.sheet.macroEnabled.12"
UPLOAD_ERRORS = (ConfigError, MissingSourceError, InvalidFileException, zipfile.BadZipFile, ValueError, OSError)


def parse_uploaded_config(raw: Optional[bytes]) -> NotesConfig:
    if not raw:
        return DEFAULT_CONFIG
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    return config_from_dict(payload)


def is_macro_enabled(filename: str) -> bool:
    return Path(filename).suffix.lower() == ".xlsm"


def download_mime(filename: str) -> str:
    return XLSM_MIME if is_macro_enabled(filename) else XLSX_MIME


def open_upload(raw: bytes, *, data_only: bool = True, keep_vba: bool = False):
    return load_workbook(io.BytesIO(raw), data_only=data_only, keep_vba=keep_vba)


def rules_frame(raw: bytes, config: NotesConfig) -> pd.DataFrame:
    return pd.DataFrame(describe_rules(load_rules(open_upload(raw), config)))


def preview_upload(raw: bytes, config: NotesConfig, rid: str) -> dict[str, Any]:
    context = build_context(open_upload(raw), config)
    result = preview_note(context, rid)
    return {"rid": result.rid, "found": result.found, "blank": result.is_blank, "note": result.note}


def annotate_upload(raw: bytes, config: NotesConfig, *, keep_vba: bool = False) -> tuple[bytes, BatchSummary]:
    """Run the batch against an uploaded workbook and return the annotated bytes.

    ``keep_vba`` carries the macro project of an ``.xlsm`` upload into the result.
    """
    editable = open_upload(raw, data_only=False, keep_vba=keep_vba)
    summary = run_batch(open_upload(raw), config, output=editable)
    buffer = io.BytesIO()
    editable.save(buffer)
    return buffer.getvalue(), summary


def render_summary(summary: BatchSummary) -> None:
    cols = st.columns(4)
    cols[0].metric("Tabs", summary.groups_processed)
    cols[1].metric("Scanned", summary.records_scanned)
    cols[2].metric("Updated", summary.records_updated)
    cols[3].metric("Unknown RIDs", summary.records_skipped)
    for warning in summary.warnings:
        st.warning(warning)
    if summary.sheets:
        st.dataframe(
            pd.DataFrame([vars(sheet) for sheet in summary.sheets]),
            width="stretch",
            hide_index=True,
        )


def main() -> None:
    st.set_page_config(page_title="dynamic-notes", page_icon="🗒️", layout="wide")
    st.title("dynamic-notes")
    st.caption("Preview and apply rule-driven sticky notes to an account workbook.")

    upload = st.file_uploader("Workbook", type=["xlsx", "xlsm"])
    config_upload = st.file_uploader("Config (optional JSON)", type=["json"])
    if upload is None:
        st.info("Upload a workbook with STATCORE, DISTRO, NOTE_CONFIG and SETUP tabs to begin.")
        return

    raw = upload.getvalue()
    try:
        config = parse_uploaded_config(config_upload.getvalue() if config_upload else None)
    except ConfigError as exc:
        st.error(str(exc))
        return

    rules_tab, preview_tab, run_tab = st.tabs(["Rules", "Preview", "Run"])

    with rules_tab:
        try:
            st.dataframe(rules_frame(raw, config), width="stretch", hide_index=True)
        except UPLOAD_ERRORS as exc:
            st.error(describe_exception(exc))

    with preview_tab:
        rid = st.text_input("RID")
        if st.button("Generate note", disabled=not rid.strip()):
            try:
                with st.spinner("Generating note..."):
                    result = preview_upload(raw, config, rid)
            except UPLOAD_ERRORS as exc:
                st.error(describe_exception(exc))
            else:
                if not result["found"]:
                    st.error(f'RID "{result["rid"]}" NOT FOUND in {config.primary.name}.')
                elif result["blank"]:
                    st.warning("(Result is blank. Check your 'Hide if Empty' logic)")
                else:
                    st.code(result["note"], language=None)

    with run_tab:
        if st.button("Update all notes"):
            try:
                with st.spinner("Loading rule engine..."):
                    annotated, summary = annotate_upload(raw, config, keep_vba=is_macro_enabled(upload.name))
            except UPLOAD_ERRORS as exc:
                st.error(describe_exception(exc))
            else:
                render_summary(summary)
                st.download_button(
                    "Download annotated workbook",
                    data=annotated,
                    file_name=f"{Path(upload.name).stem}-notes{Path(upload.name).suffix}",
                    mime=download_mime(upload.name),
                )


if __name__ == "__main__":
    main()
