from __future__ import annotations

import importlib.util
import io
import sys
import unittest
import zipfile
from dataclasses import replace
from pathlib import Path

from openpyxl import load_workbook

ROOT = Path(__file__).resolve().parents[1]
TESTS_DIR = Path(__file__).resolve().parent
APP_PATH = ROOT / "web" / "app.py"
sys.path.insert(0, str(TESTS_DIR))

from notes_fixtures import NOTE_101, NOTE_103, build_notes_workbook


def load_module(module_path: Path, module_name: str):
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


APP = load_module(APP_PATH, "dynamic_notes_web_app")


def workbook_bytes(**kwargs) -> bytes:
    buffer = io.BytesIO()
    build_notes_workbook(**kwargs).save(buffer)
    return buffer.getvalue()


def with_macro_project(raw: bytes) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(raw)) as source, zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as target:
        for item in source.infolist():
            target.writestr(item, source.read(item.filename))
        target.writestr("xl/vbaProject.bin", b"vba-project")
    return buffer.getvalue()


class WebAppTests(unittest.TestCase):
    def test_uploaded_config_defaults_and_errors(self):
        self.assertIs(APP.parse_uploaded_config(None), APP.DEFAULT_CONFIG)
        config = APP.parse_uploaded_config(b'{"targets": ["AM Bob"]}')
        self.assertEqual(config.targets, ("AM Bob",))
        with self.assertRaises(APP.ConfigError):
            APP.parse_uploaded_config(b"{oops")

    def test_preview_upload(self):
        result = APP.preview_upload(workbook_bytes(), APP.DEFAULT_CONFIG, "101")
        self.assertEqual(result, {"rid": "101", "found": True, "blank": False, "note": NOTE_101})
        self.assertFalse(APP.preview_upload(workbook_bytes(), APP.DEFAULT_CONFIG, "999")["found"])

    def test_annotate_upload_returns_annotated_workbook(self):
        annotated, summary = APP.annotate_upload(workbook_bytes(), APP.DEFAULT_CONFIG)
        self.assertEqual(summary.status, "partial")
        wb = load_workbook(io.BytesIO(annotated))
        self.assertEqual(wb["AM Alice"]["H4"].comment.text, NOTE_103)

    def test_macro_project_survives_when_kept(self):
        raw = with_macro_project(workbook_bytes())
        annotated, _ = APP.annotate_upload(raw, APP.DEFAULT_CONFIG, keep_vba=True)
        with zipfile.ZipFile(io.BytesIO(annotated)) as package:
            self.assertEqual(package.read("xl/vbaProject.bin"), b"vba-project")
        self.assertEqual(load_workbook(io.BytesIO(annotated))["AM Alice"]["H3"].comment.text, NOTE_101)

        plain, _ = APP.annotate_upload(raw, APP.DEFAULT_CONFIG)
        with zipfile.ZipFile(io.BytesIO(plain)) as package:
            self.assertNotIn("xl/vbaProject.bin", package.namelist())

    def test_download_type_follows_suffix(self):
        self.assertTrue(APP.is_macro_enabled("Book.XLSM"))
        self.assertFalse(APP.is_macro_enabled("book.xlsx"))
        self.assertEqual(APP.download_mime("book.xlsm"), APP.XLSM_MIME)
        self.assertEqual(APP.download_mime("book.xlsx"), APP.XLSX_MIME)

    def test_unreadable_upload_is_a_reported_error(self):
        with self.assertRaises(APP.UPLOAD_ERRORS) as ctx:
            APP.rules_frame(b"not a workbook", APP.DEFAULT_CONFIG)
        self.assertIn("Could not read workbook", APP.describe_exception(ctx.exception))
        bad_range = replace(APP.DEFAULT_CONFIG, target_list_range="not a range")
        with self.assertRaises(APP.UPLOAD_ERRORS):
            APP.annotate_upload(workbook_bytes(), bad_range)
        with self.assertRaises(APP.UPLOAD_ERRORS):
            APP.parse_uploaded_config(b"{oops")

    def test_rules_frame(self):
        frame = APP.rules_frame(workbook_bytes(), APP.DEFAULT_CONFIG)
        self.assertEqual(len(frame), 7)
        self.assertEqual(frame.iloc[3]["format"], "separator")
        with self.assertRaises(APP.MissingSourceError):
            APP.rules_frame(workbook_bytes(include_rules=False), APP.DEFAULT_CONFIG)


if __name__ == "__main__":
    unittest.main()
