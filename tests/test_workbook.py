from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from openpyxl import Workbook
from openpyxl.comments import Comment

from dynamic_notes.config import SourceConfig
from dynamic_notes.workbook import (
    UNCHANGED,
    column_values,
    open_workbook,
    read_csv_rows,
    read_range_values,
    read_source_rows,
    save_workbook,
    write_notes,
)


class WriteNotesTests(unittest.TestCase):
    def test_notes_clear_and_unchanged_cells(self):
        wb = Workbook()
        ws = wb.active
        ws.cell(row=4, column=2).comment = Comment("old", "someone")
        ws.cell(row=5, column=2).comment = Comment("keep", "someone")
        ws.cell(row=6, column=2).comment = Comment("blank me", "someone")

        touched = write_notes(ws, 3, 2, ["Line 1\nLine 2", None, UNCHANGED, ""], "dynamic-notes")

        self.assertEqual(touched, 3)
        self.assertEqual(ws.cell(row=3, column=2).comment.text, "Line 1\nLine 2")
        self.assertEqual(ws.cell(row=3, column=2).comment.author, "dynamic-notes")
        self.assertIsNone(ws.cell(row=4, column=2).comment)
        self.assertEqual(ws.cell(row=5, column=2).comment.text, "keep")
        self.assertIsNone(ws.cell(row=6, column=2).comment)

    def test_sentinel_looking_note_text_is_written(self):
        wb = Workbook()
        ws = wb.active
        touched = write_notes(ws, 3, 2, ["#N/A", "  "], "dynamic-notes")
        self.assertEqual(touched, 2)
        self.assertEqual(ws.cell(row=3, column=2).comment.text, "#N/A")
        self.assertEqual(ws.cell(row=4, column=2).comment.text, "  ")

    def test_cell_values_are_left_alone(self):
        wb = Workbook()
        ws = wb.active
        ws["B3"] = "=A3*2"
        write_notes(ws, 3, 2, ["note"], "dynamic-notes")
        self.assertEqual(ws["B3"].value, "=A3*2")


class ReadTests(unittest.TestCase):
    def test_range_and_column_values(self):
        wb = Workbook()
        ws = wb.active
        ws["C3"] = "AM Alice"
        ws["C5"] = "AM Bob"
        self.assertEqual(read_range_values(ws, "C3:C6"), ["AM Alice", None, "AM Bob", None])
        self.assertEqual(column_values(ws, 3, 3), ["AM Alice", None, "AM Bob"])
        self.assertEqual(column_values(ws, 3, 10), [])

    def test_csv_with_bom_and_tsv(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            utf8 = tmp / "distro.csv"
            utf8.write_bytes("\ufeffRID,Owner\n101,Pat\n102,\n".encode("utf-8"))
            self.assertEqual(read_csv_rows(utf8), [["RID", "Owner"], ["101", "Pat"], ["102", ""]])

            tsv = tmp / "distro.tsv"
            tsv.write_text("RID\tOwner\n101\tPat\n", encoding="utf-8")
            self.assertEqual(read_csv_rows(tsv), [["RID", "Owner"], ["101", "Pat"]])

    def test_source_rows_from_sheet_and_external_workbook(self):
        wb = Workbook()
        wb.active.title = "DISTRO"
        wb["DISTRO"].append(["RID", "Owner"])
        wb["DISTRO"].append(["101", "Pat"])
        self.assertEqual(read_source_rows(wb, SourceConfig("DISTRO")), [["RID", "Owner"], ["101", "Pat"]])
        self.assertIsNone(read_source_rows(wb, SourceConfig("MISSING")))

        with tempfile.TemporaryDirectory() as tmpdir:
            path = save_workbook(wb, Path(tmpdir) / "nested" / "distro.xlsx")
            external = SourceConfig("Other Name", path=str(path))
            self.assertEqual(read_source_rows(Workbook(), external)[1], ["101", "Pat"])
            self.assertIsNone(read_source_rows(wb, SourceConfig("DISTRO", path=str(Path(tmpdir) / "nope.csv"))))

    def test_unsupported_workbook_suffix(self):
        with self.assertRaisesRegex(ValueError, "Unsupported workbook type"):
            open_workbook("notes.xls")


if __name__ == "__main__":
    unittest.main()
