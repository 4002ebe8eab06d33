from __future__ import annotations

from datetime import datetime
from pathlib import Path

from openpyxl import Workbook
from openpyxl.comments import Comment

SEPARATOR = "-" * 25

NOTE_101 = "\n".join(
    [
        "Alpha Bistro (Distro)",
        "Rev: 1234.6 | CVR: 24%",
        SEPARATOR,
        "Active RIDs: 4",
        "Double clicks: 80",
        "Owner: Pat",
    ]
)
NOTE_102 = "\n".join(
    [
        "Beta Grill",
        "Rev: 500 | CVR: 10%",
        SEPARATOR,
        "Active RIDs: 4",
        "Double clicks: 0",
    ]
)
NOTE_103 = "\n".join(
    [
        "Gamma Cafe",
        SEPARATOR,
        "Active RIDs: 1",
        "Double clicks: 20",
    ]
)

RULE_ROWS = [
    ["Expression", "Format", "Template", "Line Break"],
    ["Account Name", "", "{{val}}", True],
    ["Revenue", "Number", "Rev: {{val}}", False],
    ["cvr_last_month_google", "percent", " | CVR: {{val}}", True],
    [None, None, None, False],
    ["---", "separator", "", False],
    ["activeGroupCount", "", "Active RIDs: {{val}}", True],
    ["{Clicks} * 2", "", "Double clicks: {{val}}", "TRUE"],
    ["Owner", "", "Owner: {{val}}", True],
]


def build_notes_workbook(*, include_rules: bool = True, include_distro: bool = True) -> Workbook:
    wb = Workbook()
    setup = wb.active
    setup.title = "SETUP"
    setup["C2"] = "AM Tabs"
    setup["C3"] = "AM Alice"
    setup["C4"] = "AM Bob"
    setup["C5"] = "Missing Tab"

    stat = wb.create_sheet("STATCORE")
    stat.append(["STATCORE export"])
    stat.append(["RID", "Account Name", "Revenue", "CVR Last Month – Google", "Clicks", "Parent Account", "Last Visit"])
    stat.append(["101", "Alpha Bistro", 1234.56, 0.236, 40, "X", datetime(2026, 9, 1)])
    stat.append([102, "Beta Grill", 500, 0.1, 0, "X", None])
    stat.append([" 103 ", "Gamma Cafe", None, None, 10, None, None])
    stat.append([None, "Ghost Row", 1, 1, 1, None, None])
    stat.append(["104", "Delta Diner", 10, 0.5, 5, "X", None])
    stat.append(["105", "Echo Eats", 20, 0.25, 6, "X", None])

    if include_distro:
        distro = wb.create_sheet("DISTRO")
        distro.append(["RID", "Owner", "Account Name"])
        distro.append(["101", "Pat", "Alpha Bistro (Distro)"])
        distro.append(["102", "", "Beta Grill"])

    if include_rules:
        rules = wb.create_sheet("NOTE_CONFIG")
        for row in RULE_ROWS:
            rules.append(row)

    alice = wb.create_sheet("AM Alice")
    alice.append(["Account Manager: Alice"])
    alice.append(["Name", "Status", "RID", "", "", "", "", "Notes"])
    alice.append(["Alpha Bistro", "Active", "101"])
    alice.append(["Gamma Cafe", "Active", 103])
    alice.append(["Unknown", "Active", "999"])
    alice.append(["(spacer)", "", None])
    alice.cell(row=5, column=8).comment = Comment("keep me", "someone")
    alice.cell(row=6, column=8).comment = Comment("stale", "someone")

    bob = wb.create_sheet("AM Bob")
    bob.append(["Account Manager: Bob"])
    bob.append(["Name", "Status", "RID", "", "", "", "", "Notes"])
    bob.append(["Beta Grill", "Active", "102"])
    return wb


def save_notes_workbook(path: Path, **kwargs) -> Path:
    build_notes_workbook(**kwargs).save(path)
    return path
