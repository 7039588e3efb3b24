"""
Schedule import: CSV / xlsx parsing into drafts; any bad row rejects the file.
"""
from io import BytesIO

import pytest
from openpyxl import Workbook

from crew_command.services.task_import import (
    TaskImportError, draft_values, parse_duration, parse_task_file,
)


def test_parse_duration_leading_integer():
    assert parse_duration("5") == 5
    assert parse_duration("12d") == 12
    assert parse_duration(" 3 days") == 3
    assert parse_duration("") is None
    assert parse_duration("n/a") is None


def test_csv_rows_become_drafts():
    content = (
        "Activity ID,Activity Name,Duration\n"
        "A1000,Excavate footings,5d\n"
        "\n"
        "A1010,Pour slab,2\n"
    ).encode("utf-8")
    rows = parse_task_file("schedule.csv", content)
    assert [r.task_name for r in rows] == ["A1000 - Excavate footings", "A1010 - Pour slab"]
    values = draft_values(rows[0])
    assert values["name"] == "A1000 - Excavate footings"
    assert values["duration_days"] == 5
    assert values["required_laborers"] == 0


def test_csv_header_is_case_insensitive_and_accepts_underscores():
    content = "activity_id,ACTIVITY NAME,duration\nB1,Frame walls,4\n".encode("utf-8-sig")
    rows = parse_task_file("s.csv", content)
    assert rows[0].activity_id == "B1"
    assert rows[0].duration_days == 4


def test_missing_columns_rejected():
    with pytest.raises(TaskImportError) as exc:
        parse_task_file("s.csv", b"Activity ID,Name\nA1,Thing\n")
    assert "Missing required columns" in exc.value.errors[0]
    assert "activity name" in exc.value.errors[0]


def test_header_only_rejected():
    with pytest.raises(TaskImportError) as exc:
        parse_task_file("s.csv", b"Activity ID,Activity Name,Duration\n")
    assert "at least a header row" in exc.value.errors[0]


def test_one_bad_row_rejects_whole_file():
    content = b"Activity ID,Activity Name,Duration\nA1,Dig,3\n,No id,2\nA3,,1\n"
    with pytest.raises(TaskImportError) as exc:
        parse_task_file("s.csv", content)
    assert exc.value.errors == [
        "Row 2: Activity ID and Activity Name are required",
        "Row 3: Activity ID and Activity Name are required",
    ]


def test_xlsx_first_sheet():
    wb = Workbook()
    ws = wb.active
    ws.append(["Activity ID", "Activity Name", "Duration"])
    ws.append(["C100", "Set forms", 3.0])
    ws.append([None, None, None])
    ws.append(["C110", "Strip forms", "1d"])
    buf = BytesIO()
    wb.save(buf)
    rows = parse_task_file("schedule.xlsx", buf.getvalue())
    assert [r.activity_id for r in rows] == ["C100", "C110"]
    assert rows[0].duration == "3"
    assert rows[1].duration_days == 1


def test_invalid_xlsx_rejected():
    with pytest.raises(TaskImportError) as exc:
        parse_task_file("broken.xlsx", b"not a workbook")
    assert exc.value.errors[0].startswith("Invalid Excel file")
