"""Bulk task import: a schedule export (CSV, or the first sheet of an .xlsx) parsed into task drafts.

Expected header (case-insensitive, spaces or underscores):
  Activity ID | Activity Name | Duration
Each data row becomes a draft named "<Activity ID> - <Activity Name>"; duration_days is the
leading integer of the Duration cell ("5", "5d", "5 days").
"""
import csv
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("activity id", "activity name", "duration")
LEADING_INT_PATTERN = re.compile(r"^(\d+)")


class TaskImportError(ValueError):
    """File cannot be imported; errors lists every problem found"""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


@dataclass
class ImportedRow:
    activity_id: str
    activity_name: str
    duration: str

    @property
    def task_name(self) -> str:
        return f"{self.activity_id} - {self.activity_name}"

    @property
    def duration_days(self) -> Optional[int]:
        return parse_duration(self.duration)


@dataclass
class ImportResult:
    rows: List[ImportedRow] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def parse_duration(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    m = LEADING_INT_PATTERN.match(str(raw).strip())
    return int(m.group(1)) if m else None


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _column_index(headers: List[str], column: str) -> int:
    for i, h in enumerate(headers):
        if h == column or h == column.replace(" ", "_"):
            return i
    return -1


def parse_table(lines: Sequence[Sequence[Any]]) -> ImportResult:
    """Header row plus data rows, already split into cells. Blank rows are dropped before numbering."""
    lines = [row for row in lines if any(_cell_text(c) for c in row)]
    result = ImportResult()
    if len(lines) < 2:
        result.errors.append("CSV file must contain at least a header row and one data row")
        return result

    headers = [_cell_text(h).lower() for h in lines[0]]
    missing = [col for col in REQUIRED_COLUMNS if _column_index(headers, col) < 0]
    if missing:
        result.errors.append(f"Missing required columns: {', '.join(missing)}")
        return result

    id_idx = _column_index(headers, "activity id")
    name_idx = _column_index(headers, "activity name")
    duration_idx = _column_index(headers, "duration")

    for i, values in enumerate(lines[1:], start=1):
        values = [_cell_text(v) for v in values]
        activity_id = values[id_idx] if id_idx < len(values) else ""
        activity_name = values[name_idx] if name_idx < len(values) else ""
        duration = values[duration_idx] if duration_idx < len(values) else ""
        if not activity_id or not activity_name:
            result.errors.append(f"Row {i}: Activity ID and Activity Name are required")
            continue
        result.rows.append(ImportedRow(activity_id, activity_name, duration))

    if not result.rows and not result.errors:
        result.errors.append("No valid rows found in CSV file")
    return result


def parse_csv(content: bytes) -> ImportResult:
    try:
        text = content.decode("utf-8-sig")
        lines = list(csv.reader(io.StringIO(text)))
    except (UnicodeDecodeError, csv.Error) as e:
        raise TaskImportError([f"Invalid CSV: {e}"])
    return parse_table(lines)


def parse_xlsx(content: bytes) -> ImportResult:
    from openpyxl import load_workbook

    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise TaskImportError([f"Invalid Excel file: {e}"])
    ws = wb.active
    if ws is None:
        raise TaskImportError(["Excel file has no worksheet"])
    lines = [list(row) for row in ws.iter_rows(values_only=True) if row is not None]
    wb.close()
    return parse_table(lines)


def parse_task_file(filename: str, content: bytes) -> List[ImportedRow]:
    """Parse an uploaded schedule; any problem rejects the whole file."""
    if (filename or "").lower().endswith(".xlsx"):
        result = parse_xlsx(content)
    else:
        result = parse_csv(content)
    if result.errors:
        raise TaskImportError(result.errors)
    logger.info("task import parsed: file=%s rows=%s", filename, len(result.rows))
    return result.rows


def draft_values(row: ImportedRow) -> Dict[str, Any]:
    return {
        "name": row.task_name,
        "activity_id": row.activity_id,
        "activity_name": row.activity_name,
        "duration_days": row.duration_days,
        "required_operators": 0,
        "required_laborers": 0,
        "required_carpenters": 0,
        "required_masons": 0,
    }
