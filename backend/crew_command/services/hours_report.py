"""Weekly hours summary (Sunday to Saturday) and its CSV / Excel exports. Only "worked" days count."""
import csv
import io
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, Side

from crew_command.services.working_days import week_dates, week_start_sunday

DAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
CSV_HEADERS = ["Worker", "Role", *DAY_LABELS, "Total"]


def build_weekly_summary(workers: Iterable, records: Iterable, any_day: date) -> Dict[str, Any]:
    """
    workers: rows shown in the report (name, role, id).
    records: daily_hours rows for the week; non-"worked" statuses contribute 0.
    """
    sunday = week_start_sunday(any_day)
    days = week_dates(sunday)
    index = {d: i for i, d in enumerate(days)}
    by_worker: Dict[int, List[float]] = {}
    for rec in records:
        i = index.get(rec.log_date)
        if i is None or rec.status != "worked":
            continue
        slots = by_worker.setdefault(rec.worker_id, [0.0] * 7)
        slots[i] += float(rec.hours_worked or Decimal("0"))

    rows = []
    for w in workers:
        hours = by_worker.get(w.id, [0.0] * 7)
        rows.append({
            "worker_id": w.id,
            "name": w.name,
            "role": w.role,
            "hours": hours,
            "total": sum(hours),
        })
    rows.sort(key=lambda r: r["name"].lower())
    day_totals = [sum(r["hours"][i] for r in rows) for i in range(7)]
    return {
        "week_start": sunday,
        "week_end": sunday + timedelta(days=6),
        "days": days,
        "rows": rows,
        "day_totals": day_totals,
        "grand_total": sum(day_totals),
    }


def export_filename(summary: Dict[str, Any], extension: str) -> str:
    return f"weekly_hours_{summary['week_start'].isoformat()}.{extension}"


def _fmt(value: float, zero: str) -> str:
    return f"{value:.1f}" if value > 0 else zero


def weekly_csv(summary: Dict[str, Any]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for r in summary["rows"]:
        writer.writerow([r["name"], r["role"], *[_fmt(h, "0") for h in r["hours"]], f"{r['total']:.1f}"])
    writer.writerow(["TOTAL", "", *[f"{t:.1f}" for t in summary["day_totals"]], f"{summary['grand_total']:.1f}"])
    return buf.getvalue()


def _style_header(ws):
    thin = Side(style="thin")
    for row in ws.iter_rows(min_row=1, max_row=1):
        for cell in row:
            cell.font = Font(bold=True)
            cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
            cell.border = Border(top=thin, left=thin, right=thin, bottom=thin)


def weekly_xlsx(summary: Dict[str, Any]) -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "Weekly Hours"
    ws.append(["Worker", "Role"] + [
        f"{label} {d.strftime('%m/%d')}" for label, d in zip(DAY_LABELS, summary["days"])
    ] + ["Total"])
    for r in summary["rows"]:
        ws.append([r["name"], r["role"], *r["hours"], r["total"]])
    ws.append(["TOTAL", "", *summary["day_totals"], summary["grand_total"]])
    for cell in ws[ws.max_row]:
        cell.font = Font(bold=True)
    _style_header(ws)
    for row in ws.iter_rows(min_row=2, min_col=3):
        for cell in row:
            cell.number_format = "0.0"
    ws.column_dimensions["A"].width = 24
    ws.column_dimensions["B"].width = 12
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf
