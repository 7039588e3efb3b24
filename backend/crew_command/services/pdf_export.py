"""PDF renderings (reportlab canvas): weekly hours sheet and the Gantt window."""
import io
from typing import Any, Dict

from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER, landscape
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

from crew_command.services.hours_report import DAY_LABELS


def _week_label(summary: Dict[str, Any]) -> str:
    return f"Week: {summary['week_start'].strftime('%m/%d/%y')} - {summary['week_end'].strftime('%m/%d/%y')}"


def weekly_hours_pdf(summary: Dict[str, Any], title: str = "Weekly Hours Summary") -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=LETTER)
    width, height = LETTER
    col_x = [0.5, 2.1, 3.0, 3.55, 4.1, 4.65, 5.2, 5.75, 6.3, 7.0]

    def header(y):
        c.setFont("Helvetica-Bold", 8)
        c.drawString(col_x[0] * inch, y, "Worker")
        c.drawString(col_x[1] * inch, y, "Role")
        for i, (label, d) in enumerate(zip(DAY_LABELS, summary["days"])):
            c.drawString(col_x[2 + i] * inch, y, label)
            c.setFont("Helvetica", 7)
            c.drawString(col_x[2 + i] * inch, y - 0.12 * inch, d.strftime("%m/%d/%y"))
            c.setFont("Helvetica-Bold", 8)
        c.drawString(col_x[9] * inch, y, "Total")
        return y - 0.35 * inch

    c.setFont("Helvetica-Bold", 16)
    c.drawString(0.5 * inch, height - 0.6 * inch, title)
    c.setFont("Helvetica", 10)
    c.drawString(0.5 * inch, height - 0.85 * inch, _week_label(summary))
    y = header(height - 1.2 * inch)

    c.setFont("Helvetica", 8)
    for r in summary["rows"]:
        if y < 0.8 * inch:
            c.showPage()
            y = header(height - 0.6 * inch)
            c.setFont("Helvetica", 8)
        cells = [r["name"][:30], r["role"]] + [f"{h:.1f}" if h > 0 else "-" for h in r["hours"]] + [f"{r['total']:.1f}"]
        for x, text in zip(col_x, cells):
            c.drawString(x * inch, y, text)
        y -= 0.2 * inch

    y -= 0.08 * inch
    c.setLineWidth(0.7)
    c.line(0.5 * inch, y + 0.15 * inch, width - 0.5 * inch, y + 0.15 * inch)
    c.setFont("Helvetica-Bold", 8)
    totals = ["TOTAL", ""] + [f"{t:.1f}" for t in summary["day_totals"]] + [f"{summary['grand_total']:.1f}"]
    for x, text in zip(col_x, totals):
        c.drawString(x * inch, y, text)

    c.showPage()
    c.save()
    return buf.getvalue()


def gantt_pdf(gantt: Dict[str, Any], title: str = "Schedule") -> bytes:
    """Landscape grid: one row per task, a cell per visible day, working days filled in the staffing color."""
    buf = io.BytesIO()
    page = landscape(LETTER)
    c = canvas.Canvas(buf, pagesize=page)
    width, height = page
    days = gantt["days"]
    name_w = 2.6 * inch
    left = 0.4 * inch
    grid_w = width - left - name_w - 0.4 * inch
    day_w = grid_w / max(len(days), 1)
    row_h = 0.24 * inch

    def header(y):
        c.setFont("Helvetica-Bold", 7)
        c.drawString(left, y, "Task")
        for i, day in enumerate(days):
            x = left + name_w + i * day_w
            if day["holiday"]:
                c.setFillColor(colors.HexColor("#ede9fe"))
                c.rect(x, y - 0.06 * inch, day_w, 0.3 * inch, stroke=0, fill=1)
                c.setFillColor(colors.black)
            c.drawCentredString(x + day_w / 2, y + 0.1 * inch, day["date"].strftime("%a")[0])
            c.drawCentredString(x + day_w / 2, y - 0.02 * inch, str(day["date"].day))
        return y - row_h - 0.1 * inch

    c.setFont("Helvetica-Bold", 14)
    c.drawString(left, height - 0.5 * inch, title)
    c.setFont("Helvetica", 9)
    c.drawString(
        left, height - 0.72 * inch,
        f"{gantt['window_start'].strftime('%b %d, %Y')} - {gantt['window_end'].strftime('%b %d, %Y')}",
    )
    y = header(height - 1.05 * inch)

    for task in gantt["tasks"]:
        if y < 0.6 * inch:
            c.showPage()
            y = header(height - 0.5 * inch)
        c.setFont("Helvetica", 7)
        c.setFillColor(colors.black)
        label = f"{task['name'][:42]} ({task['assigned_count']}/{task['required_count']})"
        c.drawString(left, y + 0.06 * inch, label)
        fill = colors.HexColor(task["color"])
        active = set(task["working_days"])
        for i, day in enumerate(days):
            x = left + name_w + i * day_w
            c.setStrokeColor(colors.HexColor("#d1d5db"))
            c.setLineWidth(0.3)
            if day["date"] in active:
                c.setFillColor(fill)
                c.rect(x + 1, y, day_w - 2, row_h - 4, stroke=1, fill=1)
            else:
                c.rect(x + 1, y, day_w - 2, row_h - 4, stroke=1, fill=0)
        c.setFillColor(colors.black)
        y -= row_h

    c.showPage()
    c.save()
    return buf.getvalue()
