"""Calendar views: 4-week Gantt window (JSON and PDF), timeline range, day view, working-day lookup."""
from collections import defaultdict
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.access import AccessScope
from crew_command.database import get_db
from crew_command import crud, schemas
from crew_command.security import get_scope
from crew_command.services import holiday_calendar
from crew_command.services.gantt import build_gantt, timeline_range, window_for
from crew_command.services.pdf_export import gantt_pdf
from crew_command.services.staffing import task_staffing
from crew_command.services.working_days import task_working_days, working_days
from crew_command.utils.http_headers import build_content_disposition

router = APIRouter(prefix="/api/calendar", tags=["calendar"])

RESPONSE_404 = {404: {"description": "Not found", "content": {"application/json": {"example": {"detail": "Job site not found"}}}}}


async def _gantt(
    db: AsyncSession,
    scope: AccessScope,
    anchor: Optional[date],
    job_site_id: Optional[int],
    include_saturday: bool,
    include_sunday: bool,
) -> dict:
    start, end = window_for(anchor or date.today())
    tasks = await crud.list_tasks(db, scope, job_site_id=job_site_id, start=start, end=end, load_assignments=True)
    tasks = [t for t in tasks if t.status != "draft"]
    by_task = defaultdict(list)
    for t in tasks:
        by_task[t.id] = [a for a in t.assignments if start <= a.assigned_date <= end]
    holidays = await holiday_calendar.get_holiday_names(db, start, end)
    return build_gantt(tasks, by_task, start, end, include_saturday, include_sunday, holidays=holidays)


async def _site_name(db: AsyncSession, scope: AccessScope, job_site_id: Optional[int]) -> Optional[str]:
    if job_site_id is None:
        return None
    site = await crud.get_job_site(db, scope, job_site_id)
    if not site:
        raise HTTPException(status_code=404, detail="Job site not found")
    return site.name


@router.get("/gantt", response_model=schemas.GanttResponse, summary="28-day Gantt window starting on the Sunday of the anchor's week", responses=RESPONSE_404)
async def gantt(
    anchor: Optional[date] = Query(None, description="Any day in the first week; defaults to today"),
    job_site_id: Optional[int] = Query(None),
    include_saturday: bool = Query(False, description="Show Saturday columns"),
    include_sunday: bool = Query(False, description="Show Sunday columns"),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    await _site_name(db, scope, job_site_id)
    return await _gantt(db, scope, anchor, job_site_id, include_saturday, include_sunday)


@router.get("/gantt/pdf", summary="Gantt window as a landscape PDF", responses=RESPONSE_404)
async def gantt_pdf_export(
    anchor: Optional[date] = Query(None),
    job_site_id: Optional[int] = Query(None),
    include_saturday: bool = Query(False),
    include_sunday: bool = Query(False),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    site_name = await _site_name(db, scope, job_site_id)
    data = await _gantt(db, scope, anchor, job_site_id, include_saturday, include_sunday)
    title = f"Schedule - {site_name}" if site_name else "Schedule - All Sites"
    content = gantt_pdf(data, title=title)
    filename = f"gantt_{site_name or 'all_sites'}_{data['window_start'].isoformat()}.pdf"
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": build_content_disposition(filename)},
    )


@router.get("/timeline", response_model=schemas.TimelineRange, summary="Date range covering every task, padded 3 days")
async def timeline(
    job_site_id: Optional[int] = Query(None),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    tasks = await crud.list_tasks(db, scope, job_site_id=job_site_id)
    start, end = timeline_range([t for t in tasks if t.status != "draft"])
    return schemas.TimelineRange(start=start, end=end)


@router.get("/day", response_model=schemas.DayViewResponse, summary="Tasks working on a day with that day's crew and staffing")
async def day_view(
    day: Optional[date] = Query(None, description="Defaults to today"),
    job_site_id: Optional[int] = Query(None),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    day = day or date.today()
    holidays = await holiday_calendar.get_holiday_names(db, day, day)
    holiday_dates = set(holidays)
    tasks = await crud.list_tasks(db, scope, job_site_id=job_site_id, start=day, end=day, load_assignments=True)
    out = []
    for t in tasks:
        if t.status in ("draft", "completed") or day not in task_working_days(t, holiday_dates):
            continue
        todays = [a for a in t.assignments if a.assigned_date == day and a.status != "reassigned"]
        out.append(schemas.DayViewTask(
            id=t.id,
            name=t.name,
            location=t.location,
            job_site_id=t.job_site_id,
            status=t.status,
            staffing=schemas.StaffingRead(**task_staffing(t, todays, on_date=day)),
            workers=[
                schemas.DayViewWorker(
                    worker_id=a.worker_id,
                    name=a.worker.name,
                    role=a.worker.role,
                    assignment_id=a.id,
                    status=a.status,
                    acknowledged=a.acknowledged,
                )
                for a in sorted(todays, key=lambda a: a.worker.name.lower())
            ],
        ))
    return schemas.DayViewResponse(date=day, holiday=holidays.get(day), tasks=out)


@router.get("/working-days", response_model=List[date], summary="Working days between two dates")
async def list_working_days(
    start: date = Query(...),
    end: date = Query(...),
    include_saturday: bool = Query(False),
    include_sunday: bool = Query(False),
    include_holidays: bool = Query(False),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    if end < start:
        raise HTTPException(status_code=400, detail="end must be on or after start")
    if (end - start).days > 366:
        raise HTTPException(status_code=400, detail="Range is limited to one year")
    holidays = await holiday_calendar.get_holiday_dates(db, start, end)
    return working_days(start, end, include_saturday, include_sunday, include_holidays, holidays)
