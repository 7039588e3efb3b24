"""Daily hours log and weekly summary with CSV / Excel / PDF exports."""
import io
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.access import AccessScope
from crew_command.database import get_db
from crew_command import crud, schemas
from crew_command.crud import CrossOrganizationError
from crew_command.models import DAILY_HOURS_STATUSES
from crew_command.security import get_scope
from crew_command.services.hours_report import export_filename, weekly_csv, weekly_xlsx
from crew_command.services.pdf_export import weekly_hours_pdf
from crew_command.utils.http_headers import build_content_disposition

router = APIRouter(prefix="/api/daily-hours", tags=["daily-hours"])

RESPONSE_403 = {403: {"description": "Not allowed for the caller's role", "content": {"application/json": {"example": {"detail": "Only managers can change hours that were already logged"}}}}}
RESPONSE_404 = {404: {"description": "Not found", "content": {"application/json": {"example": {"detail": "Worker not found"}}}}}

EXPORT_MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}


@router.post("", response_model=schemas.DailyHoursRead, status_code=201, summary="Log a worker's day (201 new, 200 overwritten)", responses={**RESPONSE_403, **RESPONSE_404})
async def log_hours(
    data: schemas.DailyHoursLog,
    response: Response,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    if data.status not in DAILY_HOURS_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of: {list(DAILY_HOURS_STATUSES)}")
    worker = await crud.get_worker(db, scope, data.worker_id)
    if not worker:
        raise HTTPException(status_code=404, detail="Worker not found")
    try:
        rec, created = await crud.log_daily_hours(db, scope, worker, data)
    except CrossOrganizationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not created:
        response.status_code = 200
    return schemas.DailyHoursRead.model_validate(rec)


@router.get("", response_model=List[schemas.DailyHoursRead], summary="Logged days")
async def list_hours(
    log_date: Optional[date] = Query(None, description="Single day"),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    job_site_id: Optional[int] = Query(None),
    worker_id: Optional[int] = Query(None),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    items = await crud.list_daily_hours(
        db, scope, log_date=log_date, job_site_id=job_site_id, start=start, end=end, worker_id=worker_id
    )
    return [schemas.DailyHoursRead.model_validate(r) for r in items]


@router.get("/weekly", response_model=schemas.WeeklyHoursSummary, summary="Sunday-to-Saturday hours grid")
async def weekly_summary(
    week_of: Optional[date] = Query(None, description="Any day of the week; defaults to today"),
    job_site_id: Optional[int] = Query(None),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    summary = await crud.weekly_hours_summary(db, scope, week_of or date.today(), job_site_id=job_site_id)
    return schemas.WeeklyHoursSummary(**summary)


@router.get("/weekly/export", summary="Download the weekly grid as csv, xlsx or pdf")
async def export_weekly(
    week_of: Optional[date] = Query(None),
    format: str = Query("csv", description="csv / xlsx / pdf"),
    job_site_id: Optional[int] = Query(None),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    fmt = (format or "").strip().lower()
    if fmt not in EXPORT_MEDIA_TYPES:
        raise HTTPException(status_code=400, detail=f"format must be one of: {list(EXPORT_MEDIA_TYPES)}")
    summary = await crud.weekly_hours_summary(db, scope, week_of or date.today(), job_site_id=job_site_id)
    if fmt == "csv":
        body = io.BytesIO(weekly_csv(summary).encode("utf-8"))
    elif fmt == "xlsx":
        body = weekly_xlsx(summary)
    else:
        body = io.BytesIO(weekly_hours_pdf(summary))
    return StreamingResponse(
        body,
        media_type=EXPORT_MEDIA_TYPES[fmt],
        headers={"Content-Disposition": build_content_disposition(export_filename(summary, fmt))},
    )


@router.delete("/{record_id}", status_code=204, summary="Delete a logged day (managers)", responses={**RESPONSE_403, **RESPONSE_404})
async def delete_hours(record_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    rec = await crud.get_daily_hours(db, scope, record_id)
    if not rec:
        raise HTTPException(status_code=404, detail="Record not found")
    await crud.delete_daily_hours(db, scope, rec)
