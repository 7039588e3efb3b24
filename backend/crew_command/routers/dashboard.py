"""Dashboard counters for the caller's scope."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.access import AccessScope
from crew_command.database import get_db
from crew_command import crud, schemas
from crew_command.security import get_scope

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("", response_model=schemas.DashboardSummary, summary="Workers, tasks, staffing gaps, requests and hours at a glance")
async def dashboard(
    job_site_id: Optional[int] = Query(None),
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    if job_site_id is not None and not await crud.get_job_site(db, scope, job_site_id):
        raise HTTPException(status_code=404, detail="Job site not found")
    summary = await crud.dashboard_summary(db, scope, job_site_id=job_site_id, today=as_of)
    return schemas.DashboardSummary(**summary)
