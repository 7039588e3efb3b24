"""Job sites, user-to-site role assignments and the site-switcher context."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.access import AccessScope
from crew_command.database import get_db
from crew_command import crud, schemas
from crew_command.crud import CrossOrganizationError, InvalidDateRangeError, JobSiteInUseError, SystemSiteError
from crew_command.models import JOB_SITE_STATUSES, SITE_ROLES
from crew_command.security import get_scope

router = APIRouter(prefix="/api/job-sites", tags=["job-sites"])

RESPONSE_403 = {403: {"description": "Not allowed for the caller's role", "content": {"application/json": {"example": {"detail": "Only admins can create job sites"}}}}}
RESPONSE_404 = {404: {"description": "Not found", "content": {"application/json": {"example": {"detail": "Job site not found"}}}}}
RESPONSE_409 = {409: {"description": "Job site still in use", "content": {"application/json": {"example": {"detail": "Cannot delete job site with active workers. Please move workers to another site first."}}}}}


def _site_read(site, scope: AccessScope) -> schemas.JobSiteRead:
    out = schemas.JobSiteRead.model_validate(site)
    out.my_role = scope.site_role(site.id)
    return out


def _check_status(status: Optional[str]) -> None:
    if status is not None and status not in JOB_SITE_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of: {list(JOB_SITE_STATUSES)}")


def _check_role(role: Optional[str]) -> None:
    if role is not None and role not in SITE_ROLES:
        raise HTTPException(status_code=400, detail=f"role must be one of: {list(SITE_ROLES)}")


@router.get("", response_model=List[schemas.JobSiteRead], summary="Job sites visible to the caller")
async def list_job_sites(
    status: Optional[str] = Query(None, description="active / on_hold / completed"),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_status(status)
    sites = await crud.list_job_sites(db, scope, status=status)
    return [_site_read(s, scope) for s in sites]


@router.get("/context", response_model=schemas.JobSiteContext, summary="Accessible sites, role and permission flags for the selected site")
async def job_site_context(
    job_site_id: Optional[int] = Query(None, description="Selected site"),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    ctx = await crud.get_job_site_context(db, scope, selected_job_site_id=job_site_id)
    return schemas.JobSiteContext(**ctx)


@router.post("", response_model=schemas.JobSiteRead, status_code=201, summary="Create a job site (admin)", responses=RESPONSE_403)
async def create_job_site(
    data: schemas.JobSiteCreate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_status(data.status)
    site = await crud.create_job_site(db, scope, data)
    return _site_read(site, scope)


@router.get("/{job_site_id}", response_model=schemas.JobSiteRead, summary="Get a job site", responses=RESPONSE_404)
async def get_job_site(job_site_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    site = await crud.get_job_site(db, scope, job_site_id)
    if not site:
        raise HTTPException(status_code=404, detail="Job site not found")
    return _site_read(site, scope)


@router.patch("/{job_site_id}", response_model=schemas.JobSiteRead, summary="Update a job site (admin)", responses={**RESPONSE_403, **RESPONSE_404})
async def update_job_site(
    job_site_id: int,
    data: schemas.JobSiteUpdate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_status(data.status)
    site = await crud.get_job_site(db, scope, job_site_id)
    if not site:
        raise HTTPException(status_code=404, detail="Job site not found")
    try:
        site = await crud.update_job_site(db, scope, site, data)
    except (SystemSiteError, InvalidDateRangeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _site_read(site, scope)


@router.delete("/{job_site_id}", status_code=204, summary="Delete a job site (admin)", responses={**RESPONSE_403, **RESPONSE_404, **RESPONSE_409})
async def delete_job_site(job_site_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    site = await crud.get_job_site(db, scope, job_site_id)
    if not site:
        raise HTTPException(status_code=404, detail="Job site not found")
    try:
        await crud.delete_job_site(db, scope, site)
    except SystemSiteError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except JobSiteInUseError as e:
        raise HTTPException(status_code=409, detail=str(e))


# ---------- user assignments ----------
@router.get("/{job_site_id}/assignments", response_model=List[schemas.JobSiteAssignmentRead], summary="User assignments at a site", responses=RESPONSE_404)
async def list_site_assignments(
    job_site_id: int,
    include_inactive: bool = Query(False),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    site = await crud.get_job_site(db, scope, job_site_id)
    if not site:
        raise HTTPException(status_code=404, detail="Job site not found")
    items = await crud.list_site_assignments(db, scope, job_site_id, include_inactive=include_inactive)
    return [schemas.JobSiteAssignmentRead.model_validate(a) for a in items]


@router.post(
    "/{job_site_id}/assignments",
    response_model=schemas.JobSiteAssignmentRead,
    status_code=201,
    summary="Assign a user to a site (201 new, 200 when the active assignment was updated)",
    responses={**RESPONSE_403, **RESPONSE_404},
)
async def assign_user(
    job_site_id: int,
    data: schemas.JobSiteAssignmentCreate,
    response: Response,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_role(data.role)
    # base superintendents assign on any site of the org, including ones they are not on
    site = await crud.get_org_job_site(db, scope, job_site_id)
    if not site:
        raise HTTPException(status_code=404, detail="Job site not found")
    try:
        a, created = await crud.assign_user_to_site(db, scope, site, data)
    except (CrossOrganizationError, InvalidDateRangeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not created:
        response.status_code = 200
    return schemas.JobSiteAssignmentRead.model_validate(a)


@router.patch("/assignments/{assignment_id}", response_model=schemas.JobSiteAssignmentRead, summary="Change role or dates", responses={**RESPONSE_403, **RESPONSE_404})
async def update_site_assignment(
    assignment_id: int,
    data: schemas.JobSiteAssignmentUpdate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_role(data.role)
    a = await crud.get_site_assignment(db, scope, assignment_id)
    if not a:
        raise HTTPException(status_code=404, detail="Assignment not found")
    try:
        a = await crud.update_site_assignment(db, scope, a, data)
    except InvalidDateRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.JobSiteAssignmentRead.model_validate(a)


@router.delete("/assignments/{assignment_id}", response_model=schemas.JobSiteAssignmentRead, summary="End an assignment (inactive, end_date today)", responses={**RESPONSE_403, **RESPONSE_404})
async def remove_site_assignment(
    assignment_id: int,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    a = await crud.get_site_assignment(db, scope, assignment_id)
    if not a:
        raise HTTPException(status_code=404, detail="Assignment not found")
    a = await crud.remove_site_assignment(db, scope, a)
    return schemas.JobSiteAssignmentRead.model_validate(a)
