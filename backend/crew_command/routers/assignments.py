"""Day-grained worker assignments and reassignment requests."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.access import AccessScope
from crew_command.database import get_db
from crew_command import crud, schemas
from crew_command.crud import (
    AssignmentConflictError, CrossOrganizationError, RequestNotPendingError, TaskDatesMissingError,
)
from crew_command.models import REQUEST_STATUSES
from crew_command.security import get_scope

router = APIRouter(prefix="/api/assignments", tags=["assignments"])

RESPONSE_403 = {403: {"description": "Not allowed for the caller's role", "content": {"application/json": {"example": {"detail": "You cannot assign workers to this task"}}}}}
RESPONSE_404 = {404: {"description": "Not found", "content": {"application/json": {"example": {"detail": "Assignment not found"}}}}}
RESPONSE_409 = {
    409: {
        "description": "Scheduling conflict",
        "content": {"application/json": {"example": {"detail": "Worker is already assigned to another task on these dates: Kai Akana"}}},
    }
}


@router.get("", response_model=List[schemas.AssignmentRead], summary="Assignments by date range, task, worker or site")
async def list_assignments(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    task_id: Optional[int] = Query(None),
    worker_id: Optional[int] = Query(None),
    job_site_id: Optional[int] = Query(None),
    include_reassigned: bool = Query(False),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    items = await crud.list_assignments(
        db, scope, start=start, end=end, task_id=task_id, worker_id=worker_id,
        job_site_id=job_site_id, include_reassigned=include_reassigned,
    )
    return [schemas.AssignmentRead.model_validate(a) for a in items]


@router.post("", response_model=schemas.AssignWorkersResponse, status_code=201, summary="Assign workers to every working day of a task", responses={**RESPONSE_403, **RESPONSE_404, **RESPONSE_409})
async def assign_workers(
    data: schemas.AssignWorkersRequest,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    task = await crud.get_task(db, scope, data.task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    try:
        result = await crud.assign_workers(db, scope, task, data.worker_ids)
    except TaskDatesMissingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CrossOrganizationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AssignmentConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return schemas.AssignWorkersResponse(**result)


@router.delete("/tasks/{task_id}/workers/{worker_id}", status_code=204, summary="Remove a worker from a task (all days)", responses={**RESPONSE_403, **RESPONSE_404})
async def unassign_worker(
    task_id: int,
    worker_id: int,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    task = await crud.get_task(db, scope, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    await crud.unassign_worker(db, scope, task, worker_id)


# ---------- reassignment requests ----------
@router.get("/requests", response_model=List[schemas.AssignmentRequestRead], summary="Reassignment requests")
async def list_requests(
    status: Optional[str] = Query(None, description="pending / approved / denied"),
    job_site_id: Optional[int] = Query(None),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    if status is not None and status not in REQUEST_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of: {list(REQUEST_STATUSES)}")
    items = await crud.list_assignment_requests(db, scope, status=status, job_site_id=job_site_id)
    return [schemas.AssignmentRequestRead.model_validate(r) for r in items]


@router.post("/requests", response_model=schemas.AssignmentRequestRead, status_code=201, summary="Request moving a worker to another task (crew leads)", responses={**RESPONSE_403, **RESPONSE_404})
async def create_request(
    data: schemas.AssignmentRequestCreate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    try:
        req = await crud.create_assignment_request(db, scope, data)
    except CrossOrganizationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.AssignmentRequestRead.model_validate(req)


@router.post("/requests/{request_id}/review", response_model=schemas.AssignmentRequestRead, summary="Approve or deny a request (managers)", responses={**RESPONSE_403, **RESPONSE_404, **RESPONSE_409})
async def review_request(
    request_id: int,
    data: schemas.AssignmentRequestReview,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    req = await crud.get_assignment_request(db, scope, request_id)
    if not req:
        raise HTTPException(status_code=404, detail="Request not found")
    try:
        req = await crud.review_assignment_request(db, scope, req, data.approve)
    except (RequestNotPendingError, AssignmentConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TaskDatesMissingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.AssignmentRequestRead.model_validate(req)


# ---------- single assignment ----------
@router.get("/{assignment_id}", response_model=schemas.AssignmentRead, summary="Get an assignment", responses=RESPONSE_404)
async def get_assignment(assignment_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    a = await crud.get_assignment(db, scope, assignment_id)
    if not a:
        raise HTTPException(status_code=404, detail="Assignment not found")
    return schemas.AssignmentRead.model_validate(a)


@router.post("/{assignment_id}/acknowledge", response_model=schemas.AssignmentRead, summary="Acknowledge an assignment", responses={**RESPONSE_403, **RESPONSE_404})
async def acknowledge(assignment_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    a = await crud.get_assignment(db, scope, assignment_id)
    if not a:
        raise HTTPException(status_code=404, detail="Assignment not found")
    a = await crud.acknowledge_assignment(db, scope, a)
    return schemas.AssignmentRead.model_validate(a)


@router.post("/{assignment_id}/complete", response_model=schemas.AssignmentRead, summary="Mark an assignment completed", responses={**RESPONSE_403, **RESPONSE_404})
async def complete(assignment_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    a = await crud.get_assignment(db, scope, assignment_id)
    if not a:
        raise HTTPException(status_code=404, detail="Assignment not found")
    try:
        a = await crud.complete_assignment(db, scope, a)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.AssignmentRead.model_validate(a)
