"""Crew members: CRUD under site scoping, admin moves between sites."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.access import AccessScope
from crew_command.database import get_db
from crew_command import crud, schemas
from crew_command.crud import CrossOrganizationError
from crew_command.models import WORKER_ROLES, WORKER_STATUSES
from crew_command.security import get_scope

router = APIRouter(prefix="/api/workers", tags=["workers"])

RESPONSE_403 = {403: {"description": "Not allowed for the caller's role", "content": {"application/json": {"example": {"detail": "You cannot manage this worker"}}}}}
RESPONSE_404 = {404: {"description": "Not found", "content": {"application/json": {"example": {"detail": "Worker not found"}}}}}
RESPONSE_422 = {422: {"description": "Request validation failed"}}


def _check_fields(role: Optional[str], status: Optional[str]) -> None:
    if role is not None and role not in WORKER_ROLES:
        raise HTTPException(status_code=400, detail=f"role must be one of: {list(WORKER_ROLES)}")
    if status is not None and status not in WORKER_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of: {list(WORKER_STATUSES)}")


@router.get("", response_model=List[schemas.WorkerRead], summary="Workers visible to the caller")
async def list_workers(
    job_site_id: Optional[int] = Query(None),
    role: Optional[str] = Query(None, description="operator / laborer / carpenter / mason"),
    status: Optional[str] = Query(None, description="active / inactive"),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_fields(role, status)
    items = await crud.list_workers(db, scope, job_site_id=job_site_id, role=role, status=status)
    return [schemas.WorkerRead.model_validate(w) for w in items]


@router.post("", response_model=schemas.WorkerRead, status_code=201, summary="Add a worker", responses={**RESPONSE_403, **RESPONSE_422})
async def create_worker(
    data: schemas.WorkerCreate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_fields(data.role, data.status)
    try:
        w = await crud.create_worker(db, scope, data)
    except CrossOrganizationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.WorkerRead.model_validate(w)


@router.get("/{worker_id}", response_model=schemas.WorkerRead, summary="Get a worker", responses=RESPONSE_404)
async def get_worker(worker_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    w = await crud.get_worker(db, scope, worker_id)
    if not w:
        raise HTTPException(status_code=404, detail="Worker not found")
    return schemas.WorkerRead.model_validate(w)


@router.patch("/{worker_id}", response_model=schemas.WorkerRead, summary="Update a worker", responses={**RESPONSE_403, **RESPONSE_404})
async def update_worker(
    worker_id: int,
    data: schemas.WorkerUpdate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_fields(data.role, data.status)
    w = await crud.get_worker(db, scope, worker_id)
    if not w:
        raise HTTPException(status_code=404, detail="Worker not found")
    try:
        w = await crud.update_worker(db, scope, w, data)
    except CrossOrganizationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.WorkerRead.model_validate(w)


@router.delete("/{worker_id}", status_code=204, summary="Delete a worker", responses={**RESPONSE_403, **RESPONSE_404})
async def delete_worker(worker_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    w = await crud.get_worker(db, scope, worker_id)
    if not w:
        raise HTTPException(status_code=404, detail="Worker not found")
    await crud.delete_worker(db, scope, w)


@router.post("/{worker_id}/move", response_model=schemas.WorkerMoveResponse, summary="Move a worker to another job site (admin)", responses={**RESPONSE_403, **RESPONSE_404})
async def move_worker(
    worker_id: int,
    data: schemas.WorkerMove,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    w = await crud.get_worker(db, scope, worker_id)
    if not w:
        raise HTTPException(status_code=404, detail="Worker not found")
    try:
        message = await crud.move_worker(db, scope, w, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.WorkerMoveResponse(worker=schemas.WorkerRead.model_validate(w), message=message)
