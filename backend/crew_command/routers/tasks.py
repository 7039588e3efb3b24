"""Tasks: CRUD with history, status changes, attachments, schedule import into drafts."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.access import AccessScope
from crew_command.config import settings
from crew_command.database import get_db
from crew_command import crud, schemas
from crew_command.crud import (
    AttachmentNotFoundError, CrossOrganizationError, DraftIncompleteError, InvalidDateRangeError,
)
from crew_command.models import TASK_STATUSES
from crew_command.security import get_scope
from crew_command.services.staffing import task_staffing
from crew_command.services.task_files import resolve_task_file_path
from crew_command.services.task_import import TaskImportError

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

RESPONSE_403 = {403: {"description": "Not allowed for the caller's role", "content": {"application/json": {"example": {"detail": "You cannot manage this task"}}}}}
RESPONSE_404 = {404: {"description": "Not found", "content": {"application/json": {"example": {"detail": "Task not found"}}}}}
RESPONSE_422 = {422: {"description": "Import rejected", "content": {"application/json": {"example": {"detail": {"errors": ["Row 3: Activity ID and Activity Name are required"]}}}}}}

IMPORT_SUFFIXES = (".csv", ".xlsx")


def _task_read(t, with_staffing: bool = False) -> schemas.TaskRead:
    out = schemas.TaskRead.model_validate(t)
    if with_staffing:
        out.staffing = schemas.StaffingRead(**task_staffing(t, t.assignments))
    return out


def _check_status(status: Optional[str]) -> None:
    if status is not None and status not in TASK_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of: {list(TASK_STATUSES)}")


async def _get_task_or_404(db: AsyncSession, scope: AccessScope, task_id: int, load_assignments: bool = False):
    t = await crud.get_task(db, scope, task_id, load_assignments=load_assignments)
    if not t:
        raise HTTPException(status_code=404, detail="Task not found")
    return t


@router.get("", response_model=List[schemas.TaskRead], summary="Tasks visible to the caller")
async def list_tasks(
    job_site_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="planned / active / completed / draft"),
    start: Optional[date] = Query(None, description="Overlapping on or after"),
    end: Optional[date] = Query(None, description="Overlapping on or before"),
    with_staffing: bool = Query(False, description="Include staffing status"),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_status(status)
    items = await crud.list_tasks(
        db, scope, job_site_id=job_site_id, status=status, start=start, end=end, load_assignments=with_staffing
    )
    return [_task_read(t, with_staffing) for t in items]


@router.post("", response_model=schemas.TaskRead, status_code=201, summary="Create a task", responses=RESPONSE_403)
async def create_task(
    data: schemas.TaskCreate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_status(data.status)
    try:
        t = await crud.create_task(db, scope, data)
    except CrossOrganizationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _task_read(t)


# ---------- drafts / import ----------
@router.post("/import", response_model=schemas.TaskImportResponse, status_code=201, summary="Import a schedule file (CSV or .xlsx) as drafts", responses={**RESPONSE_403, **RESPONSE_422})
async def import_tasks(
    file: UploadFile = File(...),
    job_site_id: Optional[int] = Form(None),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    if not file.filename or not file.filename.lower().endswith(IMPORT_SUFFIXES):
        raise HTTPException(status_code=400, detail="Upload a .csv or .xlsx file")
    content = await file.read()
    try:
        drafts = await crud.import_task_drafts(db, scope, job_site_id, file.filename, content)
    except TaskImportError as e:
        raise HTTPException(status_code=422, detail={"errors": e.errors})
    except CrossOrganizationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.TaskImportResponse(
        created=len(drafts),
        drafts=[schemas.TaskDraftRead.model_validate(d) for d in drafts],
    )


@router.get("/drafts", response_model=List[schemas.TaskDraftRead], summary="Imported drafts awaiting review")
async def list_drafts(
    job_site_id: Optional[int] = Query(None),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    items = await crud.list_task_drafts(db, scope, job_site_id=job_site_id)
    return [schemas.TaskDraftRead.model_validate(d) for d in items]


@router.patch("/drafts/{draft_id}", response_model=schemas.TaskDraftRead, summary="Edit a draft", responses={**RESPONSE_403, **RESPONSE_404})
async def update_draft(
    draft_id: int,
    data: schemas.TaskDraftUpdate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    d = await crud.get_task_draft(db, scope, draft_id)
    if not d:
        raise HTTPException(status_code=404, detail="Draft not found")
    try:
        d = await crud.update_task_draft(db, scope, d, data)
    except InvalidDateRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.TaskDraftRead.model_validate(d)


@router.delete("/drafts/{draft_id}", status_code=204, summary="Discard a draft", responses={**RESPONSE_403, **RESPONSE_404})
async def delete_draft(draft_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    d = await crud.get_task_draft(db, scope, draft_id)
    if not d:
        raise HTTPException(status_code=404, detail="Draft not found")
    await crud.delete_task_draft(db, scope, d)


@router.post("/drafts/{draft_id}/publish", response_model=schemas.TaskRead, status_code=201, summary="Publish a draft as a planned task", responses={**RESPONSE_403, **RESPONSE_404})
async def publish_draft(draft_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    d = await crud.get_task_draft(db, scope, draft_id)
    if not d:
        raise HTTPException(status_code=404, detail="Draft not found")
    try:
        t = await crud.publish_task_draft(db, scope, d)
    except DraftIncompleteError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _task_read(t)


# ---------- single task ----------
@router.get("/{task_id}", response_model=schemas.TaskRead, summary="Get a task with staffing", responses=RESPONSE_404)
async def get_task(task_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    t = await _get_task_or_404(db, scope, task_id, load_assignments=True)
    return _task_read(t, with_staffing=True)


@router.patch("/{task_id}", response_model=schemas.TaskRead, summary="Update a task (records history)", responses={**RESPONSE_403, **RESPONSE_404})
async def update_task(
    task_id: int,
    data: schemas.TaskUpdate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_status(data.status)
    t = await _get_task_or_404(db, scope, task_id)
    try:
        t = await crud.update_task(db, scope, t, data)
    except (InvalidDateRangeError, CrossOrganizationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _task_read(t)


@router.patch("/{task_id}/status", response_model=schemas.TaskRead, summary="Change task status (crew leads)", responses={**RESPONSE_403, **RESPONSE_404})
async def update_task_status(
    task_id: int,
    data: schemas.TaskStatusUpdate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_status(data.status)
    t = await _get_task_or_404(db, scope, task_id)
    t = await crud.set_task_status(db, scope, t, data.status, notes=data.notes)
    return _task_read(t)


@router.delete("/{task_id}", status_code=204, summary="Delete a task and its assignments", responses={**RESPONSE_403, **RESPONSE_404})
async def delete_task(task_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    t = await _get_task_or_404(db, scope, task_id)
    await crud.delete_task(db, scope, t)


@router.get("/{task_id}/history", response_model=List[schemas.TaskHistoryRead], summary="Task history, newest first", responses=RESPONSE_404)
async def task_history(task_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    t = await _get_task_or_404(db, scope, task_id)
    items = await crud.list_task_history(db, scope, t)
    return [schemas.TaskHistoryRead.model_validate(h) for h in items]


# ---------- attachments ----------
@router.post("/{task_id}/attachments", response_model=schemas.TaskAttachmentRead, status_code=201, summary="Upload an attachment", responses={**RESPONSE_403, **RESPONSE_404})
async def upload_attachment(
    task_id: int,
    file: UploadFile = File(...),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    t = await _get_task_or_404(db, scope, task_id)
    content = await file.read()
    if len(content) > settings.max_upload_size_mb * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File exceeds {settings.max_upload_size_mb} MB")
    descriptor = await crud.add_task_attachment(db, scope, t, file.filename or "file", content)
    return schemas.TaskAttachmentRead(**descriptor)


@router.get("/{task_id}/attachments/download", summary="Download an attachment", responses=RESPONSE_404)
async def download_attachment(
    task_id: int,
    path: str = Query(..., description="Attachment path from the task's attachments list"),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    t = await _get_task_or_404(db, scope, task_id)
    try:
        descriptor = crud.find_task_attachment(t, path)
        file_path = resolve_task_file_path(path)
    except (AttachmentNotFoundError, ValueError):
        raise HTTPException(status_code=404, detail="Attachment not found")
    if not file_path.exists():
        raise HTTPException(status_code=404, detail="Attachment file is missing")
    return FileResponse(file_path, filename=descriptor["name"])


@router.delete("/{task_id}/attachments", response_model=schemas.TaskRead, summary="Remove an attachment", responses={**RESPONSE_403, **RESPONSE_404})
async def delete_attachment(
    task_id: int,
    path: str = Query(...),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    t = await _get_task_or_404(db, scope, task_id)
    try:
        t = await crud.remove_task_attachment(db, scope, t, path)
    except AttachmentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _task_read(t)
