"""Holiday calendar (shared reference data; admins edit)."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.access import AccessScope
from crew_command.database import get_db
from crew_command import crud, schemas
from crew_command.crud import DuplicateError
from crew_command.security import get_scope

router = APIRouter(prefix="/api/holidays", tags=["holidays"])

RESPONSE_404 = {404: {"description": "Not found", "content": {"application/json": {"example": {"detail": "Holiday not found"}}}}}
RESPONSE_409 = {409: {"description": "Duplicate", "content": {"application/json": {"example": {"detail": "Holiday 'Labor Day' on 2026-09-07 already exists"}}}}}


@router.get("", response_model=List[schemas.HolidayRead], summary="Holidays by year or date range")
async def list_holidays(
    year: Optional[int] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    items = await crud.list_holidays(db, year=year, start=start, end=end)
    return [schemas.HolidayRead.model_validate(h) for h in items]


@router.post("", response_model=schemas.HolidayRead, status_code=201, summary="Add a holiday (admin)", responses=RESPONSE_409)
async def create_holiday(
    data: schemas.HolidayCreate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    try:
        h = await crud.create_holiday(db, scope, data)
    except DuplicateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return schemas.HolidayRead.model_validate(h)


@router.get("/{holiday_id}", response_model=schemas.HolidayRead, summary="Get a holiday", responses=RESPONSE_404)
async def get_holiday(holiday_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    h = await crud.get_holiday(db, holiday_id)
    if not h:
        raise HTTPException(status_code=404, detail="Holiday not found")
    return schemas.HolidayRead.model_validate(h)


@router.patch("/{holiday_id}", response_model=schemas.HolidayRead, summary="Update a holiday (admin)", responses={**RESPONSE_404, **RESPONSE_409})
async def update_holiday(
    holiday_id: int,
    data: schemas.HolidayUpdate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    h = await crud.get_holiday(db, holiday_id)
    if not h:
        raise HTTPException(status_code=404, detail="Holiday not found")
    try:
        h = await crud.update_holiday(db, scope, h, data)
    except DuplicateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return schemas.HolidayRead.model_validate(h)


@router.delete("/{holiday_id}", status_code=204, summary="Delete a holiday (admin)", responses=RESPONSE_404)
async def delete_holiday(holiday_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    h = await crud.get_holiday(db, holiday_id)
    if not h:
        raise HTTPException(status_code=404, detail="Holiday not found")
    await crud.delete_holiday(db, scope, h)
