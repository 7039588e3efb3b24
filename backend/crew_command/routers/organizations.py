"""Caller's organization and its user profiles (invite, role / activation changes)."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.access import AccessScope
from crew_command.database import get_db
from crew_command import crud, schemas
from crew_command.crud import CrossOrganizationError, DuplicateError, LastAdminError
from crew_command.models import BASE_ROLES, LEGACY_ROLE_MAP, SITE_ROLES
from crew_command.security import build_invite_url, get_scope

router = APIRouter(prefix="/api", tags=["organization"])

RESPONSE_403 = {403: {"description": "Not allowed for the caller's role", "content": {"application/json": {"example": {"detail": "Only admins can invite users"}}}}}
RESPONSE_404 = {404: {"description": "Not found", "content": {"application/json": {"example": {"detail": "User not found"}}}}}
RESPONSE_409 = {409: {"description": "Business rule conflict", "content": {"application/json": {"example": {"detail": "At least one active admin must remain"}}}}}


def _check_base_role(role: str) -> None:
    if role not in BASE_ROLES and role not in LEGACY_ROLE_MAP:
        raise HTTPException(status_code=400, detail=f"base_role must be one of: {list(BASE_ROLES)}")


@router.get("/organization", response_model=schemas.OrganizationRead, summary="Caller's organization")
async def get_organization(scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    org = await crud.get_organization(db, scope.org_id)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return schemas.OrganizationRead.model_validate(org)


@router.patch("/organization", response_model=schemas.OrganizationRead, summary="Update the organization (admin)", responses=RESPONSE_403)
async def update_organization(
    data: schemas.OrganizationUpdate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    org = await crud.get_organization(db, scope.org_id)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    org = await crud.update_organization(db, scope, org, data)
    return schemas.OrganizationRead.model_validate(org)


@router.get("/users", response_model=List[schemas.UserRead], summary="Users in the organization")
async def list_users(
    include_inactive: bool = Query(True),
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    users = await crud.list_users(db, scope, include_inactive=include_inactive)
    return [schemas.UserRead.model_validate(u) for u in users]


@router.post("/users/invite", response_model=schemas.InviteResponse, status_code=201, summary="Invite a user (admin)", responses={**RESPONSE_403, **RESPONSE_409})
async def invite_user(
    data: schemas.UserInvite,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    _check_base_role(data.base_role)
    for sr in data.site_roles:
        if sr.role not in SITE_ROLES:
            raise HTTPException(status_code=400, detail=f"role must be one of: {list(SITE_ROLES)}")
    try:
        user = await crud.invite_user(db, scope, data)
    except DuplicateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CrossOrganizationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.InviteResponse(
        user=schemas.UserRead.model_validate(user),
        invite_url=build_invite_url(user.invite_token),
        expires_at=user.invite_expires_at,
    )


@router.get("/users/{user_id}", response_model=schemas.UserRead, summary="Get a user", responses=RESPONSE_404)
async def get_user(user_id: int, scope: AccessScope = Depends(get_scope), db: AsyncSession = Depends(get_db)):
    user = await crud.get_user(db, scope, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return schemas.UserRead.model_validate(user)


@router.patch("/users/{user_id}", response_model=schemas.UserRead, summary="Update a user", responses={**RESPONSE_403, **RESPONSE_404, **RESPONSE_409})
async def update_user(
    user_id: int,
    data: schemas.UserUpdate,
    scope: AccessScope = Depends(get_scope),
    db: AsyncSession = Depends(get_db),
):
    if data.base_role is not None:
        _check_base_role(data.base_role)
    user = await crud.get_user(db, scope, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        user = await crud.update_user(db, scope, user, data)
    except LastAdminError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return schemas.UserRead.model_validate(user)
