"""Login sessions, organization signup and invite acceptance. Tokens go back as `Authorization: Bearer`.
These run before a user is known, so they use the system session (outside row-level security)."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.database import get_db, get_system_db
from crew_command import crud, schemas
from crew_command.crud import DuplicateError, InviteInvalidError
from crew_command.models import UserProfile
from crew_command.security import create_session, get_current_token, get_current_user, revoke_session

router = APIRouter(prefix="/api/auth", tags=["auth"])

RESPONSE_401 = {401: {"description": "Not authenticated", "content": {"application/json": {"example": {"detail": "Invalid email or password"}}}}}
RESPONSE_409 = {409: {"description": "Email or slug already taken", "content": {"application/json": {"example": {"detail": "Email is already registered"}}}}}


@router.post("/register", response_model=schemas.RegisterResponse, status_code=201, summary="Register an organization and its first admin", responses=RESPONSE_409)
async def register(body: schemas.RegisterOrganization, db: AsyncSession = Depends(get_system_db)):
    try:
        org, admin = await crud.register_organization(db, body)
    except DuplicateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    session = await create_session(db, admin)
    return schemas.RegisterResponse(
        access_token=session.token,
        expires_at=session.expires_at,
        user=schemas.UserRead.model_validate(admin),
        organization=schemas.OrganizationRead.model_validate(org),
    )


@router.post("/login", response_model=schemas.LoginResponse, summary="Email + password login", responses=RESPONSE_401)
async def login(body: schemas.LoginRequest, db: AsyncSession = Depends(get_system_db)):
    user = await crud.authenticate(db, body.email, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    session = await create_session(db, user)
    return schemas.LoginResponse(
        access_token=session.token,
        expires_at=session.expires_at,
        user=schemas.UserRead.model_validate(user),
    )


@router.post("/logout", status_code=204, summary="Revoke the current session", responses=RESPONSE_401)
async def logout(token: str = Depends(get_current_token), db: AsyncSession = Depends(get_db)):
    await revoke_session(db, token)


@router.get("/me", response_model=schemas.MeResponse, summary="Current user and active site assignments", responses=RESPONSE_401)
async def me(user: UserProfile = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    assignments = await crud.list_my_site_assignments(db, user.id)
    return schemas.MeResponse(
        user=schemas.UserRead.model_validate(user),
        site_assignments=[schemas.JobSiteAssignmentRead.model_validate(a) for a in assignments],
    )


@router.post("/set-password", response_model=schemas.LoginResponse, summary="Accept an invite: set a password and sign in")
async def set_password(body: schemas.SetPasswordRequest, db: AsyncSession = Depends(get_system_db)):
    try:
        user = await crud.accept_invite(db, body.token, body.password)
    except InviteInvalidError as e:
        raise HTTPException(status_code=400, detail=str(e))
    session = await create_session(db, user)
    return schemas.LoginResponse(
        access_token=session.token,
        expires_at=session.expires_at,
        user=schemas.UserRead.model_validate(user),
    )
