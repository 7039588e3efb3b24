"""Passwords, login sessions and the request dependencies that resolve the caller.

Clients send the session token from /api/auth/login as `Authorization: Bearer <token>`.
The token is resolved on the system session; the request session then gets the RLS context
and loads the user itself.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, Header, HTTPException
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crew_command.access import AccessScope, load_scope
from crew_command.config import settings
from crew_command.database import apply_rls_context, get_db, get_system_db
from crew_command.models import UserProfile, UserSession

logger = logging.getLogger(__name__)

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return _pwd_context.verify(password, password_hash)
    except ValueError:
        # malformed hash in the row
        return False


def new_token() -> str:
    return secrets.token_urlsafe(32)


def invite_expiry(now: Optional[datetime] = None) -> datetime:
    return (now or datetime.utcnow()) + timedelta(hours=settings.invite_ttl_hours)


def build_invite_url(token: str) -> str:
    base = settings.public_base_url.rstrip("/")
    return f"{base}/set-password?token={quote(token)}"


async def create_session(db: AsyncSession, user: UserProfile) -> UserSession:
    now = datetime.utcnow()
    session = UserSession(
        user_id=user.id,
        token=new_token(),
        created_at=now,
        expires_at=now + timedelta(hours=settings.session_ttl_hours),
    )
    db.add(session)
    user.last_login_at = now
    await db.flush()
    logger.info("login: user_id=%s org_id=%s", user.id, user.organization_id)
    return session


async def revoke_session(db: AsyncSession, token: str) -> bool:
    session = await db.scalar(select(UserSession).where(UserSession.token == token))
    if not session or session.revoked_at is not None:
        return False
    session.revoked_at = datetime.utcnow()
    await db.flush()
    return True


async def get_session_user(db: AsyncSession, token: str) -> Optional[UserProfile]:
    """User behind a live session; None when the token is unknown, revoked or expired, or the user is inactive."""
    session = await db.scalar(
        select(UserSession).where(UserSession.token == token).options(selectinload(UserSession.user))
    )
    if not session or session.revoked_at is not None:
        return None
    if session.expires_at <= datetime.utcnow():
        return None
    user = session.user
    if user is None or not user.is_active:
        return None
    return user


def extract_bearer_token(authorization: Optional[str]) -> str:
    if authorization and authorization.startswith("Bearer "):
        token = authorization.replace("Bearer ", "", 1).strip()
        if token:
            return token
    raise HTTPException(status_code=401, detail="Not authenticated")


async def get_current_token(authorization: Optional[str] = Header(None, alias="Authorization")) -> str:
    return extract_bearer_token(authorization)


async def get_current_user(
    token: str = Depends(get_current_token),
    db: AsyncSession = Depends(get_db),
    system_db: AsyncSession = Depends(get_system_db),
) -> UserProfile:
    session_user = await get_session_user(system_db, token)
    if not session_user:
        raise HTTPException(status_code=401, detail="Session expired or invalid")
    await apply_rls_context(db, session_user.id)
    user = await db.get(UserProfile, session_user.id)
    if not user:
        raise HTTPException(status_code=401, detail="Session expired or invalid")
    return user


async def get_scope(
    user: UserProfile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AccessScope:
    return await load_scope(db, user)


async def get_admin_scope(scope: AccessScope = Depends(get_scope)) -> AccessScope:
    if not scope.is_admin:
        logger.warning("admin access denied: user_id=%s", scope.user_id)
        raise HTTPException(status_code=403, detail="Admin access required")
    return scope
