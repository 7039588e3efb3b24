"""Daily housekeeping: expire site assignments past their end date, purge dead sessions, drop stale invites."""
import logging
from datetime import date, datetime
from typing import Dict, Optional

from sqlalchemy import delete, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.database import SystemSessionLocal
from crew_command.models import JobSiteAssignment, UserProfile, UserSession

logger = logging.getLogger(__name__)


async def run_maintenance(db: AsyncSession, today: Optional[date] = None, now: Optional[datetime] = None) -> Dict[str, int]:
    today = today or date.today()
    now = now or datetime.utcnow()
    expired = await db.execute(
        update(JobSiteAssignment)
        .where(
            JobSiteAssignment.is_active.is_(True),
            JobSiteAssignment.end_date.is_not(None),
            JobSiteAssignment.end_date < today,
        )
        .values(is_active=False)
    )
    sessions = await db.execute(
        delete(UserSession).where(or_(UserSession.expires_at < now, UserSession.revoked_at.is_not(None)))
    )
    invites = await db.execute(
        update(UserProfile)
        .where(UserProfile.invite_token.is_not(None), UserProfile.invite_expires_at < now)
        .values(invite_token=None, invite_expires_at=None)
    )
    result = {
        "site_assignments_expired": expired.rowcount or 0,
        "sessions_purged": sessions.rowcount or 0,
        "invites_cleared": invites.rowcount or 0,
    }
    logger.info("maintenance: %s", result)
    return result


async def run_scheduled_maintenance() -> Dict[str, int]:
    """Entry point for the scheduler: own system session (crosses organizations), committed on success."""
    async with SystemSessionLocal() as db:
        try:
            result = await run_maintenance(db)
            await db.commit()
            return result
        except Exception:
            await db.rollback()
            raise
