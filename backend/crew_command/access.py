"""
Tenant and job-site scoping.

Every query for organization data goes through an AccessScope: rows must belong to the
caller's organization, and non-admins only see job-site rows for sites where they hold an
active job_site_assignment. The same predicates are installed as PostgreSQL row-level
security policies by alembic revision 002; this module enforces them on every backend.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import select, and_, or_, false
from sqlalchemy.ext.asyncio import AsyncSession

from crew_command.models import UserProfile, JobSite, JobSiteAssignment, LEGACY_ROLE_MAP

logger = logging.getLogger(__name__)

# Site roles that run a site: tasks, workers, hour edits, approvals
MANAGER_SITE_ROLES = ("superintendent", "engineer_as_superintendent")
# Managers plus foremen: daily crew work (hours, acknowledgements, reassignment requests)
CREW_LEAD_SITE_ROLES = MANAGER_SITE_ROLES + ("foreman",)
# Site roles that see the whole crew of a site
CREW_VIEWER_SITE_ROLES = CREW_LEAD_SITE_ROLES + ("engineer",)


class AccessDeniedError(PermissionError):
    """Caller may not see or change the requested row"""
    pass


def normalize_base_role(role: Optional[str]) -> str:
    if not role:
        return "worker"
    return LEGACY_ROLE_MAP.get(role, role)


def get_user_org_id(user: UserProfile) -> int:
    return user.organization_id


def is_user_admin(user: UserProfile) -> bool:
    return bool(user.is_active) and normalize_base_role(user.base_role) == "admin"


def _active_assignment_clause(on: date):
    """is_active and start_date <= on <= end_date (open-ended when end_date is null)."""
    return and_(
        JobSiteAssignment.is_active.is_(True),
        JobSiteAssignment.start_date <= on,
        or_(JobSiteAssignment.end_date.is_(None), JobSiteAssignment.end_date >= on),
    )


async def _active_site_roles(db: AsyncSession, user_id: int, on: date) -> Dict[int, str]:
    q = (
        select(JobSiteAssignment.job_site_id, JobSiteAssignment.role)
        .join(JobSite, JobSite.id == JobSiteAssignment.job_site_id)
        .join(UserProfile, UserProfile.id == JobSiteAssignment.user_id)
        .where(
            JobSiteAssignment.user_id == user_id,
            JobSite.organization_id == UserProfile.organization_id,
            _active_assignment_clause(on),
        )
    )
    r = await db.execute(q)
    return {row.job_site_id: row.role for row in r.all()}


async def get_user_job_site_ids(db: AsyncSession, user_id: int, on: Optional[date] = None) -> List[int]:
    """Sites where the user holds an active assignment on the given day (default today)."""
    roles = await _active_site_roles(db, user_id, on or date.today())
    return sorted(roles)


async def get_user_site_role(
    db: AsyncSession,
    user_id: int,
    job_site_id: int,
    on: Optional[date] = None,
) -> Optional[str]:
    roles = await _active_site_roles(db, user_id, on or date.today())
    return roles.get(job_site_id)


@dataclass
class AccessScope:
    """Everything needed to decide row visibility for one caller during one request."""
    user_id: int
    org_id: int
    base_role: str
    is_admin: bool
    site_roles: Dict[int, str] = field(default_factory=dict)

    @property
    def site_ids(self) -> List[int]:
        return sorted(self.site_roles)

    def site_role(self, job_site_id: Optional[int]) -> Optional[str]:
        if job_site_id is None:
            return None
        return self.site_roles.get(job_site_id)

    def has_site_role(self, job_site_id: Optional[int], roles) -> bool:
        return self.site_role(job_site_id) in roles

    def require(self, allowed: bool, message: str = "Permission denied") -> None:
        if not allowed:
            logger.warning("access denied: user_id=%s org_id=%s %s", self.user_id, self.org_id, message)
            raise AccessDeniedError(message)

    # ---------- organizations / users ----------
    def can_manage_organization(self, organization_id: int) -> bool:
        return self.is_admin and organization_id == self.org_id

    def can_view_user(self, user: UserProfile) -> bool:
        return user.organization_id == self.org_id

    def can_manage_users(self) -> bool:
        return self.is_admin

    # ---------- job sites ----------
    def can_view_job_site(self, site: JobSite) -> bool:
        if site.organization_id != self.org_id:
            return False
        return self.is_admin or site.id in self.site_roles

    def can_manage_job_site(self, site: JobSite) -> bool:
        return site.organization_id == self.org_id and self.is_admin

    def can_view_site_assignment(self, assignment: JobSiteAssignment, site: JobSite) -> bool:
        if assignment.user_id == self.user_id:
            return True
        if site.organization_id != self.org_id:
            return False
        return self.is_admin or self.has_site_role(site.id, MANAGER_SITE_ROLES)

    def can_manage_site_assignments(self, site: JobSite) -> bool:
        if site.organization_id != self.org_id:
            return False
        if self.is_admin or normalize_base_role(self.base_role) == "superintendent":
            return True
        return self.has_site_role(site.id, MANAGER_SITE_ROLES)

    # ---------- site-scoped rows: workers, tasks, assignments, requests, hours ----------
    def can_view_row(self, organization_id: int, job_site_id: Optional[int]) -> bool:
        if organization_id != self.org_id:
            return False
        return self.is_admin or job_site_id is None or job_site_id in self.site_roles

    def can_manage_worker_row(self, organization_id: int, job_site_id: Optional[int]) -> bool:
        if organization_id != self.org_id:
            return False
        return self.is_admin or job_site_id is None or self.has_site_role(job_site_id, MANAGER_SITE_ROLES)

    def can_manage_row(self, organization_id: int, job_site_id: Optional[int]) -> bool:
        if organization_id != self.org_id:
            return False
        return self.is_admin or self.has_site_role(job_site_id, MANAGER_SITE_ROLES)

    def can_lead_row(self, organization_id: int, job_site_id: Optional[int]) -> bool:
        if organization_id != self.org_id:
            return False
        return self.is_admin or self.has_site_role(job_site_id, CREW_LEAD_SITE_ROLES)

    # ---------- SQL filters ----------
    def job_sites_filter(self):
        clause = JobSite.organization_id == self.org_id
        if self.is_admin:
            return clause
        return and_(clause, JobSite.id.in_(self.site_ids) if self.site_ids else false())

    def rows_filter(self, model):
        """organization match and (admin or unsited or site in the caller's active sites)."""
        clause = model.organization_id == self.org_id
        if self.is_admin:
            return clause
        site_clause = model.job_site_id.is_(None)
        if self.site_ids:
            site_clause = or_(site_clause, model.job_site_id.in_(self.site_ids))
        return and_(clause, site_clause)

    def site_assignments_filter(self):
        own = JobSiteAssignment.user_id == self.user_id
        if self.is_admin:
            return or_(own, JobSite.organization_id == self.org_id)
        managed = [sid for sid, role in self.site_roles.items() if role in MANAGER_SITE_ROLES]
        if not managed:
            return own
        return or_(own, and_(JobSite.organization_id == self.org_id, JobSiteAssignment.job_site_id.in_(managed)))


async def load_scope(db: AsyncSession, user: UserProfile, on: Optional[date] = None) -> AccessScope:
    roles = await _active_site_roles(db, user.id, on or date.today())
    return AccessScope(
        user_id=user.id,
        org_id=get_user_org_id(user),
        base_role=normalize_base_role(user.base_role),
        is_admin=is_user_admin(user),
        site_roles=roles,
    )


def get_permissions(base_role: Optional[str], site_role: Optional[str] = None) -> Dict[str, bool]:
    """Feature flags a UI uses to show or hide actions for the selected site."""
    admin = normalize_base_role(base_role) == "admin"
    manager = admin or site_role in MANAGER_SITE_ROLES
    crew_lead = admin or site_role in CREW_LEAD_SITE_ROLES
    return {
        "can_view_job_site": admin or site_role is not None,
        "can_manage_job_site": manager,
        "can_create_job_site": admin,
        "can_delete_job_site": admin,
        "can_view_workers": admin or site_role in CREW_VIEWER_SITE_ROLES,
        "can_manage_workers": manager,
        "can_move_workers": admin,
        "can_view_tasks": admin or site_role is not None,
        "can_manage_tasks": manager,
        "can_assign_workers": manager,
        "can_request_reassignment": crew_lead,
        "can_approve_requests": manager,
        "can_update_task_status": crew_lead,
        "can_log_hours": crew_lead,
        "can_edit_hours": manager,
        "can_manage_users": admin,
        "can_manage_organization": admin,
        "can_view_all_sites": admin,
    }


def should_show_job_site_selector(base_role: Optional[str], site_count: int) -> bool:
    """Admins get the company-wide view and workers do not switch sites; others pick when they have several."""
    role = normalize_base_role(base_role)
    if role in ("admin", "worker"):
        return False
    return site_count > 1
