"""CRUD and business rules.

Functions that take an AccessScope only return rows the caller may see (get_* returns None
for rows outside the scope) and raise AccessDeniedError before changing rows the caller may
not manage.
"""
import logging
import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any, Iterable, Tuple
from sqlalchemy import select, func, delete, update, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crew_command.access import (
    AccessScope, get_permissions, normalize_base_role, should_show_job_site_selector,
)
from crew_command.config import settings
from crew_command.models import (
    Organization, JobSite, UserProfile, UserSession, JobSiteAssignment, Worker, Task, TaskDraft,
    TaskHistory, Assignment, AssignmentRequest, DailyHours, Holiday, UNASSIGNED_SITE_NAME,
)
from crew_command.schemas import (
    OrganizationUpdate, RegisterOrganization, UserInvite, UserUpdate,
    JobSiteCreate, JobSiteUpdate, JobSiteAssignmentCreate, JobSiteAssignmentUpdate,
    WorkerCreate, WorkerUpdate, WorkerMove, TaskCreate, TaskUpdate, TaskDraftUpdate,
    AssignmentRequestCreate, DailyHoursLog, HolidayCreate, HolidayUpdate,
)
from crew_command.security import hash_password, verify_password, new_token, invite_expiry
from crew_command.services import holiday_calendar, task_files
from crew_command.services.hours_report import build_weekly_summary
from crew_command.services.staffing import STAFFING_FULL, task_staffing
from crew_command.services.task_import import parse_task_file, draft_values
from crew_command.services.working_days import task_working_days, week_start_sunday

logger = logging.getLogger(__name__)


class CrossOrganizationError(ValueError):
    """Referenced row belongs to another organization"""
    pass


class DuplicateError(ValueError):
    """Unique key already taken (email, slug, holiday date + name)"""
    pass


class InvalidDateRangeError(ValueError):
    """end_date before start_date"""
    pass


class LastAdminError(ValueError):
    """Change would leave the organization without an active admin"""
    pass


class InviteInvalidError(ValueError):
    """Invite token unknown or expired"""
    pass


class SystemSiteError(ValueError):
    """The per-organization Unassigned site cannot be deleted, renamed or completed"""
    pass


class JobSiteInUseError(ValueError):
    """Job site still referenced by workers or tasks"""
    pass


class TaskDatesMissingError(ValueError):
    """Task needs start and end dates for this operation"""
    pass


class AssignmentConflictError(ValueError):
    """Worker already holds a live assignment on another task for one of the dates"""
    pass


class RequestNotPendingError(ValueError):
    """Assignment request was already approved or denied"""
    pass


class DraftIncompleteError(ValueError):
    """Draft cannot be published yet"""
    pass


class AttachmentNotFoundError(ValueError):
    pass


def _check_range(start: Optional[date], end: Optional[date]) -> None:
    if start is not None and end is not None and end < start:
        raise InvalidDateRangeError("end_date must be on or after start_date")


async def _require_site_in_org(db: AsyncSession, org_id: int, job_site_id: Optional[int]) -> Optional[JobSite]:
    if job_site_id is None:
        return None
    site = await db.get(JobSite, job_site_id)
    if not site or site.organization_id != org_id:
        raise CrossOrganizationError("Job site does not belong to your organization")
    return site


async def _require_user_in_org(db: AsyncSession, org_id: int, user_id: Optional[int]) -> Optional[UserProfile]:
    if user_id is None:
        return None
    user = await db.get(UserProfile, user_id)
    if not user or user.organization_id != org_id:
        raise CrossOrganizationError("User does not belong to your organization")
    return user


# ---------- organizations ----------
SLUG_STRIP_PATTERN = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return SLUG_STRIP_PATTERN.sub("-", (name or "").lower()).strip("-") or "org"


async def get_organization(db: AsyncSession, organization_id: int) -> Optional[Organization]:
    return await db.get(Organization, organization_id)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[UserProfile]:
    r = await db.execute(select(UserProfile).where(func.lower(UserProfile.email) == email.strip().lower()))
    return r.scalars().first()


async def register_organization(db: AsyncSession, data: RegisterOrganization) -> Tuple[Organization, UserProfile]:
    """New organization with its Unassigned system site and an active admin."""
    slug = slugify(data.slug or data.organization_name)
    if await db.scalar(select(Organization.id).where(Organization.slug == slug)):
        raise DuplicateError(f"Organization slug '{slug}' is already taken")
    if await get_user_by_email(db, data.email):
        raise DuplicateError("Email is already registered")

    org = Organization(name=data.organization_name.strip(), slug=slug, phone=data.phone)
    db.add(org)
    await db.flush()
    admin = UserProfile(
        organization_id=org.id,
        email=data.email.strip().lower(),
        name=data.admin_name.strip(),
        base_role="admin",
        phone=data.phone,
        password_hash=hash_password(data.password),
        is_active=True,
    )
    db.add(admin)
    await db.flush()
    db.add(JobSite(
        organization_id=org.id,
        name=UNASSIGNED_SITE_NAME,
        description="Workers not yet placed on a job site",
        status="active",
        is_system_site=True,
        created_by=admin.id,
    ))
    await db.flush()
    await db.refresh(org)
    await db.refresh(admin)
    logger.info("organization registered: org_id=%s slug=%s admin_id=%s", org.id, slug, admin.id)
    return org, admin


async def update_organization(
    db: AsyncSession, scope: AccessScope, org: Organization, data: OrganizationUpdate
) -> Organization:
    scope.require(scope.can_manage_organization(org.id), "Only admins can update the organization")
    for k, v in data.model_dump(exclude_unset=True).items():
        setattr(org, k, v)
    await db.flush()
    await db.refresh(org)
    return org


# ---------- auth / users ----------
async def authenticate(db: AsyncSession, email: str, password: str) -> Optional[UserProfile]:
    user = await get_user_by_email(db, email)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


async def get_user(db: AsyncSession, scope: AccessScope, user_id: int) -> Optional[UserProfile]:
    user = await db.get(UserProfile, user_id)
    if not user or not scope.can_view_user(user):
        return None
    return user


async def list_users(db: AsyncSession, scope: AccessScope, include_inactive: bool = True) -> List[UserProfile]:
    q = select(UserProfile).where(UserProfile.organization_id == scope.org_id)
    if not include_inactive:
        q = q.where(UserProfile.is_active.is_(True))
    r = await db.execute(q.order_by(UserProfile.name, UserProfile.id))
    return list(r.scalars().all())


async def list_my_site_assignments(db: AsyncSession, user_id: int) -> List[JobSiteAssignment]:
    today = date.today()
    r = await db.execute(
        select(JobSiteAssignment)
        .where(
            JobSiteAssignment.user_id == user_id,
            JobSiteAssignment.is_active.is_(True),
            JobSiteAssignment.start_date <= today,
            or_(JobSiteAssignment.end_date.is_(None), JobSiteAssignment.end_date >= today),
        )
        .order_by(JobSiteAssignment.job_site_id)
    )
    return list(r.scalars().all())


async def invite_user(db: AsyncSession, scope: AccessScope, data: UserInvite) -> UserProfile:
    """Inactive profile with an invite token; optional site roles are created right away."""
    scope.require(scope.can_manage_users(), "Only admins can invite users")
    if await get_user_by_email(db, data.email):
        raise DuplicateError("Email is already registered")
    for sr in data.site_roles:
        await _require_site_in_org(db, scope.org_id, sr.job_site_id)

    user = UserProfile(
        organization_id=scope.org_id,
        email=data.email.strip().lower(),
        name=data.name.strip(),
        base_role=normalize_base_role(data.base_role),
        phone=data.phone,
        is_active=False,
        invite_token=new_token(),
        invite_expires_at=invite_expiry(),
    )
    db.add(user)
    await db.flush()
    for sr in data.site_roles:
        db.add(JobSiteAssignment(
            user_id=user.id,
            job_site_id=sr.job_site_id,
            role=sr.role,
            start_date=date.today(),
            is_active=True,
            assigned_by=scope.user_id,
        ))
    await db.flush()
    await db.refresh(user)
    logger.info("user invited: user_id=%s org_id=%s by=%s sites=%s",
                user.id, scope.org_id, scope.user_id, [sr.job_site_id for sr in data.site_roles])
    return user


async def accept_invite(db: AsyncSession, token: str, password: str) -> UserProfile:
    user = await db.scalar(select(UserProfile).where(UserProfile.invite_token == token))
    if not user or not user.invite_expires_at or user.invite_expires_at < datetime.utcnow():
        raise InviteInvalidError("Invite link is invalid or has expired")
    user.password_hash = hash_password(password)
    user.is_active = True
    user.invite_token = None
    user.invite_expires_at = None
    await db.flush()
    await db.refresh(user)
    logger.info("invite accepted: user_id=%s", user.id)
    return user


async def count_active_admins(db: AsyncSession, organization_id: int, exclude_user_id: Optional[int] = None) -> int:
    q = select(func.count(UserProfile.id)).where(
        UserProfile.organization_id == organization_id,
        UserProfile.is_active.is_(True),
        UserProfile.base_role == "admin",
    )
    if exclude_user_id is not None:
        q = q.where(UserProfile.id != exclude_user_id)
    return (await db.scalar(q)) or 0


SELF_EDITABLE_USER_FIELDS = {"name", "phone"}


async def update_user(db: AsyncSession, scope: AccessScope, user: UserProfile, data: UserUpdate) -> UserProfile:
    """
    Admins edit anyone in the organization; everybody else edits only their own name and phone.
    Demoting or deactivating the last active admin raises LastAdminError.
    Deactivation revokes the user's sessions and ends their site assignments.
    """
    update_data = data.model_dump(exclude_unset=True)
    for k in ("base_role", "is_active", "name"):
        if k in update_data and update_data[k] is None:
            del update_data[k]
    if not scope.is_admin:
        scope.require(
            user.id == scope.user_id and set(update_data) <= SELF_EDITABLE_USER_FIELDS,
            "Only admins can change roles or activation",
        )
    scope.require(user.organization_id == scope.org_id, "User belongs to another organization")

    if "base_role" in update_data:
        update_data["base_role"] = normalize_base_role(update_data["base_role"])
    losing_admin = user.is_active and user.base_role == "admin" and (
        update_data.get("is_active") is False
        or update_data.get("base_role", "admin") != "admin"
    )
    if losing_admin and await count_active_admins(db, user.organization_id, exclude_user_id=user.id) == 0:
        raise LastAdminError("At least one active admin must remain")

    deactivating = user.is_active and update_data.get("is_active") is False
    for k, v in update_data.items():
        setattr(user, k, v)

    if deactivating:
        now = datetime.utcnow()
        await db.execute(
            update(UserSession)
            .where(UserSession.user_id == user.id, UserSession.revoked_at.is_(None))
            .values(revoked_at=now)
        )
        await db.execute(
            update(JobSiteAssignment)
            .where(JobSiteAssignment.user_id == user.id, JobSiteAssignment.is_active.is_(True))
            .values(is_active=False, end_date=date.today())
        )
        logger.info("user deactivated: user_id=%s by=%s", user.id, scope.user_id)
    await db.flush()
    await db.refresh(user)
    return user


# ---------- job sites ----------
async def list_job_sites(db: AsyncSession, scope: AccessScope, status: Optional[str] = None) -> List[JobSite]:
    q = select(JobSite).where(scope.job_sites_filter())
    if status:
        q = q.where(JobSite.status == status)
    r = await db.execute(q.order_by(JobSite.is_system_site.desc(), JobSite.name, JobSite.id))
    return list(r.scalars().all())


async def get_job_site(db: AsyncSession, scope: AccessScope, job_site_id: int) -> Optional[JobSite]:
    site = await db.get(JobSite, job_site_id)
    if not site or not scope.can_view_job_site(site):
        return None
    return site


async def get_org_job_site(db: AsyncSession, scope: AccessScope, job_site_id: int) -> Optional[JobSite]:
    """Any site of the caller's organization, visible or not; callers check the action they need."""
    site = await db.get(JobSite, job_site_id)
    if not site or site.organization_id != scope.org_id:
        return None
    return site


async def get_system_site(db: AsyncSession, organization_id: int) -> Optional[JobSite]:
    r = await db.execute(
        select(JobSite).where(JobSite.organization_id == organization_id, JobSite.is_system_site.is_(True))
    )
    return r.scalars().first()


async def create_job_site(db: AsyncSession, scope: AccessScope, data: JobSiteCreate) -> JobSite:
    scope.require(scope.is_admin, "Only admins can create job sites")
    site = JobSite(**data.model_dump(), organization_id=scope.org_id, created_by=scope.user_id)
    db.add(site)
    await db.flush()
    await db.refresh(site)
    logger.info("job site created: id=%s org_id=%s", site.id, scope.org_id)
    return site


async def update_job_site(db: AsyncSession, scope: AccessScope, site: JobSite, data: JobSiteUpdate) -> JobSite:
    scope.require(scope.can_manage_job_site(site), "Only admins can update job sites")
    update_data = data.model_dump(exclude_unset=True)
    if site.is_system_site:
        if "name" in update_data and update_data["name"] != site.name:
            raise SystemSiteError("The Unassigned job site cannot be renamed")
        if update_data.get("status") == "completed":
            raise SystemSiteError("The Unassigned job site cannot be completed")
    _check_range(update_data.get("start_date", site.start_date), update_data.get("end_date", site.end_date))
    for k, v in update_data.items():
        setattr(site, k, v)
    await db.flush()
    await db.refresh(site)
    return site


async def delete_job_site(db: AsyncSession, scope: AccessScope, site: JobSite) -> None:
    scope.require(scope.can_manage_job_site(site), "Only admins can delete job sites")
    if site.is_system_site:
        raise SystemSiteError("The Unassigned job site cannot be deleted")
    workers = await db.scalar(select(func.count(Worker.id)).where(Worker.job_site_id == site.id))
    if workers:
        raise JobSiteInUseError("Cannot delete job site with active workers. Please move workers to another site first.")
    tasks = await db.scalar(select(func.count(Task.id)).where(Task.job_site_id == site.id))
    if tasks:
        raise JobSiteInUseError("Cannot delete job site with tasks. Please delete or move its tasks first.")
    await db.execute(delete(TaskDraft).where(TaskDraft.job_site_id == site.id))
    await db.execute(update(DailyHours).where(DailyHours.job_site_id == site.id).values(job_site_id=None))
    await db.execute(update(TaskHistory).where(TaskHistory.job_site_id == site.id).values(job_site_id=None))
    await db.delete(site)
    await db.flush()
    logger.info("job site deleted: id=%s org_id=%s by=%s", site.id, site.organization_id, scope.user_id)


async def get_job_site_context(
    db: AsyncSession, scope: AccessScope, selected_job_site_id: Optional[int] = None
) -> Dict[str, Any]:
    sites = await list_job_sites(db, scope)
    visible_ids = {s.id for s in sites}
    if selected_job_site_id not in visible_ids:
        selected_job_site_id = None
    if selected_job_site_id is None and len(scope.site_ids) == 1 and not scope.is_admin:
        selected_job_site_id = scope.site_ids[0]
    site_role = scope.site_role(selected_job_site_id)
    return {
        "base_role": scope.base_role,
        "is_admin": scope.is_admin,
        "sites": [
            {
                "id": s.id,
                "name": s.name,
                "status": s.status,
                "is_system_site": s.is_system_site,
                "role": scope.site_role(s.id),
            }
            for s in sites
        ],
        "selected_job_site_id": selected_job_site_id,
        "site_role": site_role,
        "permissions": get_permissions(scope.base_role, site_role),
        "show_job_site_selector": should_show_job_site_selector(scope.base_role, len(scope.site_ids)),
    }


# ---------- job site assignments ----------
async def list_site_assignments(
    db: AsyncSession, scope: AccessScope, job_site_id: int, include_inactive: bool = False
) -> List[JobSiteAssignment]:
    q = (
        select(JobSiteAssignment)
        .join(JobSite, JobSite.id == JobSiteAssignment.job_site_id)
        .where(JobSiteAssignment.job_site_id == job_site_id, scope.site_assignments_filter())
    )
    if not include_inactive:
        q = q.where(JobSiteAssignment.is_active.is_(True))
    r = await db.execute(q.order_by(JobSiteAssignment.start_date, JobSiteAssignment.id))
    return list(r.scalars().all())


async def get_site_assignment(db: AsyncSession, scope: AccessScope, assignment_id: int) -> Optional[JobSiteAssignment]:
    r = await db.execute(
        select(JobSiteAssignment)
        .where(JobSiteAssignment.id == assignment_id)
        .options(selectinload(JobSiteAssignment.job_site))
    )
    a = r.scalar_one_or_none()
    if not a or not scope.can_view_site_assignment(a, a.job_site):
        return None
    return a


async def assign_user_to_site(
    db: AsyncSession, scope: AccessScope, site: JobSite, data: JobSiteAssignmentCreate
) -> Tuple[JobSiteAssignment, bool]:
    """Returns (assignment, created). An existing active assignment for the pair is updated instead."""
    scope.require(scope.can_manage_site_assignments(site), "You cannot manage assignments for this job site")
    user = await db.get(UserProfile, data.user_id)
    if not user or user.organization_id != site.organization_id:
        raise CrossOrganizationError("User and job site must belong to the same organization")

    r = await db.execute(
        select(JobSiteAssignment).where(
            JobSiteAssignment.user_id == data.user_id,
            JobSiteAssignment.job_site_id == site.id,
            JobSiteAssignment.is_active.is_(True),
        )
    )
    existing = r.scalars().first()
    if existing:
        sent = data.model_dump(exclude_unset=True)
        existing.role = data.role
        if data.start_date is not None:
            existing.start_date = data.start_date
        if "end_date" in sent:
            existing.end_date = data.end_date
        if data.notes is not None:
            existing.notes = data.notes
        existing.assigned_by = scope.user_id
        _check_range(existing.start_date, existing.end_date)
        await db.flush()
        await db.refresh(existing)
        return existing, False

    a = JobSiteAssignment(
        user_id=data.user_id,
        job_site_id=site.id,
        role=data.role,
        start_date=data.start_date or date.today(),
        end_date=data.end_date,
        notes=data.notes,
        is_active=True,
        assigned_by=scope.user_id,
    )
    _check_range(a.start_date, a.end_date)
    db.add(a)
    await db.flush()
    await db.refresh(a)
    logger.info("site assignment created: user_id=%s job_site_id=%s role=%s", data.user_id, site.id, data.role)
    return a, True


async def update_site_assignment(
    db: AsyncSession, scope: AccessScope, a: JobSiteAssignment, data: JobSiteAssignmentUpdate
) -> JobSiteAssignment:
    scope.require(scope.can_manage_site_assignments(a.job_site), "You cannot manage assignments for this job site")
    update_data = data.model_dump(exclude_unset=True)
    _check_range(update_data.get("start_date", a.start_date), update_data.get("end_date", a.end_date))
    for k, v in update_data.items():
        if k in ("role", "start_date") and v is None:
            continue
        setattr(a, k, v)
    await db.flush()
    await db.refresh(a)
    return a


async def remove_site_assignment(db: AsyncSession, scope: AccessScope, a: JobSiteAssignment) -> JobSiteAssignment:
    scope.require(scope.can_manage_site_assignments(a.job_site), "You cannot manage assignments for this job site")
    a.is_active = False
    a.end_date = date.today()
    await db.flush()
    await db.refresh(a)
    return a


# ---------- workers ----------
async def list_workers(
    db: AsyncSession,
    scope: AccessScope,
    job_site_id: Optional[int] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Worker]:
    q = select(Worker).where(scope.rows_filter(Worker))
    if job_site_id is not None:
        q = q.where(Worker.job_site_id == job_site_id)
    if role:
        q = q.where(Worker.role == role)
    if status:
        q = q.where(Worker.status == status)
    r = await db.execute(q.order_by(Worker.name, Worker.id))
    return list(r.scalars().all())


async def get_worker(db: AsyncSession, scope: AccessScope, worker_id: int) -> Optional[Worker]:
    w = await db.get(Worker, worker_id)
    if not w or not scope.can_view_row(w.organization_id, w.job_site_id):
        return None
    return w


async def create_worker(db: AsyncSession, scope: AccessScope, data: WorkerCreate) -> Worker:
    scope.require(scope.can_manage_worker_row(scope.org_id, data.job_site_id), "You cannot manage workers on this job site")
    await _require_site_in_org(db, scope.org_id, data.job_site_id)
    await _require_user_in_org(db, scope.org_id, data.user_id)
    w = Worker(**data.model_dump(), organization_id=scope.org_id)
    db.add(w)
    await db.flush()
    await db.refresh(w)
    return w


async def update_worker(db: AsyncSession, scope: AccessScope, w: Worker, data: WorkerUpdate) -> Worker:
    scope.require(scope.can_manage_worker_row(w.organization_id, w.job_site_id), "You cannot manage this worker")
    update_data = data.model_dump(exclude_unset=True)
    if "job_site_id" in update_data and update_data["job_site_id"] != w.job_site_id:
        scope.require(
            scope.can_manage_worker_row(w.organization_id, update_data["job_site_id"]),
            "You cannot move workers to that job site",
        )
        await _require_site_in_org(db, scope.org_id, update_data["job_site_id"])
    if update_data.get("user_id") is not None:
        await _require_user_in_org(db, scope.org_id, update_data["user_id"])
    for k, v in update_data.items():
        if k in ("name", "role", "status", "skills") and v is None:
            continue
        setattr(w, k, v)
    await db.flush()
    await db.refresh(w)
    return w


async def delete_worker(db: AsyncSession, scope: AccessScope, w: Worker) -> None:
    scope.require(scope.can_manage_worker_row(w.organization_id, w.job_site_id), "You cannot manage this worker")
    await db.delete(w)
    await db.flush()


async def move_worker(db: AsyncSession, scope: AccessScope, w: Worker, data: WorkerMove) -> str:
    """
    Admin transfer between two sites of the organization. A worker linked to a login also
    has the login's assignment at the old site ended and a worker-role assignment opened at the new site.
    """
    scope.require(scope.is_admin, "Only admins can move workers between job sites")
    if data.from_job_site_id == data.to_job_site_id:
        raise ValueError("Source and destination job sites must be different")
    scope.require(w.organization_id == scope.org_id, "Worker belongs to another organization")
    from_site = await _require_site_in_org(db, scope.org_id, data.from_job_site_id)
    to_site = await _require_site_in_org(db, scope.org_id, data.to_job_site_id)
    effective = data.effective_date or date.today()

    w.job_site_id = to_site.id
    if w.user_id is not None:
        await db.execute(
            update(JobSiteAssignment)
            .where(
                JobSiteAssignment.user_id == w.user_id,
                JobSiteAssignment.job_site_id == from_site.id,
                JobSiteAssignment.is_active.is_(True),
            )
            .values(is_active=False, end_date=effective)
        )
        r = await db.execute(
            select(JobSiteAssignment.id).where(
                JobSiteAssignment.user_id == w.user_id,
                JobSiteAssignment.job_site_id == to_site.id,
                JobSiteAssignment.is_active.is_(True),
            )
        )
        if r.first() is None:
            db.add(JobSiteAssignment(
                user_id=w.user_id,
                job_site_id=to_site.id,
                role="worker",
                start_date=effective,
                is_active=True,
                assigned_by=scope.user_id,
                notes=f"Moved from {from_site.name}",
            ))
    await db.flush()
    await db.refresh(w)
    message = f"Successfully moved {w.name} from {from_site.name} to {to_site.name}"
    logger.info("worker moved: worker_id=%s from=%s to=%s effective=%s by=%s",
                w.id, from_site.id, to_site.id, effective, scope.user_id)
    return message


# ---------- tasks ----------
TRACKED_TASK_FIELDS = (
    "name", "location", "job_site_id", "start_date", "end_date",
    "required_operators", "required_laborers", "required_carpenters", "required_masons",
    "notes", "include_saturday", "include_sunday", "include_holidays",
)
WORKING_DAY_FIELDS = ("start_date", "end_date", "include_saturday", "include_sunday", "include_holidays")


def _history_value(v):
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    return v


def _status_action(previous: Optional[str], new: str) -> str:
    if new == "completed":
        return "completed"
    if previous == "completed":
        return "reopened"
    return "modified"


def _add_history(
    db: AsyncSession,
    task: Task,
    action: str,
    user_id: Optional[int],
    previous_status: Optional[str] = None,
    new_status: Optional[str] = None,
    changes: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
) -> TaskHistory:
    h = TaskHistory(
        task_id=task.id,
        organization_id=task.organization_id,
        job_site_id=task.job_site_id,
        action=action,
        performed_by=user_id,
        performed_at=datetime.utcnow(),
        previous_status=previous_status,
        new_status=new_status,
        changes=changes,
        notes=notes,
    )
    db.add(h)
    return h


async def holiday_dates_for(db: AsyncSession, start: Optional[date], end: Optional[date]) -> set:
    if start is None or end is None:
        return set()
    return await holiday_calendar.get_holiday_dates(db, start, end)


async def list_tasks(
    db: AsyncSession,
    scope: AccessScope,
    job_site_id: Optional[int] = None,
    status: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    load_assignments: bool = False,
) -> List[Task]:
    """start / end keep tasks whose date range overlaps the window."""
    q = select(Task).where(scope.rows_filter(Task))
    if job_site_id is not None:
        q = q.where(Task.job_site_id == job_site_id)
    if status:
        q = q.where(Task.status == status)
    if start is not None:
        q = q.where(Task.end_date >= start)
    if end is not None:
        q = q.where(Task.start_date <= end)
    if load_assignments:
        q = q.options(selectinload(Task.assignments).selectinload(Assignment.worker))
    r = await db.execute(q.order_by(Task.start_date, Task.id))
    return list(r.scalars().all())


async def get_task(
    db: AsyncSession, scope: AccessScope, task_id: int, load_assignments: bool = False
) -> Optional[Task]:
    q = select(Task).where(Task.id == task_id)
    if load_assignments:
        q = q.options(selectinload(Task.assignments).selectinload(Assignment.worker))
    r = await db.execute(q)
    t = r.scalar_one_or_none()
    if not t or not scope.can_view_row(t.organization_id, t.job_site_id):
        return None
    return t


async def create_task(db: AsyncSession, scope: AccessScope, data: TaskCreate, notes: Optional[str] = None) -> Task:
    scope.require(scope.can_manage_row(scope.org_id, data.job_site_id), "You cannot manage tasks on this job site")
    await _require_site_in_org(db, scope.org_id, data.job_site_id)
    now = datetime.utcnow()
    t = Task(
        **data.model_dump(),
        organization_id=scope.org_id,
        attachments=[],
        created_by=scope.user_id,
        created_at=now,
        modified_by=scope.user_id,
        modified_at=now,
    )
    db.add(t)
    await db.flush()
    _add_history(db, t, "created", scope.user_id, new_status=t.status, notes=notes)
    await db.flush()
    await db.refresh(t)
    return t


async def prune_assignments_outside_working_days(db: AsyncSession, task: Task) -> int:
    """Delete the task's assignment rows that no longer fall on one of its working days."""
    holidays = await holiday_dates_for(db, task.start_date, task.end_date)
    keep = task_working_days(task, holidays)
    q = delete(Assignment).where(Assignment.task_id == task.id)
    if keep:
        q = q.where(Assignment.assigned_date.not_in(keep))
    r = await db.execute(q)
    if r.rowcount:
        logger.info("pruned assignments: task_id=%s removed=%s", task.id, r.rowcount)
    return r.rowcount or 0


async def update_task(db: AsyncSession, scope: AccessScope, t: Task, data: TaskUpdate) -> Task:
    """
    Field edits write a "modified" history row with the changes; a status change writes
    completed / reopened / modified with the previous and new status. Changing dates or the
    weekend / holiday flags drops assignment rows outside the new working days.
    """
    scope.require(scope.can_manage_row(t.organization_id, t.job_site_id), "You cannot manage this task")
    update_data = data.model_dump(exclude_unset=True)
    for k in ("name", "status", "required_operators", "required_laborers", "required_carpenters",
              "required_masons", "include_saturday", "include_sunday", "include_holidays"):
        if k in update_data and update_data[k] is None:
            update_data.pop(k)
    if "job_site_id" in update_data and update_data["job_site_id"] != t.job_site_id:
        scope.require(
            scope.can_manage_row(t.organization_id, update_data["job_site_id"]),
            "You cannot move tasks to that job site",
        )
        await _require_site_in_org(db, scope.org_id, update_data["job_site_id"])
    _check_range(update_data.get("start_date", t.start_date), update_data.get("end_date", t.end_date))

    previous_status = t.status
    new_status = update_data.pop("status", previous_status)
    changes = {}
    for k, v in update_data.items():
        if k in TRACKED_TASK_FIELDS and getattr(t, k) != v:
            changes[k] = {"from": _history_value(getattr(t, k)), "to": _history_value(v)}
        setattr(t, k, v)
    t.status = new_status
    t.modified_by = scope.user_id
    t.modified_at = datetime.utcnow()

    if new_status != previous_status:
        _add_history(
            db, t, _status_action(previous_status, new_status), scope.user_id,
            previous_status=previous_status, new_status=new_status, changes=changes or None,
        )
    elif changes:
        _add_history(db, t, "modified", scope.user_id, previous_status=previous_status,
                     new_status=new_status, changes=changes)

    if "job_site_id" in changes:
        await db.execute(
            update(Assignment).where(Assignment.task_id == t.id).values(job_site_id=t.job_site_id)
        )
    await db.flush()
    if any(k in changes for k in WORKING_DAY_FIELDS):
        await prune_assignments_outside_working_days(db, t)
    await db.refresh(t)
    return t


async def set_task_status(
    db: AsyncSession, scope: AccessScope, t: Task, status: str, notes: Optional[str] = None
) -> Task:
    """Status-only change, open to crew leads (foremen mark their work completed)."""
    scope.require(scope.can_lead_row(t.organization_id, t.job_site_id), "You cannot update this task's status")
    previous = t.status
    if status == previous:
        return t
    t.status = status
    t.modified_by = scope.user_id
    t.modified_at = datetime.utcnow()
    _add_history(db, t, _status_action(previous, status), scope.user_id,
                 previous_status=previous, new_status=status, notes=notes)
    await db.flush()
    await db.refresh(t)
    return t


async def delete_task(db: AsyncSession, scope: AccessScope, t: Task) -> None:
    scope.require(scope.can_manage_row(t.organization_id, t.job_site_id), "You cannot manage this task")
    paths = [a.get("path") for a in (t.attachments or []) if a.get("path")]
    await db.execute(
        update(DailyHours).where(DailyHours.task_id == t.id).values(task_id=None)
    )
    await db.execute(
        update(DailyHours).where(DailyHours.transferred_to_task_id == t.id).values(transferred_to_task_id=None)
    )
    await db.execute(
        delete(AssignmentRequest).where(or_(AssignmentRequest.from_task_id == t.id, AssignmentRequest.to_task_id == t.id))
    )
    await db.delete(t)
    await db.flush()
    for p in paths:
        try:
            task_files.delete_task_file(p)
        except (ValueError, OSError):
            logger.warning("could not delete attachment file: %s", p)


async def list_task_history(db: AsyncSession, scope: AccessScope, t: Task) -> List[TaskHistory]:
    r = await db.execute(
        select(TaskHistory)
        .where(TaskHistory.task_id == t.id, scope.rows_filter(TaskHistory))
        .order_by(TaskHistory.performed_at.desc(), TaskHistory.id.desc())
    )
    return list(r.scalars().all())


# ---------- task attachments ----------
async def add_task_attachment(
    db: AsyncSession, scope: AccessScope, t: Task, filename: str, content: bytes
) -> Dict[str, Any]:
    scope.require(scope.can_manage_row(t.organization_id, t.job_site_id), "You cannot manage this task")
    descriptor = task_files.save_task_file(t.id, content, filename, scope.user_id)
    # reassign so the JSON column is flagged dirty
    t.attachments = [*(t.attachments or []), descriptor]
    t.modified_by = scope.user_id
    t.modified_at = datetime.utcnow()
    await db.flush()
    return descriptor


def find_task_attachment(t: Task, path: str) -> Dict[str, Any]:
    for a in t.attachments or []:
        if a.get("path") == path:
            return a
    raise AttachmentNotFoundError("Attachment not found")


async def remove_task_attachment(db: AsyncSession, scope: AccessScope, t: Task, path: str) -> Task:
    scope.require(scope.can_manage_row(t.organization_id, t.job_site_id), "You cannot manage this task")
    find_task_attachment(t, path)
    t.attachments = [a for a in (t.attachments or []) if a.get("path") != path]
    t.modified_by = scope.user_id
    t.modified_at = datetime.utcnow()
    await db.flush()
    task_files.delete_task_file(path)
    await db.refresh(t)
    return t


# ---------- task drafts / import ----------
async def import_task_drafts(
    db: AsyncSession, scope: AccessScope, job_site_id: Optional[int], filename: str, content: bytes
) -> List[TaskDraft]:
    """Parse a schedule file; any row error rejects the whole file (TaskImportError)."""
    scope.require(scope.can_manage_row(scope.org_id, job_site_id), "You cannot manage tasks on this job site")
    await _require_site_in_org(db, scope.org_id, job_site_id)
    rows = parse_task_file(filename, content)
    drafts = []
    for row in rows:
        d = TaskDraft(
            **draft_values(row),
            organization_id=scope.org_id,
            job_site_id=job_site_id,
            created_by=scope.user_id,
        )
        db.add(d)
        drafts.append(d)
    await db.flush()
    for d in drafts:
        await db.refresh(d)
    logger.info("task drafts imported: org_id=%s job_site_id=%s count=%s by=%s",
                scope.org_id, job_site_id, len(drafts), scope.user_id)
    return drafts


async def list_task_drafts(db: AsyncSession, scope: AccessScope, job_site_id: Optional[int] = None) -> List[TaskDraft]:
    q = select(TaskDraft).where(scope.rows_filter(TaskDraft))
    if job_site_id is not None:
        q = q.where(TaskDraft.job_site_id == job_site_id)
    r = await db.execute(q.order_by(TaskDraft.id))
    return list(r.scalars().all())


async def get_task_draft(db: AsyncSession, scope: AccessScope, draft_id: int) -> Optional[TaskDraft]:
    d = await db.get(TaskDraft, draft_id)
    if not d or not scope.can_view_row(d.organization_id, d.job_site_id):
        return None
    return d


async def update_task_draft(db: AsyncSession, scope: AccessScope, d: TaskDraft, data: TaskDraftUpdate) -> TaskDraft:
    scope.require(scope.can_manage_row(d.organization_id, d.job_site_id), "You cannot manage tasks on this job site")
    update_data = data.model_dump(exclude_unset=True)
    _check_range(update_data.get("start_date", d.start_date), update_data.get("end_date", d.end_date))
    for k, v in update_data.items():
        if k == "name" and v is None:
            continue
        setattr(d, k, v)
    await db.flush()
    await db.refresh(d)
    return d


async def delete_task_draft(db: AsyncSession, scope: AccessScope, d: TaskDraft) -> None:
    scope.require(scope.can_manage_row(d.organization_id, d.job_site_id), "You cannot manage tasks on this job site")
    await db.delete(d)
    await db.flush()


async def publish_task_draft(db: AsyncSession, scope: AccessScope, d: TaskDraft) -> Task:
    """Draft becomes a planned task (history "created") and is removed."""
    scope.require(scope.can_manage_row(d.organization_id, d.job_site_id), "You cannot manage tasks on this job site")
    if d.start_date is None or d.end_date is None:
        raise DraftIncompleteError("Set start and end dates before publishing this task")
    data = TaskCreate(
        name=d.name,
        location=d.location,
        job_site_id=d.job_site_id,
        start_date=d.start_date,
        end_date=d.end_date,
        required_operators=d.required_operators or 0,
        required_laborers=d.required_laborers or 0,
        required_carpenters=d.required_carpenters or 0,
        required_masons=d.required_masons or 0,
        status="planned",
        notes=d.notes,
        include_saturday=bool(d.include_saturday),
        include_sunday=bool(d.include_sunday),
        include_holidays=bool(d.include_holidays),
    )
    t = await create_task(db, scope, data, notes=f"Published from import ({d.activity_id or d.name})")
    await db.delete(d)
    await db.flush()
    return t


# ---------- assignments ----------
def _live():
    return Assignment.status != "reassigned"


async def _assign_on_days(
    db: AsyncSession,
    task: Task,
    workers: List[Worker],
    user_id: int,
    from_date: Optional[date] = None,
) -> Tuple[List[date], int, int]:
    """Create missing rows for every worker on every working day; returns (days, created, skipped)."""
    if task.start_date is None or task.end_date is None:
        raise TaskDatesMissingError("Please set task dates before assigning workers")
    holidays = await holiday_dates_for(db, task.start_date, task.end_date)
    days = [d for d in task_working_days(task, holidays) if from_date is None or d >= from_date]
    if not days or not workers:
        return days, 0, 0
    worker_ids = [w.id for w in workers]

    r = await db.execute(
        select(Assignment.worker_id, Assignment.assigned_date).where(
            Assignment.worker_id.in_(worker_ids),
            Assignment.assigned_date.in_(days),
            Assignment.task_id != task.id,
            _live(),
        )
    )
    conflicts = r.all()
    if conflicts:
        names = sorted({w.name for w in workers if w.id in {c.worker_id for c in conflicts}})
        raise AssignmentConflictError(
            f"Worker is already assigned to another task on these dates: {', '.join(names)}"
        )

    r = await db.execute(
        select(Assignment).where(
            Assignment.task_id == task.id,
            Assignment.worker_id.in_(worker_ids),
            Assignment.assigned_date.in_(days),
        )
    )
    existing = {(a.worker_id, a.assigned_date): a for a in r.scalars().all()}
    created = skipped = 0
    for w in workers:
        for d in days:
            row = existing.get((w.id, d))
            if row is not None:
                if row.status == "reassigned":
                    row.status = "assigned"
                    row.assigned_by = user_id
                    created += 1
                else:
                    skipped += 1
                continue
            db.add(Assignment(
                organization_id=task.organization_id,
                job_site_id=task.job_site_id,
                task_id=task.id,
                worker_id=w.id,
                assigned_date=d,
                status="assigned",
                assigned_by=user_id,
            ))
            created += 1
    await db.flush()
    return days, created, skipped


async def assign_workers(
    db: AsyncSession, scope: AccessScope, task: Task, worker_ids: Iterable[int]
) -> Dict[str, Any]:
    """
    One row per worker per working day of the task. A worker already assigned to another
    task on any of those days rejects the whole request; rows already on this task are kept.
    """
    scope.require(scope.can_manage_row(task.organization_id, task.job_site_id), "You cannot assign workers to this task")
    ids = list(dict.fromkeys(worker_ids))
    workers = []
    for wid in ids:
        w = await get_worker(db, scope, wid)
        if not w:
            raise CrossOrganizationError(f"Worker {wid} not found in your organization")
        workers.append(w)
    days, created, skipped = await _assign_on_days(db, task, workers, scope.user_id)
    logger.info("workers assigned: task_id=%s workers=%s days=%s created=%s", task.id, ids, len(days), created)
    return {"task_id": task.id, "worker_ids": ids, "dates": days, "created": created, "skipped": skipped}


async def unassign_worker(db: AsyncSession, scope: AccessScope, task: Task, worker_id: int) -> int:
    scope.require(scope.can_manage_row(task.organization_id, task.job_site_id), "You cannot assign workers to this task")
    r = await db.execute(delete(Assignment).where(Assignment.task_id == task.id, Assignment.worker_id == worker_id))
    return r.rowcount or 0


async def list_assignments(
    db: AsyncSession,
    scope: AccessScope,
    start: Optional[date] = None,
    end: Optional[date] = None,
    task_id: Optional[int] = None,
    worker_id: Optional[int] = None,
    job_site_id: Optional[int] = None,
    include_reassigned: bool = False,
    load_worker: bool = False,
) -> List[Assignment]:
    q = select(Assignment).where(scope.rows_filter(Assignment))
    if start is not None:
        q = q.where(Assignment.assigned_date >= start)
    if end is not None:
        q = q.where(Assignment.assigned_date <= end)
    if task_id is not None:
        q = q.where(Assignment.task_id == task_id)
    if worker_id is not None:
        q = q.where(Assignment.worker_id == worker_id)
    if job_site_id is not None:
        q = q.where(Assignment.job_site_id == job_site_id)
    if not include_reassigned:
        q = q.where(_live())
    if load_worker:
        q = q.options(selectinload(Assignment.worker))
    r = await db.execute(q.order_by(Assignment.assigned_date, Assignment.task_id, Assignment.worker_id))
    return list(r.scalars().all())


async def get_assignment(db: AsyncSession, scope: AccessScope, assignment_id: int) -> Optional[Assignment]:
    r = await db.execute(
        select(Assignment).where(Assignment.id == assignment_id).options(selectinload(Assignment.worker))
    )
    a = r.scalar_one_or_none()
    if not a or not scope.can_view_row(a.organization_id, a.job_site_id):
        return None
    return a


async def acknowledge_assignment(db: AsyncSession, scope: AccessScope, a: Assignment) -> Assignment:
    own = a.worker is not None and a.worker.user_id == scope.user_id
    scope.require(own or scope.can_lead_row(a.organization_id, a.job_site_id), "You cannot acknowledge this assignment")
    a.acknowledged = True
    a.acknowledged_at = datetime.utcnow()
    await db.flush()
    await db.refresh(a)
    return a


async def complete_assignment(db: AsyncSession, scope: AccessScope, a: Assignment) -> Assignment:
    scope.require(scope.can_lead_row(a.organization_id, a.job_site_id), "You cannot complete this assignment")
    if a.status == "reassigned":
        raise ValueError("A reassigned assignment cannot be completed")
    a.status = "completed"
    await db.flush()
    await db.refresh(a)
    return a


# ---------- assignment requests ----------
async def create_assignment_request(
    db: AsyncSession, scope: AccessScope, data: AssignmentRequestCreate
) -> AssignmentRequest:
    if data.from_task_id is not None and data.from_task_id == data.to_task_id:
        raise ValueError("from_task_id and to_task_id must be different")
    worker = await get_worker(db, scope, data.worker_id)
    to_task = await get_task(db, scope, data.to_task_id)
    from_task = await get_task(db, scope, data.from_task_id) if data.from_task_id is not None else None
    if not worker or not to_task or (data.from_task_id is not None and not from_task):
        raise CrossOrganizationError("Worker or task not found in your organization")
    scope.require(
        scope.can_lead_row(to_task.organization_id, to_task.job_site_id),
        "Only crew leads can request reassignments",
    )
    req = AssignmentRequest(
        organization_id=scope.org_id,
        job_site_id=to_task.job_site_id,
        worker_id=worker.id,
        from_task_id=data.from_task_id,
        to_task_id=to_task.id,
        requested_by=scope.user_id,
        reason=data.reason,
        status="pending",
    )
    db.add(req)
    await db.flush()
    await db.refresh(req)
    logger.info("assignment request created: id=%s worker_id=%s from=%s to=%s",
                req.id, worker.id, data.from_task_id, to_task.id)
    return req


async def list_assignment_requests(
    db: AsyncSession, scope: AccessScope, status: Optional[str] = None, job_site_id: Optional[int] = None
) -> List[AssignmentRequest]:
    q = select(AssignmentRequest).where(scope.rows_filter(AssignmentRequest))
    if status:
        q = q.where(AssignmentRequest.status == status)
    if job_site_id is not None:
        q = q.where(AssignmentRequest.job_site_id == job_site_id)
    r = await db.execute(q.order_by(AssignmentRequest.created_at.desc(), AssignmentRequest.id.desc()))
    return list(r.scalars().all())


async def get_assignment_request(db: AsyncSession, scope: AccessScope, request_id: int) -> Optional[AssignmentRequest]:
    req = await db.get(AssignmentRequest, request_id)
    if not req or not scope.can_view_row(req.organization_id, req.job_site_id):
        return None
    return req


async def review_assignment_request(
    db: AsyncSession, scope: AccessScope, req: AssignmentRequest, approve: bool, today: Optional[date] = None
) -> AssignmentRequest:
    """
    Approval marks the worker's rows on from_task from today on as reassigned and assigns the
    worker to to_task on its remaining working days.
    """
    scope.require(scope.can_manage_row(req.organization_id, req.job_site_id), "Only managers can review requests")
    if req.status != "pending":
        raise RequestNotPendingError("Request has already been reviewed")
    today = today or date.today()
    if approve:
        if req.from_task_id is not None:
            await db.execute(
                update(Assignment)
                .where(
                    Assignment.worker_id == req.worker_id,
                    Assignment.task_id == req.from_task_id,
                    Assignment.assigned_date >= today,
                    _live(),
                )
                .values(status="reassigned")
            )
        to_task = await db.get(Task, req.to_task_id)
        worker = await db.get(Worker, req.worker_id)
        await _assign_on_days(db, to_task, [worker], scope.user_id, from_date=today)
    req.status = "approved" if approve else "denied"
    req.reviewed_by = scope.user_id
    req.reviewed_at = datetime.utcnow()
    await db.flush()
    await db.refresh(req)
    logger.info("assignment request %s: id=%s by=%s", req.status, req.id, scope.user_id)
    return req


# ---------- daily hours ----------
async def get_daily_hours_record(
    db: AsyncSession, worker_id: int, log_date: date, organization_id: int
) -> Optional[DailyHours]:
    r = await db.execute(
        select(DailyHours).where(
            DailyHours.worker_id == worker_id,
            DailyHours.log_date == log_date,
            DailyHours.organization_id == organization_id,
        )
    )
    return r.scalar_one_or_none()


async def log_daily_hours(
    db: AsyncSession, scope: AccessScope, worker: Worker, data: DailyHoursLog
) -> Tuple[DailyHours, bool]:
    """
    Upsert on (worker, day, organization):
    - off: 0 hours, task and transfer target cleared
    - transferred: 8 hours, task cleared, transfer target optional
    - worked: given hours (default 8) on the given task
    Crew leads log; overwriting an existing record needs a manager.
    """
    scope.require(scope.can_lead_row(worker.organization_id, worker.job_site_id), "You cannot log hours for this worker")
    default_hours = Decimal(str(settings.default_hours_worked))
    if data.status == "off":
        hours, task_id, transferred_to = Decimal("0"), None, None
    elif data.status == "transferred":
        hours, task_id, transferred_to = default_hours, None, data.transferred_to_task_id
    else:
        hours = data.hours_worked if data.hours_worked is not None else default_hours
        task_id, transferred_to = data.task_id, None
    for tid in (task_id, transferred_to):
        if tid is not None and not await get_task(db, scope, tid):
            raise CrossOrganizationError("Task not found in your organization")

    rec = await get_daily_hours_record(db, worker.id, data.log_date, worker.organization_id)
    created = rec is None
    if rec is None:
        rec = DailyHours(organization_id=worker.organization_id, worker_id=worker.id, log_date=data.log_date)
        db.add(rec)
    else:
        scope.require(
            scope.can_manage_row(rec.organization_id, rec.job_site_id),
            "Only managers can change hours that were already logged",
        )
    rec.job_site_id = worker.job_site_id
    rec.status = data.status
    rec.hours_worked = hours
    rec.task_id = task_id
    rec.transferred_to_task_id = transferred_to
    rec.notes = data.notes
    rec.logged_by = scope.user_id
    await db.flush()
    await db.refresh(rec)
    return rec, created


async def list_daily_hours(
    db: AsyncSession,
    scope: AccessScope,
    log_date: Optional[date] = None,
    job_site_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    worker_id: Optional[int] = None,
) -> List[DailyHours]:
    q = select(DailyHours).where(scope.rows_filter(DailyHours))
    if log_date is not None:
        q = q.where(DailyHours.log_date == log_date)
    if start is not None:
        q = q.where(DailyHours.log_date >= start)
    if end is not None:
        q = q.where(DailyHours.log_date <= end)
    if job_site_id is not None:
        q = q.where(DailyHours.job_site_id == job_site_id)
    if worker_id is not None:
        q = q.where(DailyHours.worker_id == worker_id)
    r = await db.execute(q.order_by(DailyHours.log_date, DailyHours.worker_id))
    return list(r.scalars().all())


async def get_daily_hours(db: AsyncSession, scope: AccessScope, record_id: int) -> Optional[DailyHours]:
    rec = await db.get(DailyHours, record_id)
    if not rec or not scope.can_view_row(rec.organization_id, rec.job_site_id):
        return None
    return rec


async def delete_daily_hours(db: AsyncSession, scope: AccessScope, rec: DailyHours) -> None:
    scope.require(scope.can_manage_row(rec.organization_id, rec.job_site_id), "Only managers can delete logged hours")
    await db.delete(rec)
    await db.flush()


async def weekly_hours_summary(
    db: AsyncSession, scope: AccessScope, any_day: date, job_site_id: Optional[int] = None
) -> Dict[str, Any]:
    """Sunday-to-Saturday grid for every visible active worker (optionally one site)."""
    sunday = week_start_sunday(any_day)
    workers = await list_workers(db, scope, job_site_id=job_site_id, status="active")
    ids = [w.id for w in workers]
    records = []
    if ids:
        r = await db.execute(
            select(DailyHours).where(
                DailyHours.organization_id == scope.org_id,
                DailyHours.worker_id.in_(ids),
                DailyHours.log_date >= sunday,
                DailyHours.log_date <= sunday + timedelta(days=6),
            )
        )
        records = list(r.scalars().all())
    return build_weekly_summary(workers, records, sunday)


# ---------- holidays ----------
async def list_holidays(
    db: AsyncSession, year: Optional[int] = None, start: Optional[date] = None, end: Optional[date] = None
) -> List[Holiday]:
    q = select(Holiday)
    if year is not None:
        q = q.where(Holiday.year == year)
    if start is not None:
        q = q.where(Holiday.date >= start)
    if end is not None:
        q = q.where(Holiday.date <= end)
    r = await db.execute(q.order_by(Holiday.date, Holiday.name))
    return list(r.scalars().all())


async def get_holiday(db: AsyncSession, holiday_id: int) -> Optional[Holiday]:
    return await db.get(Holiday, holiday_id)


async def _check_holiday_unique(db: AsyncSession, d: date, name: str, exclude_id: Optional[int] = None) -> None:
    q = select(Holiday.id).where(Holiday.date == d, Holiday.name == name)
    if exclude_id is not None:
        q = q.where(Holiday.id != exclude_id)
    if await db.scalar(q):
        raise DuplicateError(f"Holiday '{name}' on {d.isoformat()} already exists")


async def create_holiday(db: AsyncSession, scope: AccessScope, data: HolidayCreate) -> Holiday:
    scope.require(scope.is_admin, "Only admins can manage holidays")
    await _check_holiday_unique(db, data.date, data.name)
    h = Holiday(**data.model_dump(), year=data.date.year)
    db.add(h)
    await db.flush()
    await db.refresh(h)
    return h


async def update_holiday(db: AsyncSession, scope: AccessScope, h: Holiday, data: HolidayUpdate) -> Holiday:
    scope.require(scope.is_admin, "Only admins can manage holidays")
    update_data = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    await _check_holiday_unique(db, update_data.get("date", h.date), update_data.get("name", h.name), exclude_id=h.id)
    for k, v in update_data.items():
        setattr(h, k, v)
    h.year = h.date.year
    await db.flush()
    await db.refresh(h)
    return h


async def delete_holiday(db: AsyncSession, scope: AccessScope, h: Holiday) -> None:
    scope.require(scope.is_admin, "Only admins can manage holidays")
    await db.delete(h)
    await db.flush()


# ---------- dashboard ----------
async def dashboard_summary(
    db: AsyncSession, scope: AccessScope, job_site_id: Optional[int] = None, today: Optional[date] = None
) -> Dict[str, Any]:
    today = today or date.today()

    def site(model):
        clause = scope.rows_filter(model)
        if job_site_id is not None:
            clause = and_(clause, model.job_site_id == job_site_id)
        return clause

    active_workers = await db.scalar(
        select(func.count(Worker.id)).where(site(Worker), Worker.status == "active")
    )
    tasks_today = await list_tasks(db, scope, job_site_id=job_site_id, start=today, end=today, load_assignments=True)
    running = [t for t in tasks_today if t.status in ("planned", "active")]
    holidays = await holiday_calendar.get_holiday_dates(db, today, today)
    understaffed = 0
    for t in running:
        if today not in task_working_days(t, holidays):
            continue
        if task_staffing(t, t.assignments, on_date=today)["status"] != STAFFING_FULL:
            understaffed += 1
    today_assignments = await db.scalar(
        select(func.count(Assignment.id)).where(site(Assignment), Assignment.assigned_date == today, _live())
    )
    pending = await db.scalar(
        select(func.count(AssignmentRequest.id)).where(site(AssignmentRequest), AssignmentRequest.status == "pending")
    )
    sunday = week_start_sunday(today)
    hours = await db.scalar(
        select(func.coalesce(func.sum(DailyHours.hours_worked), 0)).where(
            site(DailyHours),
            DailyHours.status == "worked",
            DailyHours.log_date >= sunday,
            DailyHours.log_date <= sunday + timedelta(days=6),
        )
    )
    return {
        "as_of": today,
        "job_site_id": job_site_id,
        "active_workers": active_workers or 0,
        "active_tasks": len(running),
        "today_assignments": today_assignments or 0,
        "understaffed_tasks_today": understaffed,
        "pending_requests": pending or 0,
        "hours_this_week": float(hours or 0),
    }
