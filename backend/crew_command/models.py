"""Database models: organizations, job sites, users, workers, tasks, day-grained assignments, daily hours, holidays.
Every row below organizations carries organization_id, directly or through its job site."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from sqlalchemy import (
    String, Date, Text, Numeric, ForeignKey, DateTime, Boolean, Integer, UniqueConstraint, Index, JSON, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from crew_command.database import Base

# holidays has a column named date; annotate it through an alias so the type is not shadowed
DateType = date


BASE_ROLES = ("admin", "superintendent", "engineer", "foreman", "worker")
# Older profiles carry roles that no longer exist
LEGACY_ROLE_MAP = {"viewer": "worker"}
SITE_ROLES = ("superintendent", "engineer", "engineer_as_superintendent", "foreman", "worker")
JOB_SITE_STATUSES = ("active", "on_hold", "completed")
WORKER_ROLES = ("operator", "laborer", "carpenter", "mason")
WORKER_STATUSES = ("active", "inactive")
TASK_STATUSES = ("planned", "active", "completed", "draft")
TASK_HISTORY_ACTIONS = ("created", "modified", "completed", "reopened")
ASSIGNMENT_STATUSES = ("assigned", "completed", "reassigned")
REQUEST_STATUSES = ("pending", "approved", "denied")
DAILY_HOURS_STATUSES = ("worked", "off", "transferred")

UNASSIGNED_SITE_NAME = "Unassigned"


class Organization(Base):
    """Tenant root."""
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), comment="Display name")
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True, comment="URL-safe unique key")
    address: Mapped[Optional[str]] = mapped_column(String(500))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    job_sites: Mapped[List["JobSite"]] = relationship("JobSite", back_populates="organization")
    users: Mapped[List["UserProfile"]] = relationship("UserProfile", back_populates="organization")


class JobSite(Base):
    """Project location within an organization; second-level scoping boundary."""
    __tablename__ = "job_sites"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(200))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="active", comment="active / on_hold / completed")
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    is_system_site: Mapped[bool] = mapped_column(Boolean, default=False, comment="Per-org Unassigned site; cannot be deleted")
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="job_sites")
    user_assignments: Mapped[List["JobSiteAssignment"]] = relationship(
        "JobSiteAssignment", back_populates="job_site", cascade="all, delete-orphan"
    )


class UserProfile(Base):
    """Application user. base_role is organization-wide; per-site roles live in job_site_assignments."""
    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    base_role: Mapped[str] = mapped_column(String(20), default="worker", comment="admin / superintendent / engineer / foreman / worker")
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), comment="bcrypt; empty until the invite is accepted")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    invite_token: Mapped[Optional[str]] = mapped_column(String(100), unique=True, index=True)
    invite_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="users")
    site_assignments: Mapped[List["JobSiteAssignment"]] = relationship(
        "JobSiteAssignment",
        back_populates="user",
        foreign_keys="JobSiteAssignment.user_id",
        cascade="all, delete-orphan",
    )
    sessions: Mapped[List["UserSession"]] = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")


class UserSession(Base):
    """Opaque bearer token issued at login."""
    __tablename__ = "user_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_profiles.id", ondelete="CASCADE"), index=True)
    token: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    user: Mapped["UserProfile"] = relationship("UserProfile", back_populates="sessions")


class JobSiteAssignment(Base):
    """User-to-site role binding with an active window. At most one active row per user and site."""
    __tablename__ = "job_site_assignments"
    __table_args__ = (
        Index(
            "uq_job_site_assignment_active",
            "user_id",
            "job_site_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_profiles.id", ondelete="CASCADE"), index=True)
    job_site_id: Mapped[int] = mapped_column(ForeignKey("job_sites.id", ondelete="CASCADE"), index=True)
    role: Mapped[str] = mapped_column(String(40), comment="superintendent / engineer / engineer_as_superintendent / foreman / worker")
    start_date: Mapped[date] = mapped_column(Date, default=date.today)
    end_date: Mapped[Optional[date]] = mapped_column(Date, comment="Null means open-ended")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    assigned_by: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"))
    notes: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user: Mapped["UserProfile"] = relationship("UserProfile", back_populates="site_assignments", foreign_keys=[user_id])
    job_site: Mapped["JobSite"] = relationship("JobSite", back_populates="user_assignments")


class Worker(Base):
    """Crew member. Optionally linked to a job site and to a login."""
    __tablename__ = "workers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), index=True)
    job_site_id: Mapped[Optional[int]] = mapped_column(ForeignKey("job_sites.id"), index=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"), index=True)
    name: Mapped[str] = mapped_column(String(200))
    role: Mapped[str] = mapped_column(String(20), comment="operator / laborer / carpenter / mason")
    skills: Mapped[List[str]] = mapped_column(JSON, default=list)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(20), default="active", comment="active / inactive")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    job_site: Mapped[Optional["JobSite"]] = relationship("JobSite")
    assignments: Mapped[List["Assignment"]] = relationship("Assignment", back_populates="worker", cascade="all, delete-orphan")
    daily_hours: Mapped[List["DailyHours"]] = relationship("DailyHours", back_populates="worker", cascade="all, delete-orphan")


class Task(Base):
    """Schedulable unit of work with a date range and per-role headcount."""
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), index=True)
    job_site_id: Mapped[Optional[int]] = mapped_column(ForeignKey("job_sites.id"), index=True)
    name: Mapped[str] = mapped_column(String(300))
    location: Mapped[Optional[str]] = mapped_column(String(300))
    start_date: Mapped[Optional[date]] = mapped_column(Date, index=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, index=True)
    required_operators: Mapped[int] = mapped_column(Integer, default=0)
    required_laborers: Mapped[int] = mapped_column(Integer, default=0)
    required_carpenters: Mapped[int] = mapped_column(Integer, default=0)
    required_masons: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="planned", comment="planned / active / completed / draft")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    attachments: Mapped[List[dict]] = mapped_column(JSON, default=list, comment="[{name, path, size, uploaded_at, uploaded_by}]")
    include_saturday: Mapped[bool] = mapped_column(Boolean, default=False)
    include_sunday: Mapped[bool] = mapped_column(Boolean, default=False)
    include_holidays: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    modified_by: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"))
    modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    job_site: Mapped[Optional["JobSite"]] = relationship("JobSite")
    assignments: Mapped[List["Assignment"]] = relationship(
        "Assignment", back_populates="task", cascade="all, delete-orphan", order_by="Assignment.assigned_date"
    )
    history: Mapped[List["TaskHistory"]] = relationship(
        "TaskHistory", back_populates="task", cascade="all, delete-orphan", order_by="TaskHistory.performed_at"
    )


class TaskDraft(Base):
    """Imported task awaiting review before it is published as a task."""
    __tablename__ = "task_drafts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), index=True)
    job_site_id: Mapped[Optional[int]] = mapped_column(ForeignKey("job_sites.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(300))
    activity_id: Mapped[Optional[str]] = mapped_column(String(100))
    activity_name: Mapped[Optional[str]] = mapped_column(String(300))
    duration_days: Mapped[Optional[int]] = mapped_column(Integer)
    location: Mapped[Optional[str]] = mapped_column(String(300))
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    required_operators: Mapped[int] = mapped_column(Integer, default=0)
    required_laborers: Mapped[int] = mapped_column(Integer, default=0)
    required_carpenters: Mapped[int] = mapped_column(Integer, default=0)
    required_masons: Mapped[int] = mapped_column(Integer, default=0)
    include_saturday: Mapped[bool] = mapped_column(Boolean, default=False)
    include_sunday: Mapped[bool] = mapped_column(Boolean, default=False)
    include_holidays: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TaskHistory(Base):
    """Audit trail of task lifecycle events."""
    __tablename__ = "task_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), index=True)
    job_site_id: Mapped[Optional[int]] = mapped_column(ForeignKey("job_sites.id", ondelete="SET NULL"))
    action: Mapped[str] = mapped_column(String(20), comment="created / modified / completed / reopened")
    performed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"))
    performed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    previous_status: Mapped[Optional[str]] = mapped_column(String(20))
    new_status: Mapped[Optional[str]] = mapped_column(String(20))
    changes: Mapped[Optional[dict]] = mapped_column(JSON)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    task: Mapped["Task"] = relationship("Task", back_populates="history")


class Assignment(Base):
    """One worker on one task for one calendar day."""
    __tablename__ = "assignments"
    __table_args__ = (Index("ix_assignments_worker_date", "worker_id", "assigned_date"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), index=True)
    job_site_id: Mapped[Optional[int]] = mapped_column(ForeignKey("job_sites.id"), index=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"), index=True)
    worker_id: Mapped[int] = mapped_column(ForeignKey("workers.id", ondelete="CASCADE"), index=True)
    assigned_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[str] = mapped_column(String(20), default="assigned", comment="assigned / completed / reassigned")
    acknowledged: Mapped[bool] = mapped_column(Boolean, default=False)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    assigned_by: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    task: Mapped["Task"] = relationship("Task", back_populates="assignments")
    worker: Mapped["Worker"] = relationship("Worker", back_populates="assignments")


class AssignmentRequest(Base):
    """Crew lead asks to move a worker from one task to another."""
    __tablename__ = "assignment_requests"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), index=True)
    job_site_id: Mapped[Optional[int]] = mapped_column(ForeignKey("job_sites.id"), index=True)
    worker_id: Mapped[int] = mapped_column(ForeignKey("workers.id", ondelete="CASCADE"), index=True)
    from_task_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"))
    to_task_id: Mapped[int] = mapped_column(ForeignKey("tasks.id", ondelete="CASCADE"))
    requested_by: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"))
    reason: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="pending", comment="pending / approved / denied")
    reviewed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    worker: Mapped["Worker"] = relationship("Worker")
    from_task: Mapped[Optional["Task"]] = relationship("Task", foreign_keys=[from_task_id])
    to_task: Mapped["Task"] = relationship("Task", foreign_keys=[to_task_id])


class DailyHours(Base):
    """Per-worker per-day status entered by a crew lead."""
    __tablename__ = "daily_hours"
    __table_args__ = (UniqueConstraint("worker_id", "log_date", "organization_id", name="uq_daily_hours_worker_date"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), index=True)
    job_site_id: Mapped[Optional[int]] = mapped_column(ForeignKey("job_sites.id"), index=True)
    worker_id: Mapped[int] = mapped_column(ForeignKey("workers.id", ondelete="CASCADE"), index=True)
    log_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[str] = mapped_column(String(20), default="worked", comment="worked / off / transferred")
    hours_worked: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    task_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tasks.id", ondelete="SET NULL"))
    transferred_to_task_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tasks.id", ondelete="SET NULL"))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    logged_by: Mapped[Optional[int]] = mapped_column(ForeignKey("user_profiles.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    worker: Mapped["Worker"] = relationship("Worker", back_populates="daily_hours")


class Holiday(Base):
    """Calendar reference data with per-trade pay-rate notes. Shared by all organizations."""
    __tablename__ = "holidays"
    __table_args__ = (UniqueConstraint("date", "name", name="uq_holiday_date_name"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    date: Mapped[DateType] = mapped_column(Date, index=True)
    year: Mapped[int] = mapped_column(Integer, index=True)
    state_county: Mapped[bool] = mapped_column(Boolean, default=False)
    federal: Mapped[bool] = mapped_column(Boolean, default=False)
    gcla: Mapped[bool] = mapped_column(Boolean, default=False)
    four_basic_trades: Mapped[bool] = mapped_column(Boolean, default=False)
    pay_rates: Mapped[dict] = mapped_column(JSON, default=dict, comment="carpenters / laborers / masons / operators / federal / state_county")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
