"""initial schema - organizations, job sites, users, workers, tasks, assignments, daily hours, holidays

Revision ID: 001
Revises:
Create Date: 2026-01-05

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def _required_counts():
    return [
        sa.Column("required_operators", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("required_laborers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("required_carpenters", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("required_masons", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("include_saturday", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("include_sunday", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("include_holidays", sa.Boolean(), nullable=False, server_default=sa.false()),
    ]


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False, comment="Display name"),
        sa.Column("slug", sa.String(100), nullable=False, comment="URL-safe unique key"),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_organizations_slug"), "organizations", ["slug"], unique=True)

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("base_role", sa.String(20), nullable=False, server_default="worker",
                  comment="admin / superintendent / engineer / foreman / worker"),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True, comment="bcrypt; empty until the invite is accepted"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("invite_token", sa.String(100), nullable=True),
        sa.Column("invite_expires_at", sa.DateTime(), nullable=True),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_profiles_organization_id"), "user_profiles", ["organization_id"], unique=False)
    op.create_index(op.f("ix_user_profiles_email"), "user_profiles", ["email"], unique=True)
    op.create_index(op.f("ix_user_profiles_invite_token"), "user_profiles", ["invite_token"], unique=True)

    op.create_table(
        "user_sessions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_sessions_user_id"), "user_sessions", ["user_id"], unique=False)
    op.create_index(op.f("ix_user_sessions_token"), "user_sessions", ["token"], unique=True)
    op.create_index(op.f("ix_user_sessions_expires_at"), "user_sessions", ["expires_at"], unique=False)

    op.create_table(
        "job_sites",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active", comment="active / on_hold / completed"),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_system_site", sa.Boolean(), nullable=False, server_default=sa.false(),
                  comment="Per-org Unassigned site; cannot be deleted"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_job_sites_organization_id"), "job_sites", ["organization_id"], unique=False)

    op.create_table(
        "job_site_assignments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("job_site_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(40), nullable=False,
                  comment="superintendent / engineer / engineer_as_superintendent / foreman / worker"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True, comment="Null means open-ended"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("assigned_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["job_site_id"], ["job_sites.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_job_site_assignments_user_id"), "job_site_assignments", ["user_id"], unique=False)
    op.create_index(op.f("ix_job_site_assignments_job_site_id"), "job_site_assignments", ["job_site_id"], unique=False)
    op.create_index(op.f("ix_job_site_assignments_is_active"), "job_site_assignments", ["is_active"], unique=False)
    op.create_index(
        "uq_job_site_assignment_active",
        "job_site_assignments",
        ["user_id", "job_site_id"],
        unique=True,
        sqlite_where=sa.text("is_active = 1"),
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "workers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("job_site_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, comment="operator / laborer / carpenter / mason"),
        sa.Column("skills", sa.JSON(), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active", comment="active / inactive"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["job_site_id"], ["job_sites.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_workers_organization_id"), "workers", ["organization_id"], unique=False)
    op.create_index(op.f("ix_workers_job_site_id"), "workers", ["job_site_id"], unique=False)
    op.create_index(op.f("ix_workers_user_id"), "workers", ["user_id"], unique=False)

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("job_site_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("location", sa.String(300), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        *_required_counts(),
        sa.Column("status", sa.String(20), nullable=False, server_default="planned",
                  comment="planned / active / completed / draft"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=True, comment="[{name, path, size, uploaded_at, uploaded_by}]"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("modified_by", sa.Integer(), nullable=True),
        sa.Column("modified_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["job_site_id"], ["job_sites.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["modified_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_tasks_organization_id"), "tasks", ["organization_id"], unique=False)
    op.create_index(op.f("ix_tasks_job_site_id"), "tasks", ["job_site_id"], unique=False)
    op.create_index(op.f("ix_tasks_start_date"), "tasks", ["start_date"], unique=False)
    op.create_index(op.f("ix_tasks_end_date"), "tasks", ["end_date"], unique=False)

    op.create_table(
        "task_drafts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("job_site_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("activity_id", sa.String(100), nullable=True),
        sa.Column("activity_name", sa.String(300), nullable=True),
        sa.Column("duration_days", sa.Integer(), nullable=True),
        sa.Column("location", sa.String(300), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        *_required_counts(),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["job_site_id"], ["job_sites.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_task_drafts_organization_id"), "task_drafts", ["organization_id"], unique=False)
    op.create_index(op.f("ix_task_drafts_job_site_id"), "task_drafts", ["job_site_id"], unique=False)

    op.create_table(
        "task_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("job_site_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(20), nullable=False, comment="created / modified / completed / reopened"),
        sa.Column("performed_by", sa.Integer(), nullable=True),
        sa.Column("performed_at", sa.DateTime(), nullable=True),
        sa.Column("previous_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["job_site_id"], ["job_sites.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["performed_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_task_history_task_id"), "task_history", ["task_id"], unique=False)
    op.create_index(op.f("ix_task_history_organization_id"), "task_history", ["organization_id"], unique=False)

    op.create_table(
        "assignments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("job_site_id", sa.Integer(), nullable=True),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("worker_id", sa.Integer(), nullable=False),
        sa.Column("assigned_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="assigned",
                  comment="assigned / completed / reassigned"),
        sa.Column("acknowledged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("acknowledged_at", sa.DateTime(), nullable=True),
        sa.Column("assigned_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["job_site_id"], ["job_sites.id"]),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["worker_id"], ["workers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_assignments_organization_id"), "assignments", ["organization_id"], unique=False)
    op.create_index(op.f("ix_assignments_job_site_id"), "assignments", ["job_site_id"], unique=False)
    op.create_index(op.f("ix_assignments_task_id"), "assignments", ["task_id"], unique=False)
    op.create_index(op.f("ix_assignments_worker_id"), "assignments", ["worker_id"], unique=False)
    op.create_index(op.f("ix_assignments_assigned_date"), "assignments", ["assigned_date"], unique=False)
    op.create_index("ix_assignments_worker_date", "assignments", ["worker_id", "assigned_date"], unique=False)

    op.create_table(
        "assignment_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("job_site_id", sa.Integer(), nullable=True),
        sa.Column("worker_id", sa.Integer(), nullable=False),
        sa.Column("from_task_id", sa.Integer(), nullable=True),
        sa.Column("to_task_id", sa.Integer(), nullable=False),
        sa.Column("requested_by", sa.Integer(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", comment="pending / approved / denied"),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["job_site_id"], ["job_sites.id"]),
        sa.ForeignKeyConstraint(["worker_id"], ["workers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["from_task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["requested_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["reviewed_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_assignment_requests_organization_id"), "assignment_requests", ["organization_id"], unique=False)
    op.create_index(op.f("ix_assignment_requests_job_site_id"), "assignment_requests", ["job_site_id"], unique=False)
    op.create_index(op.f("ix_assignment_requests_worker_id"), "assignment_requests", ["worker_id"], unique=False)

    op.create_table(
        "daily_hours",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("job_site_id", sa.Integer(), nullable=True),
        sa.Column("worker_id", sa.Integer(), nullable=False),
        sa.Column("log_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="worked", comment="worked / off / transferred"),
        sa.Column("hours_worked", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("task_id", sa.Integer(), nullable=True),
        sa.Column("transferred_to_task_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("logged_by", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["job_site_id"], ["job_sites.id"]),
        sa.ForeignKeyConstraint(["worker_id"], ["workers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["transferred_to_task_id"], ["tasks.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["logged_by"], ["user_profiles.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("worker_id", "log_date", "organization_id", name="uq_daily_hours_worker_date"),
    )
    op.create_index(op.f("ix_daily_hours_organization_id"), "daily_hours", ["organization_id"], unique=False)
    op.create_index(op.f("ix_daily_hours_job_site_id"), "daily_hours", ["job_site_id"], unique=False)
    op.create_index(op.f("ix_daily_hours_worker_id"), "daily_hours", ["worker_id"], unique=False)
    op.create_index(op.f("ix_daily_hours_log_date"), "daily_hours", ["log_date"], unique=False)

    op.create_table(
        "holidays",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("state_county", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("federal", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("gcla", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("four_basic_trades", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pay_rates", sa.JSON(), nullable=True,
                  comment="carpenters / laborers / masons / operators / federal / state_county"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("date", "name", name="uq_holiday_date_name"),
    )
    op.create_index(op.f("ix_holidays_date"), "holidays", ["date"], unique=False)
    op.create_index(op.f("ix_holidays_year"), "holidays", ["year"], unique=False)


def downgrade() -> None:
    for table in (
        "holidays",
        "daily_hours",
        "assignment_requests",
        "assignments",
        "task_history",
        "task_drafts",
        "tasks",
        "workers",
        "job_site_assignments",
        "job_sites",
        "user_sessions",
        "user_profiles",
        "organizations",
    ):
        op.drop_table(table)
