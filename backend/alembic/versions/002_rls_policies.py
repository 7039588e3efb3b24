"""row level security - scoping helper functions and per-table policies (PostgreSQL only)

Revision ID: 002
Revises: 001
Create Date: 2026-01-05

"""
from typing import Sequence, Union
from alembic import op
from sqlalchemy import text

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

USER_ID = "NULLIF(current_setting('app.current_user_id'::text, true), ''::text)::integer"
ORG_ID = "get_user_org_id()"
IS_ADMIN = "is_user_admin()"
# org-level superintendents assign users on any site of their organization
IS_BASE_SUPER = (
    "(EXISTS (SELECT 1 FROM user_profiles me "
    f"WHERE me.id = {USER_ID} AND me.is_active AND me.base_role = 'superintendent'))"
)
MANAGER_ROLES = "('superintendent', 'engineer_as_superintendent')"
CREW_LEAD_ROLES = "('superintendent', 'engineer_as_superintendent', 'foreman')"

HELPER_FUNCTIONS = {
    "get_user_org_id()": f"""
    CREATE OR REPLACE FUNCTION get_user_org_id() RETURNS integer
        LANGUAGE sql STABLE SECURITY DEFINER
        SET search_path TO 'public'
        AS $$
            SELECT organization_id FROM user_profiles
            WHERE id = {USER_ID} AND is_active
        $$
    """,
    "is_user_admin()": f"""
    CREATE OR REPLACE FUNCTION is_user_admin() RETURNS boolean
        LANGUAGE sql STABLE SECURITY DEFINER
        SET search_path TO 'public'
        AS $$
            SELECT EXISTS (
                SELECT 1 FROM user_profiles
                WHERE id = {USER_ID} AND is_active AND base_role = 'admin'
            )
        $$
    """,
    "get_user_job_site_ids()": f"""
    CREATE OR REPLACE FUNCTION get_user_job_site_ids() RETURNS integer[]
        LANGUAGE sql STABLE SECURITY DEFINER
        SET search_path TO 'public'
        AS $$
            SELECT COALESCE(array_agg(jsa.job_site_id ORDER BY jsa.job_site_id), '{{}}'::integer[])
            FROM job_site_assignments jsa
            JOIN job_sites js ON js.id = jsa.job_site_id
            JOIN user_profiles up ON up.id = jsa.user_id
            WHERE jsa.user_id = {USER_ID}
              AND jsa.is_active
              AND jsa.start_date <= CURRENT_DATE
              AND (jsa.end_date IS NULL OR jsa.end_date >= CURRENT_DATE)
              AND js.organization_id = up.organization_id
        $$
    """,
    "get_user_site_role(integer)": f"""
    CREATE OR REPLACE FUNCTION get_user_site_role(p_job_site_id integer) RETURNS text
        LANGUAGE sql STABLE SECURITY DEFINER
        SET search_path TO 'public'
        AS $$
            SELECT jsa.role
            FROM job_site_assignments jsa
            JOIN job_sites js ON js.id = jsa.job_site_id
            JOIN user_profiles up ON up.id = jsa.user_id
            WHERE jsa.user_id = {USER_ID}
              AND jsa.job_site_id = p_job_site_id
              AND jsa.is_active
              AND jsa.start_date <= CURRENT_DATE
              AND (jsa.end_date IS NULL OR jsa.end_date >= CURRENT_DATE)
              AND js.organization_id = up.organization_id
            LIMIT 1
        $$
    """,
}

RLS_TABLES = (
    "organizations",
    "user_profiles",
    "job_sites",
    "job_site_assignments",
    "workers",
    "tasks",
    "task_drafts",
    "task_history",
    "assignments",
    "assignment_requests",
    "daily_hours",
    "holidays",
)


def _org_eq(col: str = "organization_id") -> str:
    return f"({col} = {ORG_ID})"


def _site_visible(col: str = "job_site_id") -> str:
    return f"({IS_ADMIN} OR {col} IS NULL OR {col} = ANY (get_user_job_site_ids()))"


def _site_role_in(roles: str, col: str = "job_site_id") -> str:
    return f"({IS_ADMIN} OR get_user_site_role({col}) IN {roles})"


def _policies() -> list:
    """(table, name, command, using_clause, check_clause); command ALL is the default."""
    policies = [
        ("organizations", "org_member_select", "SELECT", f"(id = {ORG_ID})", ""),
        ("organizations", "org_admin_update", "UPDATE", f"(id = {ORG_ID} AND {IS_ADMIN})", f"(id = {ORG_ID})"),
        (
            "user_profiles", "user_org_select", "SELECT",
            f"({_org_eq()} OR id = {USER_ID})", "",
        ),
        (
            "user_profiles", "user_self_or_admin_update", "UPDATE",
            f"(id = {USER_ID} OR ({_org_eq()} AND {IS_ADMIN}))", _org_eq(),
        ),
        ("user_profiles", "user_admin_insert", "INSERT", "", f"({_org_eq()} AND {IS_ADMIN})"),
        (
            "job_sites", "job_site_member_select", "SELECT",
            f"({_org_eq()} AND ({IS_ADMIN} OR {IS_BASE_SUPER} OR id = ANY (get_user_job_site_ids())))", "",
        ),
        ("job_sites", "job_site_admin_all", "ALL", f"({_org_eq()} AND {IS_ADMIN})", f"({_org_eq()} AND {IS_ADMIN})"),
        ("holidays", "holiday_read_all", "SELECT", "true", ""),
        ("holidays", "holiday_admin_all", "ALL", IS_ADMIN, IS_ADMIN),
    ]

    managed_site = (
        "(EXISTS (SELECT 1 FROM job_sites js "
        "WHERE js.id = job_site_assignments.job_site_id "
        f"AND js.organization_id = {ORG_ID} "
        f"AND ({IS_ADMIN} OR {IS_BASE_SUPER} OR get_user_site_role(js.id) IN {MANAGER_ROLES})))"
    )
    policies.append((
        "job_site_assignments", "site_assignment_select", "SELECT",
        f"(user_id = {USER_ID} OR {managed_site})", "",
    ))
    policies.append(("job_site_assignments", "site_assignment_manage", "ALL", managed_site, managed_site))

    # Site-scoped rows: visible to admins and members of the site; written by the roles that run it
    write_roles = {
        "workers": MANAGER_ROLES,
        "tasks": MANAGER_ROLES,
        "task_drafts": MANAGER_ROLES,
        "task_history": CREW_LEAD_ROLES,
        "assignments": MANAGER_ROLES,
        "assignment_requests": CREW_LEAD_ROLES,
        "daily_hours": CREW_LEAD_ROLES,
    }
    for table_name, roles in write_roles.items():
        visible = f"({_org_eq()} AND {_site_visible()})"
        writable = f"({_org_eq()} AND {_site_role_in(roles)})"
        if table_name == "workers":
            writable = f"({_org_eq()} AND (job_site_id IS NULL OR {_site_role_in(roles)}))"
        policies.append((table_name, f"{table_name}_select", "SELECT", visible, ""))
        policies.append((table_name, f"{table_name}_insert", "INSERT", "", writable))
        policies.append((table_name, f"{table_name}_update", "UPDATE", writable, writable))
        policies.append((table_name, f"{table_name}_delete", "DELETE", writable, ""))

    # Crew leads mark tasks completed; workers acknowledge their own assignments
    policies.append((
        "tasks", "tasks_crew_lead_update", "UPDATE",
        f"({_org_eq()} AND {_site_role_in(CREW_LEAD_ROLES)})", _org_eq(),
    ))
    own_worker = (
        "(EXISTS (SELECT 1 FROM workers w "
        f"WHERE w.id = assignments.worker_id AND w.user_id = {USER_ID}))"
    )
    policies.append((
        "assignments", "assignments_acknowledge_update", "UPDATE",
        f"({_org_eq()} AND ({own_worker} OR {_site_role_in(CREW_LEAD_ROLES)}))", _org_eq(),
    ))
    return policies


def _role_exists(connection, role_name: str) -> bool:
    r = connection.execute(text("SELECT 1 FROM pg_roles WHERE rolname = :name"), {"name": role_name})
    return r.scalar() is not None


def upgrade() -> None:
    connection = op.get_bind()
    if connection.dialect.name != "postgresql":
        return

    for ddl in HELPER_FUNCTIONS.values():
        connection.execute(text(ddl))

    for table_name in RLS_TABLES:
        connection.execute(text(f"ALTER TABLE {table_name} ENABLE ROW LEVEL SECURITY"))

    for table_name, policy_name, command, using_clause, check_clause in _policies():
        connection.execute(text(f"DROP POLICY IF EXISTS {policy_name} ON {table_name}"))
        parts = [f"CREATE POLICY {policy_name} ON {table_name}"]
        if command != "ALL":
            parts.append(f"FOR {command}")
        if using_clause:
            parts.append(f"USING ({using_clause})")
        if check_clause:
            parts.append(f"WITH CHECK ({check_clause})")
        connection.execute(text(" ".join(parts)))

    for signature in HELPER_FUNCTIONS:
        connection.execute(text(f"REVOKE EXECUTE ON FUNCTION {signature} FROM PUBLIC"))
    if _role_exists(connection, "app_user"):
        connection.execute(text("GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA public TO app_user"))
        connection.execute(text("GRANT USAGE, SELECT ON ALL SEQUENCES IN SCHEMA public TO app_user"))
        for signature in HELPER_FUNCTIONS:
            connection.execute(text(f"GRANT EXECUTE ON FUNCTION {signature} TO app_user"))


def downgrade() -> None:
    connection = op.get_bind()
    if connection.dialect.name != "postgresql":
        return
    for table_name, policy_name, _, _, _ in _policies():
        connection.execute(text(f"DROP POLICY IF EXISTS {policy_name} ON {table_name}"))
    for table_name in RLS_TABLES:
        connection.execute(text(f"ALTER TABLE {table_name} DISABLE ROW LEVEL SECURITY"))
    for signature in HELPER_FUNCTIONS:
        connection.execute(text(f"DROP FUNCTION IF EXISTS {signature}"))
