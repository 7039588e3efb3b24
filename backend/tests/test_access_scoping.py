"""
Tenant and job-site scoping.
Covers: organization isolation, active-assignment window, site-role lookups, row filters, permissions.
"""
from datetime import date, timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from crew_command.access import (
    AccessDeniedError, get_permissions, get_user_job_site_ids, get_user_site_role, load_scope,
    normalize_base_role, should_show_job_site_selector,
)
from crew_command.database import Base
from crew_command.models import JobSite, JobSiteAssignment, Organization, UserProfile, Worker
from crew_command import crud
from crew_command.schemas import WorkerCreate, WorkerUpdate


@pytest.fixture
async def async_engine_and_session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield engine, async_session
    await engine.dispose()


async def _seed(db):
    """Two organizations; org A has two sites, a foreman on site 1 and a superintendent on site 2."""
    today = date.today()
    org_a = Organization(name="Alpha Builders", slug="alpha")
    org_b = Organization(name="Beta Builders", slug="beta")
    db.add_all([org_a, org_b])
    await db.flush()
    admin_a = UserProfile(organization_id=org_a.id, email="admin@alpha.test", name="Admin A", base_role="admin")
    admin_b = UserProfile(organization_id=org_b.id, email="admin@beta.test", name="Admin B", base_role="admin")
    foreman = UserProfile(organization_id=org_a.id, email="fm@alpha.test", name="Foreman", base_role="foreman")
    super_ = UserProfile(organization_id=org_a.id, email="su@alpha.test", name="Super", base_role="superintendent")
    db.add_all([admin_a, admin_b, foreman, super_])
    await db.flush()
    site1 = JobSite(organization_id=org_a.id, name="Kapolei Tower")
    site2 = JobSite(organization_id=org_a.id, name="Hilo Bridge")
    site_b = JobSite(organization_id=org_b.id, name="Beta Yard")
    db.add_all([site1, site2, site_b])
    await db.flush()
    db.add_all([
        JobSiteAssignment(user_id=foreman.id, job_site_id=site1.id, role="foreman", start_date=today),
        JobSiteAssignment(user_id=super_.id, job_site_id=site2.id, role="superintendent", start_date=today),
        # ended yesterday: no longer grants access
        JobSiteAssignment(user_id=foreman.id, job_site_id=site2.id, role="foreman",
                          start_date=today - timedelta(days=30), end_date=today - timedelta(days=1)),
    ])
    w1 = Worker(organization_id=org_a.id, job_site_id=site1.id, name="On Site 1", role="laborer")
    w2 = Worker(organization_id=org_a.id, job_site_id=site2.id, name="On Site 2", role="operator")
    w_free = Worker(organization_id=org_a.id, job_site_id=None, name="Unplaced", role="mason")
    w_b = Worker(organization_id=org_b.id, job_site_id=site_b.id, name="Beta Worker", role="laborer")
    db.add_all([w1, w2, w_free, w_b])
    await db.flush()
    await db.commit()
    return {
        "org_a": org_a, "org_b": org_b, "admin_a": admin_a, "admin_b": admin_b, "foreman": foreman,
        "super": super_, "site1": site1, "site2": site2, "site_b": site_b,
        "w1": w1, "w2": w2, "w_free": w_free, "w_b": w_b,
    }


def test_legacy_role_maps_to_worker():
    assert normalize_base_role("viewer") == "worker"
    assert normalize_base_role(None) == "worker"
    assert normalize_base_role("foreman") == "foreman"


def test_job_site_selector_visibility():
    assert should_show_job_site_selector("admin", 5) is False
    assert should_show_job_site_selector("worker", 3) is False
    assert should_show_job_site_selector("foreman", 1) is False
    assert should_show_job_site_selector("superintendent", 2) is True


def test_permissions_by_site_role():
    foreman = get_permissions("foreman", "foreman")
    assert foreman["can_log_hours"] and foreman["can_update_task_status"]
    assert not foreman["can_manage_tasks"] and not foreman["can_edit_hours"]
    super_ = get_permissions("engineer", "engineer_as_superintendent")
    assert super_["can_manage_tasks"] and super_["can_approve_requests"]
    engineer = get_permissions("engineer", "engineer")
    assert engineer["can_view_workers"] and not engineer["can_log_hours"]
    nobody = get_permissions("worker", None)
    assert not any(v for k, v in nobody.items())
    assert all(get_permissions("admin").values())


@pytest.mark.asyncio
async def test_site_helpers_respect_assignment_window(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        assert await get_user_job_site_ids(db, s["foreman"].id) == [s["site1"].id]
        assert await get_user_site_role(db, s["foreman"].id, s["site1"].id) == "foreman"
        assert await get_user_site_role(db, s["foreman"].id, s["site2"].id) is None
        # looking back to when the old assignment was open
        past = date.today() - timedelta(days=5)
        assert await get_user_site_role(db, s["foreman"].id, s["site2"].id, on=past) == "foreman"


@pytest.mark.asyncio
async def test_future_assignment_not_active_yet(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        db.add(JobSiteAssignment(
            user_id=s["super"].id, job_site_id=s["site1"].id, role="superintendent",
            start_date=date.today() + timedelta(days=3),
        ))
        await db.flush()
        assert await get_user_job_site_ids(db, s["super"].id) == [s["site2"].id]


@pytest.mark.asyncio
async def test_job_sites_scoped_per_caller(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        admin_scope = await load_scope(db, s["admin_a"])
        foreman_scope = await load_scope(db, s["foreman"])
        beta_scope = await load_scope(db, s["admin_b"])

        assert {j.id for j in await crud.list_job_sites(db, admin_scope)} == {s["site1"].id, s["site2"].id}
        assert [j.id for j in await crud.list_job_sites(db, foreman_scope)] == [s["site1"].id]
        assert [j.id for j in await crud.list_job_sites(db, beta_scope)] == [s["site_b"].id]
        assert await crud.get_job_site(db, foreman_scope, s["site2"].id) is None
        assert await crud.get_job_site(db, beta_scope, s["site1"].id) is None


@pytest.mark.asyncio
async def test_worker_rows_filtered_by_site(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        admin_scope = await load_scope(db, s["admin_a"])
        foreman_scope = await load_scope(db, s["foreman"])

        assert {w.name for w in await crud.list_workers(db, admin_scope)} == {"On Site 1", "On Site 2", "Unplaced"}
        assert {w.name for w in await crud.list_workers(db, foreman_scope)} == {"On Site 1", "Unplaced"}
        assert await crud.get_worker(db, foreman_scope, s["w2"].id) is None
        assert await crud.get_worker(db, admin_scope, s["w_b"].id) is None


@pytest.mark.asyncio
async def test_cross_organization_references_rejected(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        admin_scope = await load_scope(db, s["admin_a"])
        with pytest.raises(crud.CrossOrganizationError):
            await crud.create_worker(db, admin_scope, WorkerCreate(name="X", role="laborer", job_site_id=s["site_b"].id))
        with pytest.raises(crud.CrossOrganizationError):
            await crud.create_worker(db, admin_scope, WorkerCreate(name="X", role="laborer", user_id=s["admin_b"].id))


@pytest.mark.asyncio
async def test_foreman_cannot_manage_workers(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        foreman_scope = await load_scope(db, s["foreman"])
        with pytest.raises(AccessDeniedError):
            await crud.update_worker(db, foreman_scope, s["w1"], WorkerUpdate(name="Renamed"))


@pytest.mark.asyncio
async def test_site_assignment_visibility(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        foreman_scope = await load_scope(db, s["foreman"])
        super_scope = await load_scope(db, s["super"])

        # foreman sees only their own rows on site 1
        rows = await crud.list_site_assignments(db, foreman_scope, s["site1"].id)
        assert [r.user_id for r in rows] == [s["foreman"].id]
        # superintendent manages site 2 but not site 1
        assert await crud.list_site_assignments(db, super_scope, s["site1"].id) == []
        site2_rows = await crud.list_site_assignments(db, super_scope, s["site2"].id)
        assert {r.user_id for r in site2_rows} == {s["super"].id, s["foreman"].id}


@pytest.mark.asyncio
async def test_job_site_context(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        foreman_scope = await load_scope(db, s["foreman"])
        ctx = await crud.get_job_site_context(db, foreman_scope)
        assert ctx["selected_job_site_id"] == s["site1"].id
        assert ctx["site_role"] == "foreman"
        assert ctx["permissions"]["can_log_hours"] is True
        assert ctx["show_job_site_selector"] is False

        admin_ctx = await crud.get_job_site_context(db, await load_scope(db, s["admin_a"]), s["site_b"].id)
        assert admin_ctx["selected_job_site_id"] is None
        assert admin_ctx["is_admin"] is True
