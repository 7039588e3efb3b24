"""
Job sites (system Unassigned site, delete guards), user-to-site assignments and worker transfers.
"""
from datetime import date, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from crew_command.access import AccessDeniedError, load_scope
from crew_command.database import Base
from crew_command.models import JobSiteAssignment, UNASSIGNED_SITE_NAME, UserProfile, Worker
from crew_command import crud
from crew_command.crud import JobSiteInUseError, SystemSiteError
from crew_command.schemas import (
    JobSiteAssignmentCreate, JobSiteCreate, JobSiteUpdate, OrganizationUpdate, RegisterOrganization, TaskCreate,
    WorkerCreate, WorkerMove,
)


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


async def _org(db):
    org, admin = await crud.register_organization(db, RegisterOrganization(
        organization_name="Island Concrete LLC",
        admin_name="Leilani",
        email="Leilani@Island.test",
        password="hunter2hunter2",
    ))
    scope = await load_scope(db, admin)
    return org, admin, scope


@pytest.mark.asyncio
async def test_register_creates_system_site(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        org, admin, scope = await _org(db)
        assert org.slug == "island-concrete-llc"
        assert admin.email == "leilani@island.test"
        assert admin.base_role == "admin"
        system = await crud.get_system_site(db, org.id)
        assert system.name == UNASSIGNED_SITE_NAME
        assert system.is_system_site is True
        with pytest.raises(crud.DuplicateError):
            await crud.register_organization(db, RegisterOrganization(
                organization_name="Island Concrete LLC", admin_name="X", email="x@x.test", password="password123",
            ))


@pytest.mark.asyncio
async def test_system_site_is_protected(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        org, admin, scope = await _org(db)
        system = await crud.get_system_site(db, org.id)
        with pytest.raises(SystemSiteError):
            await crud.update_job_site(db, scope, system, JobSiteUpdate(name="Bench"))
        with pytest.raises(SystemSiteError):
            await crud.update_job_site(db, scope, system, JobSiteUpdate(status="completed"))
        with pytest.raises(SystemSiteError):
            await crud.delete_job_site(db, scope, system)
        # description edits are fine
        system = await crud.update_job_site(db, scope, system, JobSiteUpdate(description="Bench crew"))
        assert system.description == "Bench crew"


@pytest.mark.asyncio
async def test_site_in_use_cannot_be_deleted(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        org, admin, scope = await _org(db)
        site = await crud.create_job_site(db, scope, JobSiteCreate(name="Waipahu Parking"))
        worker = await crud.create_worker(db, scope, WorkerCreate(name="Keoni", role="mason", job_site_id=site.id))
        with pytest.raises(JobSiteInUseError) as exc:
            await crud.delete_job_site(db, scope, site)
        assert "move workers" in str(exc.value)

        await crud.delete_worker(db, scope, worker)
        await crud.create_task(db, scope, TaskCreate(name="Layout", job_site_id=site.id))
        with pytest.raises(JobSiteInUseError):
            await crud.delete_job_site(db, scope, site)

        empty = await crud.create_job_site(db, scope, JobSiteCreate(name="Empty Lot"))
        empty_id = empty.id
        await crud.delete_job_site(db, scope, empty)
        assert await crud.get_job_site(db, scope, empty_id) is None


@pytest.mark.asyncio
async def test_only_admins_create_sites(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        org, admin, scope = await _org(db)
        super_ = UserProfile(organization_id=org.id, email="su@island.test", name="Super", base_role="superintendent")
        db.add(super_)
        await db.flush()
        with pytest.raises(AccessDeniedError):
            await crud.create_job_site(db, await load_scope(db, super_), JobSiteCreate(name="Nope"))


@pytest.mark.asyncio
async def test_assign_user_to_site_updates_existing(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        org, admin, scope = await _org(db)
        site = await crud.create_job_site(db, scope, JobSiteCreate(name="Kailua Rec Center"))
        eng = UserProfile(organization_id=org.id, email="eng@island.test", name="Eng", base_role="engineer")
        db.add(eng)
        await db.flush()

        a, created = await crud.assign_user_to_site(db, scope, site, JobSiteAssignmentCreate(user_id=eng.id, role="engineer"))
        assert created is True
        assert a.start_date == date.today()
        b, created = await crud.assign_user_to_site(
            db, scope, site, JobSiteAssignmentCreate(user_id=eng.id, role="engineer_as_superintendent")
        )
        assert created is False
        assert b.id == a.id
        assert b.role == "engineer_as_superintendent"

        eng_scope = await load_scope(db, eng)
        assert eng_scope.site_role(site.id) == "engineer_as_superintendent"
        assert eng_scope.can_manage_site_assignments(site)

        removed = await crud.remove_site_assignment(db, scope, b)
        assert removed.is_active is False
        assert removed.end_date == date.today()


@pytest.mark.asyncio
async def test_reassign_keeps_planned_end_date(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        org, admin, scope = await _org(db)
        site = await crud.create_job_site(db, scope, JobSiteCreate(name="Waipahu Depot"))
        fm = UserProfile(organization_id=org.id, email="fm@island.test", name="Fm", base_role="foreman")
        db.add(fm)
        await db.flush()
        planned_end = date.today() + timedelta(days=30)

        a, _ = await crud.assign_user_to_site(
            db, scope, site, JobSiteAssignmentCreate(user_id=fm.id, role="foreman", end_date=planned_end)
        )
        b, created = await crud.assign_user_to_site(
            db, scope, site, JobSiteAssignmentCreate(user_id=fm.id, role="superintendent")
        )
        assert created is False
        assert b.role == "superintendent"
        assert b.end_date == planned_end

        # an explicit null clears it
        c, _ = await crud.assign_user_to_site(
            db, scope, site, JobSiteAssignmentCreate(user_id=fm.id, role="superintendent", end_date=None)
        )
        assert c.end_date is None


@pytest.mark.asyncio
async def test_move_worker_transfers_site_assignment(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        org, admin, scope = await _org(db)
        site_a = await crud.create_job_site(db, scope, JobSiteCreate(name="Aiea Mall"))
        site_b = await crud.create_job_site(db, scope, JobSiteCreate(name="Pearl City Library"))
        login = UserProfile(organization_id=org.id, email="kimo@island.test", name="Kimo", base_role="worker")
        db.add(login)
        await db.flush()
        await crud.assign_user_to_site(db, scope, site_a, JobSiteAssignmentCreate(user_id=login.id, role="worker"))
        worker = await crud.create_worker(db, scope, WorkerCreate(
            name="Kimo", role="laborer", job_site_id=site_a.id, user_id=login.id,
        ))

        message = await crud.move_worker(db, scope, worker, WorkerMove(
            from_job_site_id=site_a.id, to_job_site_id=site_b.id,
        ))
        assert message == "Successfully moved Kimo from Aiea Mall to Pearl City Library"
        assert worker.job_site_id == site_b.id

        r = await db.execute(
            select(JobSiteAssignment.job_site_id, JobSiteAssignment.is_active, JobSiteAssignment.role)
            .where(JobSiteAssignment.user_id == login.id)
            .order_by(JobSiteAssignment.id)
        )
        assert r.all() == [(site_a.id, False, "worker"), (site_b.id, True, "worker")]

        with pytest.raises(ValueError):
            await crud.move_worker(db, scope, worker, WorkerMove(from_job_site_id=site_b.id, to_job_site_id=site_b.id))


@pytest.mark.asyncio
async def test_move_worker_admin_only(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        org, admin, scope = await _org(db)
        site_a = await crud.create_job_site(db, scope, JobSiteCreate(name="A"))
        site_b = await crud.create_job_site(db, scope, JobSiteCreate(name="B"))
        super_ = UserProfile(organization_id=org.id, email="su@island.test", name="Super", base_role="superintendent")
        db.add(super_)
        await db.flush()
        await crud.assign_user_to_site(db, scope, site_a, JobSiteAssignmentCreate(user_id=super_.id, role="superintendent"))
        await crud.assign_user_to_site(db, scope, site_b, JobSiteAssignmentCreate(user_id=super_.id, role="superintendent"))
        worker = Worker(organization_id=org.id, job_site_id=site_a.id, name="Pua", role="carpenter")
        db.add(worker)
        await db.flush()
        with pytest.raises(AccessDeniedError):
            await crud.move_worker(db, await load_scope(db, super_), worker, WorkerMove(
                from_job_site_id=site_a.id, to_job_site_id=site_b.id,
            ))


@pytest.mark.asyncio
async def test_only_admins_update_organization(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        org, admin, scope = await _org(db)
        org = await crud.update_organization(db, scope, org, OrganizationUpdate(phone="808-555-0199"))
        assert org.phone == "808-555-0199"
        assert org.name == "Island Concrete LLC"

        super_ = UserProfile(organization_id=org.id, email="su@island.test", name="Su", base_role="superintendent")
        db.add(super_)
        await db.flush()
        super_scope = await load_scope(db, super_)
        with pytest.raises(AccessDeniedError):
            await crud.update_organization(db, super_scope, org, OrganizationUpdate(name="Renamed"))
        assert (await crud.get_organization(db, org.id)).name == "Island Concrete LLC"
