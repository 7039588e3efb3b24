"""
Day-grained assignments.
Covers: one row per working day, idempotent re-assign, cross-task conflicts, reassignment requests.
"""
from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from crew_command.access import AccessDeniedError, load_scope
from crew_command.database import Base
from crew_command.models import Assignment, Holiday, JobSite, JobSiteAssignment, Organization, UserProfile, Worker
from crew_command import crud
from crew_command.crud import (
    AssignmentConflictError, RequestNotPendingError, TaskDatesMissingError,
)
from crew_command.schemas import AssignmentRequestCreate, TaskCreate
from crew_command.services.staffing import task_staffing


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
    org = Organization(name="Crew Co", slug="crew-co")
    db.add(org)
    await db.flush()
    admin = UserProfile(organization_id=org.id, email="admin@crew.test", name="Admin", base_role="admin")
    foreman = UserProfile(organization_id=org.id, email="fm@crew.test", name="Foreman", base_role="foreman")
    laborer_login = UserProfile(organization_id=org.id, email="kai@crew.test", name="Kai", base_role="worker")
    db.add_all([admin, foreman, laborer_login])
    await db.flush()
    site = JobSite(organization_id=org.id, name="Ewa Plant")
    db.add(site)
    await db.flush()
    db.add_all([
        JobSiteAssignment(user_id=foreman.id, job_site_id=site.id, role="foreman", start_date=date.today()),
        JobSiteAssignment(user_id=laborer_login.id, job_site_id=site.id, role="worker", start_date=date.today()),
    ])
    kai = Worker(organization_id=org.id, job_site_id=site.id, user_id=laborer_login.id, name="Kai Akana", role="laborer")
    lani = Worker(organization_id=org.id, job_site_id=site.id, name="Lani Kahale", role="operator")
    db.add_all([kai, lani])
    await db.flush()
    await db.commit()
    return {
        "org": org, "admin": admin, "foreman": foreman, "kai_login": laborer_login,
        "site": site, "kai": kai, "lani": lani,
    }


async def _task(db, scope, site, name, start, end, **kw):
    return await crud.create_task(db, scope, TaskCreate(name=name, job_site_id=site.id, start_date=start, end_date=end, **kw))


async def _rows(db, task_id, worker_id=None):
    q = select(Assignment).where(Assignment.task_id == task_id)
    if worker_id is not None:
        q = q.where(Assignment.worker_id == worker_id)
    r = await db.execute(q.order_by(Assignment.assigned_date))
    return list(r.scalars().all())


@pytest.mark.asyncio
async def test_assign_creates_one_row_per_working_day(async_engine_and_session):
    """2027-03-01 is a Monday; the weekend of 03-06/07 is skipped."""
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        scope = await load_scope(db, s["admin"])
        task = await _task(db, scope, s["site"], "Trenching", date(2027, 3, 1), date(2027, 3, 9), required_laborers=1)

        result = await crud.assign_workers(db, scope, task, [s["kai"].id])
        assert result["created"] == 7
        assert result["skipped"] == 0
        assert date(2027, 3, 6) not in result["dates"]
        rows = await _rows(db, task.id)
        assert [r.assigned_date for r in rows][-2:] == [date(2027, 3, 8), date(2027, 3, 9)]
        assert all(r.job_site_id == s["site"].id and r.status == "assigned" for r in rows)


@pytest.mark.asyncio
async def test_assign_skips_holidays_unless_task_includes_them(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        db.add(Holiday(name="Kuhio Day", date=date(2027, 3, 26), year=2027))
        await db.flush()
        scope = await load_scope(db, s["admin"])
        regular = await _task(db, scope, s["site"], "Regular", date(2027, 3, 22), date(2027, 3, 26))
        result = await crud.assign_workers(db, scope, regular, [s["kai"].id])
        assert result["created"] == 4

        holiday_crew = await _task(db, scope, s["site"], "Holiday crew", date(2027, 3, 26), date(2027, 3, 26),
                                   include_holidays=True)
        result = await crud.assign_workers(db, scope, holiday_crew, [s["lani"].id])
        assert result["dates"] == [date(2027, 3, 26)]


@pytest.mark.asyncio
async def test_reassigning_same_task_is_idempotent(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        scope = await load_scope(db, s["admin"])
        task = await _task(db, scope, s["site"], "Formwork", date(2027, 3, 1), date(2027, 3, 5))
        await crud.assign_workers(db, scope, task, [s["kai"].id])
        again = await crud.assign_workers(db, scope, task, [s["kai"].id, s["lani"].id])
        assert again["created"] == 5
        assert again["skipped"] == 5
        assert len(await _rows(db, task.id)) == 10


@pytest.mark.asyncio
async def test_conflict_on_other_task_rejects_whole_request(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        scope = await load_scope(db, s["admin"])
        first = await _task(db, scope, s["site"], "First", date(2027, 3, 1), date(2027, 3, 5))
        second = await _task(db, scope, s["site"], "Second", date(2027, 3, 4), date(2027, 3, 10))
        await crud.assign_workers(db, scope, first, [s["kai"].id])

        with pytest.raises(AssignmentConflictError) as exc:
            await crud.assign_workers(db, scope, second, [s["lani"].id, s["kai"].id])
        assert "Kai Akana" in str(exc.value)
        assert "Lani" not in str(exc.value)
        assert await _rows(db, second.id) == []


@pytest.mark.asyncio
async def test_task_without_dates_cannot_be_assigned(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        scope = await load_scope(db, s["admin"])
        task = await crud.create_task(db, scope, TaskCreate(name="Someday", job_site_id=s["site"].id))
        with pytest.raises(TaskDatesMissingError):
            await crud.assign_workers(db, scope, task, [s["kai"].id])


@pytest.mark.asyncio
async def test_foreman_cannot_assign_but_can_request(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        admin_scope = await load_scope(db, s["admin"])
        foreman_scope = await load_scope(db, s["foreman"])
        task = await _task(db, admin_scope, s["site"], "Paving", date(2027, 3, 1), date(2027, 3, 5))
        with pytest.raises(AccessDeniedError):
            await crud.assign_workers(db, foreman_scope, task, [s["kai"].id])

        req = await crud.create_assignment_request(
            db, foreman_scope, AssignmentRequestCreate(worker_id=s["kai"].id, to_task_id=task.id, reason="Short a laborer")
        )
        assert req.status == "pending"
        assert req.job_site_id == s["site"].id
        assert req.requested_by == s["foreman"].id

        with pytest.raises(AccessDeniedError):
            await crud.review_assignment_request(db, foreman_scope, req, approve=True)


@pytest.mark.asyncio
async def test_approving_request_moves_worker_from_today(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        admin_scope = await load_scope(db, s["admin"])
        foreman_scope = await load_scope(db, s["foreman"])
        old = await _task(db, admin_scope, s["site"], "Old", date(2027, 3, 1), date(2027, 3, 9))
        new = await _task(db, admin_scope, s["site"], "New", date(2027, 3, 1), date(2027, 3, 10))
        await crud.assign_workers(db, admin_scope, old, [s["kai"].id])

        req = await crud.create_assignment_request(
            db, foreman_scope,
            AssignmentRequestCreate(worker_id=s["kai"].id, from_task_id=old.id, to_task_id=new.id),
        )
        req = await crud.review_assignment_request(db, admin_scope, req, approve=True, today=date(2027, 3, 4))
        assert req.status == "approved"
        assert req.reviewed_by == s["admin"].id

        old_rows = await _rows(db, old.id)
        assert [r.status for r in old_rows if r.assigned_date < date(2027, 3, 4)] == ["assigned"] * 3
        assert {r.status for r in old_rows if r.assigned_date >= date(2027, 3, 4)} == {"reassigned"}
        new_rows = await _rows(db, new.id)
        assert [r.assigned_date for r in new_rows] == [
            date(2027, 3, 4), date(2027, 3, 5), date(2027, 3, 8), date(2027, 3, 9), date(2027, 3, 10),
        ]

        live = await crud.list_assignments(db, admin_scope, worker_id=s["kai"].id)
        assert len(live) == 8
        everything = await crud.list_assignments(db, admin_scope, worker_id=s["kai"].id, include_reassigned=True)
        assert len(everything) == 12

        with pytest.raises(RequestNotPendingError):
            await crud.review_assignment_request(db, admin_scope, req, approve=False)


@pytest.mark.asyncio
async def test_denied_request_changes_nothing(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        admin_scope = await load_scope(db, s["admin"])
        old = await _task(db, admin_scope, s["site"], "Old", date(2027, 3, 1), date(2027, 3, 5))
        new = await _task(db, admin_scope, s["site"], "New", date(2027, 3, 1), date(2027, 3, 5))
        await crud.assign_workers(db, admin_scope, old, [s["kai"].id])
        req = await crud.create_assignment_request(
            db, admin_scope, AssignmentRequestCreate(worker_id=s["kai"].id, from_task_id=old.id, to_task_id=new.id)
        )
        req = await crud.review_assignment_request(db, admin_scope, req, approve=False, today=date(2027, 3, 1))
        assert req.status == "denied"
        assert {r.status for r in await _rows(db, old.id)} == {"assigned"}
        assert await _rows(db, new.id) == []


@pytest.mark.asyncio
async def test_moving_back_revives_reassigned_rows(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        scope = await load_scope(db, s["admin"])
        a = await _task(db, scope, s["site"], "A", date(2027, 3, 1), date(2027, 3, 5))
        b = await _task(db, scope, s["site"], "B", date(2027, 3, 1), date(2027, 3, 5))
        await crud.assign_workers(db, scope, a, [s["kai"].id])
        req = await crud.create_assignment_request(
            db, scope, AssignmentRequestCreate(worker_id=s["kai"].id, from_task_id=a.id, to_task_id=b.id)
        )
        await crud.review_assignment_request(db, scope, req, approve=True, today=date(2027, 3, 3))
        await crud.unassign_worker(db, scope, b, s["kai"].id)

        result = await crud.assign_workers(db, scope, a, [s["kai"].id])
        assert result["created"] == 3
        assert {r.status for r in await _rows(db, a.id)} == {"assigned"}
        assert len(await _rows(db, a.id)) == 5


@pytest.mark.asyncio
async def test_worker_acknowledges_own_assignment(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        admin_scope = await load_scope(db, s["admin"])
        task = await _task(db, admin_scope, s["site"], "Rebar", date(2027, 3, 1), date(2027, 3, 1))
        await crud.assign_workers(db, admin_scope, task, [s["kai"].id, s["lani"].id])
        kai_row, = await _rows(db, task.id, s["kai"].id)
        lani_row, = await _rows(db, task.id, s["lani"].id)
        kai_row_id, lani_row_id = kai_row.id, lani_row.id

        kai_scope = await load_scope(db, s["kai_login"])
        db.expire_all()
        kai_row = await crud.get_assignment(db, kai_scope, kai_row_id)
        kai_row = await crud.acknowledge_assignment(db, kai_scope, kai_row)
        assert kai_row.acknowledged is True
        assert kai_row.acknowledged_at is not None

        lani_row = await crud.get_assignment(db, kai_scope, lani_row_id)
        with pytest.raises(AccessDeniedError):
            await crud.acknowledge_assignment(db, kai_scope, lani_row)


@pytest.mark.asyncio
async def test_task_staffing_from_loaded_assignments(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        scope = await load_scope(db, s["admin"])
        task = await _task(db, scope, s["site"], "Crane lift", date(2027, 3, 1), date(2027, 3, 2),
                           required_operators=1, required_laborers=2)
        await crud.assign_workers(db, scope, task, [s["kai"].id, s["lani"].id])
        task_id = task.id
        db.expire_all()
        loaded = await crud.get_task(db, scope, task_id, load_assignments=True)

        info = task_staffing(loaded, loaded.assignments)
        assert info["status"] == "partial"
        assert info["assigned"] == {"operator": 1, "laborer": 1, "carpenter": 0, "mason": 0}
