"""
Router handlers called directly: error mapping to HTTP status codes, day view, weekly export.
"""
from datetime import date

import pytest
from fastapi import HTTPException, Response
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from crew_command.access import AccessDeniedError, load_scope
from crew_command.database import Base
from crew_command.main import _schedule_time
from crew_command.models import JobSite, Organization, Task, UserProfile, Worker
from crew_command import crud, schemas
from crew_command.routers import assignments as assignments_router
from crew_command.routers import calendar as calendar_router
from crew_command.routers import daily_hours as daily_hours_router
from crew_command.routers import job_sites as job_sites_router
from crew_command.routers import holidays as holidays_router

MONDAY = date(2027, 3, 1)


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
    org = Organization(name="Router Co", slug="router-co")
    db.add(org)
    await db.flush()
    admin = UserProfile(organization_id=org.id, email="admin@router.test", name="Admin", base_role="admin")
    db.add(admin)
    await db.flush()
    site = JobSite(organization_id=org.id, name="Ala Moana Block")
    db.add(site)
    await db.flush()
    kai = Worker(organization_id=org.id, job_site_id=site.id, name="Kai Akana", role="laborer")
    ana = Worker(organization_id=org.id, job_site_id=site.id, name="ana Lee", role="laborer")
    pour = Task(organization_id=org.id, job_site_id=site.id, name="Pour deck", start_date=MONDAY,
                end_date=date(2027, 3, 5), required_laborers=2)
    strip = Task(organization_id=org.id, job_site_id=site.id, name="Strip forms", start_date=date(2027, 3, 4),
                 end_date=date(2027, 3, 8))
    db.add_all([kai, ana, pour, strip])
    await db.flush()
    await db.commit()
    scope = await load_scope(db, admin)
    return {"org": org, "site": site, "kai": kai, "ana": ana, "pour": pour, "strip": strip, "scope": scope}


def test_schedule_time_parsing():
    assert _schedule_time("02:30") == (2, 30)
    assert _schedule_time("7") == (7, 0)
    assert _schedule_time("25:00") == (0, 0)
    assert _schedule_time("soon") == (0, 0)


@pytest.mark.asyncio
async def test_duplicate_holiday_is_409(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        data = schemas.HolidayCreate(name="Kuhio Day", date=date(2027, 3, 26), state_county=True)
        created = await holidays_router.create_holiday(data=data, scope=s["scope"], db=db)
        assert created.year == 2027
        with pytest.raises(HTTPException) as exc:
            await holidays_router.create_holiday(data=data, scope=s["scope"], db=db)
        assert exc.value.status_code == 409
        with pytest.raises(HTTPException) as exc:
            await holidays_router.get_holiday(holiday_id=9999, scope=s["scope"], db=db)
        assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_assignment_conflict_is_409(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        result = await assignments_router.assign_workers(
            data=schemas.AssignWorkersRequest(task_id=s["pour"].id, worker_ids=[s["kai"].id]), scope=s["scope"], db=db,
        )
        assert result.created == 5
        with pytest.raises(HTTPException) as exc:
            await assignments_router.assign_workers(
                data=schemas.AssignWorkersRequest(task_id=s["strip"].id, worker_ids=[s["kai"].id, s["ana"].id]),
                scope=s["scope"], db=db,
            )
        assert exc.value.status_code == 409
        assert "Kai Akana" in exc.value.detail
        assert "ana Lee" not in exc.value.detail

        with pytest.raises(HTTPException) as exc:
            await assignments_router.assign_workers(
                data=schemas.AssignWorkersRequest(task_id=9999, worker_ids=[s["kai"].id]), scope=s["scope"], db=db,
            )
        assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_day_view(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        await crud.assign_workers(db, s["scope"], s["pour"], [s["kai"].id, s["ana"].id])
        view = await calendar_router.day_view(day=date(2027, 3, 4), job_site_id=None, scope=s["scope"], db=db)
        assert view.date == date(2027, 3, 4)
        assert view.holiday is None
        assert [t.name for t in view.tasks] == ["Pour deck", "Strip forms"]
        pour = view.tasks[0]
        assert pour.staffing.status == "full"
        assert [w.name for w in pour.workers] == ["ana Lee", "Kai Akana"]
        assert view.tasks[1].workers == []

        # Saturday is not a working day for either task
        weekend = await calendar_router.day_view(day=date(2027, 3, 6), job_site_id=None, scope=s["scope"], db=db)
        assert weekend.tasks == []


@pytest.mark.asyncio
async def test_working_days_range_checks(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        days = await calendar_router.list_working_days(
            start=date(2027, 3, 5), end=date(2027, 3, 8), include_saturday=False, include_sunday=False,
            include_holidays=False, scope=s["scope"], db=db,
        )
        assert days == [date(2027, 3, 5), date(2027, 3, 8)]
        with pytest.raises(HTTPException) as exc:
            await calendar_router.list_working_days(
                start=date(2027, 3, 8), end=date(2027, 3, 5), include_saturday=False, include_sunday=False,
                include_holidays=False, scope=s["scope"], db=db,
            )
        assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_log_hours_status_codes(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        data = schemas.DailyHoursLog(worker_id=s["kai"].id, log_date=MONDAY, task_id=s["pour"].id)
        response = Response()
        response.status_code = None
        await daily_hours_router.log_hours(data=data, response=response, scope=s["scope"], db=db)
        # untouched: the route default (201) applies
        assert response.status_code is None
        response = Response()
        response.status_code = None
        await daily_hours_router.log_hours(data=data, response=response, scope=s["scope"], db=db)
        assert response.status_code == 200

        with pytest.raises(HTTPException) as exc:
            await daily_hours_router.log_hours(
                data=schemas.DailyHoursLog(worker_id=s["kai"].id, log_date=MONDAY, status="vacation"),
                response=Response(), scope=s["scope"], db=db,
            )
        assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_weekly_export_csv(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        await crud.log_daily_hours(db, s["scope"], s["kai"], schemas.DailyHoursLog(worker_id=s["kai"].id, log_date=MONDAY))
        resp = await daily_hours_router.export_weekly(
            week_of=MONDAY, format="CSV", job_site_id=None, scope=s["scope"], db=db,
        )
        assert resp.media_type.startswith("text/csv")
        assert "weekly_hours_2027-02-28.csv" in resp.headers["content-disposition"]
        body = b"".join([chunk async for chunk in resp.body_iterator]).decode("utf-8")
        assert "Kai Akana,laborer,0,8.0,0,0,0,0,0,8.0" in body

        with pytest.raises(HTTPException) as exc:
            await daily_hours_router.export_weekly(week_of=MONDAY, format="docx", job_site_id=None, scope=s["scope"], db=db)
        assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_org_superintendent_assigns_on_any_site(async_engine_and_session):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        s = await _seed(db)
        org_id = s["org"].id
        super_ = UserProfile(organization_id=org_id, email="su@router.test", name="Su", base_role="superintendent")
        fm = UserProfile(organization_id=org_id, email="fm@router.test", name="Fm", base_role="foreman")
        other_org = Organization(name="Other Co", slug="other-co")
        db.add_all([super_, fm, other_org])
        await db.flush()
        other_site = JobSite(organization_id=other_org.id, name="Elsewhere")
        db.add(other_site)
        await db.flush()
        super_scope = await load_scope(db, super_)
        assert super_scope.site_ids == []

        response = Response()
        response.status_code = None
        out = await job_sites_router.assign_user(
            job_site_id=s["site"].id, data=schemas.JobSiteAssignmentCreate(user_id=fm.id, role="foreman"),
            response=response, scope=super_scope, db=db,
        )
        assert out.user_id == fm.id
        assert out.role == "foreman"
        assert response.status_code is None

        fm_scope = await load_scope(db, fm)
        with pytest.raises(AccessDeniedError):
            await job_sites_router.assign_user(
                job_site_id=s["site"].id, data=schemas.JobSiteAssignmentCreate(user_id=super_.id, role="worker"),
                response=Response(), scope=fm_scope, db=db,
            )
        with pytest.raises(HTTPException) as exc:
            await job_sites_router.assign_user(
                job_site_id=other_site.id, data=schemas.JobSiteAssignmentCreate(user_id=fm.id, role="foreman"),
                response=Response(), scope=super_scope, db=db,
            )
        assert exc.value.status_code == 404
