"""
The app over HTTP (httpx + ASGITransport): bearer sessions, the 403 / 500 handlers and upsert status codes.
"""
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from crew_command.database import Base, get_db, get_system_db
from crew_command.main import app
from crew_command.models import UserProfile
from crew_command import crud
from crew_command.security import hash_password

REGISTER = {
    "organization_name": "Leeward Masonry",
    "admin_name": "Noelani",
    "email": "noelani@leeward.test",
    "password": "malama-1234",
}


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


@pytest.fixture
async def client(async_engine_and_session):
    engine, async_session = async_engine_and_session

    async def override_get_db():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # one session per request serves both the request and the system dependency
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_system_db] = override_get_db
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


async def _register(client):
    r = await client.post("/api/auth/register", json=REGISTER)
    assert r.status_code == 201
    return r.json()


@pytest.mark.asyncio
async def test_bearer_session_round_trip(client):
    body = await _register(client)
    token = body["access_token"]

    r = await client.get("/api/auth/me", headers=_auth(token))
    assert r.status_code == 200
    assert r.json()["user"]["email"] == "noelani@leeward.test"

    r = await client.post("/api/auth/login", json={"email": "NOELANI@leeward.test", "password": "malama-1234"})
    assert r.status_code == 200
    second = r.json()["access_token"]
    assert second != token

    r = await client.post("/api/auth/login", json={"email": "noelani@leeward.test", "password": "nope-nope"})
    assert r.status_code == 401

    r = await client.post("/api/auth/logout", headers=_auth(token))
    assert r.status_code == 204
    r = await client.get("/api/auth/me", headers=_auth(token))
    assert r.status_code == 401
    assert r.json()["detail"] == "Session expired or invalid"
    assert (await client.get("/api/auth/me", headers=_auth(second))).status_code == 200


@pytest.mark.asyncio
async def test_missing_or_malformed_token_is_401(client):
    await _register(client)
    assert (await client.get("/api/job-sites")).status_code == 401
    assert (await client.get("/api/job-sites", headers={"Authorization": "Token abc"})).status_code == 401
    r = await client.get("/api/job-sites", headers=_auth("not-a-session"))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_access_denied_becomes_403(client, async_engine_and_session):
    engine, async_session = async_engine_and_session
    body = await _register(client)
    async with async_session() as db:
        db.add(UserProfile(
            organization_id=body["organization"]["id"], email="kona@leeward.test", name="Kona",
            base_role="foreman", password_hash=hash_password("foreman-pass"),
        ))
        await db.commit()

    r = await client.post("/api/auth/login", json={"email": "kona@leeward.test", "password": "foreman-pass"})
    assert r.status_code == 200
    foreman_token = r.json()["access_token"]

    r = await client.patch("/api/organization", json={"name": "Kona Builders"}, headers=_auth(foreman_token))
    assert r.status_code == 403
    assert r.json() == {"detail": "Only admins can update the organization"}

    r = await client.patch("/api/organization", json={"phone": "808-555-0142"}, headers=_auth(body["access_token"]))
    assert r.status_code == 200
    assert r.json()["name"] == "Leeward Masonry"
    assert r.json()["phone"] == "808-555-0142"


@pytest.mark.asyncio
async def test_daily_hours_upsert_201_then_200(client):
    token = (await _register(client))["access_token"]
    r = await client.post("/api/workers", json={"name": "Keoni", "role": "mason"}, headers=_auth(token))
    assert r.status_code == 201
    worker_id = r.json()["id"]

    entry = {"worker_id": worker_id, "log_date": "2027-03-01"}
    r = await client.post("/api/daily-hours", json=entry, headers=_auth(token))
    assert r.status_code == 201
    assert float(r.json()["hours_worked"]) == 8.0

    r = await client.post("/api/daily-hours", json={**entry, "hours_worked": 6.5}, headers=_auth(token))
    assert r.status_code == 200
    assert float(r.json()["hours_worked"]) == 6.5

    r = await client.get("/api/daily-hours", params={"start": "2027-03-01", "end": "2027-03-01"}, headers=_auth(token))
    assert r.status_code == 200
    assert len(r.json()) == 1


@pytest.mark.asyncio
async def test_unhandled_error_is_500(client, monkeypatch):
    token = (await _register(client))["access_token"]

    async def broken_summary(*args, **kwargs):
        raise RuntimeError("dashboard query failed")

    monkeypatch.setattr(crud, "dashboard_summary", broken_summary)
    r = await client.get("/api/dashboard", headers=_auth(token))
    assert r.status_code == 500
    assert r.json() == {"detail": "Internal Server Error"}
