"""
Task attachments on disk and on the task row.
"""
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from crew_command import config as app_config
from crew_command.access import load_scope
from crew_command.database import Base
from crew_command.models import JobSite, Organization, UserProfile
from crew_command import crud
from crew_command.crud import AttachmentNotFoundError
from crew_command.schemas import TaskCreate
from crew_command.services import task_files


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
def upload_root(tmp_path, monkeypatch):
    monkeypatch.setattr(app_config.settings, "upload_dir", tmp_path)
    return tmp_path


def test_paths_stay_inside_upload_root(upload_root):
    d = task_files.save_task_file(7, b"plans", "../../etc/site plan.pdf", uploaded_by=1)
    assert d["name"] == "site plan.pdf"
    assert d["path"].startswith("tasks/7/")
    assert d["size"] == 5
    assert (upload_root / d["path"]).read_bytes() == b"plans"
    with pytest.raises(ValueError):
        task_files.resolve_task_file_path("../outside.txt")
    task_files.delete_task_file(d["path"])
    assert not (upload_root / d["path"]).exists()


@pytest.mark.asyncio
async def test_attach_and_remove(async_engine_and_session, upload_root):
    engine, async_session = async_engine_and_session
    async with async_session() as db:
        org = Organization(name="Files Co", slug="files")
        db.add(org)
        await db.flush()
        admin = UserProfile(organization_id=org.id, email="a@files.test", name="A", base_role="admin")
        site = JobSite(organization_id=org.id, name="Site")
        db.add_all([admin, site])
        await db.flush()
        scope = await load_scope(db, admin)
        task = await crud.create_task(db, scope, TaskCreate(name="Rebar", job_site_id=site.id))

        d = await crud.add_task_attachment(db, scope, task, "shop drawing.pdf", b"%PDF-1.4")
        assert [a["name"] for a in task.attachments] == ["shop drawing.pdf"]
        assert crud.find_task_attachment(task, d["path"])["uploaded_by"] == admin.id

        task = await crud.remove_task_attachment(db, scope, task, d["path"])
        assert task.attachments == []
        assert not (upload_root / d["path"]).exists()
        with pytest.raises(AttachmentNotFoundError):
            crud.find_task_attachment(task, d["path"])
