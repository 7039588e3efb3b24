"""
Database engine and sessions (async SQLAlchemy).
- PostgreSQL URLs are forced onto the asyncpg driver
- Schema is owned by Alembic; nothing is created at startup
- Two connections: the request engine (app_user under RLS) and the system engine (table owner)
"""
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from crew_command.config import settings


def normalize_database_url(url: str) -> str:
    """Hosting providers hand out postgres:// or postgresql://; async needs postgresql+asyncpg://."""
    url = str(url or "").strip()
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    if url.startswith("postgresql+psycopg2://"):
        return "postgresql+asyncpg://" + url[len("postgresql+psycopg2://"):]
    return url


db_url = normalize_database_url(settings.database_url)

engine = create_async_engine(
    db_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


if settings.system_database_url and normalize_database_url(settings.system_database_url) != db_url:
    system_engine = create_async_engine(
        normalize_database_url(settings.system_database_url),
        echo=settings.debug,
        pool_pre_ping=True,
    )
else:
    system_engine = engine

SystemSessionLocal = async_sessionmaker(
    system_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_system_db():
    """Session on the owner connection; row-level security does not apply to it."""
    async with SystemSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def apply_rls_context(db: AsyncSession, user_id: int) -> None:
    """Expose the caller to the PostgreSQL row-level security policies for this transaction."""
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(
        text("SELECT set_config('app.current_user_id', :uid, true)"),
        {"uid": str(user_id)},
    )
