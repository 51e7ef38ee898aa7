"""
Database configuration and session management.
Uses PostgreSQL via asyncpg with SQLAlchemy 2 async engine.

Two metadata registries:
- Base: console-owned tables (users, posts, push, content, ...). Created by init_db().
- ReportBase: lending-core tables the reports read from. Never created in production;
  they may live in another database (REPORT_DATABASE_URL).
"""

import logging
import ssl
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
from opsconsole.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_kwargs(url: str) -> dict:
    """Pool + connect options. SQLite (tests, local dev) takes none of the asyncpg options."""
    if url.startswith("sqlite"):
        return {}
    args = {"timeout": 30}  # Fail fast if DB unreachable
    if "sslmode=require" in url or "rlwy.net" in url:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        args["ssl"] = ctx
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "connect_args": args,
    }


engine = create_async_engine(
    settings.database_url,
    echo=False,
    **_engine_kwargs(settings.database_url),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

if settings.effective_report_database_url == settings.database_url:
    report_engine = engine
else:
    report_engine = create_async_engine(
        settings.effective_report_database_url,
        echo=False,
        **_engine_kwargs(settings.effective_report_database_url),
    )

report_session = async_sessionmaker(report_engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


class ReportBase(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Dependency that provides a database session with auto-commit/rollback."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_report_db() -> AsyncSession:
    """Read-only session on the reporting database."""
    async with report_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """
    Create all console tables defined in models.
    create_all only creates tables that don't exist yet.
    In development the reporting tables are created too when they share the console DB,
    so the report endpoints work against an empty local database.
    """
    # Import models to ensure they are registered with the metadata
    import opsconsole.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if not settings.is_production and report_engine is engine:
            await conn.run_sync(ReportBase.metadata.create_all)

        logger.info(f"Database initialized with {len(Base.metadata.tables)} tables: "
                    f"{', '.join(Base.metadata.tables.keys())}")


async def check_db_connection() -> bool:
    """Test database connectivity."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
