"""
Shared fixtures: a throwaway SQLite database (console and report tables),
an ASGI client over the FastAPI app and seeded admin/testuser logins.

Environment is set before any opsconsole import so the engine and settings
pick up the test database.
"""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="opsconsole-tests-")

os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/test.db"
os.environ["REPORT_DATABASE_URL"] = ""
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENCRYPTION_KEY"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OSS_ACCESS_KEY_ID"] = ""
os.environ["OSS_ACCESS_KEY_SECRET"] = ""
os.environ["OSS_BUCKET"] = ""

import pytest
from httpx import AsyncClient, ASGITransport


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def db_setup():
    """Fresh console + report schema for one test."""
    from opsconsole.database import engine, Base, ReportBase
    import opsconsole.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(ReportBase.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(ReportBase.metadata.drop_all)
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session(db_setup):
    from opsconsole.database import async_session

    async with async_session() as session:
        yield session


@pytest.fixture
async def seeded(db_setup):
    """admin/admin123, testuser/user123, sample tags/posts/configs."""
    from opsconsole.database import async_session
    from scripts.seed import seed_database

    async with async_session() as session:
        created = await seed_database(session)
        await session.commit()
    return created


@pytest.fixture
async def client(db_setup):
    from opsconsole.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _login(client: AsyncClient, username: str, password: str) -> dict:
    response = await client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


@pytest.fixture
async def admin_headers(client, seeded):
    return await _login(client, "admin", "admin123")


@pytest.fixture
async def user_headers(client, seeded):
    return await _login(client, "testuser", "user123")
