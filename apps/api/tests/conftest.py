import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from models.user import User
from routers import rate_limit
from services.blob_store import LocalBlobStore, get_blob_store
from services.passwords import hash_password
from services.session_token import create_session_token


ADMIN_ID = "admin-user"
CLIENT_ID = "client-user"
OTHER_CLIENT_ID = "other-client"
TEST_PASSWORD = "secreto123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)

ADMIN_HEADER = {"Authorization": f"Bearer {create_session_token(ADMIN_ID, 'admin@bonos.local', role='admin').token}"}
CLIENT_HEADER = {"Authorization": f"Bearer {create_session_token(CLIENT_ID, 'cliente@example.com').token}"}
OTHER_CLIENT_HEADER = {
    "Authorization": f"Bearer {create_session_token(OTHER_CLIENT_ID, 'otro@example.com').token}"
}


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "bonos.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with maker() as session:
        session.add_all(
            [
                User(
                    id=ADMIN_ID,
                    email="admin@bonos.local",
                    password_hash=TEST_PASSWORD_HASH,
                    name="Administrador Principal",
                    role="admin",
                ),
                User(
                    id=CLIENT_ID,
                    email="cliente@example.com",
                    password_hash=TEST_PASSWORD_HASH,
                    name="Ana Cliente",
                    role="client",
                    company_name="Talleres Ana",
                ),
                User(
                    id=OTHER_CLIENT_ID,
                    email="otro@example.com",
                    password_hash=TEST_PASSWORD_HASH,
                    name="Otro Cliente",
                    role="client",
                ),
            ]
        )
        await session.commit()

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def api_client(session_maker, tmp_path):
    blob_store = LocalBlobStore(str(tmp_path / "blobs"), "http://test/blobs")

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_blob_store, None)
