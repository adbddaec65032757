"""Shared pytest fixtures for ApoData tests.

Feature test directories share the HTTP client and token fixtures defined
here. Integration tests use ``db_session`` against a real PostgreSQL.
"""

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.cache import ResponseCache, get_cache
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.core.security import SecurityContext, create_access_token
from app.main import app

PHARMACY_ID = "11111111-1111-1111-1111-111111111111"

ADMIN_CTX = SecurityContext(user_id="aaaaaaaa-0000-0000-0000-000000000001", role="admin")
USER_CTX = SecurityContext(
    user_id="bbbbbbbb-0000-0000-0000-000000000001",
    role="user",
    pharmacy_id=PHARMACY_ID,
    pharmacy_name="Pharmacie du Centre",
)
UNASSIGNED_CTX = SecurityContext(user_id="cccccccc-0000-0000-0000-000000000001", role="user")


class FakeResult:
    """Minimal stand-in for a SQLAlchemy ``Result``.

    Rows are mapping dicts for raw SQL, or ORM instances for ``select(Model)``.
    """

    def __init__(self, rows: list[Any]) -> None:
        self._rows = rows

    def mappings(self) -> "FakeResult":
        return self

    def scalars(self) -> "FakeResult":
        return self

    def scalar_one_or_none(self) -> Any:
        return self._rows[0] if self._rows else None

    def all(self) -> list[Any]:
        return list(self._rows)

    def first(self) -> Any:
        return self._rows[0] if self._rows else None


class FakeSavepoint:
    """Async context manager standing in for ``AsyncSession.begin_nested``."""

    async def __aenter__(self) -> "FakeSavepoint":
        return self

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


class FakeSession:
    """Records executed SQL and replays queued result sets.

    Each ``execute`` pops the next queued item: a list of rows, or an
    exception to raise. Once the queue is empty, queries return no rows.
    ORM writes are recorded in ``added`` and ``deleted``; ``flush`` fills the
    primary key and timestamps the database would generate.
    """

    def __init__(self) -> None:
        self.queue: list[list[Any] | Exception] = []
        self.statements: list[tuple[str, dict[str, Any]]] = []
        self.committed = False
        self.rolled_back = False
        self.savepoints = 0
        self.added: list[Any] = []
        self.deleted: list[Any] = []
        self.flushes = 0

    def add_result(self, *results: list[Any] | Exception) -> None:
        self.queue.extend(results)

    async def execute(self, statement: Any, params: Mapping[str, Any] | None = None) -> FakeResult:
        self.statements.append((str(statement), dict(params or {})))
        item = self.queue.pop(0) if self.queue else []
        if isinstance(item, Exception):
            raise item
        return FakeResult(item)

    def begin_nested(self) -> "FakeSavepoint":
        self.savepoints += 1
        return FakeSavepoint()

    def add(self, instance: Any) -> None:
        self.added.append(instance)

    async def delete(self, instance: Any) -> None:
        self.deleted.append(instance)

    async def flush(self) -> None:
        self.flushes += 1
        now = datetime.now(UTC)
        for instance in self.added:
            if getattr(instance, "id", None) is None:
                instance.id = uuid.uuid4()
            for column in ("created_at", "updated_at"):
                if getattr(instance, column, None) is None:
                    setattr(instance, column, now)

    async def refresh(self, instance: Any) -> None:
        return None

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True

    @property
    def sql(self) -> list[str]:
        return [statement for statement, _ in self.statements]

    @property
    def params(self) -> list[dict[str, Any]]:
        return [params for _, params in self.statements]


def auth_headers(ctx: SecurityContext) -> dict[str, str]:
    """Authorization header carrying a fresh token for ``ctx``."""
    return {"Authorization": f"Bearer {create_access_token(ctx)}"}


@pytest.fixture
def pharmacy_id() -> str:
    return PHARMACY_ID


@pytest.fixture
def admin_ctx() -> SecurityContext:
    return ADMIN_CTX


@pytest.fixture
def user_ctx() -> SecurityContext:
    return USER_CTX


@pytest.fixture
def fake_db() -> FakeSession:
    """Queued-result database session."""
    return FakeSession()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return auth_headers(ADMIN_CTX)


@pytest.fixture
def user_headers() -> dict[str, str]:
    return auth_headers(USER_CTX)


@pytest.fixture
def unassigned_ctx() -> SecurityContext:
    """A pharmacy user whose account has no pharmacy yet."""
    return UNASSIGNED_CTX


@pytest.fixture
def unassigned_headers() -> dict[str, str]:
    """Token of a pharmacy user with no pharmacy assigned."""
    return auth_headers(UNASSIGNED_CTX)


@pytest.fixture
async def client(fake_db: FakeSession):
    """Create async HTTP client with the database replaced by ``fake_db``.

    The response cache is disabled so every request reaches the session.
    """

    async def override_get_db():
        yield fake_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: ResponseCache(None, "test", enabled=False)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def db_session():
    """Create async database session for integration tests.

    Only ORM-managed tables (saved filters) are created and dropped; the
    reporting tables are owned by the ingestion pipeline.
    Requires PostgreSQL to be running (docker-compose up -d).
    """
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
