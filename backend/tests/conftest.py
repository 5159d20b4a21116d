import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy import event, pool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.models.base import Base
from app.models.token_transaction import TokenTransaction, TransactionType
from app.repositories.token_transaction_repository import TokenTransactionRepository

# Set TEST_DATABASE_URL to run against PostgreSQL; defaults to a
# throwaway SQLite file per test.
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "")

# Test user ID (consistent across tests for predictable auth)
TEST_USER_ID = "user_2test000000000000000001"
OTHER_USER_ID = "user_2test000000000000000002"

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_ADMIN_PASSWORD = "test-admin-password"  # nosec B105
TEST_PAYMENT_WEBHOOK_SECRET = "test-payment-webhook-secret"  # nosec B105


def create_test_jwt(
    user_id: str = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
    audience: str | None = None,
) -> str:
    """Create a signed JWT for test authentication.

    Args:
        user_id: User id to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.
        audience: aud claim. Defaults to settings.auth_audience.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "aud": audience or settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINT works on pysqlite/aiosqlite."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with a fresh schema."""
    if TEST_DATABASE_URL:
        engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    else:
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
            echo=False,
            poolclass=pool.NullPool,
        )
        _enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


async def seed_transaction(
    db: AsyncSession,
    user_id: str,
    amount: int,
    *,
    transaction_type: TransactionType = TransactionType.ADMIN_CREDIT,
    render_job_id: str | None = None,
    description: str = "Seed entry",
) -> TokenTransaction:
    """Append an entry directly through the repository.

    Bypasses the ledger service so tests can build any history, including
    ones the service would refuse to write.
    """
    latest = await TokenTransactionRepository.get_latest(db, user_id)
    balance = latest.balance_after if latest else 0
    return await TokenTransactionRepository.insert(
        db,
        user_id=user_id,
        sequence=latest.sequence + 1 if latest else 1,
        transaction_type=transaction_type.value,
        amount=amount,
        balance_after=balance + amount,
        description=description,
        render_job_id=render_job_id,
    )


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for authenticated API tests.

    Enables auth_enabled=True and injects a valid JWT for TEST_USER_ID.
    Each request gets its own session that commits on success and rolls
    back on error, like app.core.database.get_db.

    Yields:
        Configured AsyncClient for making authenticated API requests.
    """
    from app.core.database import get_db
    from app.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    original_auth_enabled = settings.auth_enabled
    original_auth_secret = settings.auth_secret
    original_admin_password = settings.admin_dashboard_password
    original_payment_secret = settings.payment_webhook_secret
    original_environment = settings.environment
    settings.auth_enabled = True
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.admin_dashboard_password = SecretStr(TEST_ADMIN_PASSWORD)
    settings.payment_webhook_secret = SecretStr(TEST_PAYMENT_WEBHOOK_SECRET)
    settings.environment = "test"

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        cookies={settings.auth_cookie_name: create_test_jwt(TEST_USER_ID)},
    ) as ac:
        yield ac

    settings.auth_enabled = original_auth_enabled
    settings.auth_secret = original_auth_secret
    settings.admin_dashboard_password = original_admin_password
    settings.payment_webhook_secret = original_payment_secret
    settings.environment = original_environment
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def unauthenticated_client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client without authentication.

    Auth is enabled but no JWT cookie is provided.
    """
    from app.core.database import get_db
    from app.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    original_auth_enabled = settings.auth_enabled
    original_auth_secret = settings.auth_secret
    settings.auth_enabled = True
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    settings.auth_enabled = original_auth_enabled
    settings.auth_secret = original_auth_secret
    app.dependency_overrides.clear()
