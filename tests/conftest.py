import os

# Must be set before the app (and settings) are imported
os.environ["ENV"] = "testing"
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fakeredis import FakeServer, FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

from main import app
from core.database import Base
from core.redis_store import RedisStore
from models.users import User
from services.ephemeral_token_service import EphemeralTokenService
from services.rate_limit_service import RateLimiter
from services.refresh_token_service import RefreshTokenLedger
from services.session_service import SessionService
from services.token_service import TokenService
from utils.deps import get_db
from utils.hashing import get_password_hash

# SYNC SQLite for testing (matches sync service layer)
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

TEST_PASSWORD = "TestPassword123!"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False}
)

TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """
    Creates a fresh, empty database for each test.
    Uses SYNC SQLAlchemy to match the service layer.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def redis_server() -> FakeServer:
    """One isolated in-memory Redis per test; flip `.connected` to simulate an outage."""
    return FakeServer()


@pytest.fixture
async def store(redis_server):
    client = FakeAsyncRedis(server=redis_server, decode_responses=True)
    store = RedisStore(client)
    yield store
    await store.close()


@pytest.fixture
def token_service() -> TokenService:
    return TokenService()


@pytest.fixture
def sessions(store) -> SessionService:
    return SessionService(store)


@pytest.fixture
def ledger(store, token_service, sessions) -> RefreshTokenLedger:
    return RefreshTokenLedger(store, token_service, sessions)


@pytest.fixture
def ephemeral(store) -> EphemeralTokenService:
    return EphemeralTokenService(store)


@pytest.fixture
def limiter(store) -> RateLimiter:
    return RateLimiter(store)


@pytest.fixture
async def client(session: Session, store: RedisStore):
    """
    Yields an HTTP client that interacts with the app using the test
    database and the fake Redis store.
    """
    def override_get_db():
        try:
            yield session
        finally:
            pass  # Session cleanup handled by session fixture

    app.dependency_overrides[get_db] = override_get_db
    app.state.store = store

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.store = None


@pytest.fixture
def verified_user(session: Session) -> User:
    user = User(
        email="verified@example.com",
        name="Verified User",
        hashed_password=get_password_hash(TEST_PASSWORD),
        is_verified=True,
        is_active=True
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
async def auth_tokens(client, verified_user) -> dict:
    """Access/refresh pair from a real login of verified_user."""
    response = await client.post("/auth/login", json={
        "email": verified_user.email,
        "password": TEST_PASSWORD
    })
    assert response.status_code == 200
    return response.json()["tokens"]
