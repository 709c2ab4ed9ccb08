"""Pytest configuration and fixtures"""
import os

# Settings are read at import time; configure the environment first
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from parley.config import settings
from parley.database import Base, get_db
from parley.main import app
from parley.models.user import User
from parley.schemas.auth import RegisterRequest
from parley.services.refresh_token_store import RefreshTokenStore
from parley.services.session_service import SessionService
from parley.services.user_directory import UserDirectory
from parley.utils.jwt_utils import TokenSigner

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

STRONG_PASSWORD = "Secr3t!pass"


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session):
    """Open additional sessions on the test database (simulates concurrent requests)"""
    opened = []

    def _open() -> Session:
        extra = TestingSessionLocal()
        opened.append(extra)
        return extra

    yield _open
    for extra in opened:
        extra.close()


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create test client with database session override"""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def signer() -> TokenSigner:
    return TokenSigner(settings)


def build_service(db: Session, signer: TokenSigner) -> SessionService:
    return SessionService(users=UserDirectory(db), tokens=RefreshTokenStore(db), signer=signer)


@pytest.fixture
def service(db: Session, signer: TokenSigner) -> SessionService:
    return build_service(db, signer)


@pytest.fixture
def sample_register_data() -> dict:
    """Sample registration payload for tests"""
    return {
        "email": "alice@example.com",
        "password": STRONG_PASSWORD,
        "first_name": "Alice",
        "last_name": "Liddell",
    }


@pytest.fixture
def registered(service: SessionService, sample_register_data: dict):
    """Register a user through the service; returns (user, first refresh token value)"""
    result, refresh_value = service.register(RegisterRequest(**sample_register_data))
    assert result.success, result.errors
    user = service.users.find_by_email(sample_register_data["email"])
    return user, refresh_value


@pytest.fixture
def user(db: Session) -> User:
    """A bare user row, without going through registration"""
    row = User(
        email="bob@example.com",
        user_name="bob@example.com",
        first_name="Bob",
        last_name="Builder",
        password_hash="unused",
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
