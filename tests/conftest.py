"""
Shared test fixtures.

Sets up an isolated SQLite database so tests never touch the
real database. Tables are created before each test and dropped
after it, so every test starts from an empty ledger.
"""

import os

# Must be set before the application modules build their engine
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from party_ledger.main import app
from party_ledger.models.base import Base, get_db
from party_ledger.services.cache import balance_cache


TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)

USER_ID = "user-1"


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    The balance cache is process-wide, so it is emptied too;
    ids restart with every fresh database.
    """
    Base.metadata.create_all(bind=engine)
    balance_cache.clear()
    yield
    balance_cache.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def session_factory():
    """
    Open independent sessions, as two concurrent requests would.

    Every session opened through the factory is closed at teardown.
    """
    sessions = []

    def open_session():
        session = TestSessionLocal()
        sessions.append(session)
        return session

    yield open_session
    for session in sessions:
        session.rollback()
        session.close()


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def client(db_session):
    """
    Provide a test client with the test database.

    We override the get_db dependency so the FastAPI app
    uses our test session instead of the real database.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app, headers={"X-User-Id": USER_ID})
    app.dependency_overrides.clear()
