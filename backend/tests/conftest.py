"""
Shared test fixtures.

Provides:
- db_session: in-memory SQLite session with every learning table
- client: FastAPI TestClient wired to db_session
- auth_headers: bearer token for a test user
- make_context: LearningContext factory
"""
import os

# Configure before the app package is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


TEST_USER_ID = "user-test-1"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def db_session():
    """
    Fresh in-memory database per test.

    StaticPool keeps one connection so the TestClient's worker thread sees
    the same database as the test body.
    """
    from app.database import Base
    from app.models import db_models  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    engine.dispose()


# =============================================================================
# API Fixtures
# =============================================================================

@pytest.fixture
def client(db_session):
    from fastapi.testclient import TestClient
    from app.main import app
    from app.database import get_db

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from app.auth import create_access_token

    token = create_access_token(TEST_USER_ID, email="contractor@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def internal_headers():
    return {"X-Internal-Key": "test-internal-key"}


# =============================================================================
# Helpers
# =============================================================================

@pytest.fixture
def make_context():
    from app.models.learning_models import LearningContext

    def _make(**overrides):
        values = {
            "user_id": TEST_USER_ID,
            "trade_id": "plumbing",
            "job_type_id": "water-heater-install",
            "zipcode": "78701",
            "city": "Austin",
            "state": "TX",
        }
        values.update(overrides)
        return LearningContext(**values)

    return _make
