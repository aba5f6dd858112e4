"""
Test configuration and fixtures.

Provides:
- File-backed SQLite database per test (real commits, serialized writers)
- Rule and clock helpers shared by service tests
- JWT token minting for authenticated tests
- HTTPX AsyncClient with proper headers
"""
import os
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import AsyncGenerator, Callable, Generator

# Settings are read at import time; configure before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_SECRET_PREVIOUS"] = ""
os.environ["CLINIC_TIMEZONE"] = "UTC"
os.environ["BOOKING_RETRY_BASE_DELAY"] = "0"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from clinic_scheduling.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from clinic_scheduling.core.security import create_session_token
from clinic_scheduling.db.base import Base
from clinic_scheduling.main import app
from clinic_scheduling.schemas.availability import AvailabilityRuleCreate
from clinic_scheduling.services import rule_store


# Monday 2030-01-07; far enough ahead that no slot is ever in the past
MONDAY = date(2030, 1, 7)
MONDAY_DOW = 1
BEFORE_MONDAY = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)


# =============================================================================
# Database Fixtures
# =============================================================================

def _sqlite_engine(path):
    """
    SQLite engine where every transaction starts with BEGIN IMMEDIATE.

    pysqlite normally defers BEGIN until the first write, which lets two
    bookings read the same slot before either writes. Taking the write lock
    up front gives the same serialization the slot lock row gets from
    PostgreSQL.
    """
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


@pytest.fixture(scope="function")
def engine(tmp_path):
    """Fresh schema for every test."""
    eng = _sqlite_engine(tmp_path / "clinic.db")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Domain Fixtures
# =============================================================================

@pytest.fixture
def tenant_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def doctor_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def staff_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_rule(db, tenant_id, doctor_id) -> Callable:
    """Create a rule through RuleStore. Defaults: Monday 09:00-12:00, 30 min, cap 1."""

    def _make_rule(**overrides):
        data = {
            "doctor_id": doctor_id,
            "day_of_week": MONDAY_DOW,
            "start_time": time(9, 0),
            "end_time": time(12, 0),
            "slot_duration_minutes": 30,
            "buffer_time_minutes": 0,
            "max_patients_per_slot": 1,
            "availability_type": "regular",
            "effective_from": date(2029, 1, 1),
        }
        data.update(overrides)
        return rule_store.create_rule(db, tenant_id, AvailabilityRuleCreate(**data))

    return _make_rule


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user_id: uuid.UUID
    tenant_id: uuid.UUID
    token: str
    cookie_name: str = COOKIE_NAME


@pytest.fixture(scope="function")
def test_auth(tenant_id, staff_id) -> TestAuth:
    """Create JWT token for a receptionist of the test tenant."""
    token = create_session_token(
        user_id=staff_id,
        tenant_id=tenant_id,
        role="receptionist",
    )
    return TestAuth(user_id=staff_id, tenant_id=tenant_id, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create authenticated AsyncClient with JWT cookie and CSRF header.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={test_auth.cookie_name: test_auth.token},
        headers={CSRF_HEADER: CSRF_HEADER_VALUE},
    ) as c:
        yield c

    app.dependency_overrides.clear()
