"""
Test configuration and shared fixtures for the scheduling test suite.

Uses an in-memory SQLite database; every test gets freshly created tables.
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base, get_db
from services.resource_store import SqlAlchemyResourceStore
from services.schedule_service import ScheduleService
from shared_types.scheduling import Schedule
from helpers import FixedClock, utc

# Import all models to ensure they are registered with SQLAlchemy before tables are created
import models  # noqa: F401


@pytest.fixture(scope="function")
def db_engine():
    """
    Create an in-memory database engine for one test.

    StaticPool keeps the single in-memory connection alive across sessions
    and threads (the TestClient runs sync dependencies in a thread pool).
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session bound to the test engine."""
    TestingSession = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = TestingSession()

    yield session

    session.close()


@pytest.fixture
def store(db_session: Session) -> SqlAlchemyResourceStore:
    return SqlAlchemyResourceStore(db_session)


@pytest.fixture
def schedule(store: SqlAlchemyResourceStore) -> Schedule:
    return ScheduleService.create_schedule(store, "Practitioner/dr-test")


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at 2026-03-01 12:00 UTC."""
    return FixedClock(utc(2026, 3, 1, 12, 0))


@pytest.fixture
def client(db_session: Session, clock: FixedClock) -> Generator[TestClient, None, None]:
    """Test client with the database and clock dependencies overridden."""
    from api.schedules import get_clock
    from main import app

    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_clock] = lambda: clock

    yield TestClient(app)

    app.dependency_overrides.clear()
