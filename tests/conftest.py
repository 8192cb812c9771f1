"""Shared test fixtures."""
from datetime import date, datetime, timezone
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from punchlog.models.log import DailyLog, LogEntry  # noqa: F401
from punchlog.store.repository import SQLModelLogRepository


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="repository")
def repository_fixture(engine) -> SQLModelLogRepository:
    return SQLModelLogRepository(engine)


@pytest.fixture(name="seeded_log")
def seeded_log_fixture(test_session: Session) -> DailyLog:
    """A persisted morning session (in 08:00, out 12:00 UTC) on 2025-03-14."""
    row = DailyLog(
        day_key=date(2025, 3, 14),
        am_in=datetime(2025, 3, 14, 8, 0, tzinfo=timezone.utc),
        am_out=datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc),
    )
    test_session.add(row)
    test_session.commit()
    test_session.refresh(row)
    return row
