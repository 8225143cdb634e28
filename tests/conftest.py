"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Every test that touches storage gets its own in-memory SQLite database.
"""
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Keep tests off the production database and out of the log directory
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FILE", "")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from wordbank.db.database import configure_engine  # noqa: E402
from wordbank.db.models import Base, Subject, Term  # noqa: E402
from wordbank.generation.models import normalize_term  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (HTTP API over SQLite)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def engine():
    """Fresh in-memory database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    configure_engine(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    """A fixed clock at 2025-03-14 12:00 UTC."""
    return FrozenClock(datetime(2025, 3, 14, 12, 0, 0))


@pytest.fixture
def make_subject(db_session):
    """Factory creating a subject row."""

    def _make(name: str = "Photography") -> Subject:
        subject = Subject(name=name)
        db_session.add(subject)
        db_session.commit()
        return subject

    return _make


@pytest.fixture
def make_term(db_session):
    """Factory creating a catalog term."""

    def _make(subject: Subject, text: str, definition: str = "A test definition.") -> Term:
        term = Term(
            subject_id=subject.id,
            term=text,
            normalized_term=normalize_term(text),
            definition=definition,
            examples=[],
            facts=[],
            provenance="wikipedia",
            confidence=0.9,
        )
        db_session.add(term)
        db_session.commit()
        return term

    return _make
