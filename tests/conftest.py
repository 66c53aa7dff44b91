"""
Pytest fixtures for the portfolio engine test suite.

Provides:
- In-memory SQLite sessions with every table created
- A deterministic clock and the default engine configuration
- Captured structured logs
"""

import json
import logging
from datetime import datetime
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import portfolio_kernel.models  # noqa: F401  (registers tables)
from portfolio_config.schema import EngineConfig
from portfolio_kernel.db.base import Base
from portfolio_kernel.db.engine import enable_sqlite_savepoints
from portfolio_kernel.domain.clock import DeterministicClock
from portfolio_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from portfolio_kernel.services.auditor_service import AuditorService
from portfolio_kernel.store import SqlEntityStore

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture portfolio_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            assert any(r["message"] == "alert_raised" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("portfolio_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


def make_engine(url: str = "sqlite://"):
    """SQLite engine with savepoint support and all tables created."""
    kwargs = {}
    if url == "sqlite://":
        kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    engine = create_engine(url, **kwargs)
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine():
    eng = make_engine()
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine) -> Session:
    sess = Session(bind=engine, expire_on_commit=False)
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2025, 3, 1, 9, 0, 0))


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def store(session, actor_id) -> SqlEntityStore:
    return SqlEntityStore(session, actor_id)


@pytest.fixture
def auditor(session, clock) -> AuditorService:
    return AuditorService(session=session, clock=clock)
