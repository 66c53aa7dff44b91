"""
Process-wide database engine and session factory.

``init_engine_from_url`` is called once by whoever hosts the engine (a
web app, a CLI, a test fixture); everything else asks for sessions.  The
recalculation scheduler takes ``get_session_factory()`` and opens one
session per pass on its own thread, so in-memory SQLite is pinned to a
single shared connection.

Store writes are SAVEPOINTs, which pysqlite breaks unless SQLAlchemy
issues BEGIN itself; ``enable_sqlite_savepoints`` installs that fix and
is applied automatically to every SQLite engine created here.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portfolio_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _engine_options(url: str, echo: bool) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:"):
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    return options


def init_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """Create the engine and session factory, replacing any previous ones."""
    global _engine, _session_factory

    reset_engine()
    engine = create_engine(database_url, **_engine_options(database_url, echo))
    if engine.dialect.name == "sqlite":
        enable_sqlite_savepoints(engine)

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Hand BEGIN over to SQLAlchemy so nested SAVEPOINTs work on pysqlite."""

    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def _require_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError("No database engine; call init_engine_from_url() first")
    return _session_factory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("No database engine; call init_engine_from_url() first")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    return _require_factory()


def get_session() -> Session:
    return _require_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    One unit of work: commit on clean exit, roll back and re-raise otherwise.

    Services never commit; this is where callers outside the scheduler
    draw the transaction boundary.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    from portfolio_kernel.db.base import Base
    import portfolio_kernel.models  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    from portfolio_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
