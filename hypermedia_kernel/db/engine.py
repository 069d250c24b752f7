"""
Engine and session management for the SQL storage backend.

One process-wide engine is configured with ``init_engine_from_url``.
``SqlAlchemyStorage`` receives ``get_session_factory()`` and opens one
session per unit of work; scripts and tests use ``session_scope``.

Backends:
    - PostgreSQL (production): pooled connections, READ COMMITTED.  The
      conditional ``UPDATE ... WHERE version = :expected`` issued by the
      storage layer is what rejects concurrent writers.
    - SQLite (tests, demos): ``sqlite://`` is an in-memory database shared
      by every session through a single ``StaticPool`` connection; file
      databases use the default pool.

Every accessor raises ``RuntimeError`` until an engine is configured.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from hypermedia_kernel.logging_config import get_logger

logger = get_logger("db.engine")


@dataclass(frozen=True)
class PoolSettings:
    """Connection pool sizing; ignored for SQLite."""

    size: int = 20
    max_overflow: int = 10
    timeout: int = 30
    recycle: int = 1800
    pre_ping: bool = True


@dataclass
class _Database:
    engine: Engine
    sessions: sessionmaker[Session]


_database: _Database | None = None


def _engine_options(url: URL, pool: PoolSettings) -> dict[str, Any]:
    if url.get_backend_name() == "sqlite":
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_size": pool.size,
        "max_overflow": pool.max_overflow,
        "pool_timeout": pool.timeout,
        "pool_recycle": pool.recycle,
        "pool_pre_ping": pool.pre_ping,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    *,
    echo: bool = False,
    pool: PoolSettings | None = None,
) -> Engine:
    """
    Configure the process-wide engine and session factory.

    A previously configured engine is disposed first.
    """
    global _database

    reset_engine()
    url = make_url(database_url)
    engine = create_engine(url, echo=echo, **_engine_options(url, pool or PoolSettings()))
    _database = _Database(engine=engine, sessions=sessionmaker(bind=engine, expire_on_commit=False))

    logger.info(
        "engine_initialized",
        extra={"dialect": url.get_backend_name(), "database": url.database, "echo": echo},
    )
    return engine


def _require() -> _Database:
    if _database is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _database


def get_engine() -> Engine:
    return _require().engine


def get_session_factory() -> sessionmaker[Session]:
    return _require().sessions


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    Commit on success; roll back and re-raise on any exception.

    Usage:
        with session_scope(factory) as session:
            session.add(record)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("session_rolled_back")
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create the resource, history and sub-resource tables if missing."""
    from hypermedia_kernel.db.base import Base
    import hypermedia_kernel.models  # noqa: F401  (registers the tables)

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every kernel table.  Tests and demos only."""
    from hypermedia_kernel.db.base import Base
    import hypermedia_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())
    logger.info("tables_dropped")


def reset_engine() -> None:
    """Dispose of the engine's pool and forget the configuration."""
    global _database
    if _database is not None:
        _database.engine.dispose()
        _database = None


atexit.register(reset_engine)
