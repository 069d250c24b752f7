"""
Pytest fixtures for the hypermedia kernel test suite.

Provides:
- Structured logging setup and log capture
- A compiled registry of the shipped resource types
- Resource stores over in-memory and SQLite storage
- A deterministic clock

Environment Variables:
- DATABASE_URL: optional database URL for the SQL storage tests.  Defaults
  to an in-memory SQLite database.
"""

import json
import logging
import os

import pytest

from hypermedia_config import load_registry
from hypermedia_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from hypermedia_kernel.domain.clock import DeterministicClock
from hypermedia_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from hypermedia_kernel.services.resource_store import ResourceStore
from hypermedia_kernel.storage.memory import InMemoryStorage
from hypermedia_kernel.storage.sql import SqlAlchemyStorage

LEAVE_FIELDS = {
    "employee": "ada",
    "from": "2026-03-02",
    "to": "2026-03-06",
    "reason": "conference",
}


def pytest_configure(config):
    config.addinivalue_line("markers", "postgres: needs DATABASE_URL pointing at PostgreSQL")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _json_logging():
    """Kernel logs go to stderr as JSON at DEBUG for the whole run."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _fresh_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


class _RecordingHandler(logging.Handler):
    """Keeps every formatted record, parsed back into a dict."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.setFormatter(StructuredFormatter())
        self.records: list[dict] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(json.loads(self.format(record)))


@pytest.fixture
def captured_logs():
    """
    Records logged under ``hypermedia_kernel`` while the test runs.

    Call the fixture value to get a snapshot list::

        store.create(...)
        assert any(r["message"] == "resource_created" for r in captured_logs())
    """
    handler = _RecordingHandler()
    kernel_logger = logging.getLogger("hypermedia_kernel")
    saved_level = kernel_logger.level
    kernel_logger.setLevel(logging.DEBUG)
    kernel_logger.addHandler(handler)
    yield lambda: list(handler.records)
    kernel_logger.removeHandler(handler)
    kernel_logger.setLevel(saved_level)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture(scope="session")
def registry():
    """Registry compiled from the shipped YAML sets."""
    return load_registry()


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def leave_fields():
    return dict(LEAVE_FIELDS)


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture
def memory_storage():
    return InMemoryStorage()


@pytest.fixture
def store(registry, memory_storage, clock):
    """ResourceStore over in-memory storage."""
    return ResourceStore(registry, memory_storage, clock)


@pytest.fixture
def sql_session_factory():
    """Fresh schema per test on DATABASE_URL (default: in-memory SQLite)."""
    init_engine_from_url(os.environ.get("DATABASE_URL", "sqlite://"))
    create_tables()
    yield get_session_factory()
    drop_tables()
    reset_engine()


@pytest.fixture
def sql_storage(sql_session_factory):
    return SqlAlchemyStorage(sql_session_factory)


@pytest.fixture
def sql_store(registry, sql_storage, clock):
    """ResourceStore over SQLAlchemy storage."""
    return ResourceStore(registry, sql_storage, clock)


@pytest.fixture(params=["memory", "sql"])
def any_store(request, registry, clock):
    """The same store contract over every storage backend."""
    if request.param == "memory":
        return ResourceStore(registry, InMemoryStorage(), clock)
    return ResourceStore(registry, request.getfixturevalue("sql_storage"), clock)
