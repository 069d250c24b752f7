"""Tests for engine and session management (``hypermedia_kernel.db.engine``)."""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from hypermedia_kernel.db.base import UUIDString
from hypermedia_kernel.db.engine import (
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from hypermedia_kernel.models.resource import ResourceRecord


class TestEngineLifecycle:
    def test_accessors_need_init(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_reinit_replaces_engine(self, sql_session_factory):
        first = get_engine()
        second = init_engine_from_url("sqlite://")
        assert second is not first
        assert get_engine() is second

    def test_in_memory_sqlite_shares_one_connection(self, sql_session_factory):
        assert get_engine().pool.__class__.__name__ == "StaticPool"


class TestSessionScope:
    def _resource_row(self, clock):
        now = clock.now()
        return ResourceRecord(
            id=uuid4(),
            type_name="note",
            state="open",
            fields={"status": "open"},
            version=1,
            created_at=now,
            updated_at=now,
        )

    def _count(self, factory):
        with session_scope(factory) as session:
            return session.scalar(select(func.count()).select_from(ResourceRecord))

    def test_commits(self, sql_session_factory, clock):
        with session_scope(sql_session_factory) as session:
            session.add(self._resource_row(clock))
        assert self._count(sql_session_factory) == 1

    def test_rolls_back_and_reraises(self, sql_session_factory, clock):
        with pytest.raises(RuntimeError, match="abort"):
            with session_scope(sql_session_factory) as session:
                session.add(self._resource_row(clock))
                session.flush()
                raise RuntimeError("abort")
        assert self._count(sql_session_factory) == 0


class TestUUIDString:
    def test_bind_normalises_strings(self):
        uid = uuid4()
        column = UUIDString()
        assert column.process_bind_param(str(uid).upper(), None) == str(uid)
        assert column.process_bind_param(uid, None) == str(uid)
        assert column.process_bind_param(None, None) is None

    def test_malformed_rejected(self):
        with pytest.raises(ValueError):
            UUIDString().process_bind_param("not-a-uuid", None)

    def test_result_is_uuid(self):
        uid = uuid4()
        assert UUIDString().process_result_value(str(uid), None) == uid
