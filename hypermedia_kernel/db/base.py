"""
Declarative base shared by the resource, history and sub-resource tables.

Column conventions:
    - ids are UUIDs stored as ``String(36)`` so the same schema runs on
      PostgreSQL and SQLite;
    - ``datetime`` columns are timezone-aware;
    - ``int`` columns (versions, seqs, positions) are BIGINT;
    - ``dict`` columns (resource fields, event changes) are JSON.

Constraint names follow ``NAMING_CONVENTION`` so migrations can refer to
them deterministically.

This module imports nothing else from the kernel.
"""

from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import JSON, BigInteger, DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUID column stored as its canonical 36-character string."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> str | None:
        if value is None:
            return None
        # str input is normalised through UUID so malformed ids fail early
        return str(value if isinstance(value, PyUUID) else PyUUID(str(value)))

    def process_result_value(self, value: Any, dialect: Any) -> PyUUID | None:
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """
    Base for every kernel table.

    ``id`` defaults to a fresh uuid4.  ``ResourceRecord`` rows always get
    the id minted by ``ResourceStore``; history and sub-resource rows keep
    the default surrogate key (sub-resources reuse their domain id).
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
        dict: JSON,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


UUID = PyUUID
