"""
Module: hypermedia_kernel.models.subresource
Responsibility: ORM persistence for items appended to a resource's
    named collections.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only (ORM listeners in db/immutability.py).
    - ``(parent_id, collection, position)`` is unique; positions count
      from 1 in append order.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hypermedia_kernel.db.base import Base, UUIDString


class SubresourceRecord(Base):
    """One sub-resource row."""

    __tablename__ = "subresources"

    __table_args__ = (
        UniqueConstraint(
            "parent_id", "collection", "position", name="uq_subresource_position"
        ),
    )

    parent_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)

    collection: Mapped[str] = mapped_column(String(100), nullable=False)

    fields: Mapped[dict] = mapped_column(JSON, nullable=False)

    position: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_by: Mapped[str] = mapped_column(String(200), nullable=False)

    def __repr__(self) -> str:
        return f"<SubresourceRecord {self.parent_id}/{self.collection}#{self.position}>"
