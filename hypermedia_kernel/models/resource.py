"""
Module: hypermedia_kernel.models.resource
Responsibility: ORM persistence for the current snapshot of each resource.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``version`` only grows; the storage layer updates a row with
      ``WHERE version = :expected`` so concurrent writers cannot both win.
    - ``state`` mirrors ``fields[state_field]`` of the resource type.
"""

from datetime import datetime

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from hypermedia_kernel.db.base import Base


class ResourceRecord(Base):
    """Current snapshot of one resource (one row per resource id)."""

    __tablename__ = "resources"

    __table_args__ = (
        Index("idx_resource_type_state", "type_name", "state"),
    )

    type_name: Mapped[str] = mapped_column(String(100), nullable=False)

    state: Mapped[str] = mapped_column(String(100), nullable=False)

    fields: Mapped[dict] = mapped_column(JSON, nullable=False)

    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<ResourceRecord {self.type_name}:{self.id} v{self.version} {self.state}>"
