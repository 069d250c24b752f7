"""
Module: hypermedia_kernel.models.history_event
Responsibility: ORM persistence for the per-resource, hash-chained history.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listeners in db/immutability.py).
    - ``(resource_id, seq)`` is unique, so two writers racing for the same
      slot cannot both commit.
    - hash = H(resource_id | seq | kind | version | payload_hash | prev_hash).

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError on a duplicate ``(resource_id, seq)``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hypermedia_kernel.db.base import Base, UUIDString


class HistoryEventRecord(Base):
    """
    One history event with its chain hash.

    Non-goals:
        - This model does NOT check hash correctness at INSERT time;
          that is the responsibility of ``HistoryLog``.
    """

    __tablename__ = "history_events"

    __table_args__ = (
        UniqueConstraint("resource_id", "seq", name="uq_history_resource_seq"),
        Index("idx_history_resource", "resource_id"),
    )

    resource_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    kind: Mapped[str] = mapped_column(String(50), nullable=False)

    actor: Mapped[str] = mapped_column(String(200), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Resource version produced by the operation that logged this event
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    operation_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    from_state: Mapped[str | None] = mapped_column(String(100), nullable=True)

    to_state: Mapped[str | None] = mapped_column(String(100), nullable=True)

    changes: Mapped[dict] = mapped_column(JSON, nullable=False)

    subresource_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<HistoryEventRecord {self.resource_id}#{self.seq} {self.kind}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
