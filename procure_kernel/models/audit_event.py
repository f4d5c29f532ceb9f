"""
Module: procure_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident security/compliance
    audit chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners).
    - hash = H(seq | category | action | resource | payload_hash | prev_hash),
      validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from procure_kernel.db.base import Base, UUIDString


class AuditEvent(Base):
    """
    One security or compliance event in the hash chain.

    Security events carry a severity; compliance events carry a regulation
    tag, the vessel and a compliance status.  The model does not check hash
    correctness on INSERT; AuditorService does.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_category_action", "category", "action"),
        Index("idx_audit_resource", "resource"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # SECURITY or COMPLIANCE
    category: Mapped[str] = mapped_column(String(20), nullable=False)

    action: Mapped[str] = mapped_column(String(64), nullable=False)

    # e.g. "emergency_override:<id>", "requisition:<id>"
    resource: Mapped[str] = mapped_column(String(128), nullable=False)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    severity: Mapped[str | None] = mapped_column(String(16), nullable=True)

    regulation: Mapped[str | None] = mapped_column(String(32), nullable=True)

    vessel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    compliance_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Null only for the genesis event
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.category}:{self.action} on {self.resource}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
