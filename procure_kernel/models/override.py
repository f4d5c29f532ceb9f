"""
Module: procure_kernel.models.override
Responsibility: ORM persistence for emergency override grants.
Architecture position: Kernel > Models.

Invariants enforced:
    - is_active only ever goes from true to false.  Deactivation is a
      conditional UPDATE on ``is_active = true`` (OverrideService).
    - Post-approval is recorded at most once: a conditional UPDATE on
      ``approved_by IS NULL``.
    - At most one active row per (user_id, vessel_id) (partial unique index).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from procure_kernel.db.base import Base
from procure_kernel.domain.override import EmergencyOverride
from procure_kernel.domain.principal import UserRole
from procure_kernel.domain.requisition import CriticalityLevel, UrgencyLevel


class EmergencyOverrideModel(Base):
    """A time-boxed approval bypass for one user on one vessel."""

    __tablename__ = "emergency_overrides"

    __table_args__ = (
        Index("idx_override_user_vessel", "user_id", "vessel_id", "is_active"),
        # one active grant per user and vessel
        Index(
            "uq_override_active_user_vessel",
            "user_id",
            "vessel_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index("idx_override_active_expiry", "is_active", "expires_at"),
    )

    user_id: Mapped[UUID] = mapped_column(nullable=False)
    vessel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    urgency_level: Mapped[str] = mapped_column(String(20), nullable=False)
    criticality_level: Mapped[str] = mapped_column(String(32), nullable=False)
    requester_role: Mapped[str] = mapped_column(String(32), nullable=False)
    max_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_post_approval: Mapped[bool] = mapped_column(Boolean, nullable=False)

    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    post_approval_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    deactivated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deactivation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<EmergencyOverride {self.id} user={self.user_id} "
            f"vessel={self.vessel_id} active={self.is_active}>"
        )

    def to_dto(self) -> EmergencyOverride:
        return EmergencyOverride(
            override_id=self.id,
            user_id=self.user_id,
            vessel_id=self.vessel_id,
            reason=self.reason,
            urgency_level=UrgencyLevel(self.urgency_level),
            criticality_level=CriticalityLevel(self.criticality_level),
            requester_role=UserRole(self.requester_role),
            created_at=self.created_at,
            expires_at=self.expires_at,
            is_active=self.is_active,
            requires_post_approval=self.requires_post_approval,
            max_amount=self.max_amount,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            post_approval_reason=self.post_approval_reason,
            deactivated_at=self.deactivated_at,
            deactivation_reason=self.deactivation_reason,
        )
