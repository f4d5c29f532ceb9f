"""
Emergency override value types.

An override lets a vessel officer bypass normal approval for a limited
time when safety or operations are at stake.  It is tied to one user and
one vessel, expires on its own, and may need sign-off from shore
afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from procure_kernel.domain.principal import UserRole
from procure_kernel.domain.requisition import CriticalityLevel, UrgencyLevel

# Roles allowed to post-approve an emergency override.
POST_APPROVER_ROLES: frozenset[UserRole] = frozenset({
    UserRole.SUPERINTENDENT,
    UserRole.PROCUREMENT_MANAGER,
    UserRole.ADMIN,
})


@dataclass(frozen=True)
class EmergencyOverride:
    """Snapshot of an emergency override record."""

    override_id: UUID
    user_id: UUID
    vessel_id: str
    reason: str
    urgency_level: UrgencyLevel
    criticality_level: CriticalityLevel
    requester_role: UserRole
    created_at: datetime
    expires_at: datetime
    is_active: bool
    requires_post_approval: bool
    max_amount: Decimal | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    post_approval_reason: str | None = None
    deactivated_at: datetime | None = None
    deactivation_reason: str | None = None

    @property
    def is_post_approved(self) -> bool:
        return self.approved_by is not None

    @property
    def awaiting_post_approval(self) -> bool:
        return self.requires_post_approval and self.approved_by is None

    def is_effective(self, now: datetime) -> bool:
        return self.is_active and self.expires_at > now

    def propagation_headers(self) -> dict[str, str]:
        """Response headers the HTTP layer attaches to a granted override."""
        return {
            "X-Emergency-Access": "true",
            "X-Emergency-Override-Id": str(self.override_id),
            "X-Emergency-Expires": self.expires_at.isoformat(),
            "X-Post-Approval-Required": str(self.requires_post_approval).lower(),
        }
