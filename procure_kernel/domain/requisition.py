"""
Requisition value types.

``RequisitionSnapshot`` is what the rule evaluator sees: a frozen view of
the requisition attributes at evaluation time.  Persistent state lives in
``procure_kernel.models.requisition``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class UrgencyLevel(str, Enum):
    ROUTINE = "ROUTINE"
    URGENT = "URGENT"
    EMERGENCY = "EMERGENCY"


class CriticalityLevel(str, Enum):
    ROUTINE = "ROUTINE"
    OPERATIONAL_CRITICAL = "OPERATIONAL_CRITICAL"
    SAFETY_CRITICAL = "SAFETY_CRITICAL"


class BudgetHierarchy(str, Enum):
    VESSEL = "VESSEL"
    FLEET = "FLEET"
    COMPANY = "COMPANY"


CRITICALITY_RANK: dict[CriticalityLevel, int] = {
    CriticalityLevel.ROUTINE: 0,
    CriticalityLevel.OPERATIONAL_CRITICAL: 1,
    CriticalityLevel.SAFETY_CRITICAL: 2,
}


@dataclass(frozen=True)
class RequisitionSnapshot:
    """Frozen requisition attributes handed to the rule evaluator.

    ``as_fields()`` is the namespace rule conditions resolve against.
    Dotted paths reach into ``metadata``.
    """

    requisition_id: UUID
    vessel_id: str
    requester_id: UUID
    requester_role: str
    amount: Decimal
    currency: str
    urgency_level: UrgencyLevel
    criticality_level: CriticalityLevel
    item_categories: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    def as_fields(self) -> dict[str, Any]:
        return {
            "requisition_id": str(self.requisition_id),
            "vessel_id": self.vessel_id,
            "requester_id": str(self.requester_id),
            "requester_role": self.requester_role,
            "amount": self.amount,
            "total_amount": self.amount,
            "currency": self.currency,
            "urgency_level": self.urgency_level.value,
            "criticality_level": self.criticality_level.value,
            "item_categories": list(self.item_categories),
            "metadata": self.metadata,
        }
