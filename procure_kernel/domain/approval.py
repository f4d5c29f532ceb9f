"""
Requisition approval lifecycle (``procure_kernel.domain.approval``).

Responsibility
--------------
The requisition state machine, the routing decision the rule evaluator
produces, and the DTO for one recorded transition.

Invariants enforced
-------------------
* ``REQUISITION_TRANSITIONS`` defines the only valid state changes.
  Terminal states have no outgoing edges.
* A requisition in EMERGENCY_BYPASSED closes only once its override has
  been post-approved (checked by the workflow service).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from procure_kernel.domain.policy import ActionType, NotifyAction
from procure_kernel.domain.requisition import (
    BudgetHierarchy,
    CriticalityLevel,
    RequisitionSnapshot,
    UrgencyLevel,
)


class RequisitionState(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    AUTO_APPROVED = "AUTO_APPROVED"
    AWAITING_APPROVAL = "AWAITING_APPROVAL"
    EMERGENCY_BYPASSED = "EMERGENCY_BYPASSED"
    ESCALATED = "ESCALATED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CLOSED = "CLOSED"


REQUISITION_TRANSITIONS: dict[RequisitionState, frozenset[RequisitionState]] = {
    RequisitionState.DRAFT: frozenset({RequisitionState.SUBMITTED}),
    RequisitionState.SUBMITTED: frozenset({
        RequisitionState.AUTO_APPROVED,
        RequisitionState.AWAITING_APPROVAL,
        RequisitionState.EMERGENCY_BYPASSED,
        RequisitionState.ESCALATED,
    }),
    RequisitionState.AWAITING_APPROVAL: frozenset({
        RequisitionState.APPROVED,
        RequisitionState.REJECTED,
        RequisitionState.ESCALATED,
    }),
    RequisitionState.ESCALATED: frozenset({
        RequisitionState.AWAITING_APPROVAL,
        RequisitionState.APPROVED,
        RequisitionState.REJECTED,
    }),
    RequisitionState.AUTO_APPROVED: frozenset({RequisitionState.CLOSED}),
    RequisitionState.EMERGENCY_BYPASSED: frozenset({RequisitionState.CLOSED}),
    RequisitionState.APPROVED: frozenset(),
    RequisitionState.REJECTED: frozenset(),
    RequisitionState.CLOSED: frozenset(),
}

TERMINAL_STATES: frozenset[RequisitionState] = frozenset({
    RequisitionState.APPROVED,
    RequisitionState.REJECTED,
    RequisitionState.CLOSED,
})

# States in which an approver may act.
DECIDABLE_STATES: frozenset[RequisitionState] = frozenset({
    RequisitionState.AWAITING_APPROVAL,
    RequisitionState.ESCALATED,
})


def can_transition(from_state: RequisitionState, to_state: RequisitionState) -> bool:
    return to_state in REQUISITION_TRANSITIONS.get(from_state, frozenset())


class DecisionSource(str, Enum):
    RULE = "RULE"
    THRESHOLD = "THRESHOLD"


@dataclass(frozen=True)
class SkippedRule:
    rule_id: str
    reason: str


@dataclass(frozen=True)
class RoutingDecision:
    """What the rule evaluator decided for one requisition."""

    outcome: ActionType
    source: DecisionSource
    rule_id: str | None = None
    threshold_id: str | None = None
    approver_role: str | None = None
    approver_level: int = 0
    budget_hierarchy: BudgetHierarchy | None = None
    budget_limit: Decimal | None = None
    cost_center: str | None = None
    cost_center_required: bool = False
    escalation_delay_hours: float | None = None
    notifications: tuple[NotifyAction, ...] = ()
    reason: str = ""
    skipped_rules: tuple[SkippedRule, ...] = ()
    budget_escalated: bool = False

    @property
    def rule_or_threshold_id(self) -> str | None:
        return self.rule_id if self.source is DecisionSource.RULE else self.threshold_id

    @property
    def auto_approved(self) -> bool:
        return self.outcome in (ActionType.APPROVE, ActionType.BYPASS)

    def to_payload(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "source": self.source.value,
            "rule_id": self.rule_id,
            "threshold_id": self.threshold_id,
            "approver_role": self.approver_role,
            "approver_level": self.approver_level,
            "budget_hierarchy": (
                self.budget_hierarchy.value if self.budget_hierarchy else None
            ),
            "budget_limit": str(self.budget_limit) if self.budget_limit is not None else None,
            "cost_center_required": self.cost_center_required,
            "escalation_delay_hours": self.escalation_delay_hours,
            "skipped_rules": [s.rule_id for s in self.skipped_rules],
            "budget_escalated": self.budget_escalated,
        }


@dataclass(frozen=True)
class RequisitionRecord:
    """Snapshot of a persisted requisition and its workflow position."""

    requisition_id: UUID
    vessel_id: str
    requester_id: UUID
    requester_role: str
    amount: Decimal
    currency: str
    urgency_level: UrgencyLevel
    criticality_level: CriticalityLevel
    state: RequisitionState
    version: int
    revision: int
    item_categories: tuple[str, ...] = ()
    attributes: dict[str, Any] = field(default_factory=dict)
    parent_id: UUID | None = None
    override_id: UUID | None = None
    approver_role: str | None = None
    approver_level: int | None = None
    budget_hierarchy: BudgetHierarchy | None = None
    cost_center_required: bool = False
    decision_due_at: datetime | None = None
    requeue_at: datetime | None = None
    decided_by_rule: str | None = None
    decided_by: UUID | None = None
    decided_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_snapshot(self) -> RequisitionSnapshot:
        return RequisitionSnapshot(
            requisition_id=self.requisition_id,
            vessel_id=self.vessel_id,
            requester_id=self.requester_id,
            requester_role=self.requester_role,
            amount=self.amount,
            currency=self.currency,
            urgency_level=self.urgency_level,
            criticality_level=self.criticality_level,
            item_categories=self.item_categories,
            metadata=dict(self.attributes),
        )


@dataclass(frozen=True)
class TransitionRecord:
    """One recorded state change. Immutable."""

    requisition_id: UUID
    seq: int
    from_state: RequisitionState
    to_state: RequisitionState
    actor_id: UUID | None
    occurred_at: datetime
    rule_or_threshold_id: str | None = None
    reason: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
