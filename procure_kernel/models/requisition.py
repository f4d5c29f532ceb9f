"""
Module: procure_kernel.models.requisition
Responsibility: ORM persistence for requisitions and their transition log.
Architecture position: Kernel > Models.

Invariants enforced:
    - ``state`` and ``version`` change only through the conditional UPDATE in
      RequisitionWorkflowService, keyed on (id, state, version).
    - RequisitionTransitionModel rows are append-only (ORM listeners) and
      numbered 1..n per requisition.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from procure_kernel.db.base import Base, UUIDString
from procure_kernel.domain.approval import (
    RequisitionRecord,
    RequisitionState,
    TransitionRecord,
)
from procure_kernel.domain.requisition import (
    BudgetHierarchy,
    CriticalityLevel,
    UrgencyLevel,
)


class RequisitionModel(Base):
    """A purchase requisition and its current workflow position."""

    __tablename__ = "requisitions"

    __table_args__ = (
        Index("idx_requisition_state", "state"),
        Index("idx_requisition_vessel", "vessel_id"),
        Index("idx_requisition_parent", "parent_id"),
    )

    vessel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    requester_id: Mapped[UUID] = mapped_column(nullable=False)
    requester_role: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    urgency_level: Mapped[str] = mapped_column(String(20), nullable=False)
    criticality_level: Mapped[str] = mapped_column(String(32), nullable=False)
    item_categories: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    attributes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    state: Mapped[str] = mapped_column(
        String(32), nullable=False, default=RequisitionState.DRAFT.value
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("requisitions.id"), nullable=True
    )
    override_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("emergency_overrides.id"), nullable=True
    )

    approver_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    approver_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    budget_hierarchy: Mapped[str | None] = mapped_column(String(16), nullable=True)
    cost_center_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    decision_due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    requeue_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_by_rule: Mapped[str | None] = mapped_column(String(64), nullable=True)
    decided_by: Mapped[UUID | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Requisition {self.id} {self.state} v{self.version}>"

    def to_dto(self) -> RequisitionRecord:
        return RequisitionRecord(
            requisition_id=self.id,
            vessel_id=self.vessel_id,
            requester_id=self.requester_id,
            requester_role=self.requester_role,
            amount=self.amount,
            currency=self.currency,
            urgency_level=UrgencyLevel(self.urgency_level),
            criticality_level=CriticalityLevel(self.criticality_level),
            state=RequisitionState(self.state),
            version=self.version,
            revision=self.revision,
            item_categories=tuple(self.item_categories or ()),
            attributes=dict(self.attributes or {}),
            parent_id=self.parent_id,
            override_id=self.override_id,
            approver_role=self.approver_role,
            approver_level=self.approver_level,
            budget_hierarchy=(
                BudgetHierarchy(self.budget_hierarchy) if self.budget_hierarchy else None
            ),
            cost_center_required=self.cost_center_required,
            decision_due_at=self.decision_due_at,
            requeue_at=self.requeue_at,
            decided_by_rule=self.decided_by_rule,
            decided_by=self.decided_by,
            decided_at=self.decided_at,
        )


class RequisitionTransitionModel(Base):
    """One append-only entry in a requisition's state history."""

    __tablename__ = "requisition_transitions"

    __table_args__ = (
        UniqueConstraint("requisition_id", "seq", name="uq_transition_requisition_seq"),
        Index("idx_transition_requisition", "requisition_id"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("requisitions.id"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    from_state: Mapped[str] = mapped_column(String(32), nullable=False)
    to_state: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    rule_or_threshold_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<RequisitionTransition {self.requisition_id}#{self.seq} "
            f"{self.from_state}->{self.to_state}>"
        )

    def to_dto(self) -> TransitionRecord:
        return TransitionRecord(
            requisition_id=self.requisition_id,
            seq=self.seq,
            from_state=RequisitionState(self.from_state),
            to_state=RequisitionState(self.to_state),
            actor_id=self.actor_id,
            occurred_at=self.occurred_at,
            rule_or_threshold_id=self.rule_or_threshold_id,
            reason=self.reason,
            payload=dict(self.payload or {}),
        )
