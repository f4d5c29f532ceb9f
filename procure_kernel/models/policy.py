"""
Module: procure_kernel.models.policy
Responsibility: ORM persistence for workflow rules and approval thresholds
    managed at runtime (as opposed to the YAML policy set).
Architecture position: Kernel > Models.  Loaded into a PolicySnapshot by
    PolicyStore; never read directly by the evaluator.
"""

from decimal import Decimal

from sqlalchemy import JSON, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from procure_kernel.db.base import Base
from procure_kernel.domain.policy import (
    ApprovalThreshold,
    WorkflowRule,
    action_to_dict,
    parse_rule,
)
from procure_kernel.domain.requisition import BudgetHierarchy


def _json_ready(data: dict) -> dict:
    """Plain JSON types for the JSON column.  Decimals become numbers, tuples lists."""
    out = {}
    for key, value in data.items():
        if isinstance(value, Decimal):
            value = int(value) if value == value.to_integral_value() else float(value)
        elif isinstance(value, (tuple, frozenset, set)):
            value = list(value)
        out[key] = value
    return out


class WorkflowRuleModel(Base):
    """Stored workflow rule.  Conditions and actions are kept in mapping form."""

    __tablename__ = "workflow_rules"

    rule_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Insertion order; breaks priority ties.
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    conditions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    actions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<WorkflowRule {self.rule_id} p={self.priority}>"

    def to_dto(self) -> WorkflowRule:
        """Parse leniently: a malformed row becomes a rule that never matches."""
        return parse_rule(
            {
                "rule_id": self.rule_id,
                "name": self.name,
                "priority": self.priority,
                "is_active": self.is_active,
                "conditions": self.conditions,
                "actions": self.actions,
            },
            strict=False,
        )

    @classmethod
    def from_dto(cls, rule: WorkflowRule) -> "WorkflowRuleModel":
        return cls(
            rule_id=rule.rule_id,
            name=rule.name,
            priority=rule.priority,
            is_active=rule.is_active,
            conditions=[_json_ready(c.to_dict()) for c in rule.conditions],
            actions=[_json_ready(action_to_dict(a)) for a in rule.actions],
        )


class ApprovalThresholdModel(Base):
    """Stored threshold band."""

    __tablename__ = "approval_thresholds"

    threshold_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    min_amount: Mapped[Decimal] = mapped_column(nullable=False)
    max_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    required_role: Mapped[str] = mapped_column(String(32), nullable=False)
    approver_level: Mapped[int] = mapped_column(Integer, nullable=False)
    budget_hierarchy: Mapped[str] = mapped_column(String(16), nullable=False)
    cost_center_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return (
            f"<ApprovalThreshold {self.threshold_id} "
            f"[{self.min_amount}, {self.max_amount}) {self.currency}>"
        )

    def to_dto(self) -> ApprovalThreshold:
        return ApprovalThreshold(
            threshold_id=self.threshold_id,
            min_amount=Decimal(self.min_amount),
            max_amount=Decimal(self.max_amount) if self.max_amount is not None else None,
            currency=self.currency,
            required_role=self.required_role,
            approver_level=self.approver_level,
            budget_hierarchy=BudgetHierarchy(self.budget_hierarchy),
            cost_center_required=self.cost_center_required,
        )

    @classmethod
    def from_dto(cls, threshold: ApprovalThreshold) -> "ApprovalThresholdModel":
        return cls(
            threshold_id=threshold.threshold_id,
            min_amount=threshold.min_amount,
            max_amount=threshold.max_amount,
            currency=threshold.currency,
            required_role=threshold.required_role,
            approver_level=threshold.approver_level,
            budget_hierarchy=threshold.budget_hierarchy.value,
            cost_center_required=threshold.cost_center_required,
        )
