"""
PolicyStore -- database-managed workflow rules and thresholds.

Responsibility:
    Persists workflow rules and threshold bands edited at runtime and folds
    them into a ``PolicySnapshot`` on top of the YAML base configuration.
    The resulting snapshot is handed to ``reconfigure()`` on the services;
    nothing here mutates a live snapshot.

Architecture position:
    Kernel > Services.  Reads and writes ``workflow_rules`` and
    ``approval_thresholds``.

Invariants enforced:
    - Stored rules are parsed leniently.  A malformed row becomes a rule
      carrying ``defect`` that the evaluator skips and reports.
    - Rules are saved in strict form, so malformed input is rejected at
      write time with ValidationError.
    - Stored thresholds, when any are active, replace the base table as a
      whole.  A table is checked for contiguity and overlap before it is
      written.
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from procure_kernel.domain.policy import (
    ApprovalThreshold,
    PolicySnapshot,
    WorkflowRule,
    check_threshold_table,
    parse_rule,
)
from procure_kernel.exceptions import ConfigurationError
from procure_kernel.logging_config import get_logger
from procure_kernel.models.policy import ApprovalThresholdModel, WorkflowRuleModel

logger = get_logger("services.policy_store")


class PolicyStore:
    """Loads and saves runtime-managed policy rows.  Never commits."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def load_rules(self) -> tuple[WorkflowRule, ...]:
        """Every stored rule, active or not, in insertion order."""
        rows = self._session.execute(
            select(WorkflowRuleModel).order_by(
                WorkflowRuleModel.sort_order, WorkflowRuleModel.rule_id
            )
        ).scalars()
        rules = tuple(row.to_dto() for row in rows)
        for rule in rules:
            if rule.defect:
                logger.warning(
                    "stored_rule_defective",
                    extra={"rule_id": rule.rule_id, "defect": rule.defect},
                )
        return rules

    def load_thresholds(self) -> tuple[ApprovalThreshold, ...]:
        rows = self._session.execute(
            select(ApprovalThresholdModel)
            .where(ApprovalThresholdModel.is_active.is_(True))
            .order_by(ApprovalThresholdModel.currency, ApprovalThresholdModel.min_amount)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    def build_snapshot(self, base: PolicySnapshot) -> PolicySnapshot:
        """
        ``base`` with stored rules appended and stored thresholds swapped in.

        Stored rules with a ``rule_id`` already in ``base`` replace the base
        rule in place.
        """
        stored = self.load_rules()
        by_id = {rule.rule_id: rule for rule in stored}
        rules = [by_id.pop(rule.rule_id, rule) for rule in base.rules]
        rules.extend(rule for rule in stored if rule.rule_id in by_id)

        snapshot = base.with_rules(tuple(rules))
        thresholds = self.load_thresholds()
        if thresholds:
            snapshot = snapshot.with_thresholds(thresholds)

        logger.info(
            "policy_snapshot_built",
            extra={
                "policy_name": snapshot.name,
                "checksum": snapshot.checksum,
                "stored_rules": len(stored),
                "stored_thresholds": len(thresholds),
            },
        )
        return snapshot

    def save_rule(self, raw: Mapping[str, Any] | WorkflowRule) -> WorkflowRule:
        """Insert or replace a rule.  Mapping input is parsed strictly."""
        rule = raw if isinstance(raw, WorkflowRule) else parse_rule(raw)
        existing = self._session.execute(
            select(WorkflowRuleModel).where(WorkflowRuleModel.rule_id == rule.rule_id)
        ).scalar_one_or_none()

        replacement = WorkflowRuleModel.from_dto(rule)
        if existing is None:
            last = self._session.execute(
                select(func.max(WorkflowRuleModel.sort_order))
            ).scalar_one_or_none()
            replacement.sort_order = (last or 0) + 1
            self._session.add(replacement)
        else:
            existing.name = replacement.name
            existing.priority = replacement.priority
            existing.is_active = replacement.is_active
            existing.conditions = replacement.conditions
            existing.actions = replacement.actions
        self._session.flush()

        logger.info(
            "workflow_rule_saved",
            extra={"rule_id": rule.rule_id, "created": existing is None},
        )
        return rule

    def set_rule_active(self, rule_id: str, is_active: bool) -> bool:
        row = self._session.execute(
            select(WorkflowRuleModel).where(WorkflowRuleModel.rule_id == rule_id)
        ).scalar_one_or_none()
        if row is None:
            return False
        row.is_active = is_active
        self._session.flush()
        return True

    def save_thresholds(self, thresholds: tuple[ApprovalThreshold, ...]) -> None:
        """
        Deactivate the stored table and insert ``thresholds`` as the new one.

        Raises:
            ConfigurationError: the bands overlap, leave a gap, or are
                otherwise malformed.  Nothing is written.
        """
        errors, warnings = check_threshold_table(thresholds)
        if errors:
            logger.warning(
                "approval_thresholds_rejected",
                extra={"count": len(thresholds), "errors": errors},
            )
            raise ConfigurationError(errors)
        for msg in warnings:
            logger.warning("approval_thresholds_warning", extra={"warning": msg})

        for row in self._session.execute(select(ApprovalThresholdModel)).scalars():
            row.is_active = False
        self._session.flush()

        for threshold in thresholds:
            row = self._session.execute(
                select(ApprovalThresholdModel).where(
                    ApprovalThresholdModel.threshold_id == threshold.threshold_id
                )
            ).scalar_one_or_none()
            replacement = ApprovalThresholdModel.from_dto(threshold)
            if row is None:
                self._session.add(replacement)
            else:
                for attr in (
                    "min_amount",
                    "max_amount",
                    "currency",
                    "required_role",
                    "approver_level",
                    "budget_hierarchy",
                    "cost_center_required",
                ):
                    setattr(row, attr, getattr(replacement, attr))
                row.is_active = True
        self._session.flush()
        logger.info("approval_thresholds_saved", extra={"count": len(thresholds)})
