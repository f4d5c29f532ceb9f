"""
procure_engines.routing -- Pure requisition routing engine.

Responsibility:
    Turn a requisition snapshot plus a policy snapshot into a
    ``RoutingDecision``: auto-approve, require approval at a given role and
    level, escalate, or bypass.  Also answers "may this principal approve at
    this level".

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock.  The remaining
    budget is looked up by the caller and passed in.

Order of evaluation:
    1. Workflow rules (see ``procure_engines.rules``).  The first matching
       rule's first non-NOTIFY action decides; its NOTIFY actions ride
       along.  A rule with only NOTIFY actions falls through to step 2
       with its notifications kept.
    2. Threshold table, in the requisition currency only (no conversion):
       the band ``[min_amount, max_amount)`` holding the amount.
    3. Urgency modifier on approvals: escalation delay (24h / 2h / 1h by
       default) and a note on the reason.
    4. Budget hierarchy: when ``remaining_budget`` is known and the amount
       exceeds it, a VESSEL approval moves to FLEET (PROCUREMENT_MANAGER,
       level >= 2) and a FLEET approval to COMPANY (FINANCE_TEAM,
       level >= 3).

Failure modes:
    - NoApplicableThresholdError when no band in the currency covers the
      amount.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from decimal import Decimal

from procure_engines.rules import select_rule
from procure_engines.tracer import traced_engine
from procure_kernel.domain.approval import DecisionSource, RoutingDecision
from procure_kernel.domain.policy import (
    ActionType,
    ApprovalThreshold,
    EscalateAction,
    NotifyAction,
    PolicySnapshot,
    RequireApprovalAction,
    RuleAction,
    WorkflowRule,
)
from procure_kernel.domain.principal import (
    MAX_APPROVER_LEVEL,
    Principal,
    UserRole,
    role_level,
)
from procure_kernel.domain.requisition import (
    CRITICALITY_RANK,
    BudgetHierarchy,
    CriticalityLevel,
    RequisitionSnapshot,
)
from procure_kernel.exceptions import NoApplicableThresholdError


def find_threshold(
    thresholds: Iterable[ApprovalThreshold],
    amount: Decimal,
    currency: str,
) -> ApprovalThreshold:
    """The band in ``currency`` whose ``[min_amount, max_amount)`` holds ``amount``."""
    for threshold in sorted(
        (t for t in thresholds if t.currency == currency), key=lambda t: t.min_amount
    ):
        if threshold.contains(amount):
            return threshold
    raise NoApplicableThresholdError(amount, currency)


def highest_criticality(levels: Iterable[CriticalityLevel | str]) -> CriticalityLevel:
    """Most severe criticality among ``levels``; ROUTINE when empty."""
    result = CriticalityLevel.ROUTINE
    for level in levels:
        level = CriticalityLevel(level)
        if CRITICALITY_RANK[level] > CRITICALITY_RANK[result]:
            result = level
    return result


def validate_approver_authority(
    principal: Principal,
    required_role: str | None,
    required_level: int,
) -> bool:
    """True when ``principal`` may decide at ``required_level``.

    ADMIN always may.  Otherwise the principal must be active and either
    hold the required role or sit at or above the required level.
    """
    if not principal.is_active:
        return False
    if principal.role is UserRole.ADMIN:
        return True
    if required_role is not None and principal.role.value == required_role:
        return True
    return principal.level >= max(required_level, 1)


def _apply_urgency(
    decision: RoutingDecision,
    requisition: RequisitionSnapshot,
    snapshot: PolicySnapshot,
) -> RoutingDecision:
    if decision.auto_approved:
        return decision
    modifier = snapshot.urgency_modifier(requisition.urgency_level)
    delay = decision.escalation_delay_hours
    if delay is None:
        delay = snapshot.escalation_delay_hours(requisition.urgency_level)
    reason = decision.reason
    if modifier is not None and modifier.note:
        reason = f"{reason} ({modifier.note})"
    return replace(decision, escalation_delay_hours=delay, reason=reason)


def _apply_budget_hierarchy(
    decision: RoutingDecision,
    requisition: RequisitionSnapshot,
    remaining_budget: Decimal | None,
) -> RoutingDecision:
    if decision.auto_approved or remaining_budget is None:
        return decision
    if requisition.amount <= remaining_budget:
        return decision

    if decision.budget_hierarchy is BudgetHierarchy.VESSEL:
        return replace(
            decision,
            budget_hierarchy=BudgetHierarchy.FLEET,
            approver_role=UserRole.PROCUREMENT_MANAGER.value,
            approver_level=max(decision.approver_level or 1, 2),
            reason=f"{decision.reason} (Escalated to FLEET - vessel budget exceeded)",
            budget_escalated=True,
        )
    if decision.budget_hierarchy is BudgetHierarchy.FLEET:
        return replace(
            decision,
            budget_hierarchy=BudgetHierarchy.COMPANY,
            approver_role=UserRole.FINANCE_TEAM.value,
            approver_level=max(decision.approver_level or 2, 3),
            reason=f"{decision.reason} (Escalated to COMPANY - fleet budget exceeded)",
            budget_escalated=True,
        )
    return decision


def _decision_from_threshold(
    threshold: ApprovalThreshold,
    requisition: RequisitionSnapshot,
    **common,
) -> RoutingDecision:
    if threshold.is_auto_approve:
        return RoutingDecision(
            outcome=ActionType.APPROVE,
            source=DecisionSource.THRESHOLD,
            threshold_id=threshold.threshold_id,
            approver_level=0,
            budget_hierarchy=threshold.budget_hierarchy,
            reason=(
                f"Auto-approved: {requisition.amount} {requisition.currency} "
                f"below {threshold.max_amount}"
            ),
            **common,
        )
    return RoutingDecision(
        outcome=ActionType.REQUIRE_APPROVAL,
        source=DecisionSource.THRESHOLD,
        threshold_id=threshold.threshold_id,
        approver_role=threshold.required_role,
        approver_level=threshold.approver_level,
        budget_hierarchy=threshold.budget_hierarchy,
        budget_limit=threshold.max_amount,
        cost_center_required=threshold.cost_center_required,
        reason=(
            f"Amount-based routing: {requisition.amount} {requisition.currency} "
            f"requires {threshold.required_role}"
        ),
        **common,
    )


def _decision_from_action(
    rule: WorkflowRule,
    action: RuleAction,
    requisition: RequisitionSnapshot,
    snapshot: PolicySnapshot,
    **common,
) -> RoutingDecision:
    if action.action_type in (ActionType.APPROVE, ActionType.BYPASS):
        return RoutingDecision(
            outcome=action.action_type,
            source=DecisionSource.RULE,
            rule_id=rule.rule_id,
            reason=action.reason or f"Rule {rule.name}",
            **common,
        )

    assert isinstance(action, (RequireApprovalAction, EscalateAction))
    role = action.approver_role
    level = action.approver_level
    if role is None and level is None:
        threshold = find_threshold(
            snapshot.thresholds, requisition.amount, requisition.currency
        )
        role, level = threshold.required_role, threshold.approver_level
        if isinstance(action, EscalateAction):
            # one level above the band that would normally decide
            level = min(level + 1, MAX_APPROVER_LEVEL)
            role = snapshot.role_for_level(level)
        elif threshold.is_auto_approve:
            role, level = snapshot.role_for_level(1), 1
    elif level is None:
        level = role_level(role)
    elif role is None:
        role = snapshot.role_for_level(level)

    return RoutingDecision(
        outcome=action.action_type,
        source=DecisionSource.RULE,
        rule_id=rule.rule_id,
        approver_role=role,
        approver_level=level,
        budget_hierarchy=snapshot.hierarchy_for_level(level),
        budget_limit=action.budget_limit,
        cost_center=action.cost_center,
        cost_center_required=action.cost_center is not None,
        escalation_delay_hours=action.escalation_delay_hours,
        reason=f"Rule {rule.name}: {action.action_type.value} by {role}",
        **common,
    )


@traced_engine("routing", "1.0", fingerprint_fields=("requisition", "remaining_budget"))
def evaluate_requisition(
    requisition: RequisitionSnapshot,
    snapshot: PolicySnapshot,
    remaining_budget: Decimal | None = None,
) -> RoutingDecision:
    """
    Decide how ``requisition`` is routed under ``snapshot``.

    Raises:
        NoApplicableThresholdError: no rule decided and no threshold band in
            the requisition currency covers the amount.
    """
    fields = requisition.as_fields()
    rule, skipped = select_rule(snapshot.active_rules(), fields)

    notifications: tuple[NotifyAction, ...] = ()
    decisive: RuleAction | None = None
    if rule is not None:
        notifications = tuple(a for a in rule.actions if isinstance(a, NotifyAction))
        decisive = next(
            (a for a in rule.actions if not isinstance(a, NotifyAction)), None
        )

    common = {"notifications": notifications, "skipped_rules": skipped}
    if decisive is not None:
        decision = _decision_from_action(rule, decisive, requisition, snapshot, **common)
    else:
        threshold = find_threshold(
            snapshot.thresholds, requisition.amount, requisition.currency
        )
        decision = _decision_from_threshold(threshold, requisition, **common)

    decision = _apply_urgency(decision, requisition, snapshot)
    return _apply_budget_hierarchy(decision, requisition, remaining_budget)
