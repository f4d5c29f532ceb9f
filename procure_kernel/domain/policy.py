"""
Policy domain types (``procure_kernel.domain.policy``).

Responsibility
--------------
Pure value objects describing how requisitions are routed: workflow rules
(conditions + actions), the amount threshold table, emergency bypass
entries and the frozen ``PolicySnapshot`` that bundles them.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  Parsed from YAML by
``procure_config`` or from rows by ``PolicyStore``; consumed by
``procure_engines``.

Invariants enforced
-------------------
* Rule actions are a closed set of frozen variants.  Unknown action types
  and condition operators are rejected at parse time with
  ``ValidationError``.
* A ``PolicySnapshot`` never changes after construction.  The ``with_*``
  helpers return a new snapshot with a recomputed checksum.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Union

from procure_kernel.domain.principal import MAX_APPROVER_LEVEL, ROLE_LEVELS, UserRole
from procure_kernel.domain.requisition import (
    BudgetHierarchy,
    CriticalityLevel,
    UrgencyLevel,
)
from procure_kernel.exceptions import ValidationError
from procure_kernel.utils.hashing import hash_payload

AUTO_APPROVE = "AUTO_APPROVE"


# =========================================================================
# Conditions
# =========================================================================


class ConditionOperator(str, Enum):
    EQ = "eq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    CONTAINS = "contains"


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class RuleCondition:
    """One predicate over a requisition field.

    ``logical_operator`` says how this condition combines with the result
    accumulated from the conditions before it.  It is ignored on the first
    condition of a rule.
    """

    field: str
    operator: ConditionOperator
    value: Any
    logical_operator: LogicalOperator = LogicalOperator.AND

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "operator": self.operator.value,
            "value": self.value,
            "logical_operator": self.logical_operator.value,
        }


# =========================================================================
# Actions (closed tagged variant)
# =========================================================================


class ActionType(str, Enum):
    APPROVE = "APPROVE"
    REQUIRE_APPROVAL = "REQUIRE_APPROVAL"
    ESCALATE = "ESCALATE"
    NOTIFY = "NOTIFY"
    BYPASS = "BYPASS"


@dataclass(frozen=True)
class ApproveAction:
    action_type: ClassVar[ActionType] = ActionType.APPROVE
    reason: str | None = None


@dataclass(frozen=True)
class RequireApprovalAction:
    action_type: ClassVar[ActionType] = ActionType.REQUIRE_APPROVAL
    approver_role: str | None = None
    approver_level: int | None = None
    budget_limit: Decimal | None = None
    cost_center: str | None = None
    escalation_delay_hours: float | None = None


@dataclass(frozen=True)
class EscalateAction:
    action_type: ClassVar[ActionType] = ActionType.ESCALATE
    approver_role: str | None = None
    approver_level: int | None = None
    budget_limit: Decimal | None = None
    cost_center: str | None = None
    escalation_delay_hours: float | None = None


@dataclass(frozen=True)
class NotifyAction:
    action_type: ClassVar[ActionType] = ActionType.NOTIFY
    recipients: tuple[str, ...] = ()
    message: str = ""


@dataclass(frozen=True)
class BypassAction:
    action_type: ClassVar[ActionType] = ActionType.BYPASS
    reason: str | None = None


RuleAction = Union[
    ApproveAction, RequireApprovalAction, EscalateAction, NotifyAction, BypassAction
]

_ROUTING_PAYLOAD = (
    "approver_role",
    "approver_level",
    "budget_limit",
    "cost_center",
    "escalation_delay_hours",
)


def _optional_decimal(raw: Any, name: str) -> Decimal | None:
    if raw is None:
        return None
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValidationError(f"not a decimal: {raw!r}", field=name) from exc


def _optional_int(raw: Any, name: str) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise ValidationError(f"not an integer: {raw!r}", field=name)
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"not an integer: {raw!r}", field=name) from exc


def _optional_hours(raw: Any, name: str) -> float | None:
    if raw is None:
        return None
    try:
        hours = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"not a number of hours: {raw!r}", field=name) from exc
    if hours < 0:
        raise ValidationError("must not be negative", field=name)
    return hours


def parse_condition(raw: Mapping[str, Any]) -> RuleCondition:
    """Build a ``RuleCondition`` from its mapping form."""
    field_name = raw.get("field")
    if not field_name or not isinstance(field_name, str):
        raise ValidationError("condition has no field", field="field")
    if "operator" not in raw or raw["operator"] is None:
        raise ValidationError("condition has no operator", field="operator")
    try:
        operator = ConditionOperator(str(raw["operator"]).lower())
    except ValueError as exc:
        raise ValidationError(
            f"unknown operator {raw['operator']!r}", field="operator"
        ) from exc
    try:
        logical = LogicalOperator(str(raw.get("logical_operator") or "AND").upper())
    except ValueError as exc:
        raise ValidationError(
            f"unknown logical operator {raw.get('logical_operator')!r}",
            field="logical_operator",
        ) from exc
    value = raw.get("value")
    if operator is ConditionOperator.IN and not isinstance(
        value, (list, tuple, set, frozenset)
    ):
        raise ValidationError("'in' requires a list value", field="value")
    if isinstance(value, list):
        value = tuple(value)
    return RuleCondition(
        field=field_name, operator=operator, value=value, logical_operator=logical
    )


def parse_action(raw: Mapping[str, Any]) -> RuleAction:
    """Build one of the closed action variants from its mapping form."""
    try:
        action_type = ActionType(str(raw.get("type", "")).upper())
    except ValueError as exc:
        raise ValidationError(
            f"unknown action type {raw.get('type')!r}", field="type"
        ) from exc

    if action_type is ActionType.APPROVE:
        return ApproveAction(reason=raw.get("reason"))
    if action_type is ActionType.BYPASS:
        return BypassAction(reason=raw.get("reason"))
    if action_type is ActionType.NOTIFY:
        recipients = raw.get("recipients") or ()
        if isinstance(recipients, str):
            recipients = (recipients,)
        return NotifyAction(
            recipients=tuple(str(r) for r in recipients),
            message=str(raw.get("message") or ""),
        )

    role = raw.get("approver_role")
    if role is not None:
        try:
            role = UserRole(role).value
        except ValueError as exc:
            raise ValidationError(
                f"unknown approver role {role!r}", field="approver_role"
            ) from exc
    payload = dict(
        approver_role=role,
        approver_level=_optional_int(raw.get("approver_level"), "approver_level"),
        budget_limit=_optional_decimal(raw.get("budget_limit"), "budget_limit"),
        cost_center=raw.get("cost_center"),
        escalation_delay_hours=_optional_hours(
            raw.get("escalation_delay_hours"), "escalation_delay_hours"
        ),
    )
    if action_type is ActionType.REQUIRE_APPROVAL:
        return RequireApprovalAction(**payload)
    return EscalateAction(**payload)


def action_to_dict(action: RuleAction) -> dict[str, Any]:
    data: dict[str, Any] = {"type": action.action_type.value}
    if isinstance(action, NotifyAction):
        data["recipients"] = list(action.recipients)
        data["message"] = action.message
    elif isinstance(action, (ApproveAction, BypassAction)):
        data["reason"] = action.reason
    else:
        for name in _ROUTING_PAYLOAD:
            data[name] = getattr(action, name)
    return data


# =========================================================================
# Rules
# =========================================================================


@dataclass(frozen=True)
class WorkflowRule:
    """A prioritised rule: all-conditions-match selects its actions.

    ``defect`` is set when the rule came from storage in a shape that could
    not be parsed.  Such a rule never matches.
    """

    rule_id: str
    name: str
    priority: int
    conditions: tuple[RuleCondition, ...] = ()
    actions: tuple[RuleAction, ...] = ()
    is_active: bool = True
    defect: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "priority": self.priority,
            "is_active": self.is_active,
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [action_to_dict(a) for a in self.actions],
            "defect": self.defect,
        }


def parse_rule(raw: Mapping[str, Any], *, strict: bool = True) -> WorkflowRule:
    """Build a ``WorkflowRule`` from its mapping form.

    With ``strict=False`` a malformed body yields a rule carrying ``defect``
    instead of raising, so one bad stored row does not take the whole rule
    set down.
    """
    rule_id = str(raw.get("rule_id") or raw.get("id") or "")
    if not rule_id:
        raise ValidationError("rule has no rule_id", field="rule_id")
    name = str(raw.get("name") or rule_id)
    try:
        priority = _optional_int(raw.get("priority", 0), "priority") or 0
    except ValidationError:
        if strict:
            raise
        priority = 0
    is_active = bool(raw.get("is_active", True))

    try:
        conditions = tuple(parse_condition(c) for c in raw.get("conditions") or ())
        actions = tuple(parse_action(a) for a in raw.get("actions") or ())
    except ValidationError as exc:
        if strict:
            raise ValidationError(f"rule {rule_id}: {exc.reason}", exc.field) from exc
        return WorkflowRule(
            rule_id=rule_id,
            name=name,
            priority=priority,
            is_active=is_active,
            defect=str(exc),
        )
    if strict and not actions:
        raise ValidationError(f"rule {rule_id}: no actions", field="actions")
    return WorkflowRule(
        rule_id=rule_id,
        name=name,
        priority=priority,
        conditions=conditions,
        actions=actions,
        is_active=is_active,
    )


# =========================================================================
# Threshold table and emergency bypass
# =========================================================================


@dataclass(frozen=True)
class ApprovalThreshold:
    """One amount band ``[min_amount, max_amount)`` in a single currency."""

    threshold_id: str
    min_amount: Decimal
    max_amount: Decimal | None
    currency: str
    required_role: str
    approver_level: int
    budget_hierarchy: BudgetHierarchy
    cost_center_required: bool = False

    @property
    def is_auto_approve(self) -> bool:
        return self.required_role == AUTO_APPROVE

    def contains(self, amount: Decimal) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount < self.max_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "threshold_id": self.threshold_id,
            "min_amount": self.min_amount,
            "max_amount": self.max_amount,
            "currency": self.currency,
            "required_role": self.required_role,
            "approver_level": self.approver_level,
            "budget_hierarchy": self.budget_hierarchy.value,
            "cost_center_required": self.cost_center_required,
        }


@dataclass(frozen=True)
class EmergencyBypass:
    """Who may bypass approval for an (urgency, criticality) pair, and for how long."""

    urgency_level: UrgencyLevel
    criticality_level: CriticalityLevel
    allowed_roles: frozenset[UserRole]
    requires_post_approval: bool
    expiration_hours: int
    max_amount: Decimal | None = None

    @property
    def key(self) -> tuple[UrgencyLevel, CriticalityLevel]:
        return (self.urgency_level, self.criticality_level)

    def allows(self, role: UserRole | str) -> bool:
        try:
            return UserRole(role) in self.allowed_roles
        except ValueError:
            return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "urgency_level": self.urgency_level.value,
            "criticality_level": self.criticality_level.value,
            "allowed_roles": sorted(r.value for r in self.allowed_roles),
            "requires_post_approval": self.requires_post_approval,
            "expiration_hours": self.expiration_hours,
            "max_amount": self.max_amount,
        }


@dataclass(frozen=True)
class UrgencyModifier:
    """Escalation delay applied to threshold-routed approvals."""

    urgency_level: UrgencyLevel
    escalation_delay_hours: float
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "urgency_level": self.urgency_level.value,
            "escalation_delay_hours": self.escalation_delay_hours,
            "note": self.note,
        }


_DEFAULT_LEVEL_ROLES: dict[int, str] = {
    1: UserRole.SUPERINTENDENT.value,
    2: UserRole.PROCUREMENT_MANAGER.value,
    3: UserRole.FINANCE_TEAM.value,
}

DEFAULT_ESCALATION_DELAY_HOURS = 24.0


# =========================================================================
# Snapshot
# =========================================================================


@dataclass(frozen=True)
class PolicySnapshot:
    """Immutable bundle of rules, thresholds and bypasses.

    Evaluation captures one snapshot reference up front and uses it
    throughout, so a concurrent ``reconfigure`` never yields a mixed view.
    """

    name: str
    version: str
    rules: tuple[WorkflowRule, ...] = ()
    thresholds: tuple[ApprovalThreshold, ...] = ()
    bypasses: tuple[EmergencyBypass, ...] = ()
    urgency_modifiers: tuple[UrgencyModifier, ...] = ()
    compliance_regulation: str = "SOLAS"
    checksum: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if not self.checksum:
            object.__setattr__(self, "checksum", hash_payload(self.to_dict()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "rules": [r.to_dict() for r in self.rules],
            "thresholds": [t.to_dict() for t in self.thresholds],
            "bypasses": [b.to_dict() for b in self.bypasses],
            "urgency_modifiers": [m.to_dict() for m in self.urgency_modifiers],
            "compliance_regulation": self.compliance_regulation,
        }

    def active_rules(self) -> tuple[WorkflowRule, ...]:
        """Active rules, highest priority first; ties keep declaration order."""
        active = [r for r in self.rules if r.is_active]
        return tuple(sorted(active, key=lambda r: -r.priority))

    def thresholds_for(self, currency: str) -> tuple[ApprovalThreshold, ...]:
        return tuple(
            sorted(
                (t for t in self.thresholds if t.currency == currency),
                key=lambda t: t.min_amount,
            )
        )

    def find_bypass(
        self, urgency_level: UrgencyLevel | str, criticality_level: CriticalityLevel | str
    ) -> EmergencyBypass | None:
        key = (UrgencyLevel(urgency_level), CriticalityLevel(criticality_level))
        for bypass in self.bypasses:
            if bypass.key == key:
                return bypass
        return None

    def urgency_modifier(self, urgency_level: UrgencyLevel) -> UrgencyModifier | None:
        for modifier in self.urgency_modifiers:
            if modifier.urgency_level == urgency_level:
                return modifier
        return None

    def escalation_delay_hours(self, urgency_level: UrgencyLevel) -> float:
        modifier = self.urgency_modifier(urgency_level)
        if modifier is None:
            return DEFAULT_ESCALATION_DELAY_HOURS
        return modifier.escalation_delay_hours

    def role_for_level(self, level: int) -> str | None:
        """Approver role that sits at ``level`` in the threshold table."""
        for threshold in sorted(self.thresholds, key=lambda t: t.min_amount):
            if not threshold.is_auto_approve and threshold.approver_level == level:
                return threshold.required_role
        return _DEFAULT_LEVEL_ROLES.get(level)

    def hierarchy_for_level(self, level: int) -> BudgetHierarchy:
        for threshold in self.thresholds:
            if not threshold.is_auto_approve and threshold.approver_level == level:
                return threshold.budget_hierarchy
        if level >= 3:
            return BudgetHierarchy.COMPANY
        if level == 2:
            return BudgetHierarchy.FLEET
        return BudgetHierarchy.VESSEL

    def with_rules(self, rules: tuple[WorkflowRule, ...]) -> PolicySnapshot:
        return replace(self, rules=tuple(rules), checksum="")

    def with_thresholds(
        self, thresholds: tuple[ApprovalThreshold, ...]
    ) -> PolicySnapshot:
        return replace(self, thresholds=tuple(thresholds), checksum="")

    def with_bypasses(self, bypasses: tuple[EmergencyBypass, ...]) -> PolicySnapshot:
        return replace(self, bypasses=tuple(bypasses), checksum="")


def known_role(name: str) -> bool:
    return name == AUTO_APPROVE or name in {r.value for r in ROLE_LEVELS}


def check_threshold_table(
    thresholds: Iterable[ApprovalThreshold],
) -> tuple[list[str], list[str]]:
    """
    Check a threshold table.  Returns ``(errors, warnings)``.

    Errors: duplicate ids, unknown roles, levels outside 0..3, empty bands,
    and per currency any overlap, gap or unbounded band that is not last.
    A lowest band starting above 0 is only a warning.
    """
    errors: list[str] = []
    warnings: list[str] = []
    seen: set[str] = set()
    by_currency: dict[str, list[ApprovalThreshold]] = defaultdict(list)

    for threshold in thresholds:
        if threshold.threshold_id in seen:
            errors.append(f"duplicate threshold_id '{threshold.threshold_id}'")
        seen.add(threshold.threshold_id)
        if not known_role(threshold.required_role):
            errors.append(
                f"threshold {threshold.threshold_id}: unknown role "
                f"'{threshold.required_role}'"
            )
        if not 0 <= threshold.approver_level <= MAX_APPROVER_LEVEL:
            errors.append(
                f"threshold {threshold.threshold_id}: approver_level "
                f"{threshold.approver_level} outside 0..{MAX_APPROVER_LEVEL}"
            )
        if threshold.max_amount is not None and threshold.max_amount <= threshold.min_amount:
            errors.append(
                f"threshold {threshold.threshold_id}: max_amount must exceed min_amount"
            )
        by_currency[threshold.currency].append(threshold)

    for currency, bands in by_currency.items():
        bands.sort(key=lambda t: t.min_amount)
        if bands[0].min_amount != 0:
            warnings.append(
                f"{currency}: lowest threshold starts at {bands[0].min_amount}, not 0"
            )
        for prev, nxt in zip(bands, bands[1:]):
            if prev.max_amount is None:
                errors.append(
                    f"{currency}: unbounded threshold {prev.threshold_id} is not last"
                )
            elif nxt.min_amount < prev.max_amount:
                errors.append(
                    f"{currency}: thresholds {prev.threshold_id} and "
                    f"{nxt.threshold_id} overlap"
                )
            elif nxt.min_amount > prev.max_amount:
                errors.append(
                    f"{currency}: gap between {prev.threshold_id} and {nxt.threshold_id}"
                )
    return errors, warnings
