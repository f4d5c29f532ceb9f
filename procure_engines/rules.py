"""
procure_engines.rules -- Pure workflow-rule matching.

Responsibility:
    Decide whether a rule's conditions hold for a requisition, and pick
    the first matching rule by priority.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Imports only
    procure_kernel.domain types and exceptions.

Semantics:
    - Rules are tried highest ``priority`` first; equal priorities keep
      their declaration order.  First match wins.
    - Conditions fold left to right.  The first condition seeds the result;
      every later condition combines with the running result through its
      own ``logical_operator``.  There is no precedence grouping, so
      ``A OR B AND C`` is ``(A OR B) AND C``.
    - A rule without conditions never matches.
    - eq/gt/gte/lt/lte compare numerically when both sides are numbers and
      lexicographically when both are strings; any other mix is false.
    - ``in``: the field value (or any element of a list field) is a member
      of the condition's value list.
    - ``contains``: substring for strings, element membership for lists.
    - A field that does not resolve makes its condition false.

Failure modes:
    - A malformed rule (``defect`` set, empty field, missing operator) fails
      closed: it is skipped, reported in the returned ``SkippedRule`` list
      and logged at WARNING.  It never approves anything.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from procure_kernel.domain.approval import SkippedRule
from procure_kernel.domain.policy import (
    ConditionOperator,
    LogicalOperator,
    RuleCondition,
    WorkflowRule,
)
from procure_kernel.exceptions import ValidationError

_logger = logging.getLogger("procure_kernel.engines.rules")

_MISSING = object()


def resolve_field(path: str, fields: Mapping[str, Any]) -> Any:
    """Resolve a dotted path (``metadata.port``) against ``fields``.

    Returns the module sentinel ``_MISSING`` when any segment is absent.
    """
    current: Any = fields
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _as_decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _compare(operator: ConditionOperator, actual: Any, expected: Any) -> bool:
    if _is_number(actual) and _is_number(expected):
        left, right = _as_decimal(actual), _as_decimal(expected)
    elif isinstance(actual, str) and isinstance(expected, str):
        left, right = actual, expected
    elif (
        operator is ConditionOperator.EQ
        and isinstance(actual, bool)
        and isinstance(expected, bool)
    ):
        return actual == expected
    else:
        return False

    if operator is ConditionOperator.EQ:
        return left == right
    if operator is ConditionOperator.GT:
        return left > right
    if operator is ConditionOperator.GTE:
        return left >= right
    if operator is ConditionOperator.LT:
        return left < right
    return left <= right


def _member(actual: Any, options: Iterable[Any]) -> bool:
    return any(_compare(ConditionOperator.EQ, actual, option) for option in options)


def evaluate_condition(condition: RuleCondition, fields: Mapping[str, Any]) -> bool:
    """Evaluate one condition.

    Raises:
        ValidationError: the condition itself is malformed.
    """
    if not condition.field:
        raise ValidationError("condition has no field", field="field")
    if not isinstance(condition.operator, ConditionOperator):
        raise ValidationError(
            f"unknown operator {condition.operator!r}", field="operator"
        )

    actual = resolve_field(condition.field, fields)
    if actual is _MISSING or actual is None:
        return False

    operator = condition.operator
    expected = condition.value

    if operator is ConditionOperator.IN:
        if not isinstance(expected, (list, tuple, set, frozenset)):
            raise ValidationError("'in' requires a list value", field="value")
        if isinstance(actual, (list, tuple)):
            return any(_member(item, expected) for item in actual)
        return _member(actual, expected)

    if operator is ConditionOperator.CONTAINS:
        if isinstance(actual, str):
            return isinstance(expected, str) and expected in actual
        if isinstance(actual, (list, tuple, set, frozenset)):
            return _member(expected, actual)
        return False

    return _compare(operator, actual, expected)


def rule_matches(rule: WorkflowRule, fields: Mapping[str, Any]) -> bool:
    """Fold the rule's conditions left to right.

    Raises:
        ValidationError: the rule is malformed.
    """
    if rule.defect:
        raise ValidationError(rule.defect)
    if not rule.conditions:
        return False

    result = evaluate_condition(rule.conditions[0], fields)
    for condition in rule.conditions[1:]:
        # Every condition is evaluated so a malformed one is always reported.
        outcome = evaluate_condition(condition, fields)
        if condition.logical_operator is LogicalOperator.OR:
            result = result or outcome
        else:
            result = result and outcome
    return result


def select_rule(
    rules: Iterable[WorkflowRule],
    fields: Mapping[str, Any],
) -> tuple[WorkflowRule | None, tuple[SkippedRule, ...]]:
    """First matching rule in priority order, plus the malformed rules skipped.

    ``rules`` is sorted here; callers may pass them in any order.
    """
    ordered = sorted(
        (r for r in rules if r.is_active), key=lambda r: -r.priority
    )
    skipped: list[SkippedRule] = []
    for rule in ordered:
        try:
            matched = rule_matches(rule, fields)
        except ValidationError as exc:
            _logger.warning(
                "workflow_rule_skipped",
                extra={"rule_id": rule.rule_id, "reason": str(exc)},
            )
            skipped.append(SkippedRule(rule_id=rule.rule_id, reason=str(exc)))
            continue
        if matched:
            return rule, tuple(skipped)
    return None, tuple(skipped)
