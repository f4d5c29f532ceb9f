"""
Policy validator (``procure_config.validator``).

Responsibility
--------------
Structural validation of a raw policy document before it is built into a
``PolicySnapshot``.  Collects every problem instead of stopping at the
first one.

Checks
------
* ``name`` and ``version`` present.
* Thresholds parse; ids unique; roles known; levels within 0..3; within a
  currency the bands start at 0, are contiguous and non-overlapping, and
  only the last band is unbounded.
* Rules parse strictly (unknown operators / action types are errors); ids
  unique.
* Emergency bypasses parse; one entry per (urgency, criticality); at least
  one allowed role; positive expiration.
* Urgency modifiers parse; one per urgency level; delays not negative.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import InvalidOperation
from typing import Any

from procure_config.loader import parse_bypass, parse_threshold, parse_urgency_modifier
from procure_kernel.domain.policy import (
    ApprovalThreshold,
    check_threshold_table,
    parse_rule,
)
from procure_kernel.exceptions import ValidationError


@dataclass
class ConfigValidationResult:
    """``is_valid`` only when ``errors`` is empty.  Warnings do not block."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


_PARSE_ERRORS = (KeyError, TypeError, ValueError, InvalidOperation, ValidationError)


def validate_policy_data(data: dict[str, Any]) -> ConfigValidationResult:
    """Validate a raw policy document.  A document with errors must not be built."""
    result = ConfigValidationResult()

    if not isinstance(data, dict):
        result.add_error("policy document must be a mapping")
        return result
    for key in ("name", "version"):
        if not data.get(key):
            result.add_error(f"missing required key '{key}'")

    _validate_thresholds(data.get("thresholds") or [], result)
    _validate_rules(data.get("rules") or [], result)
    _validate_bypasses(data.get("emergency_bypasses") or [], result)
    _validate_urgency_modifiers(data.get("urgency_modifiers") or [], result)
    return result


def _validate_thresholds(raw: list[Any], result: ConfigValidationResult) -> None:
    if not raw:
        result.add_error("no approval thresholds configured")
        return

    parsed: list[ApprovalThreshold] = []
    for i, entry in enumerate(raw):
        try:
            parsed.append(parse_threshold(entry))
        except _PARSE_ERRORS as exc:
            result.add_error(f"threshold #{i}: {exc!r}")

    errors, warnings = check_threshold_table(parsed)
    for msg in errors:
        result.add_error(msg)
    for msg in warnings:
        result.add_warning(msg)


def _validate_rules(raw: list[Any], result: ConfigValidationResult) -> None:
    seen: set[str] = set()
    for i, entry in enumerate(raw):
        try:
            rule = parse_rule(entry)
        except _PARSE_ERRORS as exc:
            result.add_error(f"rule #{i}: {exc}")
            continue
        if rule.rule_id in seen:
            result.add_error(f"duplicate rule_id '{rule.rule_id}'")
        seen.add(rule.rule_id)
        if not rule.conditions:
            result.add_warning(f"rule {rule.rule_id} has no conditions and never matches")


def _validate_bypasses(raw: list[Any], result: ConfigValidationResult) -> None:
    seen: set[tuple] = set()
    for i, entry in enumerate(raw):
        try:
            bypass = parse_bypass(entry)
        except _PARSE_ERRORS as exc:
            result.add_error(f"emergency bypass #{i}: {exc!r}")
            continue
        label = f"{bypass.urgency_level.value}/{bypass.criticality_level.value}"
        if bypass.key in seen:
            result.add_error(f"duplicate emergency bypass for {label}")
        seen.add(bypass.key)
        if not bypass.allowed_roles:
            result.add_error(f"emergency bypass {label}: no allowed roles")
        if bypass.expiration_hours <= 0:
            result.add_error(f"emergency bypass {label}: expiration_hours must be positive")
        if bypass.max_amount is not None and bypass.max_amount <= 0:
            result.add_error(f"emergency bypass {label}: max_amount must be positive")


def _validate_urgency_modifiers(raw: list[Any], result: ConfigValidationResult) -> None:
    seen: set = set()
    for i, entry in enumerate(raw):
        try:
            modifier = parse_urgency_modifier(entry)
        except _PARSE_ERRORS as exc:
            result.add_error(f"urgency modifier #{i}: {exc!r}")
            continue
        if modifier.urgency_level in seen:
            result.add_error(
                f"duplicate urgency modifier for {modifier.urgency_level.value}"
            )
        seen.add(modifier.urgency_level)
        if modifier.escalation_delay_hours < 0:
            result.add_error(
                f"urgency modifier {modifier.urgency_level.value}: negative delay"
            )
