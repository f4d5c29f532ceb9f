"""
Policy loader (``procure_config.loader``).

Responsibility
--------------
Reads a YAML policy set and parses it into the frozen domain types of
``procure_kernel.domain.policy``.  Runtime callers go through
``procure_config.get_active_config()``, which validates before building.

Failure modes
-------------
* Missing YAML file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* Missing required keys -> ``KeyError``; bad values -> ``ValueError`` or
  ``procure_kernel.exceptions.ValidationError``.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from procure_kernel.domain.policy import (
    ApprovalThreshold,
    EmergencyBypass,
    PolicySnapshot,
    UrgencyModifier,
    parse_rule,
)
from procure_kernel.domain.principal import UserRole
from procure_kernel.domain.requisition import (
    BudgetHierarchy,
    CriticalityLevel,
    UrgencyLevel,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields ``{}``."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_amount(value: Any) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse amount from {value!r}")
    return Decimal(str(value))


def parse_threshold(data: dict[str, Any]) -> ApprovalThreshold:
    return ApprovalThreshold(
        threshold_id=str(data["threshold_id"]),
        min_amount=parse_amount(data["min_amount"]),
        max_amount=parse_amount(data.get("max_amount")),
        currency=str(data["currency"]).upper(),
        required_role=str(data["required_role"]),
        approver_level=int(data["approver_level"]),
        budget_hierarchy=BudgetHierarchy(data["budget_hierarchy"]),
        cost_center_required=bool(data.get("cost_center_required", False)),
    )


def parse_bypass(data: dict[str, Any]) -> EmergencyBypass:
    return EmergencyBypass(
        urgency_level=UrgencyLevel(data["urgency_level"]),
        criticality_level=CriticalityLevel(data["criticality_level"]),
        allowed_roles=frozenset(UserRole(r) for r in data["allowed_roles"]),
        requires_post_approval=bool(data["requires_post_approval"]),
        expiration_hours=int(data["expiration_hours"]),
        max_amount=parse_amount(data.get("max_amount")),
    )


def parse_urgency_modifier(data: dict[str, Any]) -> UrgencyModifier:
    return UrgencyModifier(
        urgency_level=UrgencyLevel(data["urgency_level"]),
        escalation_delay_hours=float(data["escalation_delay_hours"]),
        note=data.get("note"),
    )


def build_snapshot(data: dict[str, Any]) -> PolicySnapshot:
    """Parse a whole policy document.  The checksum is computed on construction."""
    return PolicySnapshot(
        name=str(data["name"]),
        version=str(data["version"]),
        rules=tuple(parse_rule(r) for r in data.get("rules") or ()),
        thresholds=tuple(parse_threshold(t) for t in data.get("thresholds") or ()),
        bypasses=tuple(parse_bypass(b) for b in data.get("emergency_bypasses") or ()),
        urgency_modifiers=tuple(
            parse_urgency_modifier(m) for m in data.get("urgency_modifiers") or ()
        ),
        compliance_regulation=str(data.get("compliance_regulation") or "SOLAS"),
    )
