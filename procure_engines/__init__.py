"""
Pure routing engines for requisition approval.

Zero I/O: inputs are frozen domain snapshots, outputs are frozen
decisions.  Every public engine call emits a ROUTING_ENGINE_TRACE log record.
"""

from procure_engines.routing import (
    evaluate_requisition,
    find_threshold,
    highest_criticality,
    validate_approver_authority,
)
from procure_engines.rules import evaluate_condition, rule_matches, select_rule

__all__ = [
    "evaluate_condition",
    "evaluate_requisition",
    "find_threshold",
    "highest_criticality",
    "rule_matches",
    "select_rule",
    "validate_approver_authority",
]
