"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable.  Time enters only through ``Clock``.
"""

from procure_kernel.domain.approval import (
    DECIDABLE_STATES,
    REQUISITION_TRANSITIONS,
    TERMINAL_STATES,
    DecisionSource,
    RequisitionRecord,
    RequisitionState,
    RoutingDecision,
    SkippedRule,
    TransitionRecord,
    can_transition,
)
from procure_kernel.domain.audit import (
    AuditCategory,
    AuditSeverity,
    ComplianceAction,
    ComplianceStatus,
    SecurityAction,
)
from procure_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from procure_kernel.domain.collaborators import BudgetProvider, NotificationSender
from procure_kernel.domain.override import POST_APPROVER_ROLES, EmergencyOverride
from procure_kernel.domain.policy import (
    AUTO_APPROVE,
    ActionType,
    ApprovalThreshold,
    ApproveAction,
    BypassAction,
    ConditionOperator,
    EmergencyBypass,
    EscalateAction,
    LogicalOperator,
    NotifyAction,
    PolicySnapshot,
    RequireApprovalAction,
    RuleAction,
    RuleCondition,
    UrgencyModifier,
    WorkflowRule,
    check_threshold_table,
    parse_action,
    parse_condition,
    parse_rule,
)
from procure_kernel.domain.principal import (
    MAX_APPROVER_LEVEL,
    ROLE_LEVELS,
    Principal,
    UserRole,
    role_level,
)
from procure_kernel.domain.requisition import (
    BudgetHierarchy,
    CriticalityLevel,
    RequisitionSnapshot,
    UrgencyLevel,
)

__all__ = [
    "AUTO_APPROVE",
    "ActionType",
    "ApprovalThreshold",
    "ApproveAction",
    "AuditCategory",
    "AuditSeverity",
    "BudgetHierarchy",
    "BudgetProvider",
    "BypassAction",
    "Clock",
    "ComplianceAction",
    "ComplianceStatus",
    "ConditionOperator",
    "CriticalityLevel",
    "DECIDABLE_STATES",
    "DecisionSource",
    "DeterministicClock",
    "EmergencyBypass",
    "EmergencyOverride",
    "EscalateAction",
    "LogicalOperator",
    "MAX_APPROVER_LEVEL",
    "NotificationSender",
    "NotifyAction",
    "POST_APPROVER_ROLES",
    "PolicySnapshot",
    "Principal",
    "REQUISITION_TRANSITIONS",
    "ROLE_LEVELS",
    "RequireApprovalAction",
    "RequisitionRecord",
    "RequisitionSnapshot",
    "RequisitionState",
    "RoutingDecision",
    "RuleAction",
    "RuleCondition",
    "SecurityAction",
    "SkippedRule",
    "SystemClock",
    "TERMINAL_STATES",
    "TransitionRecord",
    "UrgencyLevel",
    "UrgencyModifier",
    "UserRole",
    "WorkflowRule",
    "can_transition",
    "check_threshold_table",
    "parse_action",
    "parse_condition",
    "parse_rule",
    "role_level",
]
