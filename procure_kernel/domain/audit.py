"""Audit event vocabulary shared by the auditor and its callers."""

from enum import Enum


class AuditCategory(str, Enum):
    SECURITY = "SECURITY"
    COMPLIANCE = "COMPLIANCE"


class AuditSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ComplianceStatus(str, Enum):
    PENDING = "PENDING"
    COMPLIANT = "COMPLIANT"
    NON_COMPLIANT = "NON_COMPLIANT"


class SecurityAction(str, Enum):
    EMERGENCY_ACCESS_GRANTED = "EMERGENCY_ACCESS_GRANTED"
    EMERGENCY_ACCESS_DENIED_ROLE = "EMERGENCY_ACCESS_DENIED_ROLE"
    EMERGENCY_ACCESS_DENIED_VESSEL = "EMERGENCY_ACCESS_DENIED_VESSEL"
    EMERGENCY_ACCESS_DENIED_DUPLICATE = "EMERGENCY_ACCESS_DENIED_DUPLICATE"
    EMERGENCY_POST_APPROVAL = "EMERGENCY_POST_APPROVAL"
    EMERGENCY_OVERRIDE_DEACTIVATED = "EMERGENCY_OVERRIDE_DEACTIVATED"
    EMERGENCY_OVERRIDE_EXPIRED = "EMERGENCY_OVERRIDE_EXPIRED"
    EMERGENCY_OVERRIDES_EXPIRED = "EMERGENCY_OVERRIDES_EXPIRED"
    EMERGENCY_BYPASS_APPLIED = "EMERGENCY_BYPASS_APPLIED"


class ComplianceAction(str, Enum):
    EMERGENCY_OVERRIDE_ACTIVATED = "EMERGENCY_OVERRIDE_ACTIVATED"
    EMERGENCY_OVERRIDE_POST_APPROVED = "EMERGENCY_OVERRIDE_POST_APPROVED"
