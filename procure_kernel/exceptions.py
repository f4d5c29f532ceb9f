"""
Typed Exception Hierarchy for the Procurement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval decisions gate real spend and safety-critical purchases.  Callers
(request handlers, batch jobs) must react to a refused override or a stale
transition precisely, without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        overrides.grant(principal, vessel_id, reason, urgency, criticality)
    except RoleNotEligibleError as e:
        api_response(403, code=e.code, role=e.role, allowed=e.allowed_roles)
    except VesselNotAuthorizedError as e:
        api_response(403, code=e.code, vessel=e.vessel_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProcurementKernelError (base)
    |
    +-- ValidationError
    |   +-- NoApplicableThresholdError
    |   +-- PostApprovalNotRequiredError
    |   +-- ConfigurationError
    |
    +-- AuthorizationError
    |   +-- RoleNotEligibleError
    |   |   +-- BypassNotConfiguredError
    |   +-- VesselNotAuthorizedError
    |   +-- InsufficientAuthorityError
    |   +-- BypassAmountExceededError
    |
    +-- NotFoundError
    |   +-- OverrideNotFoundError
    |   +-- RequisitionNotFoundError
    |
    +-- OverrideError
    |   +-- OverrideInactiveError
    |   +-- OverrideExpiredError
    |   +-- AlreadyApprovedError
    |   +-- DuplicateOverrideError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- PostApprovalPendingError
    |
    +-- ConcurrencyError
    |   +-- ConflictingTransitionError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|---------------------------------------
Validation    | VALIDATION_ERROR              | Malformed rule, condition or input
              | NO_APPLICABLE_THRESHOLD       | No threshold row covers the amount
              | POST_APPROVAL_NOT_REQUIRED    | Override never needed post-approval
              | CONFIGURATION_ERROR           | Policy set fails structural checks
--------------|-------------------------------|---------------------------------------
Authorization | ROLE_NOT_ELIGIBLE             | Role not allowed for emergency bypass
              | BYPASS_NOT_CONFIGURED         | No bypass for urgency/criticality
              | VESSEL_NOT_AUTHORIZED         | Principal not assigned to the vessel
              | INSUFFICIENT_AUTHORITY        | Approver role/level too low
              | BYPASS_AMOUNT_EXCEEDED        | Amount above the bypass ceiling
--------------|-------------------------------|---------------------------------------
Not found     | OVERRIDE_NOT_FOUND            | Override ID doesn't exist
              | REQUISITION_NOT_FOUND         | Requisition ID doesn't exist
--------------|-------------------------------|---------------------------------------
Override      | OVERRIDE_INACTIVE             | Override deactivated
              | OVERRIDE_EXPIRED              | Override past expires_at
              | ALREADY_APPROVED              | Post-approval already recorded
              | DUPLICATE_OVERRIDE            | Effective override already exists
--------------|-------------------------------|---------------------------------------
Workflow      | INVALID_TRANSITION            | Edge not in the state machine
              | POST_APPROVAL_PENDING         | Bypass cannot close before sign-off
--------------|-------------------------------|---------------------------------------
Concurrency   | CONFLICTING_TRANSITION        | Stale state/version on transition
--------------|-------------------------------|---------------------------------------
Audit         | AUDIT_CHAIN_BROKEN            | Hash chain validation failed
Immutability  | IMMUTABILITY_VIOLATION        | Modifying an append-only record

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Domain exceptions inherit from Exception, not ValueError/PermissionError,
   so they can be caught as a group without mixing in programming errors.

2. ``code`` is a class attribute so it is available without instantiation
   (API documentation, static analysis).

3. Category bases let request handlers map groups to responses:
   - ValidationError -> 400
   - AuthorizationError -> 403
   - NotFoundError -> 404
   - ConcurrencyError -> 409 / retry

===============================================================================
"""

from decimal import Decimal


class ProcurementKernelError(Exception):
    """
    Base exception for all procurement kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PROCUREMENT_KERNEL_ERROR"


# Validation


class ValidationError(ProcurementKernelError):
    """Malformed rule, condition, action or request input.

    Rule evaluation fails closed on these: a malformed rule never matches.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, reason: str, field: str | None = None):
        self.reason = reason
        self.field = field
        if field:
            super().__init__(f"Validation failed for '{field}': {reason}")
        else:
            super().__init__(f"Validation failed: {reason}")


class NoApplicableThresholdError(ValidationError):
    """No threshold row in the requisition currency covers the amount."""

    code: str = "NO_APPLICABLE_THRESHOLD"

    def __init__(self, amount: Decimal, currency: str):
        self.amount = amount
        self.currency = currency
        super().__init__(
            f"No approval threshold covers {amount} {currency}",
            field="amount",
        )


class PostApprovalNotRequiredError(ValidationError):
    """Post-approval attempted on an override that never required it."""

    code: str = "POST_APPROVAL_NOT_REQUIRED"

    def __init__(self, override_id: str):
        self.override_id = override_id
        super().__init__(
            f"Emergency override {override_id} does not require post-approval",
        )


class ConfigurationError(ValidationError):
    """Policy configuration failed structural validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            f"{len(self.errors)} configuration error(s): " + "; ".join(self.errors),
        )


# Authorization


class AuthorizationError(ProcurementKernelError):
    """Base exception for authority and eligibility failures."""

    code: str = "AUTHORIZATION_ERROR"


class RoleNotEligibleError(AuthorizationError):
    """Principal role is not eligible for the requested emergency bypass."""

    code: str = "ROLE_NOT_ELIGIBLE"

    def __init__(
        self,
        role: str,
        allowed_roles: tuple[str, ...] = (),
        reason: str | None = None,
    ):
        self.role = role
        self.allowed_roles = tuple(allowed_roles)
        super().__init__(
            reason
            or f"Role {role} is not eligible for emergency override "
            f"(allowed: {', '.join(self.allowed_roles) or 'none'})"
        )


class BypassNotConfiguredError(RoleNotEligibleError):
    """No emergency bypass is configured for the urgency/criticality pair."""

    code: str = "BYPASS_NOT_CONFIGURED"

    def __init__(self, role: str, urgency_level: str, criticality_level: str):
        self.urgency_level = urgency_level
        self.criticality_level = criticality_level
        super().__init__(
            role,
            (),
            reason=(
                f"No emergency bypass configured for "
                f"{urgency_level}/{criticality_level}"
            ),
        )


class VesselNotAuthorizedError(AuthorizationError):
    """Principal has no active assignment to the vessel."""

    code: str = "VESSEL_NOT_AUTHORIZED"

    def __init__(self, user_id: str, vessel_id: str):
        self.user_id = user_id
        self.vessel_id = vessel_id
        super().__init__(
            f"User {user_id} is not authorized for vessel {vessel_id}"
        )


class InsufficientAuthorityError(AuthorizationError):
    """Actor lacks the role or approver level required for the action."""

    code: str = "INSUFFICIENT_AUTHORITY"

    def __init__(self, actor_id: str, role: str, required: str):
        self.actor_id = actor_id
        self.role = role
        self.required = required
        super().__init__(
            f"{role} ({actor_id}) lacks authority: requires {required}"
        )


class BypassAmountExceededError(AuthorizationError):
    """Requisition amount is above the emergency bypass ceiling."""

    code: str = "BYPASS_AMOUNT_EXCEEDED"

    def __init__(self, amount: Decimal, max_amount: Decimal):
        self.amount = amount
        self.max_amount = max_amount
        super().__init__(
            f"Emergency bypass amount limit exceeded: {amount} > {max_amount}"
        )


# Not found


class NotFoundError(ProcurementKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class OverrideNotFoundError(NotFoundError):
    """Emergency override with given ID was not found."""

    code: str = "OVERRIDE_NOT_FOUND"

    def __init__(self, override_id: str):
        self.override_id = override_id
        super().__init__(f"Emergency override not found: {override_id}")


class RequisitionNotFoundError(NotFoundError):
    """Requisition with given ID was not found."""

    code: str = "REQUISITION_NOT_FOUND"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(f"Requisition not found: {requisition_id}")


# Override lifecycle


class OverrideError(ProcurementKernelError):
    """Base exception for emergency override lifecycle errors."""

    code: str = "OVERRIDE_ERROR"


class OverrideInactiveError(OverrideError):
    """Override has been deactivated."""

    code: str = "OVERRIDE_INACTIVE"

    def __init__(self, override_id: str):
        self.override_id = override_id
        super().__init__(f"Emergency override {override_id} is no longer active")


class OverrideExpiredError(OverrideError):
    """Override is past its expiry.  It has been deactivated as a side effect."""

    code: str = "OVERRIDE_EXPIRED"

    def __init__(self, override_id: str, expires_at: str):
        self.override_id = override_id
        self.expires_at = expires_at
        super().__init__(
            f"Emergency override {override_id} expired at {expires_at}"
        )


class AlreadyApprovedError(OverrideError):
    """Post-approval was already recorded for the override."""

    code: str = "ALREADY_APPROVED"

    def __init__(self, override_id: str, approved_by: str | None = None):
        self.override_id = override_id
        self.approved_by = approved_by
        super().__init__(
            f"Emergency override {override_id} has already been post-approved"
        )


class DuplicateOverrideError(OverrideError):
    """An effective override already exists for the user/vessel pair."""

    code: str = "DUPLICATE_OVERRIDE"

    def __init__(self, user_id: str, vessel_id: str, existing_id: str):
        self.user_id = user_id
        self.vessel_id = vessel_id
        self.existing_id = existing_id
        super().__init__(
            f"User {user_id} already has active emergency override "
            f"{existing_id} for vessel {vessel_id}"
        )


# Workflow


class WorkflowError(ProcurementKernelError):
    """Base exception for requisition state machine errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """Requested transition is not an edge of the state machine."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, requisition_id: str, from_state: str, to_state: str):
        self.requisition_id = requisition_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Requisition {requisition_id}: invalid transition "
            f"{from_state} -> {to_state}"
        )


class PostApprovalPendingError(WorkflowError):
    """Emergency-bypassed requisition cannot close before post-approval."""

    code: str = "POST_APPROVAL_PENDING"

    def __init__(self, requisition_id: str, override_id: str):
        self.requisition_id = requisition_id
        self.override_id = override_id
        super().__init__(
            f"Requisition {requisition_id} awaits post-approval of "
            f"emergency override {override_id}"
        )


# Concurrency


class ConcurrencyError(ProcurementKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictingTransitionError(ConcurrencyError):
    """Transition attempted against a stale state or version."""

    code: str = "CONFLICTING_TRANSITION"

    def __init__(
        self,
        requisition_id: str,
        expected_state: str,
        actual_state: str | None = None,
    ):
        self.requisition_id = requisition_id
        self.expected_state = expected_state
        self.actual_state = actual_state
        super().__init__(
            f"Conflicting transition on requisition {requisition_id}: "
            f"expected state {expected_state}"
            + (f", found {actual_state}" if actual_state else "")
        )


# Audit


class AuditError(ProcurementKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, seq: int, expected_hash: str, actual_hash: str):
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at seq {seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability


class ImmutabilityError(ProcurementKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
