"""
procure_kernel.services.override_service -- Emergency override lifecycle.

Responsibility:
    Grants, validates, post-approves, deactivates and expires time-boxed
    emergency bypass grants tied to a user/vessel pair.  Every decision is
    written to the security audit trail; grants and post-approvals also to
    the compliance trail.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - An active override always has ``expires_at > now``.  Expiry is
      applied lazily by ``validate()`` and in bulk by ``sweep_expired()``;
      both only ever write ``is_active = false``.
    - Once inactive an override never becomes active again: deactivation is
      a conditional UPDATE on ``is_active = true``.
    - Post-approval happens at most once: a conditional UPDATE on
      ``approved_by IS NULL``.
    - At most one active override per (user, vessel), backed by a partial
      unique index.  Stale expired rows for the pair are deactivated before
      a new grant is inserted.

Failure modes:
    - BypassNotConfiguredError / RoleNotEligibleError / VesselNotAuthorizedError
      / DuplicateOverrideError / ValidationError on grant.
    - OverrideNotFoundError / OverrideInactiveError / OverrideExpiredError on
      validate.
    - InsufficientAuthorityError / PostApprovalNotRequiredError /
      AlreadyApprovedError on post-approval.

Denials are audited inside the caller's transaction.  A caller that rolls
back on the raised error discards that audit row too; request handlers
commit before translating the error into a response.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from procure_kernel.domain.audit import (
    AuditSeverity,
    ComplianceAction,
    ComplianceStatus,
    SecurityAction,
)
from procure_kernel.domain.clock import Clock, SystemClock
from procure_kernel.domain.override import POST_APPROVER_ROLES, EmergencyOverride
from procure_kernel.domain.policy import PolicySnapshot
from procure_kernel.domain.principal import Principal
from procure_kernel.domain.requisition import CriticalityLevel, UrgencyLevel
from procure_kernel.exceptions import (
    AlreadyApprovedError,
    BypassNotConfiguredError,
    DuplicateOverrideError,
    InsufficientAuthorityError,
    OverrideExpiredError,
    OverrideInactiveError,
    OverrideNotFoundError,
    PostApprovalNotRequiredError,
    RoleNotEligibleError,
    ValidationError,
    VesselNotAuthorizedError,
)
from procure_kernel.logging_config import LogContext, get_logger
from procure_kernel.models.override import EmergencyOverrideModel
from procure_kernel.services.auditor_service import AuditorService

logger = get_logger("services.override")

EXPIRY_REASON = "expired"


def _resource(override_id: UUID) -> str:
    return f"emergency_override:{override_id}"


class OverrideService:
    """Emergency override manager.  Never commits; the caller owns the transaction."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        policy: PolicySnapshot,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._auditor = auditor
        self._policy = policy
        self._clock = clock or SystemClock()

    @property
    def policy(self) -> PolicySnapshot:
        return self._policy

    def reconfigure(self, policy: PolicySnapshot) -> None:
        self._policy = policy

    # ------------------------------------------------------------------
    # Grant
    # ------------------------------------------------------------------

    def grant(
        self,
        principal: Principal,
        vessel_id: str,
        reason: str,
        urgency_level: UrgencyLevel | str,
        criticality_level: CriticalityLevel | str,
        now: datetime | None = None,
    ) -> EmergencyOverride:
        """
        Grant an emergency override to ``principal`` on ``vessel_id``.

        Postconditions:
            A new active override exists with ``expires_at = now +
            expiration_hours`` of the matching bypass entry, carrying the
            entry's ``requires_post_approval`` and ``max_amount``.
        """
        policy = self._policy
        now = now or self._clock.now()
        urgency = UrgencyLevel(urgency_level)
        criticality = CriticalityLevel(criticality_level)

        if not reason or not reason.strip():
            raise ValidationError("emergency override requires a reason", field="reason")

        with LogContext.bind(actor_id=principal.user_id, vessel_id=vessel_id):
            bypass = policy.find_bypass(urgency, criticality)
            if bypass is None:
                self._deny(
                    SecurityAction.EMERGENCY_ACCESS_DENIED_ROLE,
                    principal,
                    vessel_id,
                    {
                        "reason": "bypass_not_configured",
                        "urgency_level": urgency,
                        "criticality_level": criticality,
                    },
                )
                raise BypassNotConfiguredError(
                    principal.role.value, urgency.value, criticality.value
                )

            allowed = tuple(sorted(r.value for r in bypass.allowed_roles))
            if not principal.is_active or not bypass.allows(principal.role):
                self._deny(
                    SecurityAction.EMERGENCY_ACCESS_DENIED_ROLE,
                    principal,
                    vessel_id,
                    {
                        "reason": "inactive" if not principal.is_active else "role",
                        "role": principal.role,
                        "allowed_roles": allowed,
                    },
                )
                if not principal.is_active:
                    raise RoleNotEligibleError(
                        principal.role.value,
                        allowed,
                        reason=f"User {principal.user_id} is not active",
                    )
                raise RoleNotEligibleError(principal.role.value, allowed)

            if not principal.is_assigned_to(vessel_id):
                self._deny(
                    SecurityAction.EMERGENCY_ACCESS_DENIED_VESSEL,
                    principal,
                    vessel_id,
                    {"reason": "vessel_not_assigned"},
                )
                raise VesselNotAuthorizedError(str(principal.user_id), vessel_id)

            self._expire_due(
                now,
                EmergencyOverrideModel.user_id == principal.user_id,
                EmergencyOverrideModel.vessel_id == vessel_id,
            )
            existing = self._find_effective(principal.user_id, vessel_id, now)
            if existing is not None:
                self._deny_duplicate(principal, vessel_id, existing.id)

            model = EmergencyOverrideModel(
                user_id=principal.user_id,
                vessel_id=vessel_id,
                reason=reason.strip(),
                urgency_level=urgency.value,
                criticality_level=criticality.value,
                requester_role=principal.role.value,
                max_amount=bypass.max_amount,
                created_at=now,
                expires_at=now + timedelta(hours=bypass.expiration_hours),
                is_active=True,
                requires_post_approval=bypass.requires_post_approval,
            )
            try:
                with self._session.begin_nested():
                    self._session.add(model)
                    self._session.flush()
            except IntegrityError:
                # concurrent grant committed first; the unique index caught it
                existing = self._find_effective(principal.user_id, vessel_id, now)
                logger.warning(
                    "concurrent_override_grant",
                    extra={"user_id": str(principal.user_id), "vessel_id": vessel_id},
                )
                self._deny_duplicate(
                    principal, vessel_id, existing.id if existing is not None else None
                )

            details = {
                "override_id": model.id,
                "reason": model.reason,
                "urgency_level": urgency,
                "criticality_level": criticality,
                "role": principal.role,
                "expires_at": model.expires_at,
                "requires_post_approval": model.requires_post_approval,
                "max_amount": model.max_amount,
            }
            self._auditor.log_security_event(
                SecurityAction.EMERGENCY_ACCESS_GRANTED,
                _resource(model.id),
                principal.user_id,
                AuditSeverity.CRITICAL,
                details,
                vessel_id=vessel_id,
            )
            self._auditor.log_compliance_event(
                policy.compliance_regulation,
                ComplianceAction.EMERGENCY_OVERRIDE_ACTIVATED,
                vessel_id,
                ComplianceStatus.PENDING,
                details,
                actor_id=principal.user_id,
                resource=_resource(model.id),
            )

            logger.warning(
                "emergency_override_granted",
                extra={
                    "override_id": str(model.id),
                    "role": principal.role.value,
                    "urgency_level": urgency.value,
                    "criticality_level": criticality.value,
                    "expires_at": model.expires_at.isoformat(),
                    "requires_post_approval": model.requires_post_approval,
                },
            )
            return model.to_dto()

    def _deny_duplicate(
        self, principal: Principal, vessel_id: str, existing_id: UUID | None
    ) -> None:
        self._deny(
            SecurityAction.EMERGENCY_ACCESS_DENIED_DUPLICATE,
            principal,
            vessel_id,
            {"reason": "duplicate", "existing_override_id": existing_id},
            severity=AuditSeverity.MEDIUM,
        )
        raise DuplicateOverrideError(
            str(principal.user_id), vessel_id, str(existing_id)
        )

    def _deny(
        self,
        action: SecurityAction,
        principal: Principal,
        vessel_id: str,
        details: dict,
        severity: AuditSeverity = AuditSeverity.HIGH,
    ) -> None:
        self._auditor.log_security_event(
            action,
            f"vessel:{vessel_id}",
            principal.user_id,
            severity,
            {"role": principal.role, **details},
            vessel_id=vessel_id,
        )
        logger.warning(
            "emergency_override_denied",
            extra={
                "action": action.value,
                "role": principal.role.value,
                "denial_reason": details.get("reason"),
            },
        )

    # ------------------------------------------------------------------
    # Validate / expire
    # ------------------------------------------------------------------

    def validate(
        self, override_id: UUID, now: datetime | None = None
    ) -> EmergencyOverride:
        """
        Return the override if it is currently usable.

        An override found past its expiry is deactivated before
        ``OverrideExpiredError`` is raised.
        """
        now = now or self._clock.now()
        model = self._load(override_id)

        if not model.is_active:
            raise OverrideInactiveError(str(override_id))

        if model.expires_at <= now:
            if self._conditional_deactivate(override_id, now, EXPIRY_REASON):
                self._auditor.log_security_event(
                    SecurityAction.EMERGENCY_OVERRIDE_EXPIRED,
                    _resource(override_id),
                    None,
                    AuditSeverity.LOW,
                    {"expires_at": model.expires_at, "detected_at": now},
                    vessel_id=model.vessel_id,
                )
                logger.info(
                    "emergency_override_expired",
                    extra={"override_id": str(override_id), "lazy": True},
                )
            raise OverrideExpiredError(str(override_id), model.expires_at.isoformat())

        return model.to_dto()

    def sweep_expired(self, now: datetime | None = None) -> int:
        """
        Deactivate every active override with ``expires_at <= now``.

        Idempotent: a second sweep at the same instant deactivates nothing.

        Returns:
            Number of overrides deactivated by this call.
        """
        now = now or self._clock.now()
        count = self._expire_due(now)
        if count:
            logger.info(
                "emergency_overrides_expired",
                extra={"count": count, "swept_at": now.isoformat()},
            )
        return count

    def _expire_due(self, now: datetime, *criteria) -> int:
        """Deactivate active overrides past expiry that match ``criteria``."""
        expired_ids = list(
            self._session.execute(
                select(EmergencyOverrideModel.id).where(
                    EmergencyOverrideModel.is_active.is_(True),
                    EmergencyOverrideModel.expires_at <= now,
                    *criteria,
                )
            ).scalars()
        )
        if not expired_ids:
            return 0

        result = self._session.execute(
            update(EmergencyOverrideModel)
            .where(
                EmergencyOverrideModel.id.in_(expired_ids),
                EmergencyOverrideModel.is_active.is_(True),
            )
            .values(
                is_active=False,
                deactivated_at=now,
                deactivation_reason=EXPIRY_REASON,
            )
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount

        if count:
            self._auditor.log_security_event(
                SecurityAction.EMERGENCY_OVERRIDES_EXPIRED,
                "emergency_overrides",
                None,
                AuditSeverity.LOW,
                {"count": count, "override_ids": [str(i) for i in expired_ids]},
            )
        return count

    # ------------------------------------------------------------------
    # Post-approval / deactivation
    # ------------------------------------------------------------------

    def post_approve(
        self,
        override_id: UUID,
        approver: Principal,
        reason: str,
        now: datetime | None = None,
    ) -> EmergencyOverride:
        """Record the shore-side sign-off of an emergency override, once."""
        now = now or self._clock.now()

        if not approver.is_active or approver.role not in POST_APPROVER_ROLES:
            raise InsufficientAuthorityError(
                str(approver.user_id),
                approver.role.value,
                "active " + " / ".join(sorted(r.value for r in POST_APPROVER_ROLES)),
            )
        if not reason or not reason.strip():
            raise ValidationError("post-approval requires a reason", field="reason")

        model = self._load(override_id)
        if not model.requires_post_approval:
            raise PostApprovalNotRequiredError(str(override_id))

        result = self._session.execute(
            update(EmergencyOverrideModel)
            .where(
                EmergencyOverrideModel.id == override_id,
                EmergencyOverrideModel.approved_by.is_(None),
            )
            .values(
                approved_by=approver.user_id,
                approved_at=now,
                post_approval_reason=reason.strip(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = self._load(override_id)
            raise AlreadyApprovedError(
                str(override_id),
                str(current.approved_by) if current.approved_by else None,
            )

        model = self._load(override_id)
        details = {
            "override_id": override_id,
            "approver_role": approver.role,
            "reason": model.post_approval_reason,
            "original_requester": model.user_id,
        }
        with LogContext.bind(override_id=override_id, actor_id=approver.user_id):
            self._auditor.log_security_event(
                SecurityAction.EMERGENCY_POST_APPROVAL,
                _resource(override_id),
                approver.user_id,
                AuditSeverity.HIGH,
                details,
                vessel_id=model.vessel_id,
            )
            self._auditor.log_compliance_event(
                self._policy.compliance_regulation,
                ComplianceAction.EMERGENCY_OVERRIDE_POST_APPROVED,
                model.vessel_id,
                ComplianceStatus.COMPLIANT,
                details,
                actor_id=approver.user_id,
                resource=_resource(override_id),
            )
            logger.info(
                "emergency_override_post_approved",
                extra={"approver_role": approver.role.value},
            )
        return model.to_dto()

    def deactivate(
        self,
        override_id: UUID,
        reason: str,
        actor_id: UUID | None = None,
        now: datetime | None = None,
    ) -> EmergencyOverride:
        """Revoke an override before its expiry."""
        now = now or self._clock.now()
        self._load(override_id)

        if not self._conditional_deactivate(override_id, now, reason):
            raise OverrideInactiveError(str(override_id))

        model = self._load(override_id)
        self._auditor.log_security_event(
            SecurityAction.EMERGENCY_OVERRIDE_DEACTIVATED,
            _resource(override_id),
            actor_id,
            AuditSeverity.MEDIUM,
            {"reason": reason},
            vessel_id=model.vessel_id,
        )
        logger.info(
            "emergency_override_deactivated",
            extra={"override_id": str(override_id), "reason": reason},
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, override_id: UUID) -> EmergencyOverride:
        return self._load(override_id).to_dto()

    def list_active(
        self, user_id: UUID, now: datetime | None = None
    ) -> list[EmergencyOverride]:
        now = now or self._clock.now()
        rows = self._session.execute(
            select(EmergencyOverrideModel)
            .where(
                EmergencyOverrideModel.user_id == user_id,
                EmergencyOverrideModel.is_active.is_(True),
                EmergencyOverrideModel.expires_at > now,
            )
            .order_by(EmergencyOverrideModel.created_at)
            .execution_options(populate_existing=True)
        ).scalars()
        return [row.to_dto() for row in rows]

    def list_pending_post_approval(
        self, vessel_ids: Sequence[str] | None = None
    ) -> list[EmergencyOverride]:
        """Overrides that need sign-off and have not had it, active or not."""
        stmt = (
            select(EmergencyOverrideModel)
            .where(
                EmergencyOverrideModel.requires_post_approval.is_(True),
                EmergencyOverrideModel.approved_by.is_(None),
            )
            .order_by(EmergencyOverrideModel.created_at)
            .execution_options(populate_existing=True)
        )
        if vessel_ids is not None:
            stmt = stmt.where(EmergencyOverrideModel.vessel_id.in_(list(vessel_ids)))
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    def has_active_override(
        self, user_id: UUID, vessel_id: str, now: datetime | None = None
    ) -> bool:
        now = now or self._clock.now()
        return self._find_effective(user_id, vessel_id, now) is not None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, override_id: UUID) -> EmergencyOverrideModel:
        model = self._session.get(
            EmergencyOverrideModel, override_id, populate_existing=True
        )
        if model is None:
            raise OverrideNotFoundError(str(override_id))
        return model

    def _find_effective(
        self, user_id: UUID, vessel_id: str, now: datetime
    ) -> EmergencyOverrideModel | None:
        return self._session.execute(
            select(EmergencyOverrideModel)
            .where(
                EmergencyOverrideModel.user_id == user_id,
                EmergencyOverrideModel.vessel_id == vessel_id,
                EmergencyOverrideModel.is_active.is_(True),
                EmergencyOverrideModel.expires_at > now,
            )
            .limit(1)
            .with_for_update()
        ).scalar_one_or_none()

    def _conditional_deactivate(
        self, override_id: UUID, now: datetime, reason: str
    ) -> bool:
        result = self._session.execute(
            update(EmergencyOverrideModel)
            .where(
                EmergencyOverrideModel.id == override_id,
                EmergencyOverrideModel.is_active.is_(True),
            )
            .values(is_active=False, deactivated_at=now, deactivation_reason=reason)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
