"""
procure_kernel.services.workflow_service -- Requisition approval state machine.

Responsibility:
    Drives a requisition through its lifecycle: creation, submission
    (routing through the rule evaluator or an attached emergency override),
    approver decisions, escalation, re-queueing and closing.  Every state
    change is appended to the requisition's transition log.

Architecture position:
    Kernel > Services.  Delegates routing to the pure engine in
    ``procure_engines.routing`` and override checks to ``OverrideService``.

Invariants enforced:
    - Only edges of ``REQUISITION_TRANSITIONS`` are taken.
    - Each transition is a conditional UPDATE keyed on (id, state, version);
      a stale caller gets ConflictingTransitionError, never a silent
      overwrite.  One decision per requisition per pass follows from this.
    - Every transition appends exactly one RequisitionTransitionModel row
      with seq = previous seq + 1.
    - The policy snapshot is captured once at the start of each operation.
    - Attached-override checks run before the first transition of submit.

Failure modes:
    - RequisitionNotFoundError, InvalidTransitionError.
    - NoApplicableThresholdError when routing finds no band (requisition
      stays in DRAFT).
    - InsufficientAuthorityError / VesselNotAuthorizedError on decisions.
    - Override errors from OverrideService.validate() on submit, plus
      RoleNotEligibleError / BypassAmountExceededError for the bypass check.
    - PostApprovalPendingError when closing a bypassed requisition early.
    - ConflictingTransitionError on stale state/version.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from procure_engines.routing import evaluate_requisition, validate_approver_authority
from procure_kernel.domain.approval import (
    DECIDABLE_STATES,
    RequisitionRecord,
    RequisitionState,
    RoutingDecision,
    TransitionRecord,
    can_transition,
)
from procure_kernel.domain.audit import AuditSeverity, SecurityAction
from procure_kernel.domain.clock import Clock, SystemClock
from procure_kernel.domain.collaborators import BudgetProvider, NotificationSender
from procure_kernel.domain.override import EmergencyOverride
from procure_kernel.domain.policy import ActionType, PolicySnapshot
from procure_kernel.domain.principal import MAX_APPROVER_LEVEL, Principal, UserRole
from procure_kernel.domain.requisition import (
    BudgetHierarchy,
    CriticalityLevel,
    UrgencyLevel,
)
from procure_kernel.exceptions import (
    BypassAmountExceededError,
    BypassNotConfiguredError,
    ConflictingTransitionError,
    InsufficientAuthorityError,
    InvalidTransitionError,
    PostApprovalPendingError,
    RequisitionNotFoundError,
    RoleNotEligibleError,
    ValidationError,
    VesselNotAuthorizedError,
)
from procure_kernel.logging_config import LogContext, get_logger
from procure_kernel.models.requisition import (
    RequisitionModel,
    RequisitionTransitionModel,
)
from procure_kernel.services.auditor_service import AuditorService
from procure_kernel.services.override_service import OverrideService

logger = get_logger("services.workflow")

_REVISABLE_FIELDS = frozenset({
    "amount",
    "currency",
    "urgency_level",
    "criticality_level",
    "item_categories",
    "attributes",
})

_DECIDED_STATES = frozenset({RequisitionState.APPROVED, RequisitionState.REJECTED})


class RequisitionWorkflowService:
    """Requisition approval state machine.  Never commits."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        policy: PolicySnapshot,
        overrides: OverrideService | None = None,
        clock: Clock | None = None,
        notifier: NotificationSender | None = None,
        budget_provider: BudgetProvider | None = None,
    ) -> None:
        self._session = session
        self._auditor = auditor
        self._policy = policy
        self._clock = clock or SystemClock()
        self._overrides = overrides or OverrideService(
            session, auditor, policy, self._clock
        )
        self._notifier = notifier
        self._budget_provider = budget_provider

    @property
    def policy(self) -> PolicySnapshot:
        return self._policy

    def reconfigure(self, policy: PolicySnapshot) -> None:
        """Swap the policy snapshot.  Operations already running keep the old one."""
        self._policy = policy
        self._overrides.reconfigure(policy)
        logger.info(
            "workflow_policy_reconfigured",
            extra={
                "policy_name": policy.name,
                "policy_version": policy.version,
                "checksum": policy.checksum,
            },
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_requisition(
        self,
        requester: Principal,
        vessel_id: str,
        amount: Decimal,
        currency: str,
        urgency_level: UrgencyLevel | str = UrgencyLevel.ROUTINE,
        criticality_level: CriticalityLevel | str = CriticalityLevel.ROUTINE,
        item_categories: Sequence[str] = (),
        attributes: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> RequisitionRecord:
        """Create a DRAFT requisition owned by ``requester``."""
        now = now or self._clock.now()
        if requester.role is not UserRole.ADMIN and not requester.is_assigned_to(vessel_id):
            raise VesselNotAuthorizedError(str(requester.user_id), vessel_id)

        model = RequisitionModel(
            vessel_id=vessel_id,
            requester_id=requester.user_id,
            requester_role=requester.role.value,
            state=RequisitionState.DRAFT.value,
            version=1,
            revision=1,
            created_at=now,
            updated_at=now,
            **self._validated_fields(
                amount=amount,
                currency=currency,
                urgency_level=urgency_level,
                criticality_level=criticality_level,
                item_categories=item_categories,
                attributes=attributes,
            ),
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "requisition_created",
            extra={
                "requisition_id": str(model.id),
                "vessel_id": vessel_id,
                "amount": str(model.amount),
                "currency": model.currency,
            },
        )
        return model.to_dto()

    def create_revision(
        self,
        requisition_id: UUID,
        requester: Principal,
        now: datetime | None = None,
        **changes: Any,
    ) -> RequisitionRecord:
        """
        Open a new DRAFT version of a REJECTED requisition.

        ``changes`` may replace amount, currency, urgency_level,
        criticality_level, item_categories or attributes.  The rejected
        requisition itself is left untouched.
        """
        now = now or self._clock.now()
        unknown = set(changes) - _REVISABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"cannot revise {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )

        parent = self._load(requisition_id)
        if parent.state != RequisitionState.REJECTED.value:
            raise InvalidTransitionError(
                str(requisition_id), parent.state, RequisitionState.DRAFT.value
            )
        if requester.user_id != parent.requester_id and requester.role is not UserRole.ADMIN:
            raise InsufficientAuthorityError(
                str(requester.user_id), requester.role.value, "original requester"
            )

        fields = self._validated_fields(
            amount=changes.get("amount", parent.amount),
            currency=changes.get("currency", parent.currency),
            urgency_level=changes.get("urgency_level", parent.urgency_level),
            criticality_level=changes.get("criticality_level", parent.criticality_level),
            item_categories=changes.get("item_categories", parent.item_categories),
            attributes=changes.get("attributes", parent.attributes),
        )
        model = RequisitionModel(
            vessel_id=parent.vessel_id,
            requester_id=parent.requester_id,
            requester_role=parent.requester_role,
            state=RequisitionState.DRAFT.value,
            version=1,
            revision=parent.revision + 1,
            parent_id=parent.id,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "requisition_revision_created",
            extra={
                "requisition_id": str(model.id),
                "parent_id": str(parent.id),
                "revision": model.revision,
            },
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def evaluate(self, requisition_id: UUID) -> RoutingDecision:
        """Routing decision for the requisition as it stands.  Changes nothing."""
        return self._route(self._load(requisition_id), self._policy)

    def submit(
        self,
        requisition_id: UUID,
        principal: Principal,
        override_id: UUID | None = None,
        now: datetime | None = None,
    ) -> RequisitionRecord:
        """
        Submit a DRAFT requisition and route it.

        With ``override_id`` the emergency override is checked first and the
        requisition goes to EMERGENCY_BYPASSED, then straight to CLOSED when
        no post-approval is required.  Without one the rule evaluator
        decides between AUTO_APPROVED, AWAITING_APPROVAL and ESCALATED.
        """
        policy = self._policy
        now = now or self._clock.now()

        with LogContext.bind(requisition_id=requisition_id, actor_id=principal.user_id):
            model = self._load(requisition_id)
            if model.state != RequisitionState.DRAFT.value:
                raise InvalidTransitionError(
                    str(requisition_id), model.state, RequisitionState.SUBMITTED.value
                )
            if principal.user_id != model.requester_id and principal.role is not UserRole.ADMIN:
                raise InsufficientAuthorityError(
                    str(principal.user_id), principal.role.value, "requester"
                )

            if override_id is not None:
                override = self._check_override(model, override_id, policy, now)
                return self._apply_bypass(model, override, principal, now)

            decision = self._route(model, policy)
            self._transition(
                model,
                RequisitionState.SUBMITTED,
                principal.user_id,
                now,
                reason="Submitted for approval",
            )
            self._send_notifications(model, decision)
            return self._apply_decision(model, decision, principal.user_id, now)

    def _route(self, model: RequisitionModel, policy: PolicySnapshot) -> RoutingDecision:
        remaining = None
        if self._budget_provider is not None:
            remaining = self._budget_provider.remaining_budget(
                model.vessel_id, model.currency
            )
        return evaluate_requisition(model.to_dto().to_snapshot(), policy, remaining)

    def _apply_decision(
        self,
        model: RequisitionModel,
        decision: RoutingDecision,
        actor_id: UUID,
        now: datetime,
    ) -> RequisitionRecord:
        common = dict(
            rule_or_threshold_id=decision.rule_or_threshold_id,
            reason=decision.reason,
            payload=decision.to_payload(),
        )
        if decision.auto_approved:
            self._transition(
                model,
                RequisitionState.AUTO_APPROVED,
                actor_id,
                now,
                decided_by_rule=decision.rule_or_threshold_id,
                decided_at=now,
                **common,
            )
            return model.to_dto()

        routing = dict(
            approver_role=decision.approver_role,
            approver_level=decision.approver_level,
            budget_hierarchy=(
                decision.budget_hierarchy.value if decision.budget_hierarchy else None
            ),
            cost_center_required=decision.cost_center_required,
            decided_by_rule=decision.rule_or_threshold_id,
        )
        due = now + timedelta(hours=decision.escalation_delay_hours or 0)
        if decision.outcome is ActionType.ESCALATE:
            self._transition(
                model,
                RequisitionState.ESCALATED,
                actor_id,
                now,
                requeue_at=due,
                decision_due_at=None,
                **routing,
                **common,
            )
        else:
            self._transition(
                model,
                RequisitionState.AWAITING_APPROVAL,
                actor_id,
                now,
                decision_due_at=due,
                requeue_at=None,
                **routing,
                **common,
            )
        return model.to_dto()

    def _send_notifications(
        self, model: RequisitionModel, decision: RoutingDecision
    ) -> None:
        for action in decision.notifications:
            logger.info(
                "requisition_notification",
                extra={
                    "recipients": list(action.recipients),
                    "delivered": self._notifier is not None,
                },
            )
            if self._notifier is None:
                continue
            try:
                self._notifier.notify(model.id, action.recipients, action.message)
            except Exception:
                logger.exception(
                    "notification_failed",
                    extra={"recipients": list(action.recipients)},
                )

    # ------------------------------------------------------------------
    # Emergency bypass
    # ------------------------------------------------------------------

    def _check_override(
        self,
        model: RequisitionModel,
        override_id: UUID,
        policy: PolicySnapshot,
        now: datetime,
    ) -> EmergencyOverride:
        override = self._overrides.validate(override_id, now)

        if override.user_id != model.requester_id:
            raise RoleNotEligibleError(
                model.requester_role,
                reason=f"Emergency override {override_id} belongs to another user",
            )
        if override.vessel_id != model.vessel_id:
            raise VesselNotAuthorizedError(str(model.requester_id), model.vessel_id)

        bypass = policy.find_bypass(model.urgency_level, model.criticality_level)
        if bypass is None:
            raise BypassNotConfiguredError(
                model.requester_role, model.urgency_level, model.criticality_level
            )
        if not bypass.allows(model.requester_role):
            raise RoleNotEligibleError(
                model.requester_role,
                tuple(sorted(r.value for r in bypass.allowed_roles)),
            )

        limits = [m for m in (override.max_amount, bypass.max_amount) if m is not None]
        if limits and model.amount > min(limits):
            raise BypassAmountExceededError(model.amount, min(limits))
        return override

    def _apply_bypass(
        self,
        model: RequisitionModel,
        override: EmergencyOverride,
        principal: Principal,
        now: datetime,
    ) -> RequisitionRecord:
        resource = f"emergency_override:{override.override_id}"
        self._transition(
            model,
            RequisitionState.SUBMITTED,
            principal.user_id,
            now,
            reason="Submitted under emergency override",
        )
        self._transition(
            model,
            RequisitionState.EMERGENCY_BYPASSED,
            principal.user_id,
            now,
            rule_or_threshold_id=resource,
            reason=f"Emergency bypass: {override.reason}",
            payload={
                "override_id": str(override.override_id),
                "requires_post_approval": override.requires_post_approval,
            },
            override_id=override.override_id,
            decided_at=now,
        )
        self._auditor.log_security_event(
            SecurityAction.EMERGENCY_BYPASS_APPLIED,
            f"requisition:{model.id}",
            principal.user_id,
            AuditSeverity.HIGH,
            {
                "override_id": override.override_id,
                "amount": model.amount,
                "currency": model.currency,
                "requires_post_approval": override.requires_post_approval,
            },
            vessel_id=model.vessel_id,
        )
        logger.warning(
            "requisition_emergency_bypassed",
            extra={
                "override_id": str(override.override_id),
                "requires_post_approval": override.requires_post_approval,
            },
        )

        if not override.requires_post_approval:
            self._transition(
                model,
                RequisitionState.CLOSED,
                principal.user_id,
                now,
                rule_or_threshold_id=resource,
                reason="Emergency bypass without post-approval",
            )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Approver decisions
    # ------------------------------------------------------------------

    def approve(
        self,
        requisition_id: UUID,
        approver: Principal,
        reason: str | None = None,
        now: datetime | None = None,
        expected_version: int | None = None,
    ) -> RequisitionRecord:
        """Record an approval by ``approver`` on a pending requisition."""
        return self._decide(
            requisition_id,
            approver,
            RequisitionState.APPROVED,
            reason or "Approved",
            now,
            expected_version,
        )

    def reject(
        self,
        requisition_id: UUID,
        approver: Principal,
        reason: str,
        now: datetime | None = None,
        expected_version: int | None = None,
    ) -> RequisitionRecord:
        """Record a rejection.  A reason is mandatory."""
        if not reason or not reason.strip():
            raise ValidationError("rejection requires a reason", field="reason")
        return self._decide(
            requisition_id,
            approver,
            RequisitionState.REJECTED,
            reason.strip(),
            now,
            expected_version,
        )

    def _decide(
        self,
        requisition_id: UUID,
        approver: Principal,
        to_state: RequisitionState,
        reason: str,
        now: datetime | None,
        expected_version: int | None,
    ) -> RequisitionRecord:
        now = now or self._clock.now()
        with LogContext.bind(requisition_id=requisition_id, actor_id=approver.user_id):
            model = self._load(requisition_id, expected_version)
            state = RequisitionState(model.state)
            if state in _DECIDED_STATES and model.decided_by is not None:
                # another approver got there first
                logger.warning(
                    "requisition_already_decided",
                    extra={
                        "state": model.state,
                        "decided_by": str(model.decided_by),
                        "attempted": to_state.value,
                    },
                )
                raise ConflictingTransitionError(
                    str(requisition_id),
                    "/".join(sorted(s.value for s in DECIDABLE_STATES)),
                    model.state,
                )
            if state not in DECIDABLE_STATES:
                raise InvalidTransitionError(str(requisition_id), model.state, to_state.value)
            self._check_authority(model, approver)

            self._transition(
                model,
                to_state,
                approver.user_id,
                now,
                reason=reason,
                payload={
                    "approver_role": approver.role.value,
                    "required_role": model.approver_role,
                    "required_level": model.approver_level,
                },
                expected_version=expected_version,
                decided_by=approver.user_id,
                decided_at=now,
                decision_due_at=None,
                requeue_at=None,
            )
            return model.to_dto()

    def _check_authority(self, model: RequisitionModel, approver: Principal) -> None:
        required_level = model.approver_level or 0
        if not validate_approver_authority(approver, model.approver_role, required_level):
            raise InsufficientAuthorityError(
                str(approver.user_id),
                approver.role.value,
                f"{model.approver_role} or level {max(required_level, 1)}",
            )
        if (
            model.budget_hierarchy == BudgetHierarchy.VESSEL.value
            and approver.role is not UserRole.ADMIN
            and not approver.is_assigned_to(model.vessel_id)
        ):
            raise VesselNotAuthorizedError(str(approver.user_id), model.vessel_id)

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    def escalate(
        self,
        requisition_id: UUID,
        actor: Principal,
        reason: str,
        now: datetime | None = None,
        expected_version: int | None = None,
    ) -> RequisitionRecord:
        """Hand a pending requisition up one approver level."""
        policy = self._policy
        now = now or self._clock.now()
        with LogContext.bind(requisition_id=requisition_id, actor_id=actor.user_id):
            model = self._load(requisition_id, expected_version)
            if model.state != RequisitionState.AWAITING_APPROVAL.value:
                raise InvalidTransitionError(
                    str(requisition_id), model.state, RequisitionState.ESCALATED.value
                )
            self._check_authority(model, actor)
            if (model.approver_level or 0) >= MAX_APPROVER_LEVEL:
                raise ValidationError(
                    "already at the highest approver level", field="approver_level"
                )
            self._escalate_one_level(
                model, policy, actor.user_id, now, reason or "Escalated", expected_version
            )
            return model.to_dto()

    def process_escalations(self, now: datetime | None = None) -> int:
        """
        Move time-driven escalations forward.

        * ESCALATED with ``requeue_at <= now`` returns to AWAITING_APPROVAL
          at its escalated level with a fresh decision deadline.
        * AWAITING_APPROVAL with ``decision_due_at <= now`` escalates one
          level up.  Requisitions already at the top level are left alone.

        Returns:
            Number of transitions made.
        """
        policy = self._policy
        now = now or self._clock.now()
        count = 0

        requeue = self._session.execute(
            select(RequisitionModel)
            .where(
                RequisitionModel.state == RequisitionState.ESCALATED.value,
                RequisitionModel.requeue_at.is_not(None),
                RequisitionModel.requeue_at <= now,
            )
            .order_by(RequisitionModel.requeue_at)
        ).scalars().all()
        for model in requeue:
            delay = policy.escalation_delay_hours(UrgencyLevel(model.urgency_level))
            try:
                self._transition(
                    model,
                    RequisitionState.AWAITING_APPROVAL,
                    None,
                    now,
                    reason=f"Escalation re-queued to level {model.approver_level}",
                    requeue_at=None,
                    decision_due_at=now + timedelta(hours=delay),
                )
            except ConflictingTransitionError:
                logger.warning(
                    "escalation_conflict", extra={"requisition_id": str(model.id)}
                )
                continue
            count += 1

        overdue = self._session.execute(
            select(RequisitionModel)
            .where(
                RequisitionModel.state == RequisitionState.AWAITING_APPROVAL.value,
                RequisitionModel.decision_due_at.is_not(None),
                RequisitionModel.decision_due_at <= now,
                func.coalesce(RequisitionModel.approver_level, 0) < MAX_APPROVER_LEVEL,
            )
            .order_by(RequisitionModel.decision_due_at)
        ).scalars().all()
        for model in overdue:
            try:
                self._escalate_one_level(
                    model, policy, None, now, "Approval deadline passed"
                )
            except ConflictingTransitionError:
                logger.warning(
                    "escalation_conflict", extra={"requisition_id": str(model.id)}
                )
                continue
            count += 1

        if count:
            logger.info(
                "escalations_processed",
                extra={"count": count, "processed_at": now.isoformat()},
            )
        return count

    def _escalate_one_level(
        self,
        model: RequisitionModel,
        policy: PolicySnapshot,
        actor_id: UUID | None,
        now: datetime,
        reason: str,
        expected_version: int | None = None,
    ) -> None:
        level = min((model.approver_level or 0) + 1, MAX_APPROVER_LEVEL)
        role = policy.role_for_level(level)
        delay = policy.escalation_delay_hours(UrgencyLevel(model.urgency_level))
        self._transition(
            model,
            RequisitionState.ESCALATED,
            actor_id,
            now,
            reason=f"{reason}: escalated to {role} (level {level})",
            payload={"from_level": model.approver_level, "to_level": level},
            expected_version=expected_version,
            approver_role=role,
            approver_level=level,
            budget_hierarchy=policy.hierarchy_for_level(level).value,
            decision_due_at=None,
            requeue_at=now + timedelta(hours=delay),
        )

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    def close(
        self,
        requisition_id: UUID,
        actor: Principal,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> RequisitionRecord:
        """
        Close an AUTO_APPROVED or EMERGENCY_BYPASSED requisition.

        A bypassed requisition whose override still awaits post-approval
        cannot be closed.
        """
        now = now or self._clock.now()
        with LogContext.bind(requisition_id=requisition_id, actor_id=actor.user_id):
            model = self._load(requisition_id)
            if not can_transition(RequisitionState(model.state), RequisitionState.CLOSED):
                raise InvalidTransitionError(
                    str(requisition_id), model.state, RequisitionState.CLOSED.value
                )
            if model.state == RequisitionState.EMERGENCY_BYPASSED.value:
                override = self._overrides.get(model.override_id)
                if override.awaiting_post_approval:
                    raise PostApprovalPendingError(
                        str(requisition_id), str(model.override_id)
                    )
                if override.approved_by is not None:
                    reason = reason or f"Post-approved by {override.approved_by}"

            self._transition(
                model,
                RequisitionState.CLOSED,
                actor.user_id,
                now,
                reason=reason or "Closed",
            )
            return model.to_dto()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_requisition(self, requisition_id: UUID) -> RequisitionRecord:
        return self._load(requisition_id).to_dto()

    def get_history(self, requisition_id: UUID) -> list[TransitionRecord]:
        """Recorded transitions, oldest first."""
        self._load(requisition_id)
        rows = self._session.execute(
            select(RequisitionTransitionModel)
            .where(RequisitionTransitionModel.requisition_id == requisition_id)
            .order_by(RequisitionTransitionModel.seq)
        ).scalars()
        return [row.to_dto() for row in rows]

    def list_by_state(
        self, state: RequisitionState | str, vessel_id: str | None = None
    ) -> list[RequisitionRecord]:
        stmt = (
            select(RequisitionModel)
            .where(RequisitionModel.state == RequisitionState(state).value)
            .order_by(RequisitionModel.created_at)
        )
        if vessel_id is not None:
            stmt = stmt.where(RequisitionModel.vessel_id == vessel_id)
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(
        self, requisition_id: UUID, expected_version: int | None = None
    ) -> RequisitionModel:
        model = self._session.get(RequisitionModel, requisition_id, populate_existing=True)
        if model is None:
            raise RequisitionNotFoundError(str(requisition_id))
        if expected_version is not None and model.version != expected_version:
            raise ConflictingTransitionError(
                str(requisition_id), f"version {expected_version}", model.state
            )
        return model

    def _validated_fields(
        self,
        *,
        amount: Any,
        currency: str,
        urgency_level: UrgencyLevel | str,
        criticality_level: CriticalityLevel | str,
        item_categories: Sequence[str],
        attributes: dict[str, Any] | None,
    ) -> dict[str, Any]:
        try:
            amount = Decimal(str(amount))
        except ArithmeticError as exc:
            raise ValidationError(f"not a decimal amount: {amount!r}", field="amount") from exc
        if not amount.is_finite() or amount < 0:
            raise ValidationError("amount must be a non-negative number", field="amount")
        if not currency or len(currency) != 3 or not currency.isalpha():
            raise ValidationError(f"invalid currency code {currency!r}", field="currency")
        try:
            urgency = UrgencyLevel(urgency_level)
            criticality = CriticalityLevel(criticality_level)
        except ValueError as exc:
            raise ValidationError(str(exc), field="urgency_level") from exc
        return {
            "amount": amount,
            "currency": currency.upper(),
            "urgency_level": urgency.value,
            "criticality_level": criticality.value,
            "item_categories": [str(c) for c in item_categories],
            "attributes": dict(attributes or {}),
        }

    def _next_seq(self, requisition_id: UUID) -> int:
        current = self._session.execute(
            select(func.max(RequisitionTransitionModel.seq)).where(
                RequisitionTransitionModel.requisition_id == requisition_id
            )
        ).scalar_one_or_none()
        return (current or 0) + 1

    def _transition(
        self,
        model: RequisitionModel,
        to_state: RequisitionState,
        actor_id: UUID | None,
        now: datetime,
        *,
        rule_or_threshold_id: str | None = None,
        reason: str = "",
        payload: dict[str, Any] | None = None,
        expected_version: int | None = None,
        **values: Any,
    ) -> None:
        """Conditionally move ``model`` to ``to_state`` and log the transition."""
        from_state = RequisitionState(model.state)
        if not can_transition(from_state, to_state):
            raise InvalidTransitionError(str(model.id), from_state.value, to_state.value)

        version = expected_version if expected_version is not None else model.version
        result = self._session.execute(
            update(RequisitionModel)
            .where(
                RequisitionModel.id == model.id,
                RequisitionModel.state == from_state.value,
                RequisitionModel.version == version,
            )
            .values(
                state=to_state.value,
                version=version + 1,
                updated_at=now,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = self._session.execute(
                select(RequisitionModel.state).where(RequisitionModel.id == model.id)
            ).scalar_one_or_none()
            logger.warning(
                "requisition_transition_conflict",
                extra={
                    "requisition_id": str(model.id),
                    "expected_state": from_state.value,
                    "actual_state": current,
                },
            )
            raise ConflictingTransitionError(str(model.id), from_state.value, current)

        seq = self._next_seq(model.id)
        self._session.add(
            RequisitionTransitionModel(
                requisition_id=model.id,
                seq=seq,
                from_state=from_state.value,
                to_state=to_state.value,
                actor_id=actor_id,
                occurred_at=now,
                rule_or_threshold_id=rule_or_threshold_id,
                reason=reason,
                payload=payload,
            )
        )
        self._session.flush()
        self._session.refresh(model)

        logger.info(
            "requisition_transition",
            extra={
                "requisition_id": str(model.id),
                "from_state": from_state.value,
                "to_state": to_state.value,
                "seq": seq,
                "rule_or_threshold_id": rule_or_threshold_id,
            },
        )
