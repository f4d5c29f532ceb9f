"""
Tests for RequisitionWorkflowService: the requisition approval state machine.

Covers:
- Creation and revision of requisitions
- Submission routing: auto-approve, awaiting approval, escalate
- Approver decisions with authority and vessel checks
- Stale-version conflicts
- Emergency bypass through an attached override, and closing
- Time-driven escalation (process_escalations)
- Notifications and the budget provider
- Transition history
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from procure_kernel.domain.approval import RequisitionState
from procure_kernel.domain.audit import SecurityAction
from procure_kernel.domain.policy import parse_rule
from procure_kernel.domain.principal import UserRole
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
    NoApplicableThresholdError,
    OverrideExpiredError,
    PostApprovalPendingError,
    RequisitionNotFoundError,
    RoleNotEligibleError,
    ValidationError,
    VesselNotAuthorizedError,
)
from procure_kernel.services.workflow_service import RequisitionWorkflowService
from tests.conftest import OTHER_VESSEL_ID, VESSEL_ID

S = RequisitionState


@pytest.fixture
def submitted(workflow, make_requisition, captain):
    """Factory: create and submit a requisition; returns the submitted record."""

    def _submit(amount="750", **kwargs):
        requisition = make_requisition(amount, **kwargs)
        return workflow.submit(requisition.requisition_id, captain)

    return _submit


@pytest.fixture
def make_override(overrides, captain):
    def _grant(urgency=UrgencyLevel.EMERGENCY, criticality=CriticalityLevel.SAFETY_CRITICAL,
               principal=None):
        return overrides.grant(
            principal or captain, VESSEL_ID, "Steering gear hydraulic leak", urgency, criticality
        )

    return _grant


# =========================================================================
# Creation
# =========================================================================


class TestCreate:

    def test_new_requisition_is_draft(self, make_requisition, captain):
        requisition = make_requisition("750", currency="usd")

        assert requisition.state is S.DRAFT
        assert requisition.version == 1
        assert requisition.revision == 1
        assert requisition.currency == "USD"
        assert requisition.requester_id == captain.user_id
        assert requisition.requester_role == "CAPTAIN"

    def test_requester_must_be_assigned(self, workflow, make_principal):
        outsider = make_principal(UserRole.CAPTAIN, vessel_ids=(OTHER_VESSEL_ID,))

        with pytest.raises(VesselNotAuthorizedError):
            workflow.create_requisition(outsider, VESSEL_ID, Decimal("10"), "USD")

    def test_admin_may_create_for_any_vessel(self, workflow, make_principal):
        admin = make_principal(UserRole.ADMIN, vessel_ids=())

        requisition = workflow.create_requisition(admin, VESSEL_ID, Decimal("10"), "USD")

        assert requisition.vessel_id == VESSEL_ID

    @pytest.mark.parametrize(
        "amount,currency",
        [("-1", "USD"), ("NaN", "USD"), ("10", "US"), ("10", "U$D")],
    )
    def test_invalid_fields(self, make_requisition, amount, currency):
        with pytest.raises(ValidationError):
            make_requisition(amount, currency=currency)

    def test_invalid_urgency(self, workflow, captain):
        with pytest.raises(ValidationError):
            workflow.create_requisition(captain, VESSEL_ID, Decimal("10"), "USD", "SOON")


# =========================================================================
# Submission routing
# =========================================================================


class TestSubmit:

    def test_small_amount_auto_approves(self, submitted):
        record = submitted("120")

        assert record.state is S.AUTO_APPROVED
        assert record.decided_by_rule == "usd-auto"
        assert record.decided_at is not None

    def test_threshold_routes_to_superintendent(self, submitted, clock):
        record = submitted("750")

        assert record.state is S.AWAITING_APPROVAL
        assert record.approver_role == "SUPERINTENDENT"
        assert record.approver_level == 1
        assert record.budget_hierarchy is BudgetHierarchy.VESSEL
        assert record.cost_center_required is True
        assert record.decided_by_rule == "usd-superintendent"
        assert record.decision_due_at == clock.now() + timedelta(hours=24)
        assert record.version == 3

    def test_urgent_shortens_deadline(self, submitted, clock):
        record = submitted("750", urgency=UrgencyLevel.URGENT)

        assert record.decision_due_at == clock.now() + timedelta(hours=2)

    def test_history_records_each_step(self, workflow, submitted, captain):
        record = submitted("750")

        history = workflow.get_history(record.requisition_id)

        assert [h.seq for h in history] == [1, 2]
        assert [(h.from_state, h.to_state) for h in history] == [
            (S.DRAFT, S.SUBMITTED),
            (S.SUBMITTED, S.AWAITING_APPROVAL),
        ]
        assert history[1].rule_or_threshold_id == "usd-superintendent"
        assert history[1].payload["approver_role"] == "SUPERINTENDENT"
        assert all(h.actor_id == captain.user_id for h in history)

    def test_no_threshold_leaves_draft(self, workflow, make_requisition, captain):
        requisition = make_requisition("750", currency="NOK")

        with pytest.raises(NoApplicableThresholdError):
            workflow.submit(requisition.requisition_id, captain)

        assert workflow.get_requisition(requisition.requisition_id).state is S.DRAFT
        assert workflow.get_history(requisition.requisition_id) == []

    def test_only_requester_submits(self, workflow, make_requisition, make_principal):
        requisition = make_requisition("750")

        with pytest.raises(InsufficientAuthorityError):
            workflow.submit(requisition.requisition_id, make_principal(UserRole.CAPTAIN))

    def test_submit_twice(self, workflow, submitted, captain):
        record = submitted("750")

        with pytest.raises(InvalidTransitionError):
            workflow.submit(record.requisition_id, captain)

    def test_evaluate_changes_nothing(self, workflow, make_requisition):
        requisition = make_requisition("6000")

        decision = workflow.evaluate(requisition.requisition_id)

        assert decision.approver_role == "PROCUREMENT_MANAGER"
        assert workflow.get_requisition(requisition.requisition_id).state is S.DRAFT

    def test_unknown_requisition(self, workflow, captain):
        with pytest.raises(RequisitionNotFoundError):
            workflow.submit(uuid4(), captain)

    def test_escalate_rule_sets_requeue(
        self, session, auditor, policy, overrides, clock, make_principal, captain
    ):
        rule = parse_rule({
            "rule_id": "dry-dock",
            "priority": 10,
            "conditions": [{"field": "metadata.dry_dock", "operator": "eq", "value": True}],
            "actions": [{"type": "ESCALATE", "approver_level": 2, "escalation_delay_hours": 6}],
        })
        workflow = RequisitionWorkflowService(
            session, auditor, policy.with_rules((rule,)), overrides=overrides, clock=clock
        )
        requisition = workflow.create_requisition(
            captain, VESSEL_ID, Decimal("750"), "USD", attributes={"dry_dock": True}
        )

        record = workflow.submit(requisition.requisition_id, captain)

        assert record.state is S.ESCALATED
        assert record.approver_role == "PROCUREMENT_MANAGER"
        assert record.decided_by_rule == "dry-dock"
        assert record.requeue_at == clock.now() + timedelta(hours=6)

    def test_escalate_rule_without_level_moves_one_level_up(
        self, session, auditor, policy, overrides, clock, captain
    ):
        rule = parse_rule({
            "rule_id": "engine-spares",
            "priority": 10,
            "conditions": [{"field": "item_categories", "operator": "contains", "value": "ENGINE"}],
            "actions": [{"type": "ESCALATE"}],
        })
        workflow = RequisitionWorkflowService(
            session, auditor, policy.with_rules((rule,)), overrides=overrides, clock=clock
        )
        requisition = workflow.create_requisition(
            captain, VESSEL_ID, Decimal("1000"), "USD", item_categories=("ENGINE",)
        )

        record = workflow.submit(requisition.requisition_id, captain)

        assert record.state is S.ESCALATED
        assert record.approver_level == 2
        assert record.approver_role == "PROCUREMENT_MANAGER"

        clock.advance(hours=25)
        assert workflow.process_escalations() == 1
        requeued = workflow.get_requisition(requisition.requisition_id)
        assert requeued.state is S.AWAITING_APPROVAL
        assert requeued.approver_level == 2


# =========================================================================
# Approver decisions
# =========================================================================


class TestDecisions:

    def test_approve(self, workflow, submitted, superintendent, clock):
        record = submitted("750")

        approved = workflow.approve(record.requisition_id, superintendent)

        assert approved.state is S.APPROVED
        assert approved.decided_by == superintendent.user_id
        assert approved.decided_at == clock.now()
        assert approved.decision_due_at is None
        assert approved.is_terminal

    def test_reject_requires_reason(self, workflow, submitted, superintendent):
        record = submitted("750")

        with pytest.raises(ValidationError):
            workflow.reject(record.requisition_id, superintendent, "  ")

        rejected = workflow.reject(record.requisition_id, superintendent, "Wrong part number")
        assert rejected.state is S.REJECTED
        assert workflow.get_history(record.requisition_id)[-1].reason == "Wrong part number"

    def test_vessel_roles_cannot_approve(self, workflow, submitted, captain):
        record = submitted("750")

        with pytest.raises(InsufficientAuthorityError):
            workflow.approve(record.requisition_id, captain)

    def test_lower_level_cannot_approve(self, workflow, submitted, superintendent):
        record = submitted("6000")

        with pytest.raises(InsufficientAuthorityError):
            workflow.approve(record.requisition_id, superintendent)

    def test_vessel_budget_needs_assignment(self, workflow, submitted, make_principal):
        record = submitted("750")
        elsewhere = make_principal(UserRole.SUPERINTENDENT, vessel_ids=(OTHER_VESSEL_ID,))

        with pytest.raises(VesselNotAuthorizedError):
            workflow.approve(record.requisition_id, elsewhere)

    def test_fleet_budget_needs_no_assignment(self, workflow, submitted, make_principal):
        record = submitted("6000")
        manager = make_principal(UserRole.PROCUREMENT_MANAGER, vessel_ids=())

        assert workflow.approve(record.requisition_id, manager).state is S.APPROVED

    def test_higher_level_may_approve(self, workflow, submitted, make_principal):
        record = submitted("750")
        finance = make_principal(UserRole.FINANCE_TEAM)

        assert workflow.approve(record.requisition_id, finance).state is S.APPROVED

    def test_second_decision_conflicts(
        self, workflow, submitted, superintendent, make_principal, captured_logs
    ):
        record = submitted("750")
        workflow.approve(record.requisition_id, superintendent)
        other = make_principal(UserRole.SUPERINTENDENT)

        with pytest.raises(ConflictingTransitionError) as exc_info:
            workflow.reject(record.requisition_id, other, "changed my mind")

        assert exc_info.value.actual_state == "APPROVED"
        assert [h.to_state for h in workflow.get_history(record.requisition_id)][-1] is S.APPROVED
        conflicts = [r for r in captured_logs() if r["message"] == "requisition_already_decided"]
        assert conflicts[0]["decided_by"] == str(superintendent.user_id)
        assert conflicts[0]["attempted"] == "REJECTED"

    def test_rejected_requisition_conflicts_too(self, workflow, submitted, superintendent):
        record = submitted("750")
        workflow.reject(record.requisition_id, superintendent, "Wrong vendor")

        with pytest.raises(ConflictingTransitionError):
            workflow.approve(record.requisition_id, superintendent)

    def test_auto_approved_is_not_decidable(self, workflow, submitted, superintendent):
        record = submitted("100")

        with pytest.raises(InvalidTransitionError):
            workflow.approve(record.requisition_id, superintendent)

    def test_stale_version_conflicts(self, workflow, submitted, superintendent):
        record = submitted("750")

        with pytest.raises(ConflictingTransitionError):
            workflow.approve(
                record.requisition_id, superintendent, expected_version=record.version - 1
            )

        approved = workflow.approve(
            record.requisition_id, superintendent, expected_version=record.version
        )
        assert approved.version == record.version + 1


# =========================================================================
# Escalation
# =========================================================================


class TestEscalation:

    def test_manual_escalation(self, workflow, submitted, superintendent, clock):
        record = submitted("750")

        escalated = workflow.escalate(
            record.requisition_id, superintendent, "Exceeds my discretion"
        )

        assert escalated.state is S.ESCALATED
        assert escalated.approver_level == 2
        assert escalated.approver_role == "PROCUREMENT_MANAGER"
        assert escalated.budget_hierarchy is BudgetHierarchy.FLEET
        assert escalated.requeue_at == clock.now() + timedelta(hours=24)
        reason = workflow.get_history(record.requisition_id)[-1].reason
        assert reason == "Exceeds my discretion: escalated to PROCUREMENT_MANAGER (level 2)"

    def test_escalated_can_be_decided(self, workflow, submitted, superintendent, make_principal):
        record = submitted("750")
        workflow.escalate(record.requisition_id, superintendent, "Needs fleet sign-off")

        manager = make_principal(UserRole.PROCUREMENT_MANAGER, vessel_ids=())
        assert workflow.approve(record.requisition_id, manager).state is S.APPROVED

    def test_top_level_cannot_escalate(self, workflow, submitted, make_principal):
        record = submitted("30000")

        with pytest.raises(ValidationError):
            workflow.escalate(record.requisition_id, make_principal(UserRole.FINANCE_TEAM), "up")

    def test_deadline_escalates_then_requeues(self, workflow, submitted, clock):
        record = submitted("750")

        clock.advance(hours=24)
        assert workflow.process_escalations() == 1
        escalated = workflow.get_requisition(record.requisition_id)
        assert escalated.state is S.ESCALATED
        assert escalated.approver_level == 2

        clock.advance(hours=24)
        assert workflow.process_escalations() == 1
        requeued = workflow.get_requisition(record.requisition_id)
        assert requeued.state is S.AWAITING_APPROVAL
        assert requeued.approver_level == 2
        assert requeued.decision_due_at == clock.now() + timedelta(hours=24)
        assert requeued.requeue_at is None

        history = workflow.get_history(record.requisition_id)
        assert history[-2].reason.startswith("Approval deadline passed")
        assert history[-1].reason == "Escalation re-queued to level 2"
        assert history[-1].actor_id is None

    def test_nothing_due(self, workflow, submitted, clock):
        submitted("750")
        clock.advance(hours=23)

        assert workflow.process_escalations() == 0

    def test_top_level_is_left_alone(self, workflow, submitted, clock):
        record = submitted("30000")
        clock.advance(hours=48)

        assert workflow.process_escalations() == 0
        assert workflow.get_requisition(record.requisition_id).state is S.AWAITING_APPROVAL

    def test_processing_is_idempotent(self, workflow, submitted, clock, captured_logs):
        submitted("750")
        clock.advance(hours=24)

        assert workflow.process_escalations() == 1
        assert workflow.process_escalations() == 0
        assert sum(
            1 for r in captured_logs() if r["message"] == "escalations_processed"
        ) == 1


# =========================================================================
# Emergency bypass
# =========================================================================


class TestEmergencyBypass:

    def test_bypass_awaits_post_approval(
        self, workflow, make_requisition, make_override, captain, auditor
    ):
        override = make_override()
        requisition = make_requisition(
            "40000",
            urgency=UrgencyLevel.EMERGENCY,
            criticality=CriticalityLevel.SAFETY_CRITICAL,
        )

        record = workflow.submit(
            requisition.requisition_id, captain, override_id=override.override_id
        )

        assert record.state is S.EMERGENCY_BYPASSED
        assert record.override_id == override.override_id
        history = workflow.get_history(requisition.requisition_id)
        assert history[-1].rule_or_threshold_id == f"emergency_override:{override.override_id}"
        assert history[-1].reason.startswith("Emergency bypass: ")
        applied = auditor.get_events(action=SecurityAction.EMERGENCY_BYPASS_APPLIED)
        assert applied[0].resource == f"requisition:{requisition.requisition_id}"

    def test_close_waits_for_post_approval(
        self, workflow, overrides, make_requisition, make_override, captain, superintendent
    ):
        override = make_override()
        requisition = make_requisition(
            "900",
            urgency=UrgencyLevel.EMERGENCY,
            criticality=CriticalityLevel.SAFETY_CRITICAL,
        )
        workflow.submit(requisition.requisition_id, captain, override_id=override.override_id)

        with pytest.raises(PostApprovalPendingError):
            workflow.close(requisition.requisition_id, superintendent)

        overrides.post_approve(override.override_id, superintendent, "Verified on board")
        closed = workflow.close(requisition.requisition_id, superintendent)

        assert closed.state is S.CLOSED
        assert workflow.get_history(requisition.requisition_id)[-1].reason == (
            f"Post-approved by {superintendent.user_id}"
        )

    def test_bypass_without_post_approval_closes(
        self, workflow, make_requisition, make_override, captain
    ):
        override = make_override(urgency=UrgencyLevel.URGENT)
        requisition = make_requisition(
            "3000",
            urgency=UrgencyLevel.URGENT,
            criticality=CriticalityLevel.SAFETY_CRITICAL,
        )

        record = workflow.submit(
            requisition.requisition_id, captain, override_id=override.override_id
        )

        assert record.state is S.CLOSED
        assert [h.to_state for h in workflow.get_history(record.requisition_id)] == [
            S.SUBMITTED,
            S.EMERGENCY_BYPASSED,
            S.CLOSED,
        ]

    def test_amount_ceiling(self, workflow, make_requisition, make_override, captain):
        override = make_override(urgency=UrgencyLevel.URGENT)
        requisition = make_requisition(
            "6000",
            urgency=UrgencyLevel.URGENT,
            criticality=CriticalityLevel.SAFETY_CRITICAL,
        )

        with pytest.raises(BypassAmountExceededError) as exc_info:
            workflow.submit(requisition.requisition_id, captain, override_id=override.override_id)

        assert exc_info.value.max_amount == Decimal("5000")
        assert workflow.get_requisition(requisition.requisition_id).state is S.DRAFT

    def test_override_of_another_user(
        self, workflow, make_requisition, make_override, make_principal, captain
    ):
        override = make_override(principal=make_principal(UserRole.CHIEF_ENGINEER))
        requisition = make_requisition(
            "900",
            urgency=UrgencyLevel.EMERGENCY,
            criticality=CriticalityLevel.SAFETY_CRITICAL,
        )

        with pytest.raises(RoleNotEligibleError, match="belongs to another user"):
            workflow.submit(requisition.requisition_id, captain, override_id=override.override_id)

    def test_requisition_outside_bypass_table(
        self, workflow, make_requisition, make_override, captain
    ):
        override = make_override()
        requisition = make_requisition("900")

        with pytest.raises(BypassNotConfiguredError):
            workflow.submit(requisition.requisition_id, captain, override_id=override.override_id)

    def test_expired_override(self, workflow, make_requisition, make_override, captain, clock):
        override = make_override()
        requisition = make_requisition(
            "900",
            urgency=UrgencyLevel.EMERGENCY,
            criticality=CriticalityLevel.SAFETY_CRITICAL,
        )
        clock.advance(hours=25)

        with pytest.raises(OverrideExpiredError):
            workflow.submit(requisition.requisition_id, captain, override_id=override.override_id)

    def test_close_auto_approved(self, workflow, submitted, captain):
        record = submitted("100")

        assert workflow.close(record.requisition_id, captain).state is S.CLOSED

    def test_close_pending_is_invalid(self, workflow, submitted, captain):
        record = submitted("750")

        with pytest.raises(InvalidTransitionError):
            workflow.close(record.requisition_id, captain)


# =========================================================================
# Revisions
# =========================================================================


class TestRevision:

    def test_revise_rejected(self, workflow, submitted, superintendent, captain):
        record = submitted("750")
        workflow.reject(record.requisition_id, superintendent, "Split into two orders")

        revision = workflow.create_revision(
            record.requisition_id, captain, amount=Decimal("400")
        )

        assert revision.state is S.DRAFT
        assert revision.revision == 2
        assert revision.parent_id == record.requisition_id
        assert workflow.get_requisition(record.requisition_id).state is S.REJECTED
        assert workflow.submit(revision.requisition_id, captain).state is S.AUTO_APPROVED

    def test_only_rejected_can_be_revised(self, workflow, submitted, captain):
        record = submitted("750")

        with pytest.raises(InvalidTransitionError):
            workflow.create_revision(record.requisition_id, captain, amount=Decimal("10"))

    def test_unknown_change(self, workflow, make_requisition, captain):
        requisition = make_requisition("750")

        with pytest.raises(ValidationError):
            workflow.create_revision(requisition.requisition_id, captain, vessel_id="X")

    def test_other_user_cannot_revise(
        self, workflow, submitted, superintendent, make_principal
    ):
        record = submitted("750")
        workflow.reject(record.requisition_id, superintendent, "no")

        with pytest.raises(InsufficientAuthorityError):
            workflow.create_revision(record.requisition_id, make_principal(UserRole.CAPTAIN))


# =========================================================================
# Collaborators and queries
# =========================================================================


class RecordingNotifier:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def notify(self, requisition_id, recipients, message):
        if self.fail:
            raise RuntimeError("mail relay down")
        self.sent.append((requisition_id, tuple(recipients), message))


class FixedBudget:
    def __init__(self, remaining):
        self.remaining = remaining

    def remaining_budget(self, vessel_id, currency):
        return self.remaining


_NOTIFY_RULE = {
    "rule_id": "notify-dpa",
    "priority": 1,
    "conditions": [
        {"field": "criticality_level", "operator": "eq", "value": "SAFETY_CRITICAL"}
    ],
    "actions": [
        {"type": "NOTIFY", "recipients": ["dpa@fleet"], "message": "Safety purchase"}
    ],
}


class TestCollaborators:

    def _workflow(self, session, auditor, policy, overrides, clock, **kwargs):
        return RequisitionWorkflowService(
            session,
            auditor,
            policy.with_rules((parse_rule(_NOTIFY_RULE),)),
            overrides=overrides,
            clock=clock,
            **kwargs,
        )

    def test_notifications_delivered(self, session, auditor, policy, overrides, clock, captain):
        notifier = RecordingNotifier()
        workflow = self._workflow(session, auditor, policy, overrides, clock, notifier=notifier)
        requisition = workflow.create_requisition(
            captain, VESSEL_ID, Decimal("750"), "USD",
            criticality_level=CriticalityLevel.SAFETY_CRITICAL,
        )

        record = workflow.submit(requisition.requisition_id, captain)

        assert record.state is S.AWAITING_APPROVAL
        assert notifier.sent == [
            (requisition.requisition_id, ("dpa@fleet",), "Safety purchase")
        ]

    def test_notification_failure_does_not_block(
        self, session, auditor, policy, overrides, clock, captain, captured_logs
    ):
        workflow = self._workflow(
            session, auditor, policy, overrides, clock, notifier=RecordingNotifier(fail=True)
        )
        requisition = workflow.create_requisition(
            captain, VESSEL_ID, Decimal("750"), "USD",
            criticality_level=CriticalityLevel.SAFETY_CRITICAL,
        )

        record = workflow.submit(requisition.requisition_id, captain)

        assert record.state is S.AWAITING_APPROVAL
        failures = [r for r in captured_logs() if r["message"] == "notification_failed"]
        assert failures[0]["exc_type"] == "RuntimeError"

    def test_budget_provider_moves_to_fleet(
        self, session, auditor, policy, overrides, clock, captain
    ):
        workflow = RequisitionWorkflowService(
            session, auditor, policy, overrides=overrides, clock=clock,
            budget_provider=FixedBudget(Decimal("100")),
        )
        requisition = workflow.create_requisition(captain, VESSEL_ID, Decimal("750"), "USD")

        record = workflow.submit(requisition.requisition_id, captain)

        assert record.budget_hierarchy is BudgetHierarchy.FLEET
        assert record.approver_role == "PROCUREMENT_MANAGER"

    def test_reconfigure_applies_to_next_submit(self, workflow, policy, make_requisition, captain):
        requisition = make_requisition("750")
        rule = parse_rule({
            "rule_id": "all-auto",
            "priority": 1,
            "conditions": [{"field": "currency", "operator": "eq", "value": "USD"}],
            "actions": [{"type": "APPROVE", "reason": "Drill"}],
        })

        workflow.reconfigure(policy.with_rules((rule,)))

        record = workflow.submit(requisition.requisition_id, captain)
        assert record.state is S.AUTO_APPROVED
        assert record.decided_by_rule == "all-auto"

    def test_list_by_state(self, workflow, submitted, make_requisition):
        submitted("750")
        submitted("100")
        make_requisition("20")

        assert len(workflow.list_by_state(S.AWAITING_APPROVAL)) == 1
        assert len(workflow.list_by_state("AUTO_APPROVED", vessel_id=VESSEL_ID)) == 1
        assert workflow.list_by_state(S.DRAFT, vessel_id=OTHER_VESSEL_ID) == []

    def test_history_of_unknown(self, workflow):
        with pytest.raises(RequisitionNotFoundError):
            workflow.get_history(uuid4())
