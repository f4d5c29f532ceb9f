"""ORM models.  Importing this package registers every table on ``Base.metadata``."""

from procure_kernel.models.audit_event import AuditEvent
from procure_kernel.models.override import EmergencyOverrideModel
from procure_kernel.models.policy import ApprovalThresholdModel, WorkflowRuleModel
from procure_kernel.models.requisition import (
    RequisitionModel,
    RequisitionTransitionModel,
)
from procure_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "ApprovalThresholdModel",
    "AuditEvent",
    "EmergencyOverrideModel",
    "RequisitionModel",
    "RequisitionTransitionModel",
    "SequenceCounter",
    "WorkflowRuleModel",
]
