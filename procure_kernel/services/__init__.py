"""Services for the procurement kernel (write side).  None of them commit."""

from procure_kernel.services.auditor_service import AuditorService
from procure_kernel.services.override_service import OverrideService
from procure_kernel.services.policy_store import PolicyStore
from procure_kernel.services.sequence_service import SequenceService
from procure_kernel.services.workflow_service import RequisitionWorkflowService

__all__ = [
    "AuditorService",
    "OverrideService",
    "PolicyStore",
    "RequisitionWorkflowService",
    "SequenceService",
]
