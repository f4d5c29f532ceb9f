"""
Pluggable collaborator interfaces.

The kernel calls out to these; the host application supplies
implementations.  Both are optional for the workflow service.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, Sequence
from uuid import UUID


class NotificationSender(Protocol):
    """Delivers NOTIFY rule actions."""

    def notify(
        self, requisition_id: UUID, recipients: Sequence[str], message: str
    ) -> None:
        ...


class BudgetProvider(Protocol):
    """Reports the remaining budget for a vessel, or None when unknown."""

    def remaining_budget(self, vessel_id: str, currency: str) -> Decimal | None:
        ...
