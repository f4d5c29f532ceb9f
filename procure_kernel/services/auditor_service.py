"""
AuditorService -- hash-chained security and compliance audit trail.

Responsibility:
    Records every emergency-access decision and override lifecycle step as
    an immutable, hash-chained ``AuditEvent``.  Security events carry a
    severity; compliance events carry a regulation tag (SOLAS by default),
    the vessel and a compliance status.  Provides chain validation and
    trace queries.

Architecture position:
    Kernel > Services.  Called by OverrideService and
    RequisitionWorkflowService.

Invariants enforced:
    - seq comes from SequenceService (locked counter row).
    - hash = H(seq | category | action | resource | payload_hash | prev_hash).
    - Append-only (ORM listeners on AuditEvent).

Failure modes:
    - Each event is written inside a SAVEPOINT.  A database failure while
      writing is logged as ``audit_write_failed`` and the savepoint is rolled
      back; the caller's business change stays in its transaction and
      ``None`` is returned.
    - AuditChainBrokenError from ``validate_chain()`` on tampering.
"""

import json
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from procure_kernel.domain.audit import AuditCategory, AuditSeverity, ComplianceStatus
from procure_kernel.domain.clock import Clock, SystemClock
from procure_kernel.exceptions import AuditChainBrokenError
from procure_kernel.logging_config import get_logger
from procure_kernel.models.audit_event import AuditEvent
from procure_kernel.services.sequence_service import SequenceService
from procure_kernel.utils.hashing import canonicalize_json, hash_audit_event, hash_payload

logger = get_logger("services.auditor")


class AuditorService:
    """
    Writes and verifies the audit chain.

    Does NOT commit; events become durable with the caller's transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def _append(
        self,
        category: AuditCategory,
        action: str,
        resource: str,
        actor_id: UUID | None,
        payload: dict[str, Any] | None,
        *,
        severity: AuditSeverity | None = None,
        regulation: str | None = None,
        vessel_id: str | None = None,
        compliance_status: ComplianceStatus | None = None,
    ) -> AuditEvent:
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        # Round-trip through canonical JSON so the stored payload hashes the
        # same when re-read for validation.
        payload_data = json.loads(canonicalize_json(payload or {}))
        payload_hash = hash_payload(payload_data)
        event_hash = hash_audit_event(
            seq=seq,
            category=category.value,
            action=action,
            resource=resource,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        event = AuditEvent(
            seq=seq,
            category=category.value,
            action=action,
            resource=resource,
            actor_id=actor_id,
            severity=severity.value if severity else None,
            regulation=regulation,
            vessel_id=vessel_id,
            compliance_status=compliance_status.value if compliance_status else None,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(event)
        self._session.flush()
        return event

    def _write(self, category: AuditCategory, action: str, resource: str, **kwargs) -> AuditEvent | None:
        try:
            with self._session.begin_nested():
                event = self._append(category, action, resource, **kwargs)
        except SQLAlchemyError:
            logger.error(
                "audit_write_failed",
                extra={
                    "category": category.value,
                    "action": action,
                    "resource": resource,
                },
                exc_info=True,
            )
            return None

        logger.info(
            "audit_event_created",
            extra={
                "category": category.value,
                "action": action,
                "resource": resource,
                "seq": event.seq,
            },
        )
        return event

    def log_security_event(
        self,
        action: str,
        resource: str,
        actor_id: UUID | None,
        severity: AuditSeverity,
        metadata: dict[str, Any] | None = None,
        vessel_id: str | None = None,
    ) -> AuditEvent | None:
        """Record a security event.  Returns None if the write failed."""
        return self._write(
            AuditCategory.SECURITY,
            str(getattr(action, "value", action)),
            resource,
            actor_id=actor_id,
            payload=metadata,
            severity=AuditSeverity(severity),
            vessel_id=vessel_id,
        )

    def log_compliance_event(
        self,
        regulation: str,
        action: str,
        vessel_id: str,
        status: ComplianceStatus,
        metadata: dict[str, Any] | None = None,
        actor_id: UUID | None = None,
        resource: str | None = None,
    ) -> AuditEvent | None:
        """Record a compliance event.  Returns None if the write failed."""
        return self._write(
            AuditCategory.COMPLIANCE,
            str(getattr(action, "value", action)),
            resource or f"vessel:{vessel_id}",
            actor_id=actor_id,
            payload=metadata,
            regulation=regulation,
            vessel_id=vessel_id,
            compliance_status=ComplianceStatus(status),
        )

    def validate_chain(self) -> bool:
        """
        Recompute every hash and check every link.

        Raises:
            AuditChainBrokenError: at the first event that does not verify.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        prev: AuditEvent | None = None
        for event in events:
            expected_prev = prev.hash if prev is not None else None
            if event.prev_hash != expected_prev:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    event.seq, expected_prev or "None", event.prev_hash or "None"
                )

            payload_hash = hash_payload(event.payload or {})
            expected_hash = hash_audit_event(
                seq=event.seq,
                category=event.category,
                action=event.action,
                resource=event.resource,
                payload_hash=payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash or event.payload_hash != payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(event.seq, expected_hash, event.hash)
            prev = event

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_events(
        self,
        category: AuditCategory | None = None,
        action: str | None = None,
        resource: str | None = None,
        since: datetime | None = None,
    ) -> list[AuditEvent]:
        """Events in sequence order, optionally filtered."""
        stmt = select(AuditEvent).order_by(AuditEvent.seq)
        if category is not None:
            stmt = stmt.where(AuditEvent.category == AuditCategory(category).value)
        if action is not None:
            stmt = stmt.where(AuditEvent.action == str(getattr(action, "value", action)))
        if resource is not None:
            stmt = stmt.where(AuditEvent.resource == resource)
        if since is not None:
            stmt = stmt.where(AuditEvent.occurred_at >= since)
        return list(self._session.execute(stmt).scalars().all())

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(
            self._session.execute(
                select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(limit)
            ).scalars().all()
        )
