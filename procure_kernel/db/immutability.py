"""
ORM-level immutability for append-only records.

Requisition transitions and audit events are evidence.  Once flushed they
are never updated or deleted through the ORM: SQLAlchemy fires
``before_update`` / ``before_delete`` before the SQL is emitted and the
listeners here raise ``ImmutabilityViolationError``.

    session.flush()
         |
         v
    [before_update / before_delete] --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk ``update()``/``delete()`` statements bypass mapper events; services
never issue them against these tables.

Protected entities:

    Entity                  | When immutable
    ------------------------|----------------------
    RequisitionTransition   | always
    AuditEvent              | always
"""

from sqlalchemy import event

from procure_kernel.exceptions import ImmutabilityViolationError
from procure_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(operation: str):
    def _listener(mapper, connection, target):
        entity_type = type(target).__name__
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": entity_type,
                "entity_id": str(target.id),
                "operation": operation,
            },
        )
        raise ImmutabilityViolationError(
            entity_type=entity_type,
            entity_id=str(target.id),
            reason=f"{entity_type} records are append-only ({operation} refused)",
        )

    return _listener


_check_update = _block("UPDATE")
_check_delete = _block("DELETE")


def _protected_models():
    from procure_kernel.models.audit_event import AuditEvent
    from procure_kernel.models.requisition import RequisitionTransitionModel

    return (AuditEvent, RequisitionTransitionModel)


def register_immutability_listeners() -> None:
    """Attach the listeners.  Safe to call more than once."""
    for model in _protected_models():
        if not event.contains(model, "before_update", _check_update):
            event.listen(model, "before_update", _check_update)
        if not event.contains(model, "before_delete", _check_delete):
            event.listen(model, "before_delete", _check_delete)


def unregister_immutability_listeners() -> None:
    """Remove the listeners. TESTS ONLY."""
    for model in _protected_models():
        if event.contains(model, "before_update", _check_update):
            event.remove(model, "before_update", _check_update)
        if event.contains(model, "before_delete", _check_delete):
            event.remove(model, "before_delete", _check_delete)
