"""
procure_batch -- Periodic maintenance for the approval kernel.

Runs the emergency-override expiry sweep and the escalation re-queue on a
fixed interval, decoupled from request handling.  Both operations are
idempotent, so an external cron calling ``MaintenanceScheduler.tick()``
works as well as the built-in background thread.

Nothing in procure_kernel or procure_engines imports from procure_batch.
"""

from procure_batch.scheduler import MaintenanceResult, MaintenanceScheduler

__all__ = ["MaintenanceResult", "MaintenanceScheduler"]
