"""
MaintenanceScheduler -- in-process polling scheduler for kernel housekeeping.

Contract:
    Every ``sweep_interval_seconds`` (default one hour) opens a session,
    deactivates expired emergency overrides and moves time-driven
    escalations forward, committing after each step.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - Each step commits on its own; a failing step is rolled back and
      logged without undoing the other.
    - Graceful shutdown: ``stop()`` signals the loop and waits for the
      running tick to finish.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from procure_kernel.domain.clock import Clock, SystemClock
from procure_kernel.domain.policy import PolicySnapshot
from procure_kernel.logging_config import LogContext, get_logger
from procure_kernel.services.auditor_service import AuditorService
from procure_kernel.services.override_service import OverrideService
from procure_kernel.services.workflow_service import RequisitionWorkflowService

logger = get_logger("batch.scheduler")

DEFAULT_SWEEP_INTERVAL_SECONDS = 3600


@dataclass(frozen=True)
class MaintenanceResult:
    """Outcome of one tick.  ``None`` marks a step that failed."""

    ran_at: datetime
    expired_overrides: int | None
    escalations: int | None

    @property
    def succeeded(self) -> bool:
        return self.expired_overrides is not None and self.escalations is not None


class MaintenanceScheduler:
    """Runs the override expiry sweep and escalation processing periodically.

    Non-goals:
        - NOT a distributed scheduler (no leader election).  Running two
          instances is safe because both steps are idempotent.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        policy: PolicySnapshot,
        clock: Clock | None = None,
        sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ):
        self._session_factory = session_factory
        self._policy = policy
        self._clock = clock or SystemClock()
        self._interval = sweep_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def reconfigure(self, policy: PolicySnapshot) -> None:
        self._policy = policy

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> MaintenanceResult:
        """Run one maintenance pass (public for testing and external cron)."""
        now = self._clock.now()
        policy = self._policy

        with LogContext.bind(correlation_id=f"maintenance:{now.isoformat()}"):
            expired = self._run_step(
                "sweep_expired",
                lambda session, auditor: OverrideService(
                    session, auditor, policy, self._clock
                ).sweep_expired(now),
            )
            escalations = self._run_step(
                "process_escalations",
                lambda session, auditor: RequisitionWorkflowService(
                    session, auditor, policy, clock=self._clock
                ).process_escalations(now),
            )
            logger.info(
                "maintenance_tick",
                extra={
                    "ran_at": now.isoformat(),
                    "expired_overrides": expired,
                    "escalations": escalations,
                },
            )
        return MaintenanceResult(now, expired, escalations)

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="maintenance-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"sweep_interval": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler thread to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_step(
        self,
        name: str,
        step: Callable[[Session, AuditorService], int],
    ) -> int | None:
        session = self._session_factory()
        try:
            count = step(session, AuditorService(session, self._clock))
            session.commit()
            return count
        except Exception:
            session.rollback()
            logger.exception("maintenance_step_failed", extra={"step": name})
            return None
        finally:
            session.close()

    def _run_loop(self) -> None:
        """Background polling loop.  Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._interval)
