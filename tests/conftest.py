"""
Pytest fixtures for the procurement kernel test suite.

Provides:
- In-memory SQLite engine and session with the real ORM models
- DeterministicClock, the default policy snapshot and wired services
- Principal and requisition factories
- Structured log capture

Every test gets a fresh database.  Services never commit, so tests that
need a commit boundary (scheduler) use ``session_factory``.
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from procure_config import get_active_config
from procure_kernel.db.engine import create_engine_for_url, create_tables
from procure_kernel.db.immutability import unregister_immutability_listeners
from procure_kernel.domain.clock import DeterministicClock
from procure_kernel.domain.principal import Principal, UserRole
from procure_kernel.domain.requisition import CriticalityLevel, UrgencyLevel
from procure_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from procure_kernel.services.auditor_service import AuditorService
from procure_kernel.services.override_service import OverrideService
from procure_kernel.services.workflow_service import RequisitionWorkflowService

VESSEL_ID = "IMO-9321483"
OTHER_VESSEL_ID = "IMO-9450624"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture procure_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "requisition_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("procure_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    engine = create_engine_for_url("sqlite://")
    create_tables(engine)
    yield engine
    unregister_immutability_listeners()
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# Kernel fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def policy():
    return get_active_config()


@pytest.fixture
def auditor(session, clock):
    return AuditorService(session, clock)


@pytest.fixture
def overrides(session, auditor, policy, clock):
    return OverrideService(session, auditor, policy, clock)


@pytest.fixture
def workflow(session, auditor, policy, overrides, clock):
    return RequisitionWorkflowService(
        session, auditor, policy, overrides=overrides, clock=clock
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_principal():
    """Factory: ``make_principal(UserRole.CAPTAIN)`` assigned to VESSEL_ID."""

    def _make(
        role: UserRole = UserRole.VESSEL_CREW,
        vessel_ids=(VESSEL_ID,),
        is_active: bool = True,
        user_id=None,
    ) -> Principal:
        return Principal(
            user_id=user_id or uuid4(),
            role=role,
            vessel_ids=frozenset(vessel_ids),
            is_active=is_active,
        )

    return _make


@pytest.fixture
def captain(make_principal):
    return make_principal(UserRole.CAPTAIN)


@pytest.fixture
def superintendent(make_principal):
    return make_principal(UserRole.SUPERINTENDENT)


@pytest.fixture
def make_requisition(workflow, captain):
    """Factory: a DRAFT requisition on VESSEL_ID requested by ``captain``."""

    def _make(
        amount="750",
        currency: str = "USD",
        urgency: UrgencyLevel = UrgencyLevel.ROUTINE,
        criticality: CriticalityLevel = CriticalityLevel.ROUTINE,
        requester: Principal | None = None,
        **kwargs,
    ):
        return workflow.create_requisition(
            requester or captain,
            VESSEL_ID,
            Decimal(amount),
            currency,
            urgency,
            criticality,
            **kwargs,
        )

    return _make
