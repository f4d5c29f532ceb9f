"""
Tests for the module-level engine and transactional scope.

Covers:
- init_engine_from_url / get_session_factory / reset_engine
- session_scope commit and rollback
- the partial unique index on active overrides
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from procure_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from procure_kernel.db.immutability import unregister_immutability_listeners
from procure_kernel.domain.clock import DeterministicClock
from procure_kernel.models.override import EmergencyOverrideModel
from tests.conftest import VESSEL_ID


@pytest.fixture
def global_engine():
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    unregister_immutability_listeners()
    reset_engine()


def _override_row(user_id, is_active=True):
    now = DeterministicClock().now()
    return EmergencyOverrideModel(
        user_id=user_id,
        vessel_id=VESSEL_ID,
        reason="Fire pump seized",
        urgency_level="EMERGENCY",
        criticality_level="SAFETY_CRITICAL",
        requester_role="CAPTAIN",
        created_at=now,
        expires_at=now + timedelta(hours=24),
        is_active=is_active,
        requires_post_approval=True,
    )


def _count(session):
    return session.execute(
        select(func.count()).select_from(EmergencyOverrideModel)
    ).scalar_one()


class TestModuleEngine:

    def test_uninitialized_engine_raises(self):
        reset_engine()

        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_init_and_reset(self, global_engine):
        assert get_engine() is global_engine
        assert global_engine.dialect.name == "sqlite"

        reset_engine()

        with pytest.raises(RuntimeError):
            get_engine()


class TestSessionScope:

    def test_commits_on_exit(self, global_engine):
        with session_scope() as session:
            session.add(_override_row(uuid4()))

        with session_scope() as session:
            assert _count(session) == 1

    def test_rolls_back_on_error(self, global_engine, captured_logs):
        with pytest.raises(ValueError):
            with session_scope() as session:
                session.add(_override_row(uuid4()))
                session.flush()
                raise ValueError("abort")

        with session_scope() as session:
            assert _count(session) == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())


class TestActiveOverrideIndex:

    def test_second_active_row_rejected(self, global_engine):
        user_id = uuid4()

        with pytest.raises(IntegrityError):
            with session_scope() as session:
                session.add(_override_row(user_id))
                session.add(_override_row(user_id))
                session.flush()

    def test_inactive_rows_do_not_count(self, global_engine):
        user_id = uuid4()

        with session_scope() as session:
            session.add(_override_row(user_id, is_active=False))
            session.add(_override_row(user_id, is_active=False))
            session.add(_override_row(user_id))

        with session_scope() as session:
            assert _count(session) == 3
