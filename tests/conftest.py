"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine

from spendly.core.approval.orchestrator import ApprovalOrchestrator
from spendly.core.config import Settings
from spendly.core.policy.thresholds import ThresholdResolver
from spendly.db.session import build_session_factory, init_db
from spendly.db.stores import SqlPolicyStore
from spendly.services.execution import InlineExecutionDispatcher, RecordingExecutionSignaler


class FixedClock:
    """Clock that returns a scripted sequence of instants."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0), step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def now(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


@pytest.fixture
def settings():
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        default_auto_approve_threshold=Decimal("0"),
        default_dual_approval_threshold=Decimal("5000"),
        max_conflict_retries=3,
        execution_max_retries=3,
        execution_retry_delay=0,
        file_logging=False,
    )


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine so each session gets its own connection."""
    engine = create_engine(f"sqlite:///{tmp_path / 'spendly.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def signaler():
    return RecordingExecutionSignaler()


@pytest.fixture
def dispatcher(session_factory, signaler):
    return InlineExecutionDispatcher(session_factory, signaler)


@pytest.fixture
def orchestrator(session_factory, settings, clock, dispatcher):
    return ApprovalOrchestrator(
        session_factory,
        resolver=ThresholdResolver(SqlPolicyStore(session_factory), settings),
        clock=clock,
        dispatcher=dispatcher,
        settings=settings,
    )
