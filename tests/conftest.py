"""
Pytest fixtures for the cash fund test suite.

Provides:
- An in-memory SQLite engine per test (StaticPool, foreign keys on)
- SqlEntityStore, LedgerMirror, FundCommandService wired to it
- DeterministicClock pinned to 2024-07-15 10:00 in the reporting timezone
- Authenticated and anonymous AdminSession values
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from kas_kernel.db.engine import build_engine, create_tables
from kas_kernel.domain.clock import DeterministicClock
from kas_kernel.domain.session import AdminSession
from kas_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from kas_kernel.services.entity_store import SqlEntityStore
from kas_kernel.services.object_storage import LocalObjectStorage
from kas_engines.mirror import LedgerMirror
from kas_services.commands import FundCommandService

# 2024-07-15 10:00 at UTC+7
TEST_NOW = datetime(2024, 7, 15, 3, 0, 0, tzinfo=timezone.utc)

TEST_ADMIN = "pku19"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
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
    Capture kas_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, commands):
            commands.add_income(...)
            logs = captured_logs()
            assert any(r["message"] == "transaction_added" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("kas_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database and store
# =============================================================================


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def store(session_factory, deterministic_clock):
    s = SqlEntityStore(session_factory, clock=deterministic_clock)
    yield s
    s.close()


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(tmp_path / "uploads", "https://files.example.test/kas")


@pytest.fixture
def mirror(store):
    m = LedgerMirror(store)
    m.start()
    yield m
    m.close()


# =============================================================================
# Sessions and commands
# =============================================================================


@pytest.fixture
def admin() -> AdminSession:
    return AdminSession(is_authenticated=True, username=TEST_ADMIN)


@pytest.fixture
def anonymous() -> AdminSession:
    return AdminSession.anonymous()


@pytest.fixture
def commands(store, storage, deterministic_clock):
    return FundCommandService(store, storage, clock=deterministic_clock)


@pytest.fixture
def add_student(commands, admin):
    """Factory: add a student through the command layer."""

    def _add(nim="19001", name="Budi Santoso", angkatan="PKU 19"):
        return commands.add_student(admin, nim, name, angkatan)

    return _add
