"""
Pytest fixtures for the governance approval test suite.

Provides:
- Structured logging configured once per session, plus ``captured_logs``
- A deterministic clock
- A small product catalog, user directory and rule store
- An approval service wired to a recording commit callback
- An in-memory SQLite archive for persistence tests
"""

import json
import logging
from io import StringIO

import pytest

from governance_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from governance_kernel.domain.approval import ActorContext
from governance_kernel.domain.clock import DeterministicClock
from governance_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from governance_kernel.services.approval_service import ApprovalService
from governance_kernel.services.attribute_catalog import AttributeCatalog
from governance_kernel.services.directory import User, UserDirectory
from governance_kernel.services.rule_store import RuleConfigurationStore
from tests.factories import ENTITY_TYPES, product_attributes


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
    Capture governance_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("governance_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def catalog():
    return AttributeCatalog(product_attributes())


@pytest.fixture
def rule_store(catalog):
    return RuleConfigurationStore(catalog, entity_types=ENTITY_TYPES)


@pytest.fixture
def directory():
    return UserDirectory([
        User("admin", "John Admin", "john@company.com", "admin"),
        User("jane", "Jane Maker", "jane@company.com", "maker"),
        User("bob", "Bob Checker", "bob@company.com", "checker"),
        User("carol", "Carol Checker", "carol@company.com", "checker"),
        User("alice", "Alice Viewer", "alice@company.com", "viewer"),
    ])


@pytest.fixture
def commits():
    """Requests handed to the commit callback, in order."""
    return []


@pytest.fixture
def service(rule_store, catalog, directory, commits, clock):
    return ApprovalService(
        rule_store,
        catalog,
        directory,
        commit_callback=commits.append,
        clock=clock,
    )


@pytest.fixture
def jane():
    return ActorContext(actor_id="jane", role="maker")


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_session():
    """Session on a fresh in-memory SQLite database with the archive tables."""
    init_engine_from_url("sqlite://")
    create_tables()
    session = get_session()
    yield session
    session.close()
    reset_engine()
