"""
Pytest fixtures for the ledger test suite.

Provides:
- Database sessions that roll back at the end of every test
- Seeded organizations and their chart of accounts
- Service fixtures wired to a deterministic clock
- Invoice and bill factories

Environment Variables:
- DATABASE_URL: Connection URL.  Defaults to an in-memory SQLite database.
  Tests marked ``postgres`` (real commits, concurrent sessions) are skipped
  unless this points at PostgreSQL.
"""

import json
import logging
import os
import threading
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from ledger_config import get_active_config
from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
)
from ledger_kernel.db.immutability import unregister_immutability_listeners
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.selectors.balance_calculator import BalanceCalculator
from ledger_kernel.services.account_directory import AccountDirectory
from ledger_kernel.services.chart_seeder import ChartSeeder
from ledger_kernel.services.journal_engine import JournalEngine
from ledger_kernel.services.organization_service import OrganizationService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_modules.ap import APService
from ledger_modules.ar import ARService
from ledger_modules.documents.lifecycle import DocumentLifecycleManager
from ledger_modules.documents.models import DocumentDraft, DocumentKind, LineItemInput
from ledger_modules.documents.selectors import DocumentSelector
from ledger_modules.reporting import ReportingService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"


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
    Capture ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ar_service):
            ar_service.issue_invoice(...)
            logs = captured_logs()
            assert any(r["message"] == "document_issued" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(
        get_database_url(), echo=False,
        pool_size=20, max_overflow=10, pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    ``create_tables`` also registers the journal immutability listeners.
    """
    drop_tables()
    create_tables()
    yield
    unregister_immutability_listeners()
    drop_tables()


def _truncate_all_tables(engine):
    """TRUNCATE all tables for data cleanup after tests that really commit."""
    table_names = [t.name for t in reversed(Base.metadata.sorted_tables)]
    if table_names:
        with engine.connect() as conn:
            conn.execute(text(
                "TRUNCATE " + ", ".join(table_names) + " CASCADE"
            ))
            conn.commit()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection; a
    ``session.commit()`` inside the test only releases a savepoint, and the
    outer transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Concurrency testing fixtures (real commits + TRUNCATE cleanup)
# =============================================================================


@pytest.fixture(scope="function")
def pg_session_factory(db_engine, db_tables):
    """Provide a tracked session factory for creating sessions in concurrent threads.

    Skips unless the suite runs against PostgreSQL.  On teardown every
    tracked session is rolled back and closed, then all data is truncated.
    """
    if not is_postgres():
        pytest.skip("requires PostgreSQL (set DATABASE_URL)")

    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()
    closed = False

    def tracked_factory():
        nonlocal closed
        with lock:
            if closed:
                raise RuntimeError("pg_session_factory closed (fixture teardown)")
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    with lock:
        closed = True

    for s in created_sessions:
        if s.is_active:
            s.rollback()
        s.close()

    _truncate_all_tables(db_engine)


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


# =============================================================================
# Clock and configuration
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2024-01-01 12:00 UTC."""
    return DeterministicClock()


@pytest.fixture
def settings():
    return get_active_config().settings


# =============================================================================
# Organizations
# =============================================================================


def _create_seeded_org(session, clock, name, currency, actor_id):
    context = OrganizationService(session, clock).create_organization(name, currency, actor_id)
    ChartSeeder(session, clock=clock).seed(context)
    session.commit()
    return context


@pytest.fixture
def org_context(session, deterministic_clock, test_actor_id):
    """A USD organization with the default chart of accounts seeded."""
    return _create_seeded_org(session, deterministic_clock, "Acme Test Co", "USD", test_actor_id)


@pytest.fixture
def other_org_context(session, deterministic_clock, test_actor_id):
    """A second seeded organization, for tenant isolation tests."""
    return _create_seeded_org(session, deterministic_clock, "Globex Test Co", "USD", test_actor_id)


@pytest.fixture
def accounts(account_directory, org_context):
    """Seeded accounts of ``org_context`` keyed by account code."""
    return {a.code: a for a in account_directory.list_accounts(org_context)}


@pytest.fixture
def customer_id() -> UUID:
    return uuid4()


@pytest.fixture
def vendor_id() -> UUID:
    return uuid4()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def account_directory(session, deterministic_clock):
    return AccountDirectory(session, deterministic_clock)


@pytest.fixture
def journal_engine(session, deterministic_clock):
    return JournalEngine(session, deterministic_clock)


@pytest.fixture
def balance_calculator(session, deterministic_clock):
    return BalanceCalculator(session, deterministic_clock)


@pytest.fixture
def sequence_service(session):
    return SequenceService(session)


@pytest.fixture
def lifecycle(session, deterministic_clock, settings):
    return DocumentLifecycleManager(session, deterministic_clock, settings)


@pytest.fixture
def document_selector(session, deterministic_clock):
    return DocumentSelector(session, deterministic_clock)


@pytest.fixture
def ar_service(session, deterministic_clock, settings):
    return ARService(session, deterministic_clock, settings)


@pytest.fixture
def ap_service(session, deterministic_clock, settings):
    return APService(session, deterministic_clock, settings)


@pytest.fixture
def reporting_service(session, deterministic_clock):
    return ReportingService(session, deterministic_clock)


# =============================================================================
# Document factories
# =============================================================================


def _single_line_draft(counterparty_id, amount, tax, issue_date, due_date):
    return DocumentDraft(
        counterparty_id=counterparty_id,
        lines=(
            LineItemInput(
                description="Consulting services",
                quantity=Decimal("1"),
                unit_price=Decimal(amount),
                tax_amount=Decimal(tax),
            ),
        ),
        issue_date=issue_date,
        due_date=due_date,
    )


@pytest.fixture
def invoice_factory(lifecycle, org_context, customer_id):
    """
    Create (and by default issue) a one-line invoice.

    Usage::

        invoice = invoice_factory("5000", tax="400")
    """

    def _create(
        amount="5000",
        tax="0",
        issue=True,
        counterparty_id: UUID | None = None,
        issue_date: date | None = None,
        due_date: date | None = None,
    ):
        draft = _single_line_draft(
            counterparty_id or customer_id, amount, tax, issue_date, due_date
        )
        record = lifecycle.create_draft(org_context, DocumentKind.INVOICE, draft)
        if issue:
            record = lifecycle.issue(org_context, DocumentKind.INVOICE, record.id)
        return record

    return _create


@pytest.fixture
def bill_factory(lifecycle, org_context, vendor_id):
    """Create (and by default record) a one-line bill."""

    def _create(
        amount="1200",
        tax="0",
        issue=True,
        counterparty_id: UUID | None = None,
        issue_date: date | None = None,
        due_date: date | None = None,
    ):
        draft = _single_line_draft(
            counterparty_id or vendor_id, amount, tax, issue_date, due_date
        )
        record = lifecycle.create_draft(org_context, DocumentKind.BILL, draft)
        if issue:
            record = lifecycle.issue(org_context, DocumentKind.BILL, record.id)
        return record

    return _create
