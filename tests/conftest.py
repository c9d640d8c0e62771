"""Shared pytest fixtures for paysettle tests."""

import tempfile
import os
from datetime import date, timedelta
from pathlib import Path
import pytest

from paysettle.container import build_engine
from paysettle.database.factories import create_sqlite_database
from paysettle.domain.collaborators import DeliveryReceipt, NotificationDispatcher
from paysettle.domain.entities import LineItem, Recipient


class RecordingDispatcher(NotificationDispatcher):
    """Dispatcher that records every message and acknowledges it."""

    def __init__(self):
        self.sent = []

    def send(self, recipient, template_kind, payload):
        self.sent.append((recipient, template_kind, payload))
        return DeliveryReceipt(delivered=True, message_id=f"MSG-{len(self.sent)}")

    def kinds(self):
        return [kind for _, kind, _ in self.sent]


class FailingDispatcher(NotificationDispatcher):
    """Dispatcher whose channel is down."""

    def __init__(self, raise_error: bool = False):
        self.raise_error = raise_error
        self.attempts = 0

    def send(self, recipient, template_kind, payload):
        self.attempts += 1
        if self.raise_error:
            raise ConnectionError("chat service unavailable")
        return DeliveryReceipt(delivered=False, error="recipient offline")


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def dispatcher():
    """Create a recording notification dispatcher."""
    return RecordingDispatcher()


@pytest.fixture
def engine(temp_db, dispatcher):
    """Create the full service graph on a temporary database."""
    return build_engine(temp_db, dispatcher=dispatcher)


@pytest.fixture
def account_store(engine):
    return engine.accounts


@pytest.fixture
def ledger(engine):
    return engine.ledger


@pytest.fixture
def router(engine):
    return engine.router


@pytest.fixture
def invoice_service(engine):
    return engine.invoices


@pytest.fixture
def payroll_service(engine):
    return engine.payroll


@pytest.fixture
def parent_account(account_store):
    """Parent wallet holding 500,000.00."""
    account_id = account_store.open_account("parent-1")
    account_store.deposit(account_id, 50_000_000, reference="SEED-PARENT")
    return account_store.get_account(account_id)


@pytest.fixture
def school_account(account_store):
    """School wallet with an empty balance."""
    account_id = account_store.open_account("school-1")
    return account_store.get_account(account_id)


@pytest.fixture
def parent_recipient():
    return Recipient(name="Aminata Kamara", user_id="parent-1", student_id="STU-001")


@pytest.fixture
def due_date():
    return date.today() + timedelta(days=30)


@pytest.fixture
def fee_invoice(invoice_service, school_account, parent_account, parent_recipient, due_date):
    """DRAFT invoice for 150,000.00 addressed to the parent."""
    return invoice_service.create_invoice(
        school_account.id,
        parent_recipient,
        [LineItem(description="Term 1 tuition", quantity=1, unit_price=15_000_000)],
        due_date,
    )


@pytest.fixture
def sent_invoice(invoice_service, fee_invoice):
    result = invoice_service.dispatch(fee_invoice.id)
    assert result.delivered
    return result.invoice


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
