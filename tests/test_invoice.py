"""Tests for the invoice lifecycle."""

from datetime import date, timedelta

import pytest

from paysettle.container import build_engine
from paysettle.domain.collaborators import DeliveryReceipt, NotificationDispatcher, TemplateKind
from paysettle.domain.entities import InvoiceStatus, InvoiceType, LineItem, Recipient, TransactionKind
from paysettle.domain.errors import (
    AccountError,
    DependencyError,
    InvalidStateError,
    NotFoundError,
    PaymentError,
    ValidationError,
)
from paysettle.domain.results import AccountResult, DispatchStatus

from conftest import FailingDispatcher


def test_create_invoice(fee_invoice, parent_account, school_account):
    assert fee_invoice.status is InvoiceStatus.DRAFT
    assert fee_invoice.invoice_number.startswith("FEE-")
    assert fee_invoice.total == 15_000_000
    assert fee_invoice.subtotal == 15_000_000
    assert fee_invoice.tax == 0
    assert fee_invoice.paid_amount == 0
    assert fee_invoice.payer_account_ref == parent_account.id
    assert fee_invoice.payee_account_id == school_account.id
    assert fee_invoice.recipient.student_id == "STU-001"


def test_create_invoice_totals_line_items(invoice_service, school_account, parent_recipient, due_date):
    invoice = invoice_service.create_invoice(
        school_account.id,
        parent_recipient,
        [
            LineItem(description="Tuition", quantity=1, unit_price=100_000),
            LineItem(description="Books", quantity=3, unit_price=2_500),
            LineItem(description="Sports day", quantity=1, unit_price=0),
        ],
        due_date,
        invoice_type=InvoiceType.INVOICE,
    )

    assert invoice.total == 107_500
    assert invoice.invoice_number.startswith("INV-")
    assert len(invoice.line_items) == 3


def test_create_invoice_unresolved_recipient(invoice_service, school_account, due_date):
    invoice = invoice_service.create_invoice(
        school_account.id,
        Recipient(name="Walk-in Parent"),
        [LineItem(description="Tuition", quantity=1, unit_price=1_000)],
        due_date,
    )
    assert invoice.payer_account_ref is None


@pytest.mark.parametrize(
    "items, match",
    [
        ([], "at least one"),
        ([LineItem(description="Tuition", quantity=0, unit_price=100)], "Quantity"),
        ([LineItem(description="Tuition", quantity=1, unit_price=-1)], "Unit price"),
        ([LineItem(description="Free", quantity=1, unit_price=0)], "total must be positive"),
    ],
)
def test_create_invoice_validation(invoice_service, school_account, parent_recipient, due_date, items, match):
    with pytest.raises(ValidationError, match=match):
        invoice_service.create_invoice(school_account.id, parent_recipient, items, due_date)


def test_create_invoice_rejects_past_due_date(invoice_service, school_account, parent_recipient):
    with pytest.raises(ValidationError, match="in the past"):
        invoice_service.create_invoice(
            school_account.id,
            parent_recipient,
            [LineItem(description="Tuition", quantity=1, unit_price=100)],
            date.today() - timedelta(days=1),
        )


def test_create_invoice_unknown_payee(invoice_service, parent_recipient, due_date):
    with pytest.raises(NotFoundError):
        invoice_service.create_invoice(
            999, parent_recipient, [LineItem(description="Tuition", quantity=1, unit_price=100)], due_date
        )


def test_dispatch_delivers(invoice_service, fee_invoice, dispatcher):
    result = invoice_service.dispatch(fee_invoice.id)

    assert result.status is DispatchStatus.DELIVERED
    assert result.invoice.status is InvoiceStatus.SENT
    assert result.invoice.message_id == result.message_id
    assert result.invoice.sent_at is not None
    assert dispatcher.kinds() == [TemplateKind.INVOICE]
    assert dispatcher.sent[0][2]["invoice_number"] == fee_invoice.invoice_number


def test_dispatch_only_from_draft(invoice_service, sent_invoice):
    with pytest.raises(InvalidStateError, match="Cannot dispatch"):
        invoice_service.dispatch(sent_invoice.id)


@pytest.mark.parametrize("raise_error", [False, True])
def test_dispatch_failure_returns_to_draft(temp_db, school_account, parent_account, parent_recipient, due_date, raise_error):
    failing = FailingDispatcher(raise_error=raise_error)
    engine = build_engine(temp_db, dispatcher=failing)
    invoice = engine.invoices.create_invoice(
        school_account.id,
        parent_recipient,
        [LineItem(description="Tuition", quantity=1, unit_price=100)],
        due_date,
    )

    result = engine.invoices.dispatch(invoice.id)

    assert result.status is DispatchStatus.FAILED
    assert result.invoice.status is InvoiceStatus.DRAFT
    assert result.error
    assert failing.attempts == 1


def test_dispatch_unresolved_recipient(invoice_service, school_account, due_date, dispatcher):
    invoice = invoice_service.create_invoice(
        school_account.id,
        Recipient(name="Walk-in Parent"),
        [LineItem(description="Tuition", quantity=1, unit_price=1_000)],
        due_date,
    )

    result = invoice_service.dispatch(invoice.id)

    assert result.status is DispatchStatus.UNRESOLVED_RECIPIENT
    assert invoice_service.get_invoice(invoice.id).status is InvoiceStatus.DRAFT
    assert dispatcher.sent == []


def test_dispatch_resolves_recipient_linked_later(invoice_service, account_store, school_account, due_date):
    invoice = invoice_service.create_invoice(
        school_account.id,
        Recipient(name="New Parent", user_id="parent-new"),
        [LineItem(description="Tuition", quantity=1, unit_price=1_000)],
        due_date,
    )
    assert invoice.payer_account_ref is None

    account_id = account_store.open_account("parent-new")
    result = invoice_service.dispatch(invoice.id)

    assert result.delivered
    assert result.invoice.payer_account_ref == account_id


def test_mark_viewed(invoice_service, sent_invoice, fee_invoice):
    invoice = invoice_service.mark_viewed(sent_invoice.id)
    assert invoice.status is InvoiceStatus.VIEWED
    assert invoice.viewed_at is not None
    # Viewing again is harmless
    assert invoice_service.mark_viewed(sent_invoice.id).status is InvoiceStatus.VIEWED


def test_mark_viewed_requires_sent(invoice_service, fee_invoice):
    with pytest.raises(InvalidStateError):
        invoice_service.mark_viewed(fee_invoice.id)


def test_pay_invoice_end_to_end(
    invoice_service, account_store, ledger, sent_invoice, parent_account, school_account, dispatcher
):
    """Parent with 500,000 pays a 150,000 fee invoice."""
    result = invoice_service.pay_invoice(sent_invoice.id, parent_account.id)

    assert result.ok
    assert result.receipt.receipt_number.startswith("RCP-")
    assert result.receipt.amount == 15_000_000
    assert account_store.get_balance(parent_account.id) == 35_000_000
    assert account_store.get_balance(school_account.id) == 15_000_000

    invoice = invoice_service.get_invoice(sent_invoice.id)
    assert invoice.status is InvoiceStatus.PAID
    assert invoice.paid_amount == invoice.total
    assert invoice.payment_transaction_id == result.receipt.transaction_id
    assert invoice.receipt_number == result.receipt.receipt_number

    records = ledger.find_by_idempotency_key(result.receipt.transaction_id)
    assert {r.kind for r in records} == {TransactionKind.FEE_PAYMENT, TransactionKind.FEE_RECEIVED}
    assert ledger.is_balanced(result.receipt.transaction_id)
    assert TemplateKind.FEE_RECEIPT in dispatcher.kinds()


def test_pay_invoice_twice(invoice_service, account_store, sent_invoice, parent_account):
    invoice_service.pay_invoice(sent_invoice.id, parent_account.id)
    second = invoice_service.pay_invoice(sent_invoice.id, parent_account.id)

    assert second.error is PaymentError.ALREADY_PAID
    assert account_store.get_balance(parent_account.id) == 35_000_000


def test_pay_invoice_insufficient_balance(invoice_service, account_store, school_account, sent_invoice):
    poor = account_store.open_account("parent-2")
    account_store.deposit(poor, 1_000_000)

    result = invoice_service.pay_invoice(sent_invoice.id, poor)

    assert result.error is PaymentError.INSUFFICIENT_BALANCE
    assert "need 150,000.00, have 10,000.00" in result.message
    assert account_store.get_balance(poor) == 1_000_000
    assert account_store.get_balance(school_account.id) == 0
    assert invoice_service.get_invoice(sent_invoice.id).status is InvoiceStatus.SENT


def test_pay_invoice_suspended_payer(invoice_service, account_store, sent_invoice, parent_account):
    account_store.suspend(parent_account.id)
    result = invoice_service.pay_invoice(sent_invoice.id, parent_account.id)
    assert result.error is PaymentError.ACCOUNT_NOT_ACTIVE


def test_pay_cancelled_invoice(invoice_service, sent_invoice, parent_account):
    invoice_service.cancel(sent_invoice.id)
    result = invoice_service.pay_invoice(sent_invoice.id, parent_account.id)
    assert result.error is PaymentError.INVOICE_CANCELLED


def test_pay_missing_invoice(invoice_service, parent_account):
    assert invoice_service.pay_invoice(404, parent_account.id).error is PaymentError.INVOICE_NOT_FOUND


def test_pay_invoice_without_payee(invoice_service, parent_account, parent_recipient, due_date):
    invoice = invoice_service.create_invoice(
        None, parent_recipient, [LineItem(description="Tuition", quantity=1, unit_price=100)], due_date
    )
    result = invoice_service.pay_invoice(invoice.id, parent_account.id)
    assert result.error is PaymentError.PAYEE_ACCOUNT_UNCONFIGURED


def test_receipt_failure_does_not_undo_payment(
    temp_db, school_account, parent_account, parent_recipient, due_date
):
    engine = build_engine(temp_db, dispatcher=FailingDispatcher(raise_error=True))
    invoice = engine.invoices.create_invoice(
        school_account.id,
        parent_recipient,
        [LineItem(description="Tuition", quantity=1, unit_price=100)],
        due_date,
    )

    result = engine.invoices.pay_invoice(invoice.id, parent_account.id)

    assert result.ok
    assert engine.invoices.get_invoice(invoice.id).status is InvoiceStatus.PAID


def test_mark_overdue(invoice_service, sent_invoice, fee_invoice, due_date):
    assert invoice_service.mark_overdue() == 0

    count = invoice_service.mark_overdue(as_of=due_date + timedelta(days=1))

    assert count == 1
    assert invoice_service.get_invoice(sent_invoice.id).status is InvoiceStatus.OVERDUE


def test_mark_overdue_skips_drafts_and_paid(invoice_service, fee_invoice, due_date):
    assert invoice_service.mark_overdue(as_of=due_date + timedelta(days=1)) == 0
    assert invoice_service.get_invoice(fee_invoice.id).status is InvoiceStatus.DRAFT


def test_overdue_invoice_can_be_paid(invoice_service, sent_invoice, parent_account, due_date):
    invoice_service.mark_overdue(as_of=due_date + timedelta(days=1))
    result = invoice_service.pay_invoice(sent_invoice.id, parent_account.id)
    assert result.ok
    assert result.invoice.status is InvoiceStatus.PAID


def test_cancel(invoice_service, fee_invoice):
    invoice = invoice_service.cancel(fee_invoice.id)
    assert invoice.status is InvoiceStatus.CANCELLED
    assert invoice.cancelled_at is not None


def test_cancel_not_allowed_after_view_or_payment(invoice_service, sent_invoice, parent_account):
    invoice_service.mark_viewed(sent_invoice.id)
    with pytest.raises(InvalidStateError, match="Cannot cancel"):
        invoice_service.cancel(sent_invoice.id)

    invoice_service.pay_invoice(sent_invoice.id, parent_account.id)
    with pytest.raises(InvalidStateError):
        invoice_service.cancel(sent_invoice.id)


def test_cancel_blocked_by_payment_in_progress(invoice_service, router, sent_invoice, parent_account, monkeypatch):
    from paysettle.domain.results import AccountResult
    from paysettle.domain.errors import AccountError

    monkeypatch.setattr(
        router.accounts,
        "credit",
        lambda *args, **kwargs: AccountResult(error=AccountError.ACCOUNT_NOT_ACTIVE, message="down"),
    )
    result = invoice_service.pay_invoice(sent_invoice.id, parent_account.id)
    assert result.error is PaymentError.SETTLEMENT_FAILED
    monkeypatch.undo()

    with pytest.raises(DependencyError, match="in progress"):
        invoice_service.cancel(sent_invoice.id)

    # Paying again resumes the settlement without charging twice
    retry = invoice_service.pay_invoice(sent_invoice.id, parent_account.id)
    assert retry.ok
    assert router.accounts.get_balance(parent_account.id) == 35_000_000


def test_status_never_moves_backwards(invoice_service, sent_invoice, parent_account):
    invoice_service.pay_invoice(sent_invoice.id, parent_account.id)

    with pytest.raises(InvalidStateError):
        invoice_service.mark_viewed(sent_invoice.id)
    with pytest.raises(InvalidStateError):
        invoice_service.dispatch(sent_invoice.id)
    assert invoice_service.mark_overdue(as_of=date.today() + timedelta(days=365)) == 0
    assert invoice_service.get_invoice(sent_invoice.id).status is InvoiceStatus.PAID


def test_send_reminder(invoice_service, sent_invoice, dispatcher):
    result = invoice_service.send_reminder(sent_invoice.id)

    assert result.delivered
    assert result.invoice.reminder_count == 1
    assert result.invoice.last_reminder_at is not None
    assert dispatcher.kinds()[-1] is TemplateKind.PAYMENT_REMINDER
    assert dispatcher.sent[-1][2]["reminder_number"] == 1


def test_send_reminder_requires_sent(invoice_service, fee_invoice):
    with pytest.raises(InvalidStateError, match="Cannot remind"):
        invoice_service.send_reminder(fee_invoice.id)


def test_undelivered_reminder_not_counted(temp_db, invoice_service, sent_invoice):
    engine = build_engine(temp_db, dispatcher=FailingDispatcher())

    result = engine.invoices.send_reminder(sent_invoice.id)

    assert result.status is DispatchStatus.FAILED
    assert invoice_service.get_invoice(sent_invoice.id).reminder_count == 0


def test_list_invoices(invoice_service, fee_invoice, sent_invoice, parent_account):
    assert [i.id for i in invoice_service.list_invoices()] == [fee_invoice.id]
    assert invoice_service.list_invoices(status=InvoiceStatus.DRAFT) == []
    assert len(invoice_service.list_invoices(status=InvoiceStatus.SENT)) == 1
    assert len(invoice_service.list_invoices(payer_account_ref=parent_account.id)) == 1
    assert invoice_service.list_invoices(payer_account_ref=999) == []


def test_outstanding_summary(invoice_service, school_account, parent_account, parent_recipient, due_date):
    first = invoice_service.create_invoice(
        school_account.id, parent_recipient, [LineItem(description="Tuition", quantity=1, unit_price=1_000)], due_date
    )
    second = invoice_service.create_invoice(
        school_account.id,
        parent_recipient,
        [LineItem(description="Uniform", quantity=2, unit_price=500)],
        due_date + timedelta(days=10),
    )
    invoice_service.dispatch(first.id)
    invoice_service.dispatch(second.id)
    invoice_service.mark_overdue(as_of=due_date + timedelta(days=1))

    summary = invoice_service.outstanding_summary(parent_account.id)

    assert summary.overdue_count == 1
    assert summary.total_overdue == 1_000
    assert summary.pending_count == 1
    assert summary.total_pending == 1_000


def test_failed_payment_does_not_lock_out_other_payers(
    invoice_service, account_store, school_account, parent_account, sent_invoice
):
    poor = account_store.open_account("parent-2")
    account_store.deposit(poor, 100)
    first = invoice_service.pay_invoice(sent_invoice.id, poor)
    assert first.error is PaymentError.INSUFFICIENT_BALANCE

    second = invoice_service.pay_invoice(sent_invoice.id, parent_account.id)

    assert second.ok, second.message
    assert second.invoice.status is InvoiceStatus.PAID
    assert account_store.get_balance(parent_account.id) == 35_000_000
    assert account_store.get_balance(school_account.id) == 15_000_000
    assert account_store.get_balance(poor) == 100


def test_orphan_replay_marks_invoice_paid(
    engine, account_store, school_account, parent_account, sent_invoice, dispatcher, monkeypatch
):
    original_credit = account_store.credit

    def failing_credit(account_id, *args, **kwargs):
        if account_id == school_account.id:
            return AccountResult(error=AccountError.ACCOUNT_NOT_ACTIVE, message="school wallet offline")
        return original_credit(account_id, *args, **kwargs)

    monkeypatch.setattr(account_store, "credit", failing_credit)
    result = engine.invoices.pay_invoice(sent_invoice.id, parent_account.id)
    assert result.error is PaymentError.SETTLEMENT_FAILED
    assert engine.invoices.get_invoice(sent_invoice.id).status is InvoiceStatus.SENT
    assert account_store.get_balance(parent_account.id) == 35_000_000
    monkeypatch.undo()

    replayed = engine.replay_orphaned()

    assert len(replayed) == 1 and replayed[0].ok
    invoice = engine.invoices.get_invoice(sent_invoice.id)
    assert invoice.status is InvoiceStatus.PAID
    assert invoice.paid_amount == invoice.total
    assert invoice.payment_transaction_id == replayed[0].transaction_id
    assert invoice.receipt_number.startswith("RCP-")
    assert account_store.get_balance(school_account.id) == 15_000_000
    assert dispatcher.kinds()[-1] is TemplateKind.FEE_RECEIPT


class PayingDispatcher(NotificationDispatcher):
    """Delivers invoices, but the payer settles them while delivery is in flight."""

    def __init__(self):
        self.engine = None
        self.payer_account_id = None

    def send(self, recipient, template_kind, payload):
        if template_kind is TemplateKind.INVOICE:
            self.engine.invoices.pay_invoice(payload["invoice_id"], self.payer_account_id)
        return DeliveryReceipt(delivered=True, message_id="MSG-1")


def test_dispatch_reports_invoice_paid_in_flight(temp_db, school_account, parent_account, parent_recipient, due_date):
    dispatcher = PayingDispatcher()
    engine = build_engine(temp_db, dispatcher=dispatcher)
    dispatcher.engine = engine
    dispatcher.payer_account_id = parent_account.id
    invoice = engine.invoices.create_invoice(
        school_account.id,
        parent_recipient,
        [LineItem(description="Tuition", quantity=1, unit_price=100)],
        due_date,
    )

    result = engine.invoices.dispatch(invoice.id)

    assert result.status is DispatchStatus.FAILED
    assert result.invoice.status is InvoiceStatus.PAID
    assert "Cannot mark as sent" in result.error


def test_list_invoices_by_student(invoice_service, school_account, parent_recipient, due_date):
    first = invoice_service.create_invoice(
        school_account.id, parent_recipient, [LineItem(description="Tuition", quantity=1, unit_price=100)], due_date
    )
    sibling = Recipient(name="Aminata Kamara", user_id="parent-1", student_id="STU-002")
    invoice_service.create_invoice(
        school_account.id, sibling, [LineItem(description="Tuition", quantity=1, unit_price=100)], due_date
    )

    assert [i.id for i in invoice_service.list_invoices(student_id="STU-001")] == [first.id]
    assert len(invoice_service.list_invoices(student_id="STU-002")) == 1
    assert invoice_service.list_invoices(student_id="STU-404") == []
