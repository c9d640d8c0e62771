"""Invoice lifecycle: creation, dispatch, payment, reminders and overdue sweeps."""

import logging
import secrets
import string
import time
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from paysettle.database.base import Database
from paysettle.domain.account import AccountStore
from paysettle.domain.collaborators import (
    AccountResolver,
    NotificationDispatcher,
    TemplateKind,
    send_best_effort,
)
from paysettle.domain.entities import (
    Channel,
    Invoice,
    InvoiceStatus,
    InvoiceType,
    LineItem,
    Recipient,
    SettlementRequest,
    SettlementStatus,
    TransactionKind,
)
from paysettle.domain.errors import (
    ConflictError,
    DependencyError,
    InvalidStateError,
    NotFoundError,
    PaymentError,
    SettlementError,
    ValidationError,
    format_amount,
    invalid_invoice_transition,
    invoice_not_found,
)
from paysettle.domain.results import (
    DispatchResult,
    DispatchStatus,
    OutstandingSummary,
    PaymentResult,
    Receipt,
    SettlementOutcome,
)
from paysettle.domain.router import DisbursementRouter, transaction_id_for

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase

PAYABLE_STATUSES = (
    InvoiceStatus.DRAFT,
    InvoiceStatus.DISPATCH_REQUESTED,
    InvoiceStatus.SENT,
    InvoiceStatus.VIEWED,
    InvoiceStatus.OVERDUE,
)
REMINDABLE_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.VIEWED, InvoiceStatus.OVERDUE)
CANCELLABLE_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.SENT)

_SETTLEMENT_TO_PAYMENT_ERROR = {
    SettlementError.INSUFFICIENT_BALANCE: PaymentError.INSUFFICIENT_BALANCE,
    SettlementError.ACCOUNT_NOT_ACTIVE: PaymentError.ACCOUNT_NOT_ACTIVE,
}


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_document_number(prefix: str) -> str:
    """Build a document number like 'FEE-LQ3K9Z1A-7F2Q'.

    The middle part is the current time in base 36, the suffix is random.
    """
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{prefix}-{stamp}-{suffix}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InvoiceService:
    """Service for the invoice state machine.

    Status only moves forward: DRAFT -> DISPATCH_REQUESTED -> SENT ->
    VIEWED -> PAID, with OVERDUE reachable from SENT or VIEWED and
    CANCELLED from DRAFT or SENT. PAID and CANCELLED are terminal. Every
    transition is a compare-and-set on the stored status.
    """

    def __init__(
        self,
        db: Database,
        account_store: AccountStore,
        router: DisbursementRouter,
        dispatcher: NotificationDispatcher,
        resolver: AccountResolver,
    ):
        """Initialize invoice service.

        Args:
            db: Database instance
            account_store: Shared account store
            router: Router used to settle payments
            dispatcher: Notification channel for invoices and receipts
            resolver: Maps recipients to paying accounts
        """
        self.db = db
        self.accounts = account_store
        self.router = router
        self.dispatcher = dispatcher
        self.resolver = resolver

    def create_invoice(
        self,
        payee_account_id: Optional[int],
        recipient: Recipient,
        items: Iterable[LineItem],
        due_date: date,
        invoice_type: InvoiceType = InvoiceType.FEE_NOTICE,
        notes: Optional[str] = None,
    ) -> Invoice:
        """Create a DRAFT invoice.

        Args:
            payee_account_id: Account credited when the invoice is paid
            recipient: Who the invoice is addressed to
            items: Line items (quantity and unit price in minor units)
            due_date: Payment due date
            invoice_type: Document type, which sets the number prefix
            notes: Optional free text

        Returns:
            Created invoice

        Raises:
            ValidationError: If items, recipient or due date are invalid
            NotFoundError: If the payee account does not exist
        """
        items = list(items)
        if not recipient.name or not recipient.name.strip():
            raise ValidationError("Invoice recipient name is required")
        if not items:
            raise ValidationError("Invoice must have at least one line item")
        for item in items:
            if not item.description or not item.description.strip():
                raise ValidationError("Line item description is required")
            if not isinstance(item.quantity, int) or item.quantity <= 0:
                raise ValidationError(f"Quantity for '{item.description}' must be positive")
            if not isinstance(item.unit_price, int) or item.unit_price < 0:
                raise ValidationError(f"Unit price for '{item.description}' cannot be negative")
        if not isinstance(due_date, date):
            raise ValidationError("Due date is required")
        if due_date < date.today():
            raise ValidationError(f"Due date {due_date.isoformat()} is in the past")

        subtotal = sum(item.total for item in items)
        if subtotal <= 0:
            raise ValidationError("Invoice total must be positive")
        tax = 0

        if payee_account_id is not None:
            self.accounts.require_account(payee_account_id)
        payer_ref = self.resolver.resolve(recipient)

        invoice_id = self._insert_with_unique_number(
            invoice_type=invoice_type,
            recipient=recipient,
            payer_account_ref=payer_ref,
            payee_account_id=payee_account_id,
            line_items=items,
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            due_date=due_date,
            notes=notes,
        )
        invoice = self.db.get_invoice(invoice_id)
        logger.info(
            "Created invoice %s for %s (%s)",
            invoice.invoice_number,
            recipient.name,
            format_amount(invoice.total),
        )
        return invoice

    def _insert_with_unique_number(self, invoice_type: InvoiceType, **fields) -> int:
        for _ in range(5):
            number = generate_document_number(invoice_type.number_prefix)
            if self.db.invoice_number_exists(number):
                continue
            try:
                return self.db.create_invoice(
                    invoice_number=number, invoice_type=invoice_type.value, **fields
                )
            except ConflictError:
                continue
        raise ConflictError("Could not allocate a unique invoice number")

    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        """Get invoice by ID, or None if not found."""
        return self.db.get_invoice(invoice_id)

    def require_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.db.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(invoice_not_found(invoice_id))
        return invoice

    def list_invoices(
        self,
        status: Optional[InvoiceStatus] = None,
        payer_account_ref: Optional[int] = None,
        student_id: Optional[str] = None,
    ) -> list[Invoice]:
        """List invoices, oldest due date first.

        Args:
            status: Only invoices in this status
            payer_account_ref: Only invoices billed to this account
            student_id: Only invoices raised for this student
        """
        statuses = [status] if status is not None else None
        return self.db.list_invoices(
            statuses=statuses, payer_account_ref=payer_account_ref, student_id=student_id
        )

    def dispatch(self, invoice_id: int) -> DispatchResult:
        """Send a DRAFT invoice to its recipient.

        The invoice is marked DISPATCH_REQUESTED before the dispatcher is
        called, then SENT on a positive acknowledgment or returned to DRAFT
        so it can be dispatched again.

        Raises:
            NotFoundError: If the invoice does not exist
            InvalidStateError: If the invoice is not a DRAFT
        """
        invoice = self.require_invoice(invoice_id)
        if invoice.status is not InvoiceStatus.DRAFT:
            raise InvalidStateError(
                invalid_invoice_transition(invoice.invoice_number, invoice.status.value, "dispatch")
            )

        payer_ref = invoice.payer_account_ref or self.resolver.resolve(invoice.recipient)
        if payer_ref is None:
            return DispatchResult(
                status=DispatchStatus.UNRESOLVED_RECIPIENT,
                invoice=invoice,
                error=f"No account is linked to recipient {invoice.recipient.name}",
            )

        if not self.db.transition_invoice(
            invoice_id,
            [InvoiceStatus.DRAFT],
            InvoiceStatus.DISPATCH_REQUESTED,
            payer_account_ref=payer_ref,
        ):
            current = self.require_invoice(invoice_id)
            raise InvalidStateError(
                invalid_invoice_transition(current.invoice_number, current.status.value, "dispatch")
            )

        receipt = send_best_effort(
            self.dispatcher, invoice.recipient, TemplateKind.INVOICE, self._invoice_payload(invoice)
        )
        if receipt.delivered:
            if not self.db.transition_invoice(
                invoice_id,
                [InvoiceStatus.DISPATCH_REQUESTED],
                InvoiceStatus.SENT,
                message_id=receipt.message_id,
                sent_at=_now(),
            ):
                # Paid or cancelled while the message was in flight
                current = self.require_invoice(invoice_id)
                logger.warning(
                    "Invoice %s delivered but moved to %s during dispatch",
                    current.invoice_number,
                    current.status.value,
                )
                return DispatchResult(
                    status=DispatchStatus.FAILED,
                    invoice=current,
                    message_id=receipt.message_id,
                    error=invalid_invoice_transition(
                        current.invoice_number, current.status.value, "mark as sent"
                    ),
                )
            logger.info("Invoice %s sent (%s)", invoice.invoice_number, receipt.message_id)
            return DispatchResult(
                status=DispatchStatus.DELIVERED,
                invoice=self.require_invoice(invoice_id),
                message_id=receipt.message_id,
            )

        self.db.transition_invoice(invoice_id, [InvoiceStatus.DISPATCH_REQUESTED], InvoiceStatus.DRAFT)
        return DispatchResult(
            status=DispatchStatus.FAILED,
            invoice=self.require_invoice(invoice_id),
            error=receipt.error,
        )

    def mark_viewed(self, invoice_id: int) -> Invoice:
        """Record that the recipient opened a SENT invoice.

        Raises:
            InvalidStateError: If the invoice is neither SENT nor already VIEWED
        """
        invoice = self.require_invoice(invoice_id)
        if invoice.status is InvoiceStatus.VIEWED:
            return invoice
        if not self.db.transition_invoice(
            invoice_id, [InvoiceStatus.SENT], InvoiceStatus.VIEWED, viewed_at=_now()
        ):
            current = self.require_invoice(invoice_id)
            raise InvalidStateError(
                invalid_invoice_transition(current.invoice_number, current.status.value, "view")
            )
        return self.require_invoice(invoice_id)

    def pay_invoice(self, invoice_id: int, payer_account_id: int) -> PaymentResult:
        """Pay the outstanding amount of an invoice from a wallet.

        Args:
            invoice_id: Invoice ID
            payer_account_id: Account to debit

        Returns:
            PaymentResult with a receipt on success, or an error code
        """
        invoice = self.db.get_invoice(invoice_id)
        if invoice is None:
            return PaymentResult(
                error=PaymentError.INVOICE_NOT_FOUND, message=invoice_not_found(invoice_id)
            )
        if invoice.status is InvoiceStatus.PAID or invoice.amount_due <= 0:
            return PaymentResult(
                error=PaymentError.ALREADY_PAID,
                message=f"Invoice {invoice.invoice_number} is already paid",
                invoice=invoice,
            )
        if invoice.status is InvoiceStatus.CANCELLED:
            return PaymentResult(
                error=PaymentError.INVOICE_CANCELLED,
                message=f"Invoice {invoice.invoice_number} was cancelled",
                invoice=invoice,
            )
        if invoice.payee_account_id is None:
            return PaymentResult(
                error=PaymentError.PAYEE_ACCOUNT_UNCONFIGURED,
                message=f"Invoice {invoice.invoice_number} has no payee account",
                invoice=invoice,
            )

        outcome = self.router.settle(
            SettlementRequest(
                payer_account_id=payer_account_id,
                payee_account_id=invoice.payee_account_id,
                amount=invoice.amount_due,
                related_entity_id=invoice.invoice_number,
                channel=Channel.WALLET,
                debit_kind=TransactionKind.FEE_PAYMENT,
                credit_kind=TransactionKind.FEE_RECEIVED,
                description=f"Payment for {invoice.invoice_number}",
            )
        )
        if not outcome.ok:
            return PaymentResult(
                error=_SETTLEMENT_TO_PAYMENT_ERROR.get(outcome.error, PaymentError.SETTLEMENT_FAILED),
                message=outcome.message,
                invoice=invoice,
            )

        return self._record_payment(invoice, payer_account_id, outcome)

    def complete_replayed_payment(
        self, invoice_number: str, outcome: SettlementOutcome
    ) -> Optional[PaymentResult]:
        """Mark an invoice PAID for a settlement finished by the orphan replay.

        Returns None if the invoice does not exist. An invoice that is
        already PAID is reported as ALREADY_PAID and left untouched.
        """
        invoice = self.db.get_invoice_by_number(invoice_number)
        if invoice is None:
            logger.error(
                "Replayed settlement %s has no invoice %s", outcome.transaction_id, invoice_number
            )
            return None
        settlement = self.router.get_settlement(outcome.transaction_id)
        payer_account_id = settlement.payer_account_id if settlement is not None else None
        return self._record_payment(invoice, payer_account_id, outcome)

    def _record_payment(
        self, invoice: Invoice, payer_account_id: Optional[int], outcome: SettlementOutcome
    ) -> PaymentResult:
        invoice_id = invoice.id
        paid_at = _now()
        receipt_number = generate_document_number(InvoiceType.RECEIPT.number_prefix)
        if not self.db.transition_invoice(
            invoice_id,
            PAYABLE_STATUSES,
            InvoiceStatus.PAID,
            paid_amount=invoice.total,
            receipt_number=receipt_number,
            payment_transaction_id=outcome.transaction_id,
            paid_at=paid_at,
        ):
            current = self.require_invoice(invoice_id)
            if current.status is InvoiceStatus.PAID:
                return PaymentResult(
                    error=PaymentError.ALREADY_PAID,
                    message=f"Invoice {current.invoice_number} is already paid",
                    invoice=current,
                )
            logger.error(
                "Invoice %s settled under %s but moved to %s",
                current.invoice_number,
                outcome.transaction_id,
                current.status.value,
            )
            return PaymentResult(
                error=PaymentError.SETTLEMENT_FAILED,
                message=invalid_invoice_transition(
                    current.invoice_number, current.status.value, "pay"
                ),
                invoice=current,
            )

        receipt = Receipt(
            receipt_number=receipt_number,
            invoice_id=invoice_id,
            invoice_number=invoice.invoice_number,
            transaction_id=outcome.transaction_id,
            amount=outcome.amount,
            paid_at=paid_at,
        )
        logger.info(
            "Invoice %s paid by account %s (%s)",
            invoice.invoice_number,
            payer_account_id,
            outcome.transaction_id,
        )
        send_best_effort(
            self.dispatcher,
            invoice.recipient,
            TemplateKind.FEE_RECEIPT,
            {
                "invoice_number": invoice.invoice_number,
                "receipt_number": receipt_number,
                "transaction_id": outcome.transaction_id,
                "amount": outcome.amount,
                "paid_at": paid_at.isoformat(),
            },
        )
        return PaymentResult(receipt=receipt, invoice=self.require_invoice(invoice_id))

    def mark_overdue(self, as_of: Optional[date] = None) -> int:
        """Move SENT and VIEWED invoices past their due date to OVERDUE.

        Returns:
            Number of invoices marked overdue
        """
        as_of = as_of or date.today()
        count = 0
        for invoice in self.db.list_invoices(
            statuses=[InvoiceStatus.SENT, InvoiceStatus.VIEWED], due_before=as_of
        ):
            if self.db.transition_invoice(
                invoice.id, [InvoiceStatus.SENT, InvoiceStatus.VIEWED], InvoiceStatus.OVERDUE
            ):
                count += 1
        if count:
            logger.info("Marked %d invoices overdue as of %s", count, as_of.isoformat())
        return count

    def cancel(self, invoice_id: int) -> Invoice:
        """Cancel a DRAFT or SENT invoice.

        Raises:
            NotFoundError: If the invoice does not exist
            InvalidStateError: If the invoice is in any other status
            DependencyError: If a payment for the invoice is in progress
        """
        invoice = self.require_invoice(invoice_id)
        if invoice.status not in CANCELLABLE_STATUSES:
            raise InvalidStateError(
                invalid_invoice_transition(invoice.invoice_number, invoice.status.value, "cancel")
            )
        settlement = self.router.get_settlement(transaction_id_for(invoice.invoice_number, 1))
        if settlement is not None and settlement.status is not SettlementStatus.FAILED:
            raise DependencyError(
                f"Cannot cancel invoice {invoice.invoice_number}: a payment is in progress"
            )
        if not self.db.transition_invoice(
            invoice_id, CANCELLABLE_STATUSES, InvoiceStatus.CANCELLED, cancelled_at=_now()
        ):
            current = self.require_invoice(invoice_id)
            raise InvalidStateError(
                invalid_invoice_transition(current.invoice_number, current.status.value, "cancel")
            )
        logger.info("Cancelled invoice %s", invoice.invoice_number)
        return self.require_invoice(invoice_id)

    def send_reminder(self, invoice_id: int) -> DispatchResult:
        """Remind the recipient of an unpaid invoice.

        reminder_count only increases when the dispatcher confirms delivery.

        Raises:
            InvalidStateError: If the invoice is not SENT, VIEWED or OVERDUE
        """
        invoice = self.require_invoice(invoice_id)
        if invoice.status not in REMINDABLE_STATUSES:
            raise InvalidStateError(
                invalid_invoice_transition(invoice.invoice_number, invoice.status.value, "remind")
            )
        if (invoice.payer_account_ref or self.resolver.resolve(invoice.recipient)) is None:
            return DispatchResult(
                status=DispatchStatus.UNRESOLVED_RECIPIENT,
                invoice=invoice,
                error=f"No account is linked to recipient {invoice.recipient.name}",
            )

        payload = self._invoice_payload(invoice)
        payload["reminder_number"] = invoice.reminder_count + 1
        receipt = send_best_effort(
            self.dispatcher, invoice.recipient, TemplateKind.PAYMENT_REMINDER, payload
        )
        if not receipt.delivered:
            return DispatchResult(status=DispatchStatus.FAILED, invoice=invoice, error=receipt.error)

        self.db.record_invoice_reminder(invoice_id, _now())
        return DispatchResult(
            status=DispatchStatus.DELIVERED,
            invoice=self.require_invoice(invoice_id),
            message_id=receipt.message_id,
        )

    def outstanding_summary(self, payer_account_ref: int) -> OutstandingSummary:
        """Totals of what a payer still owes, split into pending and overdue."""
        pending = self.db.list_invoices(
            statuses=[InvoiceStatus.SENT, InvoiceStatus.VIEWED],
            payer_account_ref=payer_account_ref,
        )
        overdue = self.db.list_invoices(
            statuses=[InvoiceStatus.OVERDUE], payer_account_ref=payer_account_ref
        )
        return OutstandingSummary(
            total_pending=sum(inv.amount_due for inv in pending),
            total_overdue=sum(inv.amount_due for inv in overdue),
            pending_count=len(pending),
            overdue_count=len(overdue),
        )

    @staticmethod
    def _invoice_payload(invoice: Invoice) -> dict:
        return {
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "type": invoice.type.value,
            "total": invoice.total,
            "amount_due": invoice.amount_due,
            "due_date": invoice.due_date.isoformat(),
            "items": [
                {
                    "description": item.description,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                }
                for item in invoice.line_items
            ],
        }
