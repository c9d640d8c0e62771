"""Domain model entities for paysettle.

These are pure data classes representing business concepts, independent of
database schema. All money amounts are integers in minor units (cents) so
that balances never pass through floating point.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from typing import Any, Optional


class AccountStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CLOSED = "CLOSED"


class Direction(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class TransactionKind(str, Enum):
    FEE_PAYMENT = "FEE_PAYMENT"
    FEE_RECEIVED = "FEE_RECEIVED"
    SALARY_PAYMENT = "SALARY_PAYMENT"
    SALARY_RECEIVED = "SALARY_RECEIVED"
    TOP_UP = "TOP_UP"
    TRANSFER_REVERSAL = "TRANSFER_REVERSAL"


class Channel(str, Enum):
    """Disbursement mechanism for a settlement."""

    WALLET = "WALLET"
    BANK = "BANK"
    MOBILE_MONEY = "MOBILE_MONEY"
    MANUAL = "MANUAL"

    @property
    def is_external(self) -> bool:
        return self is not Channel.WALLET


class InvoiceType(str, Enum):
    PROFORMA = "PROFORMA"
    INVOICE = "INVOICE"
    RECEIPT = "RECEIPT"
    FEE_NOTICE = "FEE_NOTICE"

    @property
    def number_prefix(self) -> str:
        return {
            InvoiceType.PROFORMA: "PRO",
            InvoiceType.INVOICE: "INV",
            InvoiceType.RECEIPT: "RCP",
            InvoiceType.FEE_NOTICE: "FEE",
        }[self]


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    DISPATCH_REQUESTED = "DISPATCH_REQUESTED"
    SENT = "SENT"
    VIEWED = "VIEWED"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class PayrollEntryStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    SETTLED = "SETTLED"
    FAILED = "FAILED"


class SettlementStatus(str, Enum):
    """Progress of a settlement through the router.

    DEBITED means the payer side committed but the payee side did not;
    such settlements are resumed with the same transaction id.
    """

    INITIATED = "INITIATED"
    DEBITED = "DEBITED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Account:
    """Balance holder (a payer wallet or an institution wallet)."""

    id: int
    owner_id: str
    status: AccountStatus
    balance: int
    currency: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.ACTIVE


@dataclass(frozen=True)
class TransactionRecord:
    """Immutable ledger entry."""

    id: int
    transaction_id: str
    account_id: int
    direction: Direction
    amount: int
    kind: TransactionKind
    related_entity_id: Optional[str]
    status: str
    description: Optional[str]
    created_at: datetime

    @property
    def signed_amount(self) -> int:
        return self.amount if self.direction is Direction.CREDIT else -self.amount


@dataclass(frozen=True)
class Recipient:
    """Human recipient of an invoice or salary slip."""

    name: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    student_id: Optional[str] = None


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: int
    unit_price: int

    @property
    def total(self) -> int:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class Invoice:
    """Payable obligation with line items and a due date."""

    id: int
    invoice_number: str
    type: InvoiceType
    recipient: Recipient
    payer_account_ref: Optional[int]
    payee_account_id: Optional[int]
    line_items: tuple[LineItem, ...]
    subtotal: int
    tax: int
    total: int
    paid_amount: int
    status: InvoiceStatus
    due_date: date
    reminder_count: int
    created_at: datetime
    notes: Optional[str] = None
    message_id: Optional[str] = None
    receipt_number: Optional[str] = None
    payment_transaction_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    last_reminder_at: Optional[datetime] = None

    @property
    def amount_due(self) -> int:
        return self.total - self.paid_amount


@dataclass(frozen=True)
class PayrollRun:
    """Batch of salary disbursements against one school account."""

    id: int
    school_account_id: int
    period: str
    created_at: datetime


@dataclass(frozen=True)
class PayrollEntryInput:
    """Caller-supplied salary line, validated before a run is created."""

    staff_id: str
    base_salary: int
    allowances: int = 0
    deductions: int = 0
    channel: "Channel" = Channel.WALLET
    staff_name: Optional[str] = None
    recipient_account_id: Optional[int] = None
    recipient_details: dict[str, Any] = field(default_factory=dict)

    @property
    def net_salary(self) -> int:
        return self.base_salary + self.allowances - self.deductions


@dataclass(frozen=True)
class PayrollEntry:
    """One staff member's salary line within a run."""

    id: int
    run_id: int
    staff_id: str
    staff_name: Optional[str]
    base_salary: int
    allowances: int
    deductions: int
    net_salary: int
    channel: Channel
    recipient_account_id: Optional[int]
    recipient_details: dict[str, Any]
    status: PayrollEntryStatus
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    paid_at: Optional[datetime] = None


@dataclass(frozen=True)
class PendingExternalTransfer:
    """Queued payout instruction for a non-wallet channel."""

    id: int
    type: Channel
    amount: int
    currency: str
    recipient_details: dict[str, Any]
    status: TransferStatus
    related_transaction_id: str
    source_account_id: Optional[int]
    description: Optional[str]
    created_at: datetime
    resolved_at: Optional[datetime] = None
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class Settlement:
    """Router journal row tracking how far a settlement got."""

    transaction_id: str
    payer_account_id: Optional[int]
    payee_account_id: Optional[int]
    amount: int
    channel: Channel
    related_entity_id: str
    debit_kind: TransactionKind
    credit_kind: TransactionKind
    recipient_details: dict[str, Any]
    description: Optional[str]
    status: SettlementStatus
    failure_reason: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class SettlementRequest:
    """Input to the disbursement router."""

    payee_account_id: Optional[int]
    amount: int
    related_entity_id: str
    channel: Channel
    payer_account_id: Optional[int] = None
    sequence: int = 1
    debit_kind: TransactionKind = TransactionKind.FEE_PAYMENT
    credit_kind: TransactionKind = TransactionKind.FEE_RECEIVED
    recipient_details: dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None
