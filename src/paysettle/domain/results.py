"""Typed results returned across the settlement boundary.

Account-mutating operations report business failures through these values
instead of raising, so callers only apply state transitions on confirmed
success.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from paysettle.domain.entities import (
    Channel,
    Invoice,
    PayrollEntry,
    TransactionRecord,
)
from paysettle.domain.errors import AccountError, PaymentError, SettlementError


@dataclass(frozen=True)
class AccountResult:
    """Outcome of a single debit or credit."""

    record: Optional[TransactionRecord] = None
    error: Optional[AccountError] = None
    message: Optional[str] = None
    replayed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class OutcomeStatus(str, Enum):
    """Router-level result of a settlement attempt.

    QUEUED means the payer side is debited and the payout is waiting in the
    external transfer queue.
    """

    COMPLETED = "COMPLETED"
    QUEUED = "QUEUED"
    DEBITED = "DEBITED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SettlementOutcome:
    transaction_id: str
    status: OutcomeStatus
    channel: Channel
    amount: int
    error: Optional[SettlementError] = None
    message: Optional[str] = None
    transfer_id: Optional[int] = None
    replayed: bool = False

    @property
    def ok(self) -> bool:
        return self.status in (OutcomeStatus.COMPLETED, OutcomeStatus.QUEUED)


@dataclass(frozen=True)
class Receipt:
    receipt_number: str
    invoice_id: int
    invoice_number: str
    transaction_id: str
    amount: int
    paid_at: datetime


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of paying an invoice."""

    receipt: Optional[Receipt] = None
    error: Optional[PaymentError] = None
    message: Optional[str] = None
    invoice: Optional[Invoice] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DispatchStatus(str, Enum):
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    UNRESOLVED_RECIPIENT = "UNRESOLVED_RECIPIENT"


@dataclass(frozen=True)
class DispatchResult:
    """Tagged outcome of sending an invoice or reminder."""

    status: DispatchStatus
    invoice: Invoice
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status is DispatchStatus.DELIVERED


@dataclass(frozen=True)
class SalaryPaymentResult:
    entry: PayrollEntry
    outcome: SettlementOutcome

    @property
    def ok(self) -> bool:
        return self.outcome.ok


@dataclass(frozen=True)
class BulkPayrollResult:
    successful: int
    failed: int
    results: list[SalaryPaymentResult] = field(default_factory=list)


@dataclass(frozen=True)
class PayrollSummary:
    total_paid: int
    total_amount: int
    paid_count: int
    pending_count: int
    failed_count: int


@dataclass(frozen=True)
class OutstandingSummary:
    total_pending: int
    total_overdue: int
    pending_count: int
    overdue_count: int
