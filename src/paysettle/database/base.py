"""Abstract database interface."""

from abc import ABC, abstractmethod
from typing import Optional, Any, Iterable
from datetime import date, datetime

# Import entities directly to avoid circular import through domain/__init__.py
from paysettle.domain.entities import (
    Account,
    AccountStatus,
    Channel,
    Direction,
    Invoice,
    InvoiceStatus,
    LineItem,
    PayrollEntry,
    PayrollEntryInput,
    PayrollEntryStatus,
    PayrollRun,
    PendingExternalTransfer,
    Recipient,
    Settlement,
    SettlementRequest,
    SettlementStatus,
    TransactionKind,
    TransactionRecord,
    TransferStatus,
)


class Database(ABC):
    """Abstract database interface for paysettle."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    # Account operations
    @abstractmethod
    def create_account(self, owner_id: str, currency: str) -> int:
        """Create a new zero-balance ACTIVE account. Returns account ID."""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    def list_accounts(self, owner_id: Optional[str] = None) -> list[Account]:
        """List accounts, optionally filtered by owner."""
        pass

    @abstractmethod
    def update_account_status(self, account_id: int, status: AccountStatus) -> None:
        """Set account status."""
        pass

    # Ledger operations
    @abstractmethod
    def post_ledger_entry(
        self,
        transaction_id: str,
        account_id: int,
        direction: Direction,
        amount: int,
        kind: TransactionKind,
        related_entity_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TransactionRecord:
        """Apply a balance change and append its ledger row in one commit.

        The account row is locked for the duration of the transaction. Raises
        NotFoundError, AccountInactiveError, InsufficientFundsError or
        ConflictError (duplicate key) without writing anything.
        """
        pass

    @abstractmethod
    def get_ledger_records(self, transaction_id: str) -> list[TransactionRecord]:
        """Get all ledger rows written under an idempotency key."""
        pass

    @abstractmethod
    def list_ledger_records(
        self,
        account_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[TransactionRecord]:
        """List ledger rows for an account in append order."""
        pass

    @abstractmethod
    def sum_ledger(self, account_id: int) -> int:
        """Return credits minus debits for an account."""
        pass

    # Invoice operations
    @abstractmethod
    def create_invoice(
        self,
        invoice_number: str,
        invoice_type: str,
        recipient: Recipient,
        payer_account_ref: Optional[int],
        payee_account_id: Optional[int],
        line_items: list[LineItem],
        subtotal: int,
        tax: int,
        total: int,
        due_date: date,
        notes: Optional[str] = None,
    ) -> int:
        """Create a DRAFT invoice. Returns invoice ID."""
        pass

    @abstractmethod
    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        """Get invoice by ID."""
        pass

    @abstractmethod
    def invoice_number_exists(self, invoice_number: str) -> bool:
        """Check if an invoice number is taken."""
        pass

    @abstractmethod
    def get_invoice_by_number(self, invoice_number: str) -> Optional[Invoice]:
        """Get invoice by its invoice number."""
        pass

    @abstractmethod
    def list_invoices(
        self,
        statuses: Optional[Iterable[InvoiceStatus]] = None,
        payer_account_ref: Optional[int] = None,
        due_before: Optional[date] = None,
        student_id: Optional[str] = None,
    ) -> list[Invoice]:
        """List invoices with optional filters, oldest due date first."""
        pass

    @abstractmethod
    def transition_invoice(
        self,
        invoice_id: int,
        from_statuses: Iterable[InvoiceStatus],
        to_status: InvoiceStatus,
        **changes: Any,
    ) -> bool:
        """Compare-and-set an invoice status.

        Applies the status and extra column changes only if the current
        status is one of from_statuses. Returns True if the row changed.
        """
        pass

    @abstractmethod
    def record_invoice_reminder(self, invoice_id: int, sent_at: datetime) -> None:
        """Increment reminder_count and stamp last_reminder_at."""
        pass

    # Payroll operations
    @abstractmethod
    def create_payroll_run(
        self, school_account_id: int, period: str, entries: list[PayrollEntryInput]
    ) -> int:
        """Create a run and its PENDING entries in one commit. Returns run ID."""
        pass

    @abstractmethod
    def get_payroll_run(self, run_id: int) -> Optional[PayrollRun]:
        """Get payroll run by ID."""
        pass

    @abstractmethod
    def list_payroll_entries(self, run_id: int) -> list[PayrollEntry]:
        """List entries of a run in creation order."""
        pass

    @abstractmethod
    def get_payroll_entry(self, entry_id: int) -> Optional[PayrollEntry]:
        """Get payroll entry by ID."""
        pass

    @abstractmethod
    def get_payroll_entry_by_transaction(self, transaction_id: str) -> Optional[PayrollEntry]:
        """Get the payroll entry paid under a transaction ID."""
        pass

    @abstractmethod
    def update_payroll_entry(
        self,
        entry_id: int,
        status: PayrollEntryStatus,
        transaction_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> None:
        """Record a disbursement outcome on an entry."""
        pass

    # Pending transfer operations
    @abstractmethod
    def create_pending_transfer(
        self,
        transfer_type: Channel,
        amount: int,
        currency: str,
        recipient_details: dict[str, Any],
        related_transaction_id: str,
        source_account_id: Optional[int],
        description: Optional[str] = None,
    ) -> int:
        """Queue an external payout. Returns transfer ID.

        Idempotent on related_transaction_id: an existing row's ID is returned.
        """
        pass

    @abstractmethod
    def get_pending_transfer(self, transfer_id: int) -> Optional[PendingExternalTransfer]:
        """Get pending transfer by ID."""
        pass

    @abstractmethod
    def get_pending_transfer_by_transaction(self, transaction_id: str) -> Optional[PendingExternalTransfer]:
        """Get the queued transfer for a transaction ID."""
        pass

    @abstractmethod
    def list_pending_transfers(self, status: Optional[TransferStatus] = None) -> list[PendingExternalTransfer]:
        """List queued transfers, optionally filtered by status."""
        pass

    @abstractmethod
    def resolve_pending_transfer(
        self, transfer_id: int, status: TransferStatus, failure_reason: Optional[str] = None
    ) -> bool:
        """Move a PENDING transfer to SETTLED or FAILED. Returns True if it changed."""
        pass

    # Settlement journal operations
    @abstractmethod
    def create_settlement(self, transaction_id: str, request: SettlementRequest) -> Settlement:
        """Record a new INITIATED settlement."""
        pass

    @abstractmethod
    def get_settlement(self, transaction_id: str) -> Optional[Settlement]:
        """Get settlement by transaction ID."""
        pass

    @abstractmethod
    def update_settlement_status(
        self, transaction_id: str, status: SettlementStatus, failure_reason: Optional[str] = None
    ) -> None:
        """Advance a settlement's status."""
        pass

    @abstractmethod
    def rebind_settlement(self, transaction_id: str, request: SettlementRequest) -> bool:
        """Replace the parameters of a FAILED settlement and reset it to INITIATED.

        Only applies while the settlement is still FAILED. Returns True if
        the row changed.
        """
        pass

    @abstractmethod
    def list_settlements(self, status: Optional[SettlementStatus] = None) -> list[Settlement]:
        """List settlements, optionally filtered by status."""
        pass
