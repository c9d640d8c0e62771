"""Shared domain error messages and error types."""

from enum import Enum


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class DependencyError(DomainError):
    """Operation blocked due to dependent domain data."""


class InvalidStateError(DomainError):
    """Operation not allowed in the entity's current state."""


class InsufficientFundsError(ConflictError):
    """Balance check failed inside the storage transaction."""

    def __init__(self, message: str, available: int):
        super().__init__(message)
        self.available = available


class AccountInactiveError(InvalidStateError):
    """Account is suspended or closed."""


class AccountError(str, Enum):
    """Failure codes returned by account store mutations."""

    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    ACCOUNT_NOT_ACTIVE = "ACCOUNT_NOT_ACTIVE"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    IDEMPOTENCY_CONFLICT = "IDEMPOTENCY_CONFLICT"


class SettlementError(str, Enum):
    """Failure codes returned by the disbursement router."""

    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    ACCOUNT_NOT_ACTIVE = "ACCOUNT_NOT_ACTIVE"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    INVALID_REQUEST = "INVALID_REQUEST"
    IDEMPOTENCY_CONFLICT = "IDEMPOTENCY_CONFLICT"
    PAYEE_STEP_FAILED = "PAYEE_STEP_FAILED"


class PaymentError(str, Enum):
    """Failure codes returned by invoice payment."""

    INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
    ALREADY_PAID = "ALREADY_PAID"
    INVOICE_CANCELLED = "INVOICE_CANCELLED"
    PAYEE_ACCOUNT_UNCONFIGURED = "PAYEE_ACCOUNT_UNCONFIGURED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    ACCOUNT_NOT_ACTIVE = "ACCOUNT_NOT_ACTIVE"
    SETTLEMENT_FAILED = "SETTLEMENT_FAILED"


def format_amount(amount: int) -> str:
    """Render minor units as a plain major-unit string for messages."""
    sign = "-" if amount < 0 else ""
    whole, cents = divmod(abs(amount), 100)
    return f"{sign}{whole:,}.{cents:02d}"


def account_not_found(account_id: int) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def account_not_active(account_id: int, status: str) -> str:
    """Return message for a suspended or closed account."""
    return f"Account {account_id} is not active (status: {status})"


def insufficient_balance(needed: int, available: int) -> str:
    """Return message for a debit larger than the balance."""
    return (
        f"Insufficient balance: need {format_amount(needed)}, "
        f"have {format_amount(available)}"
    )


def invalid_amount(amount: object) -> str:
    """Return message for a non-positive or non-integer amount."""
    return f"Amount must be a positive integer in minor units, got {amount!r}"


def idempotency_conflict(key: str) -> str:
    """Return message when a key is reused for a different operation."""
    return f"Idempotency key '{key}' was already used for a different operation"


def invoice_not_found(invoice_id: int) -> str:
    """Return message for missing invoice."""
    return f"Invoice {invoice_id} not found"


def invalid_invoice_transition(invoice_number: str, status: str, action: str) -> str:
    """Return message for an invoice state machine violation."""
    return f"Cannot {action} invoice {invoice_number} in status {status}"


def payroll_run_not_found(run_id: int) -> str:
    """Return message for missing payroll run."""
    return f"Payroll run {run_id} not found"


def transfer_not_found(transfer_id: int) -> str:
    """Return message for missing pending transfer."""
    return f"Pending transfer {transfer_id} not found"


def account_close_blocked(account_id: int, balance: int) -> str:
    """Return message when an account still holds funds."""
    return (
        f"Cannot close account {account_id}: it still holds "
        f"{format_amount(balance)}. Move the funds out first."
    )
