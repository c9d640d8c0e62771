"""Account store: balances and the debit/credit primitives."""

import logging
import threading
import uuid
from typing import Optional

from paysettle.database.base import Database
from paysettle.domain.entities import (
    Account as AccountEntity,
    AccountStatus,
    Direction,
    TransactionKind,
)
from paysettle.domain.errors import (
    AccountError,
    AccountInactiveError,
    ConflictError,
    DependencyError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    account_close_blocked,
    account_not_found,
    idempotency_conflict,
    invalid_amount,
)
from paysettle.domain.results import AccountResult

logger = logging.getLogger(__name__)


def is_valid_amount(amount: object) -> bool:
    """Amounts are positive integers in minor units."""
    return isinstance(amount, int) and not isinstance(amount, bool) and amount > 0


class AccountStore:
    """Service owning account balances.

    Every balance change goes through debit() or credit(), which write
    exactly one ledger row per call. Mutations against the same account are
    serialized by an in-process lock per account; the storage layer also
    takes a row lock so separate processes cannot interleave.
    """

    def __init__(self, db: Database, default_currency: str = "SLE"):
        """Initialize account store.

        Args:
            db: Database instance
            default_currency: Currency for accounts opened without one
        """
        self.db = db
        self.default_currency = default_currency
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, account_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    def open_account(self, owner_id: str, currency: Optional[str] = None) -> int:
        """Open a zero-balance ACTIVE account.

        Args:
            owner_id: Owner identifier (user, school or business)
            currency: ISO currency code, defaults to the store's currency

        Returns:
            Account ID

        Raises:
            ValidationError: If owner_id or currency is blank
        """
        if not owner_id or not owner_id.strip():
            raise ValidationError("Account owner is required")
        currency = (currency or self.default_currency).strip().upper()
        if len(currency) != 3:
            raise ValidationError(f"Invalid currency code '{currency}'")
        account_id = self.db.create_account(owner_id=owner_id.strip(), currency=currency)
        logger.info("Opened account %s for owner %s (%s)", account_id, owner_id, currency)
        return account_id

    def get_account(self, account_id: int) -> Optional[AccountEntity]:
        """Get account by ID, or None if not found."""
        return self.db.get_account(account_id)

    def require_account(self, account_id: int) -> AccountEntity:
        """Get account by ID.

        Raises:
            NotFoundError: If the account does not exist
        """
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        return account

    def get_balance(self, account_id: int) -> int:
        return self.require_account(account_id).balance

    def list_accounts(self, owner_id: Optional[str] = None) -> list[AccountEntity]:
        return self.db.list_accounts(owner_id=owner_id)

    def find_active_account_for_owner(self, owner_id: str) -> Optional[AccountEntity]:
        """Return the owner's oldest ACTIVE account, if any."""
        for account in self.db.list_accounts(owner_id=owner_id):
            if account.is_active:
                return account
        return None

    def debit(
        self,
        account_id: int,
        amount: int,
        idempotency_key: str,
        kind: TransactionKind = TransactionKind.FEE_PAYMENT,
        related_entity_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> AccountResult:
        """Atomically decrease a balance and append a DEBIT ledger row.

        Fails with INSUFFICIENT_BALANCE or ACCOUNT_NOT_ACTIVE without writing
        anything. Retrying with the same key after success is a no-op that
        returns the original record.
        """
        return self._post(
            Direction.DEBIT, account_id, amount, idempotency_key, kind, related_entity_id, description
        )

    def credit(
        self,
        account_id: int,
        amount: int,
        idempotency_key: str,
        kind: TransactionKind = TransactionKind.FEE_RECEIVED,
        related_entity_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> AccountResult:
        """Atomically increase a balance and append a CREDIT ledger row."""
        return self._post(
            Direction.CREDIT, account_id, amount, idempotency_key, kind, related_entity_id, description
        )

    def deposit(self, account_id: int, amount: int, reference: Optional[str] = None) -> AccountResult:
        """Fund an account through a ledger-recorded TOP_UP credit."""
        key = reference or f"TOP-{uuid.uuid4().hex[:16].upper()}"
        return self.credit(
            account_id,
            amount,
            key,
            kind=TransactionKind.TOP_UP,
            description="Account top-up",
        )

    def _post(
        self,
        direction: Direction,
        account_id: int,
        amount: int,
        idempotency_key: str,
        kind: TransactionKind,
        related_entity_id: Optional[str],
        description: Optional[str],
    ) -> AccountResult:
        if not is_valid_amount(amount):
            return AccountResult(error=AccountError.INVALID_AMOUNT, message=invalid_amount(amount))
        if not idempotency_key:
            return AccountResult(
                error=AccountError.IDEMPOTENCY_CONFLICT, message="Idempotency key is required"
            )

        with self._lock_for(account_id):
            replay = self._find_replay(direction, account_id, amount, idempotency_key)
            if replay is not None:
                return replay

            try:
                record = self.db.post_ledger_entry(
                    transaction_id=idempotency_key,
                    account_id=account_id,
                    direction=direction,
                    amount=amount,
                    kind=kind,
                    related_entity_id=related_entity_id,
                    description=description,
                )
            except NotFoundError as e:
                return AccountResult(error=AccountError.ACCOUNT_NOT_FOUND, message=str(e))
            except AccountInactiveError as e:
                return AccountResult(error=AccountError.ACCOUNT_NOT_ACTIVE, message=str(e))
            except InsufficientFundsError as e:
                logger.info("Debit of %s on account %s refused: %s", amount, account_id, e)
                return AccountResult(error=AccountError.INSUFFICIENT_BALANCE, message=str(e))
            except ConflictError as e:
                # Another writer committed the same key first
                replay = self._find_replay(direction, account_id, amount, idempotency_key)
                if replay is not None:
                    return replay
                return AccountResult(error=AccountError.IDEMPOTENCY_CONFLICT, message=str(e))

        logger.info(
            "%s %s on account %s under %s", direction.value, amount, account_id, idempotency_key
        )
        return AccountResult(record=record)

    def _find_replay(
        self, direction: Direction, account_id: int, amount: int, idempotency_key: str
    ) -> Optional[AccountResult]:
        for record in self.db.get_ledger_records(idempotency_key):
            if record.direction is not direction:
                continue
            if record.account_id == account_id and record.amount == amount:
                return AccountResult(record=record, replayed=True)
            return AccountResult(
                error=AccountError.IDEMPOTENCY_CONFLICT,
                message=idempotency_conflict(idempotency_key),
            )
        return None

    def suspend(self, account_id: int) -> None:
        """Suspend an ACTIVE account.

        Raises:
            NotFoundError: If the account does not exist
            InvalidStateError: If the account is not ACTIVE
        """
        with self._lock_for(account_id):
            account = self.require_account(account_id)
            if account.status is not AccountStatus.ACTIVE:
                raise InvalidStateError(
                    f"Cannot suspend account {account_id} in status {account.status.value}"
                )
            self.db.update_account_status(account_id, AccountStatus.SUSPENDED)
        logger.info("Suspended account %s", account_id)

    def reactivate(self, account_id: int) -> None:
        """Return a SUSPENDED account to ACTIVE. CLOSED accounts stay closed."""
        with self._lock_for(account_id):
            account = self.require_account(account_id)
            if account.status is not AccountStatus.SUSPENDED:
                raise InvalidStateError(
                    f"Cannot reactivate account {account_id} in status {account.status.value}"
                )
            self.db.update_account_status(account_id, AccountStatus.ACTIVE)
        logger.info("Reactivated account %s", account_id)

    def close(self, account_id: int) -> None:
        """Close an account. Accounts are never deleted.

        Raises:
            DependencyError: If the account still holds a balance
        """
        with self._lock_for(account_id):
            account = self.require_account(account_id)
            if account.status is AccountStatus.CLOSED:
                return
            if account.balance > 0:
                raise DependencyError(account_close_blocked(account_id, account.balance))
            self.db.update_account_status(account_id, AccountStatus.CLOSED)
        logger.info("Closed account %s", account_id)
