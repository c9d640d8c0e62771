"""Transaction ledger read service."""

from datetime import datetime
from typing import Optional

from paysettle.database.base import Database
from paysettle.domain.entities import TransactionRecord


class TransactionLedger:
    """Read access to the append-only ledger.

    Rows are only ever written by AccountStore.debit/credit; this service
    never updates or deletes them.
    """

    def __init__(self, db: Database):
        """Initialize ledger service.

        Args:
            db: Database instance
        """
        self.db = db

    def list_by_account(
        self,
        account_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[TransactionRecord]:
        """List an account's ledger rows in append order.

        Args:
            account_id: Account ID
            start: Optional inclusive lower bound on created_at
            end: Optional inclusive upper bound on created_at

        Returns:
            List of transaction records
        """
        return self.db.list_ledger_records(account_id, start=start, end=end)

    def find_by_idempotency_key(self, key: str) -> list[TransactionRecord]:
        """Return every row written under an idempotency key (0, 1 or 2)."""
        return self.db.get_ledger_records(key)

    def derived_balance(self, account_id: int) -> int:
        """Balance implied by the ledger: credits minus debits."""
        return self.db.sum_ledger(account_id)

    def verify_account(self, account_id: int) -> bool:
        """Check the stored balance against the ledger-derived balance."""
        account = self.db.get_account(account_id)
        if account is None:
            return False
        return account.balance == self.derived_balance(account_id)

    def is_balanced(self, key: str) -> bool:
        """True if a settled transfer's DEBIT and CREDIT rows cancel out."""
        records = self.find_by_idempotency_key(key)
        if len(records) != 2:
            return False
        first, second = records
        return (
            first.account_id != second.account_id
            and first.signed_amount + second.signed_amount == 0
        )
