"""Tests for the account store."""

import threading

import pytest

from paysettle.domain.entities import AccountStatus, Direction, TransactionKind
from paysettle.domain.errors import (
    AccountError,
    DependencyError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


def test_open_account(account_store):
    """New accounts are ACTIVE with a zero balance."""
    account_id = account_store.open_account("parent-9")

    account = account_store.get_account(account_id)
    assert account.owner_id == "parent-9"
    assert account.status is AccountStatus.ACTIVE
    assert account.balance == 0
    assert account.currency == "SLE"


def test_open_account_custom_currency(account_store):
    account_id = account_store.open_account("parent-9", currency="usd")
    assert account_store.get_account(account_id).currency == "USD"


def test_open_account_requires_owner(account_store):
    with pytest.raises(ValidationError):
        account_store.open_account("  ")


def test_open_account_rejects_bad_currency(account_store):
    with pytest.raises(ValidationError, match="currency"):
        account_store.open_account("parent-9", currency="DOLLARS")


def test_require_account_missing(account_store):
    with pytest.raises(NotFoundError, match="Account 999 not found"):
        account_store.require_account(999)


def test_debit_and_credit(account_store, parent_account):
    result = account_store.debit(parent_account.id, 1_000, "K-1")
    assert result.ok
    assert result.record.direction is Direction.DEBIT
    assert result.record.kind is TransactionKind.FEE_PAYMENT
    assert account_store.get_balance(parent_account.id) == 50_000_000 - 1_000

    result = account_store.credit(parent_account.id, 400, "K-2")
    assert result.ok
    assert result.record.kind is TransactionKind.FEE_RECEIVED
    assert account_store.get_balance(parent_account.id) == 50_000_000 - 600


def test_debit_insufficient_balance(account_store, school_account, ledger):
    """A debit larger than the balance changes nothing."""
    result = account_store.debit(school_account.id, 100, "K-1")

    assert not result.ok
    assert result.error is AccountError.INSUFFICIENT_BALANCE
    assert "need 1.00, have 0.00" in result.message
    assert account_store.get_balance(school_account.id) == 0
    assert ledger.find_by_idempotency_key("K-1") == []


def test_debit_to_exactly_zero(account_store, parent_account):
    result = account_store.debit(parent_account.id, 50_000_000, "ALL")
    assert result.ok
    assert account_store.get_balance(parent_account.id) == 0


@pytest.mark.parametrize("amount", [0, -5, 1.5, True, "100"])
def test_invalid_amounts(account_store, parent_account, amount):
    result = account_store.debit(parent_account.id, amount, "K-BAD")
    assert result.error is AccountError.INVALID_AMOUNT
    assert account_store.get_balance(parent_account.id) == 50_000_000


def test_unknown_account(account_store):
    result = account_store.credit(404, 100, "K-1")
    assert result.error is AccountError.ACCOUNT_NOT_FOUND


def test_debit_is_idempotent(account_store, parent_account, ledger):
    """Retrying with the same key returns the original record without a second debit."""
    first = account_store.debit(parent_account.id, 2_500, "PAY-1")
    second = account_store.debit(parent_account.id, 2_500, "PAY-1")

    assert first.ok and second.ok
    assert second.replayed
    assert second.record.id == first.record.id
    assert account_store.get_balance(parent_account.id) == 50_000_000 - 2_500
    assert len(ledger.find_by_idempotency_key("PAY-1")) == 1


def test_key_reuse_with_different_amount_conflicts(account_store, parent_account):
    account_store.debit(parent_account.id, 2_500, "PAY-1")
    result = account_store.debit(parent_account.id, 9_999, "PAY-1")

    assert result.error is AccountError.IDEMPOTENCY_CONFLICT
    assert account_store.get_balance(parent_account.id) == 50_000_000 - 2_500


def test_key_shared_by_debit_and_credit(account_store, parent_account, school_account, ledger):
    """One key may carry one DEBIT and one CREDIT row."""
    assert account_store.debit(parent_account.id, 700, "STL-X-1").ok
    assert account_store.credit(school_account.id, 700, "STL-X-1").ok

    assert ledger.is_balanced("STL-X-1")


def test_suspended_account_refuses_mutations(account_store, parent_account):
    account_store.suspend(parent_account.id)

    debit = account_store.debit(parent_account.id, 100, "K-1")
    credit = account_store.credit(parent_account.id, 100, "K-2")

    assert debit.error is AccountError.ACCOUNT_NOT_ACTIVE
    assert credit.error is AccountError.ACCOUNT_NOT_ACTIVE
    assert account_store.get_balance(parent_account.id) == 50_000_000


def test_suspend_and_reactivate(account_store, parent_account):
    account_store.suspend(parent_account.id)
    assert account_store.get_account(parent_account.id).status is AccountStatus.SUSPENDED

    with pytest.raises(InvalidStateError):
        account_store.suspend(parent_account.id)

    account_store.reactivate(parent_account.id)
    assert account_store.get_account(parent_account.id).is_active


def test_close_requires_zero_balance(account_store, parent_account, school_account):
    with pytest.raises(DependencyError, match="still holds"):
        account_store.close(parent_account.id)

    account_store.close(school_account.id)
    assert account_store.get_account(school_account.id).status is AccountStatus.CLOSED

    with pytest.raises(InvalidStateError):
        account_store.reactivate(school_account.id)


def test_deposit_with_reference_is_idempotent(account_store, school_account):
    first = account_store.deposit(school_account.id, 10_000, reference="BANK-1")
    second = account_store.deposit(school_account.id, 10_000, reference="BANK-1")

    assert first.ok and second.replayed
    assert first.record.kind is TransactionKind.TOP_UP
    assert account_store.get_balance(school_account.id) == 10_000


def test_find_active_account_for_owner(account_store, parent_account):
    assert account_store.find_active_account_for_owner("parent-1").id == parent_account.id
    account_store.suspend(parent_account.id)
    assert account_store.find_active_account_for_owner("parent-1") is None
    assert account_store.find_active_account_for_owner("nobody") is None


def test_concurrent_debits_never_overdraw(account_store, school_account, ledger):
    """Parallel debits against one account stop at a zero balance."""
    account_store.deposit(school_account.id, 1_000, reference="SEED")
    results = []

    def worker(n):
        results.append(account_store.debit(school_account.id, 100, f"PAR-{n}"))
        account_store.db.disconnect()

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    succeeded = [r for r in results if r.ok]
    refused = [r for r in results if r.error is AccountError.INSUFFICIENT_BALANCE]
    assert len(succeeded) == 10
    assert len(refused) == 10
    assert account_store.get_balance(school_account.id) == 0
    assert ledger.verify_account(school_account.id)
