"""Tests for the transaction ledger."""

from datetime import datetime, timedelta

from paysettle.domain.entities import Direction, TransactionKind


def test_list_by_account_in_append_order(account_store, ledger, parent_account):
    account_store.debit(parent_account.id, 100, "A")
    account_store.debit(parent_account.id, 200, "B")

    records = ledger.list_by_account(parent_account.id)

    assert [r.transaction_id for r in records] == ["SEED-PARENT", "A", "B"]
    assert records[0].kind is TransactionKind.TOP_UP
    assert [r.direction for r in records] == [Direction.CREDIT, Direction.DEBIT, Direction.DEBIT]


def test_list_by_account_time_window(account_store, ledger, parent_account):
    account_store.debit(parent_account.id, 100, "A")
    future = datetime.now() + timedelta(days=2)

    assert ledger.list_by_account(parent_account.id, start=future) == []
    assert len(ledger.list_by_account(parent_account.id, end=future)) == 2


def test_find_by_idempotency_key(account_store, ledger, parent_account, school_account):
    account_store.debit(parent_account.id, 300, "T-1")
    account_store.credit(school_account.id, 300, "T-1")

    records = ledger.find_by_idempotency_key("T-1")

    assert len(records) == 2
    assert {r.account_id for r in records} == {parent_account.id, school_account.id}
    assert ledger.find_by_idempotency_key("missing") == []


def test_is_balanced_requires_both_legs(account_store, ledger, parent_account):
    account_store.debit(parent_account.id, 300, "T-1")
    assert not ledger.is_balanced("T-1")


def test_derived_balance_matches_stored(account_store, ledger, parent_account, school_account):
    account_store.debit(parent_account.id, 12_345, "T-1")
    account_store.credit(school_account.id, 12_345, "T-1")
    account_store.debit(parent_account.id, 99_999_999, "TOO-MUCH")

    assert ledger.derived_balance(parent_account.id) == 50_000_000 - 12_345
    assert ledger.verify_account(parent_account.id)
    assert ledger.verify_account(school_account.id)


def test_verify_unknown_account(ledger):
    assert not ledger.verify_account(12345)
