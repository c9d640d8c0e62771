"""Tests for loading payroll entries from CSV."""

import pytest

from paysettle.domain.entities import Channel
from paysettle.domain.payroll_csv import load_payroll_entries


def test_load_payroll_entries(fixtures_dir):
    entries, errors = load_payroll_entries(str(fixtures_dir / "payroll_march.csv"))

    assert errors == []
    assert [e.staff_id for e in entries] == ["T-001", "T-002", "T-003"]

    wallet, bank, mobile = entries
    assert wallet.channel is Channel.WALLET
    assert wallet.recipient_account_id == 2
    assert wallet.net_salary == 250_000 + 30_000 - 20_000
    assert bank.channel is Channel.BANK
    assert bank.recipient_details == {"bank_name": "Rokel Commercial Bank", "account_number": "0012345678"}
    assert mobile.recipient_details == {"mobile_number": "+23276000000"}


def test_load_payroll_entries_reports_bad_rows(fixtures_dir):
    entries, errors = load_payroll_entries(str(fixtures_dir / "payroll_invalid.csv"))

    assert [e.staff_id for e in entries] == ["T-001"]
    assert len(errors) == 3
    assert errors[0].startswith("Row 3: Missing staff_id")
    assert "Row 4" in errors[1]
    assert "Unknown channel 'PIGEON'" in errors[2]


def test_missing_required_columns(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("name,amount\nA,1\n")

    with pytest.raises(ValueError, match="missing required columns"):
        load_payroll_entries(str(path))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_payroll_entries(str(tmp_path / "nope.csv"))
