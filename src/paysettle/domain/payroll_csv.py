"""Load payroll entries from a CSV file."""

import csv
from pathlib import Path

from paysettle.domain.entities import Channel, PayrollEntryInput
from paysettle.utils.amount_parser import parse_amount

REQUIRED_COLUMNS = {"staff_id", "base_salary"}

# Columns copied into recipient_details for external payouts
DETAIL_COLUMNS = ("bank_name", "account_number", "account_name", "mobile_number", "provider")


def load_payroll_entries(csv_file_path: str) -> tuple[list[PayrollEntryInput], list[str]]:
    """Read payroll entries from a CSV file.

    Expected columns: staff_id, base_salary and optionally staff_name,
    allowances, deductions, channel, recipient_account_id plus payout
    details (bank_name, account_number, account_name, mobile_number,
    provider). Amounts are in major units.

    Args:
        csv_file_path: Path to CSV file

    Returns:
        Tuple of (entries, errors). Rows with errors are left out of entries.

    Raises:
        ValueError: If required columns are missing
        FileNotFoundError: If CSV file doesn't exist
    """
    csv_path = Path(csv_file_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_file_path}")

    entries = []
    errors = []

    with open(csv_path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)

        csv_columns = reader.fieldnames
        if csv_columns is None:
            raise ValueError("CSV file has no columns")
        missing_columns = REQUIRED_COLUMNS - {c.strip() for c in csv_columns}
        if missing_columns:
            raise ValueError(f"CSV file missing required columns: {', '.join(sorted(missing_columns))}")

        for row_num, row in enumerate(reader, start=2):  # Start at 2 (header is row 1)
            values = {k.strip(): (v.strip() if v else "") for k, v in row.items() if k}

            staff_id = values.get("staff_id")
            if not staff_id:
                errors.append(f"Row {row_num}: Missing staff_id")
                continue

            try:
                base_salary = parse_amount(values["base_salary"])
                allowances = parse_amount(values["allowances"]) if values.get("allowances") else 0
                deductions = parse_amount(values["deductions"]) if values.get("deductions") else 0
            except ValueError as e:
                errors.append(f"Row {row_num}: {e}")
                continue

            channel_name = (values.get("channel") or Channel.WALLET.value).upper()
            try:
                channel = Channel(channel_name)
            except ValueError:
                errors.append(f"Row {row_num}: Unknown channel '{channel_name}'")
                continue

            recipient_account_id = None
            if values.get("recipient_account_id"):
                try:
                    recipient_account_id = int(values["recipient_account_id"])
                except ValueError:
                    errors.append(
                        f"Row {row_num}: Invalid recipient_account_id '{values['recipient_account_id']}'"
                    )
                    continue

            entries.append(
                PayrollEntryInput(
                    staff_id=staff_id,
                    staff_name=values.get("staff_name") or None,
                    base_salary=base_salary,
                    allowances=allowances,
                    deductions=deductions,
                    channel=channel,
                    recipient_account_id=recipient_account_id,
                    recipient_details={k: values[k] for k in DETAIL_COLUMNS if values.get(k)},
                )
            )

    return entries, errors
