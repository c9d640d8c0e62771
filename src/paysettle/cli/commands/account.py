"""Account management commands."""

from datetime import datetime, time

import click
from paysettle.cli.account_resolution import resolve_account_or_exit
from paysettle.cli.error_handling import fail, handle_domain_error
from paysettle.domain.errors import DomainError, format_amount
from paysettle.utils.amount_parser import parse_amount
from paysettle.utils.date_parser import get_date_range, parse_date


@click.group()
def account_group():
    """Manage wallet accounts."""
    pass


@account_group.command("open")
@click.argument("owner_id", metavar="OWNER_ID")
@click.option("--currency", help="ISO currency code (defaults to PAYSETTLE_CURRENCY)")
@click.pass_context
def open_account(ctx, owner_id: str, currency: str | None):
    """Open a new wallet account.

    Examples:
        paysettle account open parent-42
        paysettle account open school-7 --currency SLE
    """
    accounts = ctx.obj["engine"].accounts

    try:
        account_id = accounts.open_account(owner_id=owner_id, currency=currency)
    except DomainError as e:
        handle_domain_error(ctx, e)
    account = accounts.get_account(account_id)
    click.echo(f"Opened account {account_id} for '{owner_id}' ({account.currency})")


@account_group.command("deposit")
@click.argument("account", metavar="ACCOUNT")
@click.argument("amount", metavar="AMOUNT")
@click.option("--reference", help="External reference; repeating it does not deposit twice")
@click.pass_context
def deposit(ctx, account: str, amount: str, reference: str | None):
    """Top up an account.

    ACCOUNT can be an account ID or owner id. AMOUNT is in major units.

    Examples:
        paysettle account deposit 1 500000
        paysettle account deposit parent-42 "1,250.50" --reference BANK-889
    """
    accounts = ctx.obj["engine"].accounts
    account_id = resolve_account_or_exit(ctx, accounts, account)

    try:
        minor = parse_amount(amount)
    except ValueError as e:
        click.echo(f"Error: Invalid amount format: {e}", err=True)
        ctx.exit(1)

    result = accounts.deposit(account_id, minor, reference=reference)
    if not result.ok:
        fail(ctx, result.message)
    if result.replayed:
        click.echo(f"Deposit {result.record.transaction_id} was already recorded")
    balance = accounts.get_balance(account_id)
    click.echo(f"Deposited {format_amount(minor)} into account {account_id}")
    click.echo(f"Balance: {format_amount(balance)}")


@account_group.command("show")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def show_account(ctx, account: str):
    """Show an account's status and balance."""
    accounts = ctx.obj["engine"].accounts
    account_id = resolve_account_or_exit(ctx, accounts, account)
    acc = accounts.get_account(account_id)

    click.echo(f"\nAccount {acc.id}")
    click.echo("-" * 40)
    click.echo(f"Owner:    {acc.owner_id}")
    click.echo(f"Status:   {acc.status.value}")
    click.echo(f"Balance:  {format_amount(acc.balance)} {acc.currency}")
    click.echo(f"Opened:   {acc.created_at:%Y-%m-%d %H:%M}")


@account_group.command("list")
@click.option("--owner", help="Only accounts of this owner")
@click.pass_context
def list_accounts(ctx, owner: str | None):
    """List accounts."""
    accounts = ctx.obj["engine"].accounts.list_accounts(owner_id=owner)
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 70)
    for acc in accounts:
        click.echo(
            f"ID: {acc.id:3d} | {acc.owner_id:20s} | {acc.status.value:9s} | "
            f"{format_amount(acc.balance):>15s} {acc.currency}"
        )


@account_group.command("history")
@click.argument("account", metavar="ACCOUNT")
@click.option("--start-date", help="Start date (YYYY-MM-DD or relative like 'this month')")
@click.option("--end-date", help="End date (YYYY-MM-DD or relative like 'today')")
@click.option(
    "--period",
    help="Shortcut for a date range: this-month, last-month, this-week, last-week, this-term",
)
@click.pass_context
def account_history(
    ctx, account: str, start_date: str | None, end_date: str | None, period: str | None
):
    """Show ledger rows for an account.

    Examples:
        paysettle account history 1
        paysettle account history parent-42 --period last-month
    """
    engine = ctx.obj["engine"]
    account_id = resolve_account_or_exit(ctx, engine.accounts, account)

    start = end = None
    try:
        if period is not None:
            start, end = get_date_range(period)
        if start_date is not None:
            start = parse_date(start_date)
        if end_date is not None:
            end = parse_date(end_date)
    except ValueError as e:
        click.echo(f"Error: Invalid date: {e}", err=True)
        ctx.exit(1)

    # Dates are inclusive whole days
    start_dt = datetime.combine(start, time.min) if start else None
    end_dt = datetime.combine(end, time.max) if end else None

    records = engine.ledger.list_by_account(account_id, start=start_dt, end=end_dt)
    if not records:
        click.echo("No transactions found.")
        return

    click.echo(f"\nLedger for account {account_id}:")
    click.echo("-" * 100)
    for record in records:
        click.echo(
            f"{record.created_at:%Y-%m-%d %H:%M} | {record.direction.value:6s} | "
            f"{format_amount(record.signed_amount):>14s} | {record.kind.value:17s} | "
            f"{record.transaction_id}"
        )


@account_group.command("suspend")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def suspend_account(ctx, account: str):
    """Suspend an active account. Debits and credits are refused while suspended."""
    accounts = ctx.obj["engine"].accounts
    account_id = resolve_account_or_exit(ctx, accounts, account)
    try:
        accounts.suspend(account_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Suspended account {account_id}")


@account_group.command("reactivate")
@click.argument("account_id", type=int)
@click.pass_context
def reactivate_account(ctx, account_id: int):
    """Reactivate a suspended account."""
    try:
        ctx.obj["engine"].accounts.reactivate(account_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Reactivated account {account_id}")


@account_group.command("close")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def close_account(ctx, account: str):
    """Close an account.

    Only accounts with a zero balance can be closed. Closed accounts are
    kept with their ledger history.
    """
    accounts = ctx.obj["engine"].accounts
    account_id = resolve_account_or_exit(ctx, accounts, account)

    if not click.confirm(f"Are you sure you want to close account {account_id}?"):
        click.echo("Close cancelled.")
        return

    try:
        accounts.close(account_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Closed account {account_id}")


@account_group.command("verify")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def verify_account(ctx, account: str):
    """Check an account's balance against its ledger."""
    engine = ctx.obj["engine"]
    account_id = resolve_account_or_exit(ctx, engine.accounts, account)

    balance = engine.accounts.get_balance(account_id)
    derived = engine.ledger.derived_balance(account_id)
    if engine.ledger.verify_account(account_id):
        click.echo(f"Account {account_id} OK: balance {format_amount(balance)} matches ledger")
        return
    click.echo(
        f"Error: Account {account_id} balance {format_amount(balance)} "
        f"does not match ledger {format_amount(derived)}",
        err=True,
    )
    ctx.exit(1)


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
