"""Payroll commands."""

import click
from paysettle.cli.account_resolution import resolve_account_or_exit
from paysettle.cli.error_handling import handle_domain_error
from paysettle.domain.errors import DomainError, format_amount
from paysettle.domain.payroll_csv import load_payroll_entries


@click.group()
def payroll_group():
    """Create and pay payroll runs."""
    pass


@payroll_group.command("create")
@click.argument("school", metavar="SCHOOL_ACCOUNT")
@click.argument("period", metavar="PERIOD")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def create_run(ctx, school: str, period: str, csv_file: str):
    """Create a payroll run from a CSV file.

    The CSV needs staff_id and base_salary columns; staff_name, allowances,
    deductions, channel (WALLET, BANK, MOBILE_MONEY, MANUAL),
    recipient_account_id and payout details are optional. Amounts are in
    major units. The run is only created if every row is valid.

    Examples:
        paysettle payroll create school-7 2024-03 march.csv
    """
    engine = ctx.obj["engine"]
    school_id = resolve_account_or_exit(ctx, engine.accounts, school)

    try:
        entries, errors = load_payroll_entries(csv_file)
    except (ValueError, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    if errors:
        click.echo(f"Error: {len(errors)} invalid row{'s' if len(errors) != 1 else ''}:", err=True)
        for error in errors:
            click.echo(f"  - {error}", err=True)
        ctx.exit(1)

    try:
        run = engine.payroll.create_run(school_id, period, entries)
    except DomainError as e:
        handle_domain_error(ctx, e)

    total = sum(entry.net_salary for entry in entries)
    click.echo(
        f"Created payroll run {run.id} for {run.period}: "
        f"{len(entries)} entries, {format_amount(total)} total"
    )


@payroll_group.command("pay")
@click.argument("run_id", type=int)
@click.pass_context
def pay_run(ctx, run_id: int):
    """Pay every unpaid entry of a run, in order.

    Entries are paid one by one. When the school balance runs out the
    remaining entries fail and can be paid later by running this again.
    """
    try:
        result = ctx.obj["engine"].payroll.pay_run(run_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    for item in result.results:
        entry = item.entry
        name = entry.staff_name or entry.staff_id
        if item.ok:
            click.echo(
                f"  OK     {name:25s} {format_amount(entry.net_salary):>14s} "
                f"{item.outcome.status.value} {item.outcome.transaction_id}"
            )
        else:
            click.echo(
                f"  FAILED {name:25s} {format_amount(entry.net_salary):>14s} {item.outcome.message}"
            )
    click.echo(f"\nPaid {result.successful}, failed {result.failed}")
    if result.failed:
        ctx.exit(1)


@payroll_group.command("show")
@click.argument("run_id", type=int)
@click.pass_context
def show_run(ctx, run_id: int):
    """Show a payroll run and its entries."""
    payroll = ctx.obj["engine"].payroll
    try:
        run = payroll.require_run(run_id)
        entries = payroll.list_entries(run_id)
        summary = payroll.payment_summary(run_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"\nPayroll run {run.id} ({run.period}) from account {run.school_account_id}")
    click.echo("-" * 90)
    for entry in entries:
        click.echo(
            f"{entry.staff_id:12s} | {(entry.staff_name or ''):20s} | {entry.channel.value:12s} | "
            f"{format_amount(entry.net_salary):>12s} | {entry.status.value:9s} | "
            f"{entry.failure_reason or ''}"
        )
    click.echo("-" * 90)
    click.echo(
        f"Paid {summary.paid_count} ({format_amount(summary.total_paid)} of "
        f"{format_amount(summary.total_amount)}), pending {summary.pending_count}, "
        f"failed {summary.failed_count}"
    )


def register_commands(cli):
    """Register payroll commands with main CLI."""
    cli.add_command(payroll_group, name="payroll")
