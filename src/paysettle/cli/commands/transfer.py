"""External transfer queue commands."""

import click
from paysettle.cli.error_handling import handle_domain_error
from paysettle.domain.entities import TransferStatus
from paysettle.domain.errors import DomainError, format_amount


@click.group()
def transfer_group():
    """Inspect and reconcile queued external payouts."""
    pass


@transfer_group.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in TransferStatus] + ["ALL"], case_sensitive=False),
    default=TransferStatus.PENDING.value,
    show_default=True,
)
@click.pass_context
def list_transfers(ctx, status: str):
    """List queued external payouts."""
    status_filter = None if status.upper() == "ALL" else TransferStatus(status.upper())
    transfers = ctx.obj["engine"].router.list_pending_transfers(status=status_filter)
    if not transfers:
        click.echo("No transfers found.")
        return

    click.echo("\nTransfers:")
    click.echo("-" * 90)
    for transfer in transfers:
        details = ", ".join(f"{k}={v}" for k, v in sorted(transfer.recipient_details.items()))
        click.echo(
            f"ID: {transfer.id:3d} | {transfer.type.value:12s} | "
            f"{format_amount(transfer.amount):>12s} {transfer.currency} | "
            f"{transfer.status.value:7s} | {transfer.related_transaction_id} | {details}"
        )


@transfer_group.command("settle")
@click.argument("transfer_id", type=int)
@click.pass_context
def settle_transfer(ctx, transfer_id: int):
    """Record that an external payout went through."""
    try:
        transfer = ctx.obj["engine"].payroll.reconcile_transfer(transfer_id, succeeded=True)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Transfer {transfer.id} settled")


@transfer_group.command("fail")
@click.argument("transfer_id", type=int)
@click.option("--reason", required=True, help="Why the payout failed")
@click.pass_context
def fail_transfer(ctx, transfer_id: int, reason: str):
    """Record that an external payout failed and refund the source account."""
    try:
        transfer = ctx.obj["engine"].payroll.reconcile_transfer(
            transfer_id, succeeded=False, reason=reason
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(
        f"Transfer {transfer.id} failed; refunded {format_amount(transfer.amount)} "
        f"to account {transfer.source_account_id}"
    )


@transfer_group.command("replay")
@click.pass_context
def replay_orphaned(ctx):
    """Resume settlements whose payer was debited but whose payee step failed.

    Invoices and payroll entries paid by a resumed settlement are updated too.
    """
    outcomes = ctx.obj["engine"].replay_orphaned()
    if not outcomes:
        click.echo("No orphaned settlements.")
        return

    failed = 0
    for outcome in outcomes:
        click.echo(f"{outcome.transaction_id}: {outcome.status.value} {outcome.message or ''}".rstrip())
        if not outcome.ok:
            failed += 1
    click.echo(f"\nResumed {len(outcomes) - failed} of {len(outcomes)}")
    if failed:
        ctx.exit(1)


def register_commands(cli):
    """Register transfer commands with main CLI."""
    cli.add_command(transfer_group, name="transfer")
