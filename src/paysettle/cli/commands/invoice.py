"""Invoice commands."""

import click
from paysettle.cli.account_resolution import resolve_account_or_exit
from paysettle.cli.error_handling import fail, handle_domain_error
from paysettle.domain.entities import InvoiceStatus, InvoiceType, LineItem, Recipient
from paysettle.domain.errors import DomainError, format_amount
from paysettle.domain.results import DispatchStatus
from paysettle.utils.amount_parser import parse_amount
from paysettle.utils.date_parser import parse_date


def parse_line_item(spec: str) -> LineItem:
    """Parse 'description:quantity:unit_price', e.g. 'Tuition:1:1,500.00'.

    The unit price is given in major units. Quantity may be omitted
    ('Tuition:1500'), in which case it is 1.

    Raises:
        ValueError: If the item cannot be parsed
    """
    parts = [p.strip() for p in spec.rsplit(":", 2)]
    if len(parts) == 2:
        description, price = parts
        quantity = "1"
    elif len(parts) == 3:
        description, quantity, price = parts
    else:
        raise ValueError(f"Line item '{spec}' must look like DESCRIPTION:QTY:PRICE")
    if not quantity.isdigit():
        # Description contained a colon; fall back to a single quantity
        description, quantity = f"{description}:{quantity}", "1"
    return LineItem(description=description, quantity=int(quantity), unit_price=parse_amount(price))


def _echo_invoice(invoice) -> None:
    click.echo(f"\nInvoice {invoice.invoice_number} (ID: {invoice.id})")
    click.echo("-" * 60)
    click.echo(f"Type:       {invoice.type.value}")
    click.echo(f"Status:     {invoice.status.value}")
    click.echo(f"Recipient:  {invoice.recipient.name}")
    if invoice.recipient.student_id:
        click.echo(f"Student:    {invoice.recipient.student_id}")
    click.echo(f"Payer acct: {invoice.payer_account_ref or '-'}")
    click.echo(f"Payee acct: {invoice.payee_account_id or '-'}")
    click.echo(f"Due:        {invoice.due_date.isoformat()}")
    for item in invoice.line_items:
        click.echo(
            f"  {item.description:30s} {item.quantity:3d} x {format_amount(item.unit_price):>12s}"
            f" = {format_amount(item.total):>12s}"
        )
    click.echo(f"Total:      {format_amount(invoice.total)}")
    click.echo(f"Paid:       {format_amount(invoice.paid_amount)}")
    if invoice.receipt_number:
        click.echo(f"Receipt:    {invoice.receipt_number} ({invoice.payment_transaction_id})")
    if invoice.reminder_count:
        click.echo(f"Reminders:  {invoice.reminder_count}")
    if invoice.notes:
        click.echo(f"Notes:      {invoice.notes}")


@click.group()
def invoice_group():
    """Manage fee invoices."""
    pass


@invoice_group.command("create")
@click.argument("payee", metavar="PAYEE_ACCOUNT")
@click.argument("recipient_name", metavar="RECIPIENT_NAME")
@click.option("--item", "items", multiple=True, required=True, help="DESCRIPTION:QTY:PRICE (repeatable)")
@click.option("--due", "due", required=True, help="Due date (YYYY-MM-DD or relative like 'in 30 days')")
@click.option(
    "--type",
    "invoice_type",
    type=click.Choice([t.value for t in InvoiceType], case_sensitive=False),
    default=InvoiceType.FEE_NOTICE.value,
    show_default=True,
)
@click.option("--user-id", help="Recipient's user id (links the invoice to their wallet)")
@click.option("--email", help="Recipient email")
@click.option("--phone", help="Recipient phone")
@click.option("--student-id", help="Student the fees are for")
@click.option("--notes", help="Notes")
@click.pass_context
def create_invoice(
    ctx,
    payee: str,
    recipient_name: str,
    items: tuple[str, ...],
    due: str,
    invoice_type: str,
    user_id: str | None,
    email: str | None,
    phone: str | None,
    student_id: str | None,
    notes: str | None,
):
    """Create a DRAFT invoice.

    Examples:
        paysettle invoice create school-7 "Jane Doe" --user-id parent-42 \\
            --item "Tuition:1:1500" --item "Books:3:50" --due "in 30 days"
    """
    engine = ctx.obj["engine"]
    payee_id = resolve_account_or_exit(ctx, engine.accounts, payee)

    try:
        line_items = [parse_line_item(spec) for spec in items]
        due_date = parse_date(due)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    recipient = Recipient(
        name=recipient_name, user_id=user_id, email=email, phone=phone, student_id=student_id
    )
    try:
        invoice = engine.invoices.create_invoice(
            payee_id,
            recipient,
            line_items,
            due_date,
            invoice_type=InvoiceType(invoice_type.upper()),
            notes=notes,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(
        f"Created invoice {invoice.invoice_number} (ID: {invoice.id}) "
        f"for {format_amount(invoice.total)}"
    )
    if invoice.payer_account_ref is None:
        click.echo("Recipient has no linked account yet; dispatch will wait until they do")


@invoice_group.command("dispatch")
@click.argument("invoice_id", type=int)
@click.pass_context
def dispatch_invoice(ctx, invoice_id: int):
    """Send a DRAFT invoice to its recipient."""
    try:
        result = ctx.obj["engine"].invoices.dispatch(invoice_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    if result.status is DispatchStatus.DELIVERED:
        click.echo(f"Sent invoice {result.invoice.invoice_number} ({result.message_id})")
    elif result.status is DispatchStatus.UNRESOLVED_RECIPIENT:
        fail(ctx, result.error)
    else:
        fail(ctx, f"Delivery failed, invoice left as DRAFT: {result.error}")


@invoice_group.command("view")
@click.argument("invoice_id", type=int)
@click.pass_context
def view_invoice(ctx, invoice_id: int):
    """Record that the recipient opened a sent invoice."""
    try:
        invoice = ctx.obj["engine"].invoices.mark_viewed(invoice_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Invoice {invoice.invoice_number} is {invoice.status.value}")


@invoice_group.command("pay")
@click.argument("invoice_id", type=int)
@click.argument("payer", metavar="PAYER_ACCOUNT")
@click.pass_context
def pay_invoice(ctx, invoice_id: int, payer: str):
    """Pay an invoice from a wallet.

    PAYER_ACCOUNT can be an account ID or owner id.

    Examples:
        paysettle invoice pay 3 parent-42
    """
    engine = ctx.obj["engine"]
    payer_id = resolve_account_or_exit(ctx, engine.accounts, payer)

    result = engine.invoices.pay_invoice(invoice_id, payer_id)
    if not result.ok:
        fail(ctx, result.message)

    receipt = result.receipt
    click.echo(f"Paid invoice {receipt.invoice_number}: {format_amount(receipt.amount)}")
    click.echo(f"Receipt: {receipt.receipt_number}")
    click.echo(f"Transaction: {receipt.transaction_id}")


@invoice_group.command("cancel")
@click.argument("invoice_id", type=int)
@click.pass_context
def cancel_invoice(ctx, invoice_id: int):
    """Cancel a DRAFT or SENT invoice."""
    try:
        invoice = ctx.obj["engine"].invoices.cancel(invoice_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Cancelled invoice {invoice.invoice_number}")


@invoice_group.command("remind")
@click.argument("invoice_id", type=int)
@click.pass_context
def remind_invoice(ctx, invoice_id: int):
    """Send a payment reminder for an unpaid invoice."""
    try:
        result = ctx.obj["engine"].invoices.send_reminder(invoice_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    if not result.delivered:
        fail(ctx, f"Reminder not delivered: {result.error}")
    click.echo(
        f"Reminder {result.invoice.reminder_count} sent for {result.invoice.invoice_number}"
    )


@invoice_group.command("overdue")
@click.option("--as-of", help="Reference date (defaults to today)")
@click.pass_context
def mark_overdue(ctx, as_of: str | None):
    """Mark sent invoices past their due date as OVERDUE."""
    as_of_date = None
    if as_of is not None:
        try:
            as_of_date = parse_date(as_of)
        except ValueError as e:
            click.echo(f"Error: Invalid date format: {e}", err=True)
            ctx.exit(1)

    count = ctx.obj["engine"].invoices.mark_overdue(as_of=as_of_date)
    click.echo(f"Marked {count} invoice{'s' if count != 1 else ''} overdue")


@invoice_group.command("show")
@click.argument("invoice_id", type=int)
@click.pass_context
def show_invoice(ctx, invoice_id: int):
    """Show invoice details."""
    try:
        invoice = ctx.obj["engine"].invoices.require_invoice(invoice_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    _echo_invoice(invoice)


@invoice_group.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in InvoiceStatus], case_sensitive=False),
    help="Only invoices in this status",
)
@click.option("--payer", help="Only invoices for this payer account ID or owner id")
@click.option("--student", "student_id", help="Only invoices raised for this student id")
@click.pass_context
def list_invoices(ctx, status: str | None, payer: str | None, student_id: str | None):
    """List invoices, oldest due date first."""
    engine = ctx.obj["engine"]
    payer_id = resolve_account_or_exit(ctx, engine.accounts, payer) if payer else None

    invoices = engine.invoices.list_invoices(
        status=InvoiceStatus(status.upper()) if status else None,
        payer_account_ref=payer_id,
        student_id=student_id,
    )
    if not invoices:
        click.echo("No invoices found.")
        return

    click.echo("\nInvoices:")
    click.echo("-" * 90)
    for inv in invoices:
        click.echo(
            f"ID: {inv.id:3d} | {inv.invoice_number:20s} | {inv.status.value:18s} | "
            f"due {inv.due_date.isoformat()} | {format_amount(inv.amount_due):>12s} | "
            f"{inv.recipient.name}"
        )


@invoice_group.command("summary")
@click.argument("payer", metavar="PAYER_ACCOUNT")
@click.pass_context
def outstanding_summary(ctx, payer: str):
    """Show what a payer still owes."""
    engine = ctx.obj["engine"]
    payer_id = resolve_account_or_exit(ctx, engine.accounts, payer)
    summary = engine.invoices.outstanding_summary(payer_id)

    click.echo(f"\nOutstanding for account {payer_id}:")
    click.echo("-" * 40)
    click.echo(f"Pending: {summary.pending_count:3d} | {format_amount(summary.total_pending):>14s}")
    click.echo(f"Overdue: {summary.overdue_count:3d} | {format_amount(summary.total_overdue):>14s}")


def register_commands(cli):
    """Register invoice commands with main CLI."""
    cli.add_command(invoice_group, name="invoice")
