"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic (string columns to enums, JSON
line items to value objects) from both the domain and the schema.
"""

from paysettle.domain import entities as domain
from paysettle.database.models import (
    Account as ORMAccount,
    LedgerTransaction as ORMLedgerTransaction,
    Invoice as ORMInvoice,
    PayrollRun as ORMPayrollRun,
    PayrollEntry as ORMPayrollEntry,
    PendingTransfer as ORMPendingTransfer,
    Settlement as ORMSettlement,
)


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        owner_id=orm_account.owner_id,
        status=domain.AccountStatus(orm_account.status),
        balance=orm_account.balance,
        currency=orm_account.currency,
        created_at=orm_account.created_at,
        updated_at=orm_account.updated_at,
    )


def transaction_to_domain(orm_transaction: ORMLedgerTransaction) -> domain.TransactionRecord:
    """Convert SQLAlchemy ledger row to domain TransactionRecord entity."""
    return domain.TransactionRecord(
        id=orm_transaction.id,
        transaction_id=orm_transaction.transaction_id,
        account_id=orm_transaction.account_id,
        direction=domain.Direction(orm_transaction.direction),
        amount=orm_transaction.amount,
        kind=domain.TransactionKind(orm_transaction.kind),
        related_entity_id=orm_transaction.related_entity_id,
        status=orm_transaction.status,
        description=orm_transaction.description,
        created_at=orm_transaction.created_at,
    )


def line_items_to_json(items: list[domain.LineItem]) -> list[dict]:
    """Serialize line items for the invoices.line_items JSON column."""
    return [
        {
            "description": item.description,
            "quantity": item.quantity,
            "unit_price": item.unit_price,
            "total": item.total,
        }
        for item in items
    ]


def invoice_to_domain(orm_invoice: ORMInvoice) -> domain.Invoice:
    """Convert SQLAlchemy Invoice model to domain Invoice entity."""
    return domain.Invoice(
        id=orm_invoice.id,
        invoice_number=orm_invoice.invoice_number,
        type=domain.InvoiceType(orm_invoice.type),
        recipient=domain.Recipient(
            name=orm_invoice.recipient_name,
            user_id=orm_invoice.recipient_user_id,
            email=orm_invoice.recipient_email,
            phone=orm_invoice.recipient_phone,
            student_id=orm_invoice.student_id,
        ),
        payer_account_ref=orm_invoice.payer_account_ref,
        payee_account_id=orm_invoice.payee_account_id,
        line_items=tuple(
            domain.LineItem(
                description=item["description"],
                quantity=item["quantity"],
                unit_price=item["unit_price"],
            )
            for item in (orm_invoice.line_items or [])
        ),
        subtotal=orm_invoice.subtotal,
        tax=orm_invoice.tax,
        total=orm_invoice.total,
        paid_amount=orm_invoice.paid_amount,
        status=domain.InvoiceStatus(orm_invoice.status),
        due_date=orm_invoice.due_date,
        reminder_count=orm_invoice.reminder_count,
        created_at=orm_invoice.created_at,
        notes=orm_invoice.notes,
        message_id=orm_invoice.message_id,
        receipt_number=orm_invoice.receipt_number,
        payment_transaction_id=orm_invoice.payment_transaction_id,
        sent_at=orm_invoice.sent_at,
        viewed_at=orm_invoice.viewed_at,
        paid_at=orm_invoice.paid_at,
        cancelled_at=orm_invoice.cancelled_at,
        last_reminder_at=orm_invoice.last_reminder_at,
    )


def payroll_run_to_domain(orm_run: ORMPayrollRun) -> domain.PayrollRun:
    """Convert SQLAlchemy PayrollRun model to domain PayrollRun entity."""
    return domain.PayrollRun(
        id=orm_run.id,
        school_account_id=orm_run.school_account_id,
        period=orm_run.period,
        created_at=orm_run.created_at,
    )


def payroll_entry_to_domain(orm_entry: ORMPayrollEntry) -> domain.PayrollEntry:
    """Convert SQLAlchemy PayrollEntry model to domain PayrollEntry entity."""
    return domain.PayrollEntry(
        id=orm_entry.id,
        run_id=orm_entry.run_id,
        staff_id=orm_entry.staff_id,
        staff_name=orm_entry.staff_name,
        base_salary=orm_entry.base_salary,
        allowances=orm_entry.allowances,
        deductions=orm_entry.deductions,
        net_salary=orm_entry.net_salary,
        channel=domain.Channel(orm_entry.channel),
        recipient_account_id=orm_entry.recipient_account_id,
        recipient_details=dict(orm_entry.recipient_details or {}),
        status=domain.PayrollEntryStatus(orm_entry.status),
        transaction_id=orm_entry.transaction_id,
        failure_reason=orm_entry.failure_reason,
        paid_at=orm_entry.paid_at,
    )


def pending_transfer_to_domain(orm_transfer: ORMPendingTransfer) -> domain.PendingExternalTransfer:
    """Convert SQLAlchemy PendingTransfer model to domain entity."""
    return domain.PendingExternalTransfer(
        id=orm_transfer.id,
        type=domain.Channel(orm_transfer.type),
        amount=orm_transfer.amount,
        currency=orm_transfer.currency,
        recipient_details=dict(orm_transfer.recipient_details or {}),
        status=domain.TransferStatus(orm_transfer.status),
        related_transaction_id=orm_transfer.related_transaction_id,
        source_account_id=orm_transfer.source_account_id,
        description=orm_transfer.description,
        created_at=orm_transfer.created_at,
        resolved_at=orm_transfer.resolved_at,
        failure_reason=orm_transfer.failure_reason,
    )


def settlement_to_domain(orm_settlement: ORMSettlement) -> domain.Settlement:
    """Convert SQLAlchemy Settlement model to domain Settlement entity."""
    return domain.Settlement(
        transaction_id=orm_settlement.transaction_id,
        payer_account_id=orm_settlement.payer_account_id,
        payee_account_id=orm_settlement.payee_account_id,
        amount=orm_settlement.amount,
        channel=domain.Channel(orm_settlement.channel),
        related_entity_id=orm_settlement.related_entity_id,
        debit_kind=domain.TransactionKind(orm_settlement.debit_kind),
        credit_kind=domain.TransactionKind(orm_settlement.credit_kind),
        recipient_details=dict(orm_settlement.recipient_details or {}),
        description=orm_settlement.description,
        status=domain.SettlementStatus(orm_settlement.status),
        failure_reason=orm_settlement.failure_reason,
        created_at=orm_settlement.created_at,
        updated_at=orm_settlement.updated_at,
    )
