"""Payroll runs: salary disbursement from a school account to staff."""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from paysettle.database.base import Database
from paysettle.domain.account import AccountStore
from paysettle.domain.collaborators import NotificationDispatcher, TemplateKind, send_best_effort
from paysettle.domain.entities import (
    Channel,
    PayrollEntry,
    PayrollEntryInput,
    PayrollEntryStatus,
    PayrollRun,
    PendingExternalTransfer,
    Recipient,
    SettlementRequest,
    SettlementStatus,
    TransactionKind,
    TransferStatus,
)
from paysettle.domain.errors import (
    NotFoundError,
    SettlementError,
    ValidationError,
    account_not_found,
    insufficient_balance,
    payroll_run_not_found,
)
from paysettle.domain.results import (
    BulkPayrollResult,
    OutcomeStatus,
    PayrollSummary,
    SalaryPaymentResult,
    SettlementOutcome,
)
from paysettle.domain.router import DisbursementRouter, transaction_id_for

logger = logging.getLogger(__name__)


def _validate_entry(entry: PayrollEntryInput) -> None:
    if not entry.staff_id or not entry.staff_id.strip():
        raise ValidationError("Payroll entry needs a staff id")
    for name in ("base_salary", "allowances", "deductions"):
        value = getattr(entry, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(f"{name} for staff {entry.staff_id} must be a non-negative integer")
    if entry.net_salary <= 0:
        raise ValidationError(
            f"Net salary for staff {entry.staff_id} must be positive, got {entry.net_salary}"
        )
    if entry.channel is Channel.WALLET and entry.recipient_account_id is None:
        raise ValidationError(f"Wallet payment for staff {entry.staff_id} needs a recipient account")


class PayrollService:
    """Service for creating and paying payroll runs.

    Entries of a run are paid strictly one after another. A run is meant
    to be paid by a single caller per school account; concurrent callers
    are still kept consistent by the account store's per-account lock.
    """

    def __init__(
        self,
        db: Database,
        account_store: AccountStore,
        router: DisbursementRouter,
        dispatcher: NotificationDispatcher,
    ):
        """Initialize payroll service.

        Args:
            db: Database instance
            account_store: Shared account store
            router: Router used to settle salaries
            dispatcher: Notification channel for salary slips
        """
        self.db = db
        self.accounts = account_store
        self.router = router
        self.dispatcher = dispatcher

    def create_run(
        self, school_account_id: int, period: str, entries: Iterable[PayrollEntryInput]
    ) -> PayrollRun:
        """Create a payroll run with PENDING entries.

        Args:
            school_account_id: Account salaries are paid from
            period: Pay period label, e.g. '2024-03'
            entries: Salary lines

        Returns:
            Created payroll run

        Raises:
            ValidationError: If the period or any entry is invalid
            NotFoundError: If the school account does not exist
            ConflictError: If a staff member appears twice
        """
        entries = list(entries)
        if not period or not period.strip():
            raise ValidationError("Payroll period is required")
        if not entries:
            raise ValidationError("Payroll run must have at least one entry")
        self.accounts.require_account(school_account_id)

        seen = set()
        for entry in entries:
            _validate_entry(entry)
            if entry.staff_id in seen:
                raise ValidationError(f"Staff {entry.staff_id} appears more than once")
            seen.add(entry.staff_id)
            if entry.recipient_account_id is not None:
                if self.accounts.get_account(entry.recipient_account_id) is None:
                    raise NotFoundError(account_not_found(entry.recipient_account_id))

        run_id = self.db.create_payroll_run(school_account_id, period.strip(), entries)
        logger.info(
            "Created payroll run %s for %s with %d entries", run_id, period, len(entries)
        )
        return self.db.get_payroll_run(run_id)

    def get_run(self, run_id: int) -> Optional[PayrollRun]:
        return self.db.get_payroll_run(run_id)

    def require_run(self, run_id: int) -> PayrollRun:
        run = self.db.get_payroll_run(run_id)
        if run is None:
            raise NotFoundError(payroll_run_not_found(run_id))
        return run

    def list_entries(self, run_id: int) -> list[PayrollEntry]:
        """List a run's entries in creation order.

        Raises:
            NotFoundError: If the run does not exist
        """
        self.require_run(run_id)
        return self.db.list_payroll_entries(run_id)

    def pay_salary(self, entry: PayrollEntry, school_account_id: int) -> SettlementOutcome:
        """Pay one payroll entry.

        The school balance is checked before anything is written. Paying an
        entry again is safe: a completed payment is replayed, not repeated.

        Args:
            entry: Entry to pay
            school_account_id: Account to pay from

        Returns:
            SettlementOutcome of the disbursement

        Raises:
            ValidationError: If the entry belongs to another school's run
        """
        run = self.require_run(entry.run_id)
        if run.school_account_id != school_account_id:
            raise ValidationError(
                f"Payroll entry {entry.id} belongs to account {run.school_account_id}, "
                f"not {school_account_id}"
            )

        transaction_id = transaction_id_for(self._related_entity_id(entry), entry.id)
        settlement = self.router.get_settlement(transaction_id)
        already_debited = settlement is not None and settlement.status in (
            SettlementStatus.DEBITED,
            SettlementStatus.COMPLETED,
        )
        if not already_debited:
            school = self.accounts.get_account(school_account_id)
            if school is not None and school.balance < entry.net_salary:
                outcome = SettlementOutcome(
                    transaction_id=transaction_id,
                    status=OutcomeStatus.FAILED,
                    channel=entry.channel,
                    amount=entry.net_salary,
                    error=SettlementError.INSUFFICIENT_BALANCE,
                    message=insufficient_balance(entry.net_salary, school.balance),
                )
                self.db.update_payroll_entry(
                    entry.id, PayrollEntryStatus.FAILED, failure_reason=outcome.message
                )
                return outcome

        outcome = self.router.settle(
            SettlementRequest(
                payer_account_id=school_account_id,
                payee_account_id=entry.recipient_account_id,
                amount=entry.net_salary,
                related_entity_id=self._related_entity_id(entry),
                sequence=entry.id,
                channel=entry.channel,
                debit_kind=TransactionKind.SALARY_PAYMENT,
                credit_kind=TransactionKind.SALARY_RECEIVED,
                recipient_details=entry.recipient_details,
                description=f"Salary {run.period} for {entry.staff_name or entry.staff_id}",
            )
        )

        if outcome.ok:
            self.db.update_payroll_entry(
                entry.id,
                PayrollEntryStatus.COMPLETED,
                transaction_id=outcome.transaction_id,
                paid_at=datetime.now(timezone.utc),
            )
            if entry.channel is Channel.WALLET and not outcome.replayed:
                self._send_salary_slip(entry, run, outcome)
        elif outcome.status is OutcomeStatus.DEBITED:
            # Funds left the school account; the entry stays PENDING until resumed
            self.db.update_payroll_entry(
                entry.id,
                PayrollEntryStatus.PENDING,
                transaction_id=outcome.transaction_id,
                failure_reason=outcome.message,
            )
        else:
            self.db.update_payroll_entry(
                entry.id, PayrollEntryStatus.FAILED, failure_reason=outcome.message
            )
        return outcome

    def process_bulk_payroll(
        self, entries: Iterable[PayrollEntry], school_account_id: int
    ) -> BulkPayrollResult:
        """Pay entries in order, continuing past failures.

        Each entry sees the balance left by the ones before it, so a run
        that cannot be fully funded pays a prefix and fails the rest.
        """
        results = []
        successful = 0
        failed = 0
        for entry in entries:
            outcome = self.pay_salary(entry, school_account_id)
            results.append(
                SalaryPaymentResult(entry=self.db.get_payroll_entry(entry.id), outcome=outcome)
            )
            if outcome.ok:
                successful += 1
            else:
                failed += 1
        logger.info(
            "Bulk payroll from account %s: %d paid, %d failed", school_account_id, successful, failed
        )
        return BulkPayrollResult(successful=successful, failed=failed, results=results)

    def pay_run(self, run_id: int) -> BulkPayrollResult:
        """Pay every entry of a run that is not COMPLETED yet."""
        run = self.require_run(run_id)
        entries = [
            entry
            for entry in self.db.list_payroll_entries(run_id)
            if entry.status is not PayrollEntryStatus.COMPLETED
        ]
        return self.process_bulk_payroll(entries, run.school_account_id)

    def payment_summary(self, run_id: int) -> PayrollSummary:
        entries = self.list_entries(run_id)
        paid = [e for e in entries if e.status is PayrollEntryStatus.COMPLETED]
        return PayrollSummary(
            total_paid=sum(e.net_salary for e in paid),
            total_amount=sum(e.net_salary for e in entries),
            paid_count=len(paid),
            pending_count=sum(1 for e in entries if e.status is PayrollEntryStatus.PENDING),
            failed_count=sum(1 for e in entries if e.status is PayrollEntryStatus.FAILED),
        )

    def reconcile_transfer(
        self, transfer_id: int, succeeded: bool, reason: Optional[str] = None
    ) -> PendingExternalTransfer:
        """Apply an external payout result and update the entry it paid.

        A failed payout is refunded to the school account and its entry
        becomes FAILED.
        """
        transfer = self.router.reconcile_transfer(transfer_id, succeeded, reason)
        if transfer.status is TransferStatus.FAILED:
            entry = self.db.get_payroll_entry_by_transaction(transfer.related_transaction_id)
            if entry is not None and entry.status is not PayrollEntryStatus.FAILED:
                self.db.update_payroll_entry(
                    entry.id,
                    PayrollEntryStatus.FAILED,
                    failure_reason=f"Payout reversed: {reason or 'external transfer failed'}",
                )
                logger.warning("Payroll entry %s reversed: %s", entry.id, reason)
        return transfer

    def complete_replayed_salary(
        self, related_entity_id: str, outcome: SettlementOutcome
    ) -> Optional[PayrollEntry]:
        """Mark the entry paid by a settlement finished by the orphan replay.

        Returns the updated entry, or None if no entry of the run was paid
        under the outcome's transaction id.
        """
        entry = self._entry_for_transaction(related_entity_id, outcome.transaction_id)
        if entry is None:
            logger.error("Replayed settlement %s has no payroll entry", outcome.transaction_id)
            return None
        if entry.status is PayrollEntryStatus.COMPLETED:
            return entry

        self.db.update_payroll_entry(
            entry.id,
            PayrollEntryStatus.COMPLETED,
            transaction_id=outcome.transaction_id,
            paid_at=datetime.now(timezone.utc),
        )
        if entry.channel is Channel.WALLET:
            self._send_salary_slip(entry, self.require_run(entry.run_id), outcome)
        logger.info("Payroll entry %s completed by replay (%s)", entry.id, outcome.transaction_id)
        return self.db.get_payroll_entry(entry.id)

    def _entry_for_transaction(
        self, related_entity_id: str, transaction_id: str
    ) -> Optional[PayrollEntry]:
        entry = self.db.get_payroll_entry_by_transaction(transaction_id)
        if entry is not None:
            return entry
        prefix = "PAYROLL"
        if not related_entity_id.startswith(prefix) or not related_entity_id[len(prefix):].isdigit():
            return None
        run_id = int(related_entity_id[len(prefix):])
        if self.db.get_payroll_run(run_id) is None:
            return None
        for candidate in self.db.list_payroll_entries(run_id):
            if transaction_id_for(related_entity_id, candidate.id) == transaction_id:
                return candidate
        return None

    @staticmethod
    def _related_entity_id(entry: PayrollEntry) -> str:
        return f"PAYROLL{entry.run_id}"

    def _send_salary_slip(self, entry: PayrollEntry, run: PayrollRun, outcome: SettlementOutcome) -> None:
        recipient = Recipient(name=entry.staff_name or entry.staff_id, user_id=entry.staff_id)
        send_best_effort(
            self.dispatcher,
            recipient,
            TemplateKind.SALARY_SLIP,
            {
                "period": run.period,
                "base_salary": entry.base_salary,
                "allowances": entry.allowances,
                "deductions": entry.deductions,
                "net_salary": entry.net_salary,
                "transaction_id": outcome.transaction_id,
            },
        )
