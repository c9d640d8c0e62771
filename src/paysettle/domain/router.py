"""Disbursement router: executes a settlement end to end.

A settlement debits the payer, then either credits the payee's wallet or
queues an external payout. Progress is journaled per transaction id so a
settlement whose payee step failed can be resumed with the same id instead
of debiting the payer a second time.
"""

import logging
from typing import Optional

from paysettle.database.base import Database
from paysettle.domain.account import AccountStore, is_valid_amount
from paysettle.domain.entities import (
    Channel,
    Direction,
    PendingExternalTransfer,
    Settlement,
    SettlementRequest,
    SettlementStatus,
    TransactionKind,
    TransferStatus,
)
from paysettle.domain.errors import (
    AccountError,
    ConflictError,
    DependencyError,
    InvalidStateError,
    NotFoundError,
    SettlementError,
    account_not_active,
    account_not_found,
    idempotency_conflict,
    invalid_amount,
    transfer_not_found,
)
from paysettle.domain.results import AccountResult, OutcomeStatus, SettlementOutcome

logger = logging.getLogger(__name__)

_ACCOUNT_TO_SETTLEMENT_ERROR = {
    AccountError.INSUFFICIENT_BALANCE: SettlementError.INSUFFICIENT_BALANCE,
    AccountError.ACCOUNT_NOT_ACTIVE: SettlementError.ACCOUNT_NOT_ACTIVE,
    AccountError.ACCOUNT_NOT_FOUND: SettlementError.ACCOUNT_NOT_FOUND,
    AccountError.INVALID_AMOUNT: SettlementError.INVALID_REQUEST,
    AccountError.IDEMPOTENCY_CONFLICT: SettlementError.IDEMPOTENCY_CONFLICT,
}


def transaction_id_for(related_entity_id: str, sequence: int) -> str:
    """Deterministic settlement id for one logical payment."""
    return f"STL-{related_entity_id}-{sequence}"


def reversal_key(transaction_id: str) -> str:
    return f"{transaction_id}-R"


class DisbursementRouter:
    """Service routing settlements to a disbursement channel."""

    def __init__(self, db: Database, account_store: AccountStore):
        """Initialize router.

        Args:
            db: Database instance
            account_store: Shared account store (owns the per-account locks)
        """
        self.db = db
        self.accounts = account_store

    def settle(self, request: SettlementRequest) -> SettlementOutcome:
        """Execute a settlement.

        Repeating a request for the same related entity and sequence is
        safe: a completed settlement returns its original outcome, and one
        that stopped after the payer debit resumes at the payee step.

        Args:
            request: Settlement request

        Returns:
            SettlementOutcome with status COMPLETED (wallet credit), QUEUED
            (external payout queued), DEBITED (payee step failed, retry with
            the same request) or FAILED (nothing changed)
        """
        transaction_id = transaction_id_for(request.related_entity_id, request.sequence)

        problem = self._validate(request)
        if problem is not None:
            error, message = problem
            return self._failed(transaction_id, request.channel, request.amount, error, message)

        settlement = self.db.get_settlement(transaction_id)
        if settlement is None:
            try:
                settlement = self.db.create_settlement(transaction_id, request)
            except ConflictError:
                settlement = self.db.get_settlement(transaction_id)
                if settlement is None:
                    raise
        if not self._matches(settlement, request) and self._is_unspent(settlement):
            # Nothing moved under this id yet, so it can be retried with new parameters
            if self.db.rebind_settlement(transaction_id, request):
                logger.info("Settlement %s rebound to payer %s", transaction_id, request.payer_account_id)
            settlement = self.db.get_settlement(transaction_id)
        if not self._matches(settlement, request):
            return self._failed(
                transaction_id,
                request.channel,
                request.amount,
                SettlementError.IDEMPOTENCY_CONFLICT,
                idempotency_conflict(transaction_id),
            )

        if settlement.status is SettlementStatus.COMPLETED:
            return self._outcome_for_completed(settlement, replayed=True)

        if settlement.status is SettlementStatus.FAILED and self.db.get_ledger_records(
            reversal_key(transaction_id)
        ):
            return self._failed(
                transaction_id,
                request.channel,
                request.amount,
                SettlementError.INVALID_REQUEST,
                f"Settlement {transaction_id} was reversed and cannot be retried",
            )

        if settlement.status in (SettlementStatus.INITIATED, SettlementStatus.FAILED):
            if settlement.payer_account_id is not None:
                result = self.accounts.debit(
                    settlement.payer_account_id,
                    settlement.amount,
                    transaction_id,
                    kind=settlement.debit_kind,
                    related_entity_id=settlement.related_entity_id,
                    description=settlement.description,
                )
                if not result.ok:
                    self.db.update_settlement_status(
                        transaction_id, SettlementStatus.FAILED, result.message
                    )
                    return self._failed_from_account(transaction_id, settlement, result)
            self.db.update_settlement_status(transaction_id, SettlementStatus.DEBITED)

        return self._complete(settlement)

    def replay_orphaned(self) -> list[SettlementOutcome]:
        """Resume every settlement whose payer side committed without a payee side.

        Covers settlements left DEBITED by a failed payee step and INITIATED
        ones whose debit row was written before the journal was updated.
        """
        outcomes = []
        for settlement in self.db.list_settlements(SettlementStatus.INITIATED):
            if settlement.payer_account_id is None:
                continue
            if self._has_debit(settlement.transaction_id):
                self.db.update_settlement_status(settlement.transaction_id, SettlementStatus.DEBITED)
                outcomes.append(self._complete(settlement))
        for settlement in self.db.list_settlements(SettlementStatus.DEBITED):
            outcomes.append(self._complete(settlement))
        if outcomes:
            logger.info("Replayed %d orphaned settlements", len(outcomes))
        return outcomes

    def get_settlement(self, transaction_id: str) -> Optional[Settlement]:
        return self.db.get_settlement(transaction_id)

    def list_pending_transfers(
        self, status: Optional[TransferStatus] = TransferStatus.PENDING
    ) -> list[PendingExternalTransfer]:
        """List queued external payouts (PENDING by default)."""
        return self.db.list_pending_transfers(status=status)

    def reconcile_transfer(
        self, transfer_id: int, succeeded: bool, reason: Optional[str] = None
    ) -> PendingExternalTransfer:
        """Record the external worker's result for a queued payout.

        A failed payout is reversed: the amount is credited back to the
        source account under the key '<transaction_id>-R'. Calling this
        again with the same result is a no-op, apart from retrying a
        reversal that did not go through.

        Raises:
            NotFoundError: If the transfer does not exist
            InvalidStateError: If the transfer was already resolved the other way
            DependencyError: If the reversal credit could not be applied
        """
        transfer = self.db.get_pending_transfer(transfer_id)
        if transfer is None:
            raise NotFoundError(transfer_not_found(transfer_id))

        target = TransferStatus.SETTLED if succeeded else TransferStatus.FAILED
        if transfer.status is TransferStatus.PENDING:
            if not self.db.resolve_pending_transfer(transfer_id, target, reason):
                transfer = self.db.get_pending_transfer(transfer_id)
                if transfer.status is not target:
                    raise InvalidStateError(
                        f"Transfer {transfer_id} was resolved concurrently as {transfer.status.value}"
                    )
        elif transfer.status is not target:
            raise InvalidStateError(
                f"Transfer {transfer_id} is already {transfer.status.value}"
            )

        if target is TransferStatus.FAILED and transfer.source_account_id is not None:
            result = self.accounts.credit(
                transfer.source_account_id,
                transfer.amount,
                reversal_key(transfer.related_transaction_id),
                kind=TransactionKind.TRANSFER_REVERSAL,
                related_entity_id=transfer.related_transaction_id,
                description=f"Reversal of failed {transfer.type.value} payout",
            )
            if not result.ok:
                logger.error(
                    "Reversal for transfer %s could not be credited: %s", transfer_id, result.message
                )
                raise DependencyError(
                    f"Transfer {transfer_id} failed but its reversal could not be credited: {result.message}"
                )
            self.db.update_settlement_status(
                transfer.related_transaction_id,
                SettlementStatus.FAILED,
                f"Payout reversed: {reason or 'external transfer failed'}",
            )

        logger.info("Transfer %s reconciled as %s", transfer_id, target.value)
        return self.db.get_pending_transfer(transfer_id)

    def _validate(self, request: SettlementRequest) -> Optional[tuple[SettlementError, str]]:
        if not is_valid_amount(request.amount):
            return SettlementError.INVALID_REQUEST, invalid_amount(request.amount)
        if not request.related_entity_id:
            return SettlementError.INVALID_REQUEST, "Settlement needs a related entity id"

        payer = None
        if request.payer_account_id is not None:
            payer = self.accounts.get_account(request.payer_account_id)
            if payer is None:
                return SettlementError.ACCOUNT_NOT_FOUND, account_not_found(request.payer_account_id)

        if request.channel is Channel.WALLET:
            if request.payee_account_id is None:
                return SettlementError.INVALID_REQUEST, "Wallet settlements need a payee account"
            if request.payee_account_id == request.payer_account_id:
                return SettlementError.INVALID_REQUEST, "Payer and payee must be different accounts"
            payee = self.accounts.get_account(request.payee_account_id)
            if payee is None:
                return SettlementError.ACCOUNT_NOT_FOUND, account_not_found(request.payee_account_id)
            if not payee.is_active:
                return (
                    SettlementError.ACCOUNT_NOT_ACTIVE,
                    account_not_active(payee.id, payee.status.value),
                )
            if payer is not None and payer.currency != payee.currency:
                return (
                    SettlementError.INVALID_REQUEST,
                    f"Currency mismatch: {payer.currency} to {payee.currency}",
                )
        elif payer is None:
            return SettlementError.INVALID_REQUEST, "External payouts need a source account"
        return None

    def _matches(self, settlement: Settlement, request: SettlementRequest) -> bool:
        return (
            settlement.amount == request.amount
            and settlement.channel is request.channel
            and settlement.payer_account_id == request.payer_account_id
            and settlement.payee_account_id == request.payee_account_id
        )

    def _is_unspent(self, settlement: Settlement) -> bool:
        """True for a FAILED settlement with no ledger rows under its id or its reversal key."""
        return (
            settlement.status is SettlementStatus.FAILED
            and not self.db.get_ledger_records(settlement.transaction_id)
            and not self.db.get_ledger_records(reversal_key(settlement.transaction_id))
        )

    def _has_debit(self, transaction_id: str) -> bool:
        return any(
            record.direction is Direction.DEBIT for record in self.db.get_ledger_records(transaction_id)
        )

    def _complete(self, settlement: Settlement) -> SettlementOutcome:
        """Run the payee step of a settlement whose payer side is done."""
        transaction_id = settlement.transaction_id
        transfer_id = None

        if settlement.channel is Channel.WALLET:
            result = self.accounts.credit(
                settlement.payee_account_id,
                settlement.amount,
                transaction_id,
                kind=settlement.credit_kind,
                related_entity_id=settlement.related_entity_id,
                description=settlement.description,
            )
            if not result.ok:
                logger.error(
                    "Settlement %s debited but payee credit failed: %s", transaction_id, result.message
                )
                return self._payee_step_failed(settlement, result.message)
        else:
            try:
                transfer_id = self.db.create_pending_transfer(
                    transfer_type=settlement.channel,
                    amount=settlement.amount,
                    currency=self._currency_of(settlement),
                    recipient_details=settlement.recipient_details,
                    related_transaction_id=transaction_id,
                    source_account_id=settlement.payer_account_id,
                    description=settlement.description,
                )
            except Exception as e:
                logger.exception("Settlement %s debited but payout could not be queued", transaction_id)
                return self._payee_step_failed(settlement, f"Payout could not be queued: {e}")

        self.db.update_settlement_status(transaction_id, SettlementStatus.COMPLETED)
        status = OutcomeStatus.COMPLETED if transfer_id is None else OutcomeStatus.QUEUED
        logger.info(
            "Settlement %s %s via %s (%s)",
            transaction_id,
            status.value,
            settlement.channel.value,
            settlement.amount,
        )
        return SettlementOutcome(
            transaction_id=transaction_id,
            status=status,
            channel=settlement.channel,
            amount=settlement.amount,
            transfer_id=transfer_id,
        )

    def _payee_step_failed(self, settlement: Settlement, message: str) -> SettlementOutcome:
        self.db.update_settlement_status(settlement.transaction_id, SettlementStatus.DEBITED, message)
        return SettlementOutcome(
            transaction_id=settlement.transaction_id,
            status=OutcomeStatus.DEBITED,
            channel=settlement.channel,
            amount=settlement.amount,
            error=SettlementError.PAYEE_STEP_FAILED,
            message=message,
        )

    def _currency_of(self, settlement: Settlement) -> str:
        account_id = settlement.payer_account_id or settlement.payee_account_id
        account = self.accounts.get_account(account_id) if account_id is not None else None
        return account.currency if account is not None else self.accounts.default_currency

    def _outcome_for_completed(self, settlement: Settlement, replayed: bool) -> SettlementOutcome:
        transfer_id = None
        status = OutcomeStatus.COMPLETED
        if settlement.channel.is_external:
            transfer = self.db.get_pending_transfer_by_transaction(settlement.transaction_id)
            transfer_id = transfer.id if transfer is not None else None
            status = OutcomeStatus.QUEUED
        return SettlementOutcome(
            transaction_id=settlement.transaction_id,
            status=status,
            channel=settlement.channel,
            amount=settlement.amount,
            transfer_id=transfer_id,
            replayed=replayed,
        )

    def _failed_from_account(
        self, transaction_id: str, settlement: Settlement, result: AccountResult
    ) -> SettlementOutcome:
        return self._failed(
            transaction_id,
            settlement.channel,
            settlement.amount,
            _ACCOUNT_TO_SETTLEMENT_ERROR[result.error],
            result.message,
        )

    @staticmethod
    def _failed(
        transaction_id: str, channel: Channel, amount: int, error: SettlementError, message: str
    ) -> SettlementOutcome:
        return SettlementOutcome(
            transaction_id=transaction_id,
            status=OutcomeStatus.FAILED,
            channel=channel,
            amount=amount,
            error=error,
            message=message,
        )
