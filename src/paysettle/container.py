"""Wiring of the settlement services around one database."""

from dataclasses import dataclass
from typing import Optional

from paysettle.database.base import Database
from paysettle.domain.account import AccountStore
from paysettle.domain.collaborators import (
    AccountResolver,
    LoggingDispatcher,
    NotificationDispatcher,
    OwnerAccountResolver,
)
from paysettle.domain.entities import TransactionKind
from paysettle.domain.invoice import InvoiceService
from paysettle.domain.ledger import TransactionLedger
from paysettle.domain.payroll import PayrollService
from paysettle.domain.results import SettlementOutcome
from paysettle.domain.router import DisbursementRouter


@dataclass
class SettlementEngine:
    """All services sharing one AccountStore, and with it one lock registry."""

    db: Database
    accounts: AccountStore
    ledger: TransactionLedger
    router: DisbursementRouter
    invoices: InvoiceService
    payroll: PayrollService

    def replay_orphaned(self) -> list[SettlementOutcome]:
        """Resume orphaned settlements and settle the invoices and payroll entries they paid.

        Returns:
            One outcome per resumed settlement
        """
        outcomes = self.router.replay_orphaned()
        for outcome in outcomes:
            if not outcome.ok:
                continue
            settlement = self.router.get_settlement(outcome.transaction_id)
            if settlement.debit_kind is TransactionKind.FEE_PAYMENT:
                self.invoices.complete_replayed_payment(settlement.related_entity_id, outcome)
            elif settlement.debit_kind is TransactionKind.SALARY_PAYMENT:
                self.payroll.complete_replayed_salary(settlement.related_entity_id, outcome)
        return outcomes


def build_engine(
    db: Database,
    dispatcher: Optional[NotificationDispatcher] = None,
    resolver: Optional[AccountResolver] = None,
    default_currency: str = "SLE",
) -> SettlementEngine:
    """Build the service graph.

    Args:
        db: Connected database
        dispatcher: Notification channel, defaults to LoggingDispatcher
        resolver: Recipient resolver, defaults to OwnerAccountResolver
        default_currency: Currency for newly opened accounts

    Returns:
        SettlementEngine
    """
    accounts = AccountStore(db, default_currency=default_currency)
    dispatcher = dispatcher or LoggingDispatcher()
    resolver = resolver or OwnerAccountResolver(accounts)
    router = DisbursementRouter(db, accounts)
    return SettlementEngine(
        db=db,
        accounts=accounts,
        ledger=TransactionLedger(db),
        router=router,
        invoices=InvoiceService(db, accounts, router, dispatcher, resolver),
        payroll=PayrollService(db, accounts, router, dispatcher),
    )


__all__ = ["SettlementEngine", "build_engine"]
