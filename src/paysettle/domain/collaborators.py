"""Interfaces for collaborators the engine calls but does not own.

The notification dispatcher delivers invoices, receipts, salary slips and
reminders. The account resolver maps a human recipient to an account, or
reports that no account is linked yet.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from paysettle.domain.entities import Recipient

logger = logging.getLogger(__name__)


class TemplateKind(str, Enum):
    INVOICE = "INVOICE"
    FEE_RECEIPT = "FEE_RECEIPT"
    SALARY_SLIP = "SALARY_SLIP"
    PAYMENT_REMINDER = "PAYMENT_REMINDER"


@dataclass(frozen=True)
class DeliveryReceipt:
    """Acknowledgment from the dispatcher."""

    delivered: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationDispatcher(ABC):
    """Sends messages to recipients."""

    @abstractmethod
    def send(
        self, recipient: Recipient, template_kind: TemplateKind, payload: dict[str, Any]
    ) -> DeliveryReceipt:
        """Send a message. Returns delivered=True only on positive acknowledgment."""
        pass


class LoggingDispatcher(NotificationDispatcher):
    """Dispatcher that writes messages to the log instead of a channel.

    Used by the command-line front end where no chat or email backend is
    wired in. Recipients without a user id are reported undelivered.
    """

    def send(
        self, recipient: Recipient, template_kind: TemplateKind, payload: dict[str, Any]
    ) -> DeliveryReceipt:
        if not recipient.user_id:
            return DeliveryReceipt(delivered=False, error="Recipient has no linked user")
        message_id = f"MSG-{uuid.uuid4().hex[:12].upper()}"
        logger.info(
            "Sent %s to %s (%s): %s", template_kind.value, recipient.name, message_id, payload
        )
        return DeliveryReceipt(delivered=True, message_id=message_id)


class AccountResolver(ABC):
    """Maps a recipient to the account that pays on their behalf."""

    @abstractmethod
    def resolve(self, recipient: Recipient) -> Optional[int]:
        """Return an account ID, or None if the recipient is unresolved."""
        pass


class OwnerAccountResolver(AccountResolver):
    """Resolve a recipient's user id to that owner's active account."""

    def __init__(self, account_store):
        """Initialize resolver.

        Args:
            account_store: AccountStore used to look up owner accounts
        """
        self.account_store = account_store

    def resolve(self, recipient: Recipient) -> Optional[int]:
        if not recipient.user_id:
            return None
        account = self.account_store.find_active_account_for_owner(recipient.user_id)
        return account.id if account is not None else None


def send_best_effort(
    dispatcher: NotificationDispatcher,
    recipient: Recipient,
    template_kind: TemplateKind,
    payload: dict[str, Any],
) -> DeliveryReceipt:
    """Send a notification whose failure must not affect a completed payment.

    Dispatcher errors are logged and reported as an undelivered receipt.
    """
    try:
        receipt = dispatcher.send(recipient, template_kind, payload)
    except Exception as e:
        logger.warning("Notification %s to %s failed: %s", template_kind.value, recipient.name, e)
        return DeliveryReceipt(delivered=False, error=str(e))
    if not receipt.delivered:
        logger.warning(
            "Notification %s to %s not delivered: %s",
            template_kind.value,
            recipient.name,
            receipt.error,
        )
    return receipt
