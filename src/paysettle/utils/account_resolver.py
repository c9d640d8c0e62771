"""Utility for resolving account references to IDs."""

from paysettle.domain.account import AccountStore


def resolve_account(account_store: AccountStore, account: str | int) -> int:
    """Resolve an account ID or owner id to an account ID.

    A numeric reference is treated as an account ID. Anything else is an
    owner id and resolves to that owner's active account.

    Args:
        account_store: AccountStore instance
        account: Account ID (int or numeric string) or owner id

    Returns:
        Account ID

    Raises:
        ValueError: If the account is not found
    """
    if isinstance(account, int):
        if account_store.get_account(account) is None:
            raise ValueError(f"Account ID {account} not found")
        return account

    try:
        account_id = int(account)
    except (ValueError, TypeError):
        account_id = None

    if account_id is not None:
        if account_store.get_account(account_id) is None:
            raise ValueError(f"Account ID {account_id} not found")
        return account_id

    found = account_store.find_active_account_for_owner(account)
    if found is None:
        raise ValueError(f"No active account for owner '{account}'")
    return found.id
