"""CLI helpers for account resolution."""

from __future__ import annotations

import click
from paysettle.domain.account import AccountStore
from paysettle.utils.account_resolver import resolve_account


def resolve_account_or_exit(
    ctx: click.Context, account_store: AccountStore, account: str | int
) -> int:
    """Resolve an account ID or owner id, or exit with a CLI error.

    This keeps error messaging and exit behavior consistent across commands.
    """
    try:
        return resolve_account(account_store, account)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)
