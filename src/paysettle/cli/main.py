"""Main CLI entry point."""

import logging

import click
from paysettle.container import build_engine
from paysettle.database.factories import create_database

# Import and register all commands at module level
from paysettle.cli.commands import (
    account,
    invoice,
    payroll,
    transfer,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides PAYSETTLE_DB_PATH environment variable)",
    envvar="PAYSETTLE_DB_PATH",
)
@click.option(
    "--database-url",
    help="SQLAlchemy database URL (overrides --db-path)",
    envvar="PAYSETTLE_DATABASE_URL",
)
@click.option(
    "--currency",
    default="SLE",
    show_default=True,
    help="Currency for newly opened accounts",
    envvar="PAYSETTLE_CURRENCY",
)
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    envvar="PAYSETTLE_LOG_LEVEL",
)
@click.pass_context
def cli(ctx, db_path: str | None, database_url: str | None, currency: str, log_level: str):
    """Paysettle - school fee and payroll settlement.

    Move money between wallets for fee invoices and staff salaries, with
    every balance change recorded in an append-only ledger.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_database(database_url=database_url, database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.obj["engine"] = build_engine(db, default_currency=currency)
        ctx.call_on_close(db.disconnect)


# Register all commands
account.register_commands(cli)
invoice.register_commands(cli)
payroll.register_commands(cli)
transfer.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
