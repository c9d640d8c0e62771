"""Database factory functions for creating database instances."""

import os
from pathlib import Path
from typing import Optional

from paysettle.database.sqlalchemy_db import SQLAlchemyDatabase


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file. If None, checks PAYSETTLE_DB_PATH
            environment variable, then defaults to ~/.paysettle/paysettle.db

    Returns:
        SQLAlchemyDatabase instance configured for SQLite
    """
    if database_path is None:
        # Check environment variable
        database_path = os.environ.get("PAYSETTLE_DB_PATH")

    if database_path is None:
        # Default to ~/.paysettle/paysettle.db
        home = Path.home()
        db_dir = home / ".paysettle"
        db_dir.mkdir(exist_ok=True)
        database_path = str(db_dir / "paysettle.db")

    database_url = f"sqlite:///{database_path}"
    return SQLAlchemyDatabase(database_url)


def create_database(database_url: Optional[str] = None, database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a database instance from a URL or a SQLite path.

    A full SQLAlchemy URL (argument or PAYSETTLE_DATABASE_URL) wins over the
    SQLite path lookup.
    """
    if database_url is None:
        database_url = os.environ.get("PAYSETTLE_DATABASE_URL")
    if database_url:
        return SQLAlchemyDatabase(database_url)
    return create_sqlite_database(database_path=database_path)
