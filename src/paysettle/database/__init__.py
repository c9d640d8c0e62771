"""Database layer for paysettle application."""

from paysettle.database.base import Database
from paysettle.database.factories import create_database, create_sqlite_database

__all__ = ["Database", "create_database", "create_sqlite_database"]
