"""Utility functions for paysettle."""

from paysettle.utils.date_parser import parse_date
from paysettle.utils.amount_parser import parse_amount
from paysettle.utils.account_resolver import resolve_account

__all__ = ["parse_date", "parse_amount", "resolve_account"]
