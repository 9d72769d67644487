"""Position and order ledger: validation, P&L arithmetic and store commands."""

from perpsim.ledger.manager import Ledger
from perpsim.ledger.summary import AccountSummary, account_summary

__all__ = ["AccountSummary", "Ledger", "account_summary"]
