"""
Octra ledger access: async RPC client and its data shapes.
"""

from backend_octra.ledger.client import LedgerClient
from backend_octra.ledger.models import AccountState, LedgerTransaction, SubmitResult

__all__ = ["AccountState", "LedgerClient", "LedgerTransaction", "SubmitResult"]
