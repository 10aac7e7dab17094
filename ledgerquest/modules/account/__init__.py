"""
Account Module
==============

- AccountService: registration, balance reads, security facts, deletion
- AccountMutator: the single write path for balances
- LedgerRecorder: append-only ledger and replay audit
"""

from .ledger import LedgerAudit, LedgerRecorder
from .mutator import AccountMutator, MutationResult
from .service import AccountService, AccountView

__all__ = [
    "AccountService",
    "AccountView",
    "AccountMutator",
    "MutationResult",
    "LedgerRecorder",
    "LedgerAudit",
]
