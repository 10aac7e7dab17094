"""Economy models: the append-only ledger."""

from .ledger_entry import LedgerEntry

__all__ = ["LedgerEntry"]
