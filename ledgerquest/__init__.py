"""LedgerQuest: coin balance, ledger, daily rewards, quests and security rewards."""

__version__ = "0.1.0"
