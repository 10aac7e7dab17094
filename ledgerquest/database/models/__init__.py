"""
Database Models Package
=======================

All SQLAlchemy ORM models for LedgerQuest, organized by domain:

- core: Account (balance and security facts)
- economy: LedgerEntry (append-only audit trail)
- progression: DailyRewardState, Quest, QuestRerollBudget,
  QuestProgressEvent, SecurityRewardGrant
- enums: shared type-safe enumerations

Every child table references ``accounts.id`` with ``ON DELETE CASCADE``.
"""

from ledgerquest.core.database.base import Base

from .core import Account
from .economy import LedgerEntry
from .enums import QuestType, SecurityPredicate, TransactionType
from .progression import (
    DailyRewardState,
    Quest,
    QuestProgressEvent,
    QuestRerollBudget,
    SecurityRewardGrant,
)

__all__ = [
    "Base",
    "Account",
    "LedgerEntry",
    "DailyRewardState",
    "Quest",
    "QuestRerollBudget",
    "QuestProgressEvent",
    "SecurityRewardGrant",
    "TransactionType",
    "QuestType",
    "SecurityPredicate",
]
