"""
Database Model Enums
====================

Type-safe constants for categorical columns. Stored as their string values
so rows stay readable in SQL and stable across refactors.
"""

from __future__ import annotations

import enum


class TransactionType(str, enum.Enum):
    """Reason attached to every ledger entry."""

    WAGER_ANTE = "wager-ante"
    WAGER_REFUND = "wager-refund"
    WAGER_WIN = "wager-win"
    WAGER_DOUBLE = "wager-double"
    SHOP_PURCHASE = "shop-purchase"
    DAILY_REWARD = "daily-reward"
    QUEST_REWARD = "quest-reward"
    SECURITY_REWARD = "security-reward"
    GIFT_SENT = "gift-sent"
    GIFT_RECEIVED = "gift-received"
    CLAN_CREATE = "clan-create"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(member.value for member in cls)


class QuestType(str, enum.Enum):
    """Gameplay predicates a quest can track."""

    PLAY = "play"
    WIN = "win"
    DRAW = "draw"
    PLAY_ONLINE = "play-online"
    DESTROY_PIECE = "destroy-piece"
    PLACE_WALL = "place-wall"
    DOUBLE_MOVE = "double-move"
    CONVERT_PIECE = "convert-piece"
    USE_ANY_POWERUP = "use-any-powerup"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(member.value for member in cls)


class SecurityPredicate(str, enum.Enum):
    """Security hygiene conditions, in the order they are offered."""

    EMAIL = "email"
    MFA = "mfa"
    PASSWORD = "password"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(member.value for member in cls)
