"""Shared helpers for integration tests that need specific quest numbers."""

from decimal import Decimal
from typing import Optional

from ledgerquest.core.database import DatabaseService
from ledgerquest.database.models import Quest


async def pin_quest(
    quest_id: int,
    *,
    quest_type: Optional[str] = None,
    target: Optional[int] = None,
    base_reward: Optional[int] = None,
    multiplier: Optional[str] = None,
) -> None:
    """Overwrite a generated quest's row so a test does not depend on the draw."""
    async with DatabaseService.get_transaction() as session:
        quest = await session.get(Quest, quest_id)
        if quest_type is not None:
            quest.quest_type = quest_type
        if target is not None:
            quest.target = target
        if base_reward is not None:
            quest.base_reward = base_reward
        if multiplier is not None:
            quest.multiplier = Decimal(multiplier)


async def first_quest(container, account_id):
    board = await container.quests.get_active_quests(account_id)
    return board.quests[0]
