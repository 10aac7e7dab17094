"""Progression models: daily streaks, quests and security grants."""

from .daily_reward_state import DailyRewardState
from .quest import Quest, QuestProgressEvent, QuestRerollBudget
from .security_reward_grant import SecurityRewardGrant

__all__ = [
    "DailyRewardState",
    "Quest",
    "QuestProgressEvent",
    "QuestRerollBudget",
    "SecurityRewardGrant",
]
