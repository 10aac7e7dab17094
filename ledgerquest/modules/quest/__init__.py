"""
Quest Module
============

- QuestCatalog: configured templates and rarity table, deterministic draws
- QuestService: daily rotation, progress, claim, reroll
- GameplayEventRouter: maps gameplay events to quest progress
"""

from .catalog import QuestCatalog, QuestDraw, QuestTemplate, RarityTier, draw_seed
from .events import GameplayEventRouter, quest_increments
from .service import QuestBoard, QuestClaim, QuestRerollResult, QuestService, QuestView

__all__ = [
    "QuestCatalog",
    "QuestDraw",
    "QuestTemplate",
    "RarityTier",
    "draw_seed",
    "QuestService",
    "QuestView",
    "QuestBoard",
    "QuestClaim",
    "QuestRerollResult",
    "GameplayEventRouter",
    "quest_increments",
]
