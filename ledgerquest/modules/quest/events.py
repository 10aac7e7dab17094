"""
GameplayEventRouter: turns finished-match and power-up reports into quest
progress.

    match_finished  -> play (+1)
                       win          when payload["outcome"] == "win"
                       draw         when payload["outcome"] == "draw"
                       play-online  when payload["mode"] == "online"
                       plus any payload["powerups"] counts, as below
    powerups_used   -> destroy-piece / place-wall / double-move / convert-piece
                       by count, and use-any-powerup by the total of every
                       power-up used (undo and hint included)

``payload["event_id"]`` is forwarded so a resent report does not count twice;
each derived quest type gets its own key (``<event_id>:<quest_type>``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from ledgerquest.core.logging.logger import LogContext, get_logger
from ledgerquest.core.validation.input_validator import InputValidator
from ledgerquest.database.models import QuestType
from ledgerquest.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from ledgerquest.modules.quest.service import QuestService, QuestView

logger = get_logger(__name__)

MATCH_FINISHED = "match_finished"
POWERUPS_USED = "powerups_used"

POWERUP_QUEST_TYPES: Dict[str, QuestType] = {
    "destroy": QuestType.DESTROY_PIECE,
    "wall": QuestType.PLACE_WALL,
    "double": QuestType.DOUBLE_MOVE,
    "convert": QuestType.CONVERT_PIECE,
}
KNOWN_POWERUPS = ("destroy", "wall", "double", "convert", "undo", "hint")


def _count(value: Any, name: str) -> int:
    return InputValidator.validate_integer(value, f"powerups.{name}", min_value=0)


def _powerup_increments(counts: Mapping[str, Any]) -> List[Tuple[QuestType, int]]:
    increments: List[Tuple[QuestType, int]] = []
    total = 0
    for name in KNOWN_POWERUPS:
        used = _count(counts.get(name, 0), name)
        total += used
        quest_type = POWERUP_QUEST_TYPES.get(name)
        if quest_type is not None and used > 0:
            increments.append((quest_type, used))
    if total > 0:
        increments.append((QuestType.USE_ANY_POWERUP, total))
    return increments


def quest_increments(event_type: str, payload: Mapping[str, Any]) -> List[Tuple[QuestType, int]]:
    """Quest types (and deltas) a gameplay event advances, in a stable order."""
    increments: List[Tuple[QuestType, int]] = []

    if event_type == MATCH_FINISHED:
        increments.append((QuestType.PLAY, 1))
        outcome = payload.get("outcome")
        if outcome == "win":
            increments.append((QuestType.WIN, 1))
        elif outcome == "draw":
            increments.append((QuestType.DRAW, 1))
        if payload.get("mode") == "online":
            increments.append((QuestType.PLAY_ONLINE, 1))

        increments.extend(_powerup_increments(payload.get("powerups") or {}))

    elif event_type == POWERUPS_USED:
        increments.extend(_powerup_increments(payload.get("powerups") or {}))

    else:
        raise ValidationError("event_type", f"Unknown gameplay event {event_type!r}")

    return increments


class GameplayEventRouter:
    """Forwards gameplay events to ``QuestService.advance``."""

    def __init__(self, quests: QuestService) -> None:
        self._quests = quests

    async def on_gameplay_event(
        self,
        account_id: str,
        event_type: str,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> List[QuestView]:
        payload = payload or {}
        increments = quest_increments(event_type, payload)
        event_id = payload.get("event_id")

        updated: List[QuestView] = []
        async with LogContext(account_id=account_id, component="quest", operation=event_type):
            for quest_type, delta in increments:
                updated.extend(
                    await self._quests.advance(
                        account_id,
                        quest_type,
                        delta,
                        event_id=f"{event_id}:{quest_type.value}" if event_id else None,
                    )
                )

            logger.debug(
                "Gameplay event routed",
                extra={
                    "event_type": event_type,
                    "quest_types": [q.value for q, _ in increments],
                    "updated_count": len(updated),
                },
            )
        return updated
