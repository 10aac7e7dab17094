"""
Quest catalog and deterministic draws.

The catalog (quest templates and the rarity table) is read from
``quests.*`` in the loaded configuration. Each draw uses its own
``random.Random`` seeded from a SHA-256 of
``(account_id, day, slot, draw_index, catalog_version)``, so the same
account, day and slot always yield the same quest for a given catalog
version.
"""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Collection, Dict, List, Mapping, Optional, Sequence, Tuple

from ledgerquest.core.exceptions import ConfigurationError
from ledgerquest.database.models import QuestType
from ledgerquest.modules.shared.formulas import quest_reward

if TYPE_CHECKING:
    from ledgerquest.core.config.manager import ConfigManager

DEFAULT_BATCH_SIZE = 4

# Matches the Numeric(4, 2) quest column.
MULTIPLIER_STEP = Decimal("0.01")
MULTIPLIER_LIMIT = Decimal("100")
DEFAULT_REROLL_CAP = 2


@dataclass(frozen=True)
class QuestTemplate:
    quest_type: str
    description: str
    target: int
    base_reward: int
    weight: int


@dataclass(frozen=True)
class RarityTier:
    name: str
    multiplier: Decimal
    weight: int


@dataclass(frozen=True)
class QuestDraw:
    """One generated quest, before it is persisted."""

    slot: int
    draw_index: int
    template: QuestTemplate
    rarity: RarityTier
    catalog_version: int

    @property
    def reward(self) -> int:
        return quest_reward(self.template.base_reward, self.rarity.multiplier)


def draw_seed(
    account_id: str,
    day: date,
    slot: int,
    draw_index: int,
    catalog_version: int,
) -> int:
    material = f"{account_id}|{day.isoformat()}|{slot}|{draw_index}|{catalog_version}"
    digest = hashlib.sha256(material.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def _check_multiplier(multiplier: Decimal, where: str) -> None:
    if not multiplier.is_finite() or multiplier < 1:
        raise ConfigurationError(where, "'multiplier' must be >= 1")
    if multiplier >= MULTIPLIER_LIMIT:
        raise ConfigurationError(where, "'multiplier' must be below 100")
    if multiplier != multiplier.quantize(MULTIPLIER_STEP):
        raise ConfigurationError(where, "'multiplier' allows at most two decimal places")


def _require_int(entry: Mapping[str, Any], key: str, where: str, minimum: int) -> int:
    value = entry.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigurationError(where, f"'{key}' must be an integer >= {minimum}, got {value!r}")
    return value


class QuestCatalog:
    """
    Immutable quest catalog.

    Examples
    --------
    >>> catalog = QuestCatalog.from_config(config_manager)
    >>> catalog.draw_batch("acct-1", date(2025, 3, 1))
    [QuestDraw(slot=0, ...), ...]
    """

    def __init__(
        self,
        version: int,
        templates: Sequence[QuestTemplate],
        rarities: Sequence[RarityTier],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        reroll_cap: int = DEFAULT_REROLL_CAP,
    ) -> None:
        if not templates:
            raise ConfigurationError("quests.catalog", "Quest catalog is empty")
        if not rarities:
            raise ConfigurationError("quests.rarities", "Rarity table is empty")
        if batch_size < 1:
            raise ConfigurationError("quests.batch_size", "Batch size must be at least 1")
        if reroll_cap < 0:
            raise ConfigurationError("quests.reroll_cap", "Reroll cap cannot be negative")
        for index, tier in enumerate(rarities):
            _check_multiplier(tier.multiplier, f"quests.rarities[{index}]")

        self.version = version
        self.templates: Tuple[QuestTemplate, ...] = tuple(templates)
        self.rarities: Tuple[RarityTier, ...] = tuple(rarities)
        self.batch_size = batch_size
        self.reroll_cap = reroll_cap
        self._by_type: Dict[str, QuestTemplate] = {t.quest_type: t for t in self.templates}

        if len(self._by_type) != len(self.templates):
            raise ConfigurationError("quests.catalog", "Quest types must be unique")

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "QuestCatalog":
        """
        Build the catalog from ``quests.*``.

        Raises:
            ConfigurationError: Missing section or malformed entry
        """
        raw_templates = config_manager.get("quests.catalog")
        raw_rarities = config_manager.get("quests.rarities")
        if not raw_templates:
            raise ConfigurationError("quests.catalog", "Quest catalog is not configured")
        if not raw_rarities:
            raise ConfigurationError("quests.rarities", "Rarity table is not configured")

        known_types = QuestType.values()
        templates: List[QuestTemplate] = []
        for index, entry in enumerate(raw_templates):
            where = f"quests.catalog[{index}]"
            quest_type = entry.get("type")
            if quest_type not in known_types:
                raise ConfigurationError(where, f"Unknown quest type {quest_type!r}")
            templates.append(
                QuestTemplate(
                    quest_type=quest_type,
                    description=str(entry.get("description") or quest_type),
                    target=_require_int(entry, "target", where, 1),
                    base_reward=_require_int(entry, "base_reward", where, 0),
                    weight=_require_int(entry, "weight", where, 1),
                )
            )

        rarities: List[RarityTier] = []
        for index, entry in enumerate(raw_rarities):
            where = f"quests.rarities[{index}]"
            try:
                multiplier = Decimal(str(entry.get("multiplier")))
            except InvalidOperation as exc:
                raise ConfigurationError(where, "'multiplier' must be a decimal") from exc
            rarities.append(
                RarityTier(
                    name=str(entry.get("name") or "common"),
                    multiplier=multiplier,
                    weight=_require_int(entry, "weight", where, 1),
                )
            )

        return cls(
            version=int(config_manager.get("quests.catalog_version", 1)),
            templates=templates,
            rarities=rarities,
            batch_size=int(config_manager.get("quests.batch_size", DEFAULT_BATCH_SIZE)),
            reroll_cap=int(config_manager.get("quests.reroll_cap", DEFAULT_REROLL_CAP)),
        )

    def template(self, quest_type: str) -> Optional[QuestTemplate]:
        return self._by_type.get(quest_type)

    def draw(
        self,
        account_id: str,
        day: date,
        slot: int,
        draw_index: int = 0,
        exclude: Collection[str] = (),
    ) -> QuestDraw:
        """
        Draw one quest for ``slot``.

        Types in ``exclude`` are skipped; if that leaves nothing the whole
        catalog is eligible again.
        """
        rng = random.Random(draw_seed(account_id, day, slot, draw_index, self.version))

        candidates = [t for t in self.templates if t.quest_type not in exclude]
        if not candidates:
            candidates = list(self.templates)

        template = rng.choices(candidates, weights=[t.weight for t in candidates])[0]
        rarity = rng.choices(self.rarities, weights=[r.weight for r in self.rarities])[0]

        return QuestDraw(
            slot=slot,
            draw_index=draw_index,
            template=template,
            rarity=rarity,
            catalog_version=self.version,
        )

    def draw_batch(self, account_id: str, day: date) -> List[QuestDraw]:
        """A full day's batch with distinct types (while the catalog allows)."""
        draws: List[QuestDraw] = []
        taken: set[str] = set()
        for slot in range(self.batch_size):
            drawn = self.draw(account_id, day, slot, 0, exclude=taken)
            taken.add(drawn.template.quest_type)
            draws.append(drawn)
        return draws
