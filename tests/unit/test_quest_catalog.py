"""
Unit tests for QuestCatalog.

Covers loading from the repository YAML, validation of malformed entries and
determinism of the seeded draws.
"""

from collections import Counter
from datetime import date
from decimal import Decimal

import pytest

from ledgerquest.core.config.manager import ConfigManager
from ledgerquest.core.exceptions import ConfigurationError
from ledgerquest.modules.quest.catalog import QuestCatalog, draw_seed

DAY = date(2025, 3, 11)


@pytest.fixture
def catalog(config_manager) -> QuestCatalog:
    return QuestCatalog.from_config(config_manager)


class TestCatalogLoading:
    def test_loads_nine_types(self, catalog):
        assert len(catalog.templates) == 9
        assert catalog.template("play").target == 3
        assert catalog.template("convert-piece").base_reward == 250

    def test_batch_and_reroll_settings(self, catalog):
        assert catalog.batch_size == 4
        assert catalog.reroll_cap == 2
        assert catalog.version == 1

    def test_rarity_multipliers_are_exact_decimals(self, catalog):
        assert [r.multiplier for r in catalog.rarities] == [
            Decimal("1.0"),
            Decimal("1.5"),
            Decimal("2.0"),
            Decimal("3.0"),
        ]

    def test_unknown_quest_type_is_rejected(self):
        manager = ConfigManager(
            {
                "quests": {
                    "catalog": [{"type": "win_hard", "target": 1, "base_reward": 10, "weight": 1}],
                    "rarities": [{"name": "common", "multiplier": "1.0", "weight": 1}],
                }
            }
        )
        with pytest.raises(ConfigurationError):
            QuestCatalog.from_config(manager)

    def test_multiplier_below_one_is_rejected(self):
        manager = ConfigManager(
            {
                "quests": {
                    "catalog": [{"type": "win", "target": 1, "base_reward": 10, "weight": 1}],
                    "rarities": [{"name": "cursed", "multiplier": "0.5", "weight": 1}],
                }
            }
        )
        with pytest.raises(ConfigurationError):
            QuestCatalog.from_config(manager)

    @pytest.mark.parametrize("multiplier", ["1.259", "2.005"])
    def test_multiplier_finer_than_cents_is_rejected(self, multiplier):
        manager = ConfigManager(
            {
                "quests": {
                    "catalog": [{"type": "win", "target": 1, "base_reward": 100, "weight": 1}],
                    "rarities": [{"name": "odd", "multiplier": multiplier, "weight": 1}],
                }
            }
        )
        with pytest.raises(ConfigurationError):
            QuestCatalog.from_config(manager)

    @pytest.mark.parametrize("multiplier", ["100", "250.5"])
    def test_multiplier_too_large_for_storage_is_rejected(self, multiplier):
        manager = ConfigManager(
            {
                "quests": {
                    "catalog": [{"type": "win", "target": 1, "base_reward": 100, "weight": 1}],
                    "rarities": [{"name": "mythic", "multiplier": multiplier, "weight": 1}],
                }
            }
        )
        with pytest.raises(ConfigurationError):
            QuestCatalog.from_config(manager)

    def test_largest_storable_multiplier_is_accepted(self):
        manager = ConfigManager(
            {
                "quests": {
                    "catalog": [{"type": "win", "target": 1, "base_reward": 100, "weight": 1}],
                    "rarities": [{"name": "mythic", "multiplier": "99.99", "weight": 1}],
                }
            }
        )
        catalog = QuestCatalog.from_config(manager)
        assert catalog.rarities[0].multiplier == Decimal("99.99")

    def test_missing_catalog_is_rejected(self):
        with pytest.raises(ConfigurationError):
            QuestCatalog.from_config(ConfigManager())


class TestDeterministicDraws:
    def test_same_inputs_same_batch(self, catalog):
        first = catalog.draw_batch("acct-1", DAY)
        second = catalog.draw_batch("acct-1", DAY)
        assert first == second

    def test_batch_types_are_distinct(self, catalog):
        for account in ("a", "b", "c", "d", "e"):
            types = [d.template.quest_type for d in catalog.draw_batch(account, DAY)]
            assert len(types) == len(set(types)) == 4

    def test_seed_depends_on_every_component(self):
        base = draw_seed("acct-1", DAY, 0, 0, 1)
        assert draw_seed("acct-2", DAY, 0, 0, 1) != base
        assert draw_seed("acct-1", date(2025, 3, 12), 0, 0, 1) != base
        assert draw_seed("acct-1", DAY, 1, 0, 1) != base
        assert draw_seed("acct-1", DAY, 0, 1, 1) != base
        assert draw_seed("acct-1", DAY, 0, 0, 2) != base

    def test_exclusion_is_honoured(self, catalog):
        excluded = {"play", "win", "draw", "play-online"}
        for draw_index in range(20):
            drawn = catalog.draw("acct-1", DAY, 0, draw_index, exclude=excluded)
            assert drawn.template.quest_type not in excluded

    def test_exhausted_exclusion_falls_back_to_whole_catalog(self, catalog):
        every_type = {t.quest_type for t in catalog.templates}
        drawn = catalog.draw("acct-1", DAY, 0, 0, exclude=every_type)
        assert drawn.template.quest_type in every_type

    def test_weights_shape_the_distribution(self, catalog):
        counts = Counter(
            catalog.draw(f"acct-{i}", DAY, 0).template.quest_type for i in range(2000)
        )
        # play (weight 20) should be drawn far more often than convert-piece (weight 5)
        assert counts["play"] > counts["convert-piece"]

    def test_draw_reward_uses_shared_formula(self, catalog):
        drawn = catalog.draw("acct-1", DAY, 0)
        expected = int(drawn.template.base_reward * drawn.rarity.multiplier)
        assert drawn.reward == expected
