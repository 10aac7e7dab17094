"""
Integration tests for shop purchases and an end-to-end economy session.
"""

import pytest

from ledgerquest.database.models import TransactionType
from ledgerquest.modules.shared.exceptions import InsufficientFundsError, NotFoundError
from tests.integration.helpers import first_quest, pin_quest

pytestmark = pytest.mark.integration


class TestShop:
    async def test_catalog_lookup(self, container):
        item = container.shop.get_item("theme_neon")
        assert item.price == 200
        assert item.name == "Neon Board Theme"

        with pytest.raises(NotFoundError):
            container.shop.get_item("rocket_skin")

    async def test_purchase_debits_price(self, container, account_id, record_events):
        purchased = record_events("shop.purchased")
        await container.mutator.apply_delta(account_id, 500, TransactionType.GIFT_RECEIVED, "Gift")

        result = await container.shop.purchase(account_id, "theme_neon")

        assert result.new_balance == 300
        [entry, _] = await container.ledger.history(account_id)
        assert entry.id == result.ledger_entry_id
        assert entry.amount == -200
        assert entry.transaction_type == TransactionType.SHOP_PURCHASE.value
        assert entry.description == "Purchased Neon Board Theme"
        assert purchased == [
            {"account_id": account_id, "item_id": "theme_neon", "price": 200, "new_balance": 300}
        ]

    async def test_purchase_without_funds(self, container, account_id, record_events):
        purchased = record_events("shop.purchased")
        with pytest.raises(InsufficientFundsError):
            await container.shop.purchase(account_id, "powerup_pack_small")
        assert purchased == []


async def test_full_session_scenario(container, account_id):
    """Daily reward, a quest payout, then a purchase the balance cannot cover."""
    daily = await container.daily.claim(account_id)
    assert daily.new_balance == 50

    quest = await first_quest(container, account_id)
    await pin_quest(quest.quest_id, target=1, base_reward=40, multiplier="2")
    await container.quests.advance(account_id, quest.quest_type)
    claim = await container.quests.claim(account_id, quest.quest_id)
    assert claim.reward == 80
    assert claim.new_balance == 130

    with pytest.raises(InsufficientFundsError):
        await container.shop.purchase(account_id, "theme_neon")

    assert await container.accounts.get_balance(account_id) == 130
    history = await container.ledger.history(account_id)
    assert [e.transaction_type for e in history] == ["quest-reward", "daily-reward"]
    assert (await container.ledger.verify_account(account_id)).consistent


async def test_health_summary(container, account_id):
    await container.daily.claim(account_id)
    health = container.get_health()

    assert health["initialized"]
    assert "quests" in health["services"]
    assert health["events"]["events_by_type"]["daily_reward.claimed"] == 1
