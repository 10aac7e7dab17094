"""
Integration tests for caller deadlines on units of work.

The deadline bounds the transaction only. A unit that is still running when
it expires rolls back completely; after-commit listeners run once the unit
has finished and never turn a committed change into a timeout.
"""

import asyncio

import pytest

from ledgerquest.core.database import DatabaseService
from ledgerquest.core.event.types import ListenerPriority
from ledgerquest.core.exceptions import TransactionTimeoutError
from ledgerquest.database.models import TransactionType

pytestmark = pytest.mark.integration


def _subscribe_slow_listener(event_bus, event_name, delay, priority=ListenerPriority.NORMAL):
    seen = []

    async def _slow(payload):
        await asyncio.sleep(delay)
        seen.append(dict(payload))

    event_bus.subscribe(event_name, _slow, priority=priority, identifier=f"slow@{event_name}")
    return seen


class TestSlowListeners:
    async def test_credit_succeeds_despite_slow_listener(self, container, event_bus, account_id):
        seen = _subscribe_slow_listener(event_bus, "balance.changed", delay=1.0)

        result = await container.mutator.apply_delta(
            account_id, 100, TransactionType.DAILY_REWARD, "Daily reward", timeout=0.5
        )

        assert result.new_balance == 100
        assert await container.accounts.get_balance(account_id) == 100
        assert len(await container.ledger.history(account_id)) == 1
        assert [event["new_balance"] for event in seen] == [100]

    async def test_high_priority_listener_outside_deadline(self, container, event_bus, account_id):
        seen = _subscribe_slow_listener(
            event_bus, "daily_reward.claimed", delay=0.6, priority=ListenerPriority.HIGH
        )

        claim = await container.daily.claim(account_id, timeout=0.3)

        assert claim.reward == 50
        assert await container.accounts.get_balance(account_id) == 50
        assert seen[0]["reward"] == 50

    async def test_purchase_is_debited_once(self, container, event_bus, account_id):
        await container.mutator.apply_delta(account_id, 500, TransactionType.GIFT_RECEIVED, "Gift")
        _subscribe_slow_listener(event_bus, "balance.changed", delay=1.0)

        purchase = await container.shop.purchase(account_id, "theme_neon", timeout=0.5)

        assert purchase.new_balance == 300
        assert await container.accounts.get_balance(account_id) == 300
        assert (await container.ledger.verify_account(account_id)).consistent


class TestStuckUnit:
    async def test_stuck_transaction_rolls_back(self, container, account_id, record_events):
        changed = record_events("balance.changed")

        async def work():
            async with DatabaseService.get_transaction() as session:
                await container.mutator.apply_delta(
                    account_id,
                    100,
                    TransactionType.GIFT_RECEIVED,
                    "Gift",
                    session=session,
                )
                await asyncio.sleep(5)

        with pytest.raises(TransactionTimeoutError):
            await container.mutator.run_unit("gift", work, timeout=0.2, account_id=account_id)

        assert await container.accounts.get_balance(account_id) == 0
        assert await container.ledger.history(account_id) == []
        assert changed == []

    async def test_account_usable_after_timeout(self, container, account_id):
        async def work():
            async with DatabaseService.get_transaction():
                await asyncio.sleep(5)

        with pytest.raises(TransactionTimeoutError):
            await container.mutator.run_unit("stuck", work, timeout=0.1, account_id=account_id)

        result = await container.mutator.apply_delta(
            account_id, 25, TransactionType.GIFT_RECEIVED, "Gift", timeout=5
        )
        assert result.new_balance == 25
