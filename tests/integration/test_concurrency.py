"""
Concurrent claims against one account.

Each racer runs in its own transaction; the account row lock (FOR UPDATE on
PostgreSQL, BEGIN IMMEDIATE on SQLite) serializes them.
"""

import asyncio

import pytest

from ledgerquest.database.models import TransactionType
from ledgerquest.modules.shared.exceptions import (
    AlreadyClaimedError,
    InsufficientFundsError,
    NoRerollsRemainingError,
)
from tests.integration.helpers import first_quest, pin_quest

pytestmark = [pytest.mark.integration, pytest.mark.concurrency]


def _split(results):
    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    return successes, failures


async def test_double_daily_claim_pays_once(container, account_id):
    results = await asyncio.gather(
        container.daily.claim(account_id),
        container.daily.claim(account_id),
        return_exceptions=True,
    )
    successes, failures = _split(results)

    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], AlreadyClaimedError)
    assert await container.accounts.get_balance(account_id) == 50
    assert len(await container.ledger.history(account_id)) == 1


async def test_double_quest_claim_pays_once(container, account_id):
    quest = await first_quest(container, account_id)
    await pin_quest(quest.quest_id, target=1, base_reward=40, multiplier="2")
    await container.quests.advance(account_id, quest.quest_type)

    results = await asyncio.gather(
        *(container.quests.claim(account_id, quest.quest_id) for _ in range(3)),
        return_exceptions=True,
    )
    successes, failures = _split(results)

    assert len(successes) == 1
    assert all(isinstance(f, AlreadyClaimedError) for f in failures)
    assert await container.accounts.get_balance(account_id) == 80


async def test_double_security_claim_pays_once(container, account_id):
    await container.accounts.update_security_profile(account_id, email_verified=True)
    results = await asyncio.gather(
        container.security.claim(account_id, "email"),
        container.security.claim(account_id, "email"),
        return_exceptions=True,
    )
    successes, failures = _split(results)

    assert len(successes) == 1
    assert isinstance(failures[0], AlreadyClaimedError)
    assert await container.accounts.get_balance(account_id) == 500


async def test_concurrent_debits_never_overdraw(container, account_id):
    await container.mutator.apply_delta(account_id, 100, TransactionType.GIFT_RECEIVED, "Gift")

    results = await asyncio.gather(
        *(
            container.mutator.apply_delta(
                account_id, -30, TransactionType.SHOP_PURCHASE, "Purchase"
            )
            for _ in range(5)
        ),
        return_exceptions=True,
    )
    successes, failures = _split(results)

    assert len(successes) == 3
    assert all(isinstance(f, InsufficientFundsError) for f in failures)
    assert await container.accounts.get_balance(account_id) == 10
    assert (await container.ledger.verify_account(account_id)).consistent


async def test_concurrent_rerolls_respect_cap(container, account_id):
    board = await container.quests.get_active_quests(account_id)

    results = await asyncio.gather(
        *(container.quests.reroll(account_id, q.quest_id) for q in board.quests[:3]),
        return_exceptions=True,
    )
    successes, failures = _split(results)

    assert len(successes) == 2
    assert len(failures) == 1
    assert isinstance(failures[0], NoRerollsRemainingError)


async def test_concurrent_credits_all_land(container, account_id):
    await asyncio.gather(
        *(
            container.mutator.apply_delta(account_id, 7, TransactionType.WAGER_WIN, "Wager won")
            for _ in range(10)
        )
    )
    assert await container.accounts.get_balance(account_id) == 70
    assert len(await container.ledger.history(account_id)) == 10
