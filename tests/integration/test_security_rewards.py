"""Integration tests for SecurityRewardService."""

from datetime import timedelta

import pytest

from ledgerquest.database.models import TransactionType
from ledgerquest.modules.shared.exceptions import (
    AlreadyClaimedError,
    PredicateNotSatisfiedError,
    ValidationError,
)

pytestmark = pytest.mark.integration


async def test_unsatisfied_predicate_rejected(container, account_id):
    with pytest.raises(PredicateNotSatisfiedError):
        await container.security.claim(account_id, "email")
    assert await container.accounts.get_balance(account_id) == 0


async def test_email_reward_granted_once(container, account_id):
    await container.accounts.update_security_profile(account_id, email_verified=True)

    claim = await container.security.claim(account_id, "email")
    assert claim.reward == 500
    assert claim.new_balance == 500

    with pytest.raises(AlreadyClaimedError):
        await container.security.claim(account_id, "email")

    [entry] = await container.ledger.history(account_id)
    assert entry.transaction_type == TransactionType.SECURITY_REWARD.value
    assert entry.meta == {"predicate_key": "email"}


async def test_grant_survives_predicate_turning_false(container, account_id):
    await container.accounts.update_security_profile(account_id, mfa_enabled=True)
    await container.security.claim(account_id, "mfa")
    await container.accounts.update_security_profile(account_id, mfa_enabled=False)
    await container.accounts.update_security_profile(account_id, mfa_enabled=True)

    with pytest.raises(AlreadyClaimedError):
        await container.security.claim(account_id, "mfa")
    assert await container.accounts.get_balance(account_id) == 1000


async def test_password_freshness_window(container, clock, account_id):
    await container.accounts.update_security_profile(
        account_id, password_changed_at=clock.now() - timedelta(days=183)
    )
    with pytest.raises(PredicateNotSatisfiedError):
        await container.security.claim(account_id, "password")

    await container.accounts.update_security_profile(
        account_id, password_changed_at=clock.now() - timedelta(days=182)
    )
    claim = await container.security.claim(account_id, "password")
    assert claim.reward == 250


async def test_unknown_predicate(container, account_id):
    with pytest.raises(ValidationError):
        await container.security.claim(account_id, "sms")


async def test_status_offers_next_unclaimed(container, account_id):
    status = await container.security.status(account_id)
    assert status.next_offer is None
    assert status.next_reward == 0

    await container.accounts.update_security_profile(
        account_id, email_verified=True, mfa_enabled=True
    )
    status = await container.security.status(account_id)
    assert status.eligible == {"email": True, "mfa": True, "password": False}
    assert status.next_offer == "email"

    await container.security.claim(account_id, "email")
    status = await container.security.status(account_id)
    assert status.granted == frozenset({"email"})
    assert status.next_offer == "mfa"
    assert status.next_reward == 1000


async def test_claim_event(container, account_id, record_events):
    claimed = record_events("security_reward.claimed")
    await container.accounts.update_security_profile(account_id, email_verified=True)
    await container.security.claim(account_id, "email")
    assert claimed == [
        {"account_id": account_id, "predicate_key": "email", "reward": 500, "new_balance": 500}
    ]
