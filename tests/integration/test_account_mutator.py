"""
Integration tests for AccountService and AccountMutator.

Balance changes, their ledger entries, the non-negative balance rule and the
``balance.changed`` notification.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from ledgerquest.core.database import DatabaseService
from ledgerquest.database.models import LedgerEntry, TransactionType
from ledgerquest.modules.shared.exceptions import (
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)

pytestmark = pytest.mark.integration


class TestRegistration:
    async def test_new_account_starts_at_zero(self, container, account_id):
        assert await container.accounts.get_balance(account_id) == 0
        assert await container.ledger.history(account_id) == []

    async def test_duplicate_id_rejected(self, container, account_id):
        with pytest.raises(ValidationError):
            await container.accounts.register(account_id)

    async def test_generated_id(self, container):
        view = await container.accounts.register()
        assert len(view.account_id) == 32

    async def test_starting_balance_is_ledgered(self, container):
        container.config.override("economy.starting_balance", 75)

        view = await container.accounts.register("gifted")
        assert view.coins == 75

        [entry] = await container.ledger.history("gifted")
        assert entry.transaction_type == TransactionType.GIFT_RECEIVED.value
        assert entry.resulting_balance == 75
        assert (await container.ledger.verify_account("gifted")).consistent

    async def test_registration_event(self, container, record_events):
        registered = record_events("account.registered")
        await container.accounts.register("evented")
        assert registered == [{"account_id": "evented", "coins": 0}]


class TestApplyDelta:
    async def test_credit_then_debit(self, container, account_id):
        credit = await container.mutator.apply_delta(
            account_id, 100, TransactionType.GIFT_RECEIVED, "Gift"
        )
        debit = await container.mutator.apply_delta(
            account_id, -30, TransactionType.SHOP_PURCHASE, "Purchase"
        )

        assert credit.new_balance == 100
        assert debit.new_balance == 70
        assert debit.delta == -30
        assert await container.accounts.get_balance(account_id) == 70

    async def test_transaction_type_accepts_plain_string(self, container, account_id):
        result = await container.mutator.apply_delta(account_id, 5, "wager-win", "Wager won")
        assert result.transaction_type == "wager-win"

    async def test_overdraft_rejected_without_side_effects(self, container, account_id):
        await container.mutator.apply_delta(account_id, 50, TransactionType.GIFT_RECEIVED, "Gift")

        with pytest.raises(InsufficientFundsError) as exc_info:
            await container.mutator.apply_delta(
                account_id, -51, TransactionType.SHOP_PURCHASE, "Too expensive"
            )

        assert exc_info.value.required == 51
        assert exc_info.value.current == 50
        assert await container.accounts.get_balance(account_id) == 50
        assert len(await container.ledger.history(account_id)) == 1

    async def test_debit_to_exactly_zero(self, container, account_id):
        await container.mutator.apply_delta(account_id, 50, TransactionType.GIFT_RECEIVED, "Gift")
        result = await container.mutator.apply_delta(
            account_id, -50, TransactionType.SHOP_PURCHASE, "All in"
        )
        assert result.new_balance == 0

    @pytest.mark.parametrize("amount", [0, 10_000_001, -10_000_001])
    async def test_out_of_range_amounts(self, container, account_id, amount):
        with pytest.raises(ValidationError):
            await container.mutator.apply_delta(
                account_id, amount, TransactionType.GIFT_RECEIVED, "Bad"
            )

    async def test_unknown_transaction_type(self, container, account_id):
        with pytest.raises(ValidationError) as exc_info:
            await container.mutator.apply_delta(account_id, 5, "lottery", "Jackpot")
        assert exc_info.value.field == "transaction_type"

    async def test_unknown_account(self, container):
        with pytest.raises(NotFoundError):
            await container.mutator.apply_delta("ghost", 5, TransactionType.GIFT_RECEIVED, "Gift")

    async def test_balance_changed_published_after_commit(
        self, container, account_id, record_events
    ):
        changes = record_events("balance.changed")
        result = await container.mutator.apply_delta(
            account_id, 20, TransactionType.GIFT_RECEIVED, "Gift"
        )

        assert changes == [
            {
                "account_id": account_id,
                "new_balance": 20,
                "delta": 20,
                "type": "gift-received",
                "ledger_entry_id": result.ledger_entry_id,
            }
        ]

    async def test_no_event_for_rejected_debit(self, container, account_id, record_events):
        changes = record_events("balance.changed")
        with pytest.raises(InsufficientFundsError):
            await container.mutator.apply_delta(
                account_id, -1, TransactionType.SHOP_PURCHASE, "Nope"
            )
        assert changes == []

    async def test_joined_transaction_rolls_back_with_caller(self, container, account_id):
        with pytest.raises(RuntimeError):
            async with DatabaseService.get_transaction() as session:
                await container.mutator.apply_delta(
                    account_id, 10, TransactionType.GIFT_RECEIVED, "Gift", session=session
                )
                raise RuntimeError("caller failed")

        assert await container.accounts.get_balance(account_id) == 0
        assert await container.ledger.history(account_id) == []


class TestSecurityProfileAndDeletion:
    async def test_update_security_profile(self, container, account_id):
        changed = datetime(2025, 3, 1, tzinfo=timezone.utc)
        view = await container.accounts.update_security_profile(
            account_id, email_verified=True, password_changed_at=changed
        )
        assert view.email_verified
        assert not view.mfa_enabled
        assert view.password_changed_at == changed

    async def test_naive_password_timestamp_rejected(self, container, account_id):
        with pytest.raises(ValidationError):
            await container.accounts.update_security_profile(
                account_id, password_changed_at=datetime(2025, 3, 1)
            )

    async def test_delete_cascades_to_ledger(self, container, account_id):
        await container.mutator.apply_delta(account_id, 10, TransactionType.GIFT_RECEIVED, "Gift")
        await container.daily.claim(account_id)
        await container.quests.get_active_quests(account_id)

        await container.accounts.delete_account(account_id)

        with pytest.raises(NotFoundError):
            await container.accounts.get_account(account_id)
        async with DatabaseService.get_session() as session:
            entries = await session.scalar(
                select(func.count()).select_from(LedgerEntry).where(LedgerEntry.account_id == account_id)
            )
        assert entries == 0

    async def test_delete_unknown_account(self, container):
        with pytest.raises(NotFoundError):
            await container.accounts.delete_account("ghost")
