"""
Integration tests for DatabaseService.

Runs against a real database (SQLite file by default, PostgreSQL with
``LEDGERQUEST_TEST_BACKEND=postgres``): transaction commit and rollback,
after-commit callbacks, schema creation and ledger immutability.
"""

import pytest
from sqlalchemy import inspect, select, text

from ledgerquest.core.database import DatabaseService
from ledgerquest.core.exceptions import LedgerImmutableError
from ledgerquest.database.models import Account, LedgerEntry

pytestmark = [pytest.mark.integration, pytest.mark.database]


class TestConnection:
    async def test_select_one(self, database):
        async with DatabaseService.get_session() as session:
            result = await session.execute(text("SELECT 1 AS value"))
            assert result.scalar_one() == 1

    async def test_health_check(self, database):
        assert await DatabaseService.health_check()

    async def test_schema_has_every_table(self, database):
        async with DatabaseService.get_session() as session:
            connection = await session.connection()
            tables = await connection.run_sync(
                lambda sync_conn: set(inspect(sync_conn).get_table_names())
            )
        assert {
            "accounts",
            "ledger_entries",
            "daily_reward_state",
            "quests",
            "quest_reroll_budget",
            "quest_progress_events",
            "security_reward_grants",
        } <= tables


class TestTransactions:
    async def test_commit_persists(self, database):
        async with DatabaseService.get_transaction() as session:
            session.add(Account(id="tx-commit", coins=5))

        async with DatabaseService.get_session() as session:
            account = await session.get(Account, "tx-commit")
            assert account is not None
            assert account.coins == 5

    async def test_exception_rolls_back(self, database):
        with pytest.raises(RuntimeError):
            async with DatabaseService.get_transaction() as session:
                session.add(Account(id="tx-rollback", coins=5))
                await session.flush()
                raise RuntimeError("abort")

        async with DatabaseService.get_session() as session:
            assert await session.get(Account, "tx-rollback") is None

    async def test_after_commit_runs_only_on_commit(self, database):
        fired = []

        async def callback():
            fired.append("committed")

        async with DatabaseService.get_transaction() as session:
            DatabaseService.after_commit(session, callback)
            assert fired == []
        assert fired == ["committed"]

        with pytest.raises(RuntimeError):
            async with DatabaseService.get_transaction() as session:
                DatabaseService.after_commit(session, callback)
                raise RuntimeError("abort")
        assert fired == ["committed"]

    async def test_deferred_callbacks_wait_for_their_scope(self, database):
        fired = []

        async def callback():
            fired.append("committed")

        with DatabaseService.defer_after_commit() as scope:
            assert not scope.commit_started
            async with DatabaseService.get_transaction() as session:
                DatabaseService.after_commit(session, callback)
            assert fired == []
            assert scope.committed == 1
            assert scope.commit_started

        await DatabaseService.run_deferred(scope)
        assert fired == ["committed"]
        assert scope.callbacks == []

    async def test_rolled_back_transaction_leaves_scope_untouched(self, database):
        async def callback():
            raise AssertionError("must not run")

        with DatabaseService.defer_after_commit() as scope:
            with pytest.raises(RuntimeError):
                async with DatabaseService.get_transaction() as session:
                    DatabaseService.after_commit(session, callback)
                    raise RuntimeError("abort")

        assert not scope.commit_started
        assert scope.callbacks == []

    async def test_failing_after_commit_callback_does_not_undo_commit(self, database):
        async def broken():
            raise RuntimeError("listener bug")

        async with DatabaseService.get_transaction() as session:
            session.add(Account(id="tx-callback", coins=1))
            DatabaseService.after_commit(session, broken)

        async with DatabaseService.get_session() as session:
            assert await session.get(Account, "tx-callback") is not None

    async def test_breaker_counts_successes(self, database):
        async with DatabaseService.get_transaction():
            pass
        metrics = DatabaseService.get_circuit_breaker_metrics()
        assert metrics["state"] == "closed"
        assert metrics["success_count"] >= 1


class TestLedgerImmutability:
    async def _seed_entry(self) -> int:
        async with DatabaseService.get_transaction() as session:
            session.add(Account(id="immutable", coins=10))
            await session.flush()
            entry = LedgerEntry(
                account_id="immutable",
                amount=10,
                transaction_type="gift-received",
                description="seed",
                resulting_balance=10,
                correlation_id="seed",
            )
            session.add(entry)
            await session.flush()
            return entry.id

    async def test_update_is_refused(self, database):
        entry_id = await self._seed_entry()

        with pytest.raises(LedgerImmutableError):
            async with DatabaseService.get_transaction() as session:
                entry = await session.get(LedgerEntry, entry_id)
                entry.amount = 1_000_000
                await session.flush()

        async with DatabaseService.get_session() as session:
            entry = await session.get(LedgerEntry, entry_id)
            assert entry.amount == 10

    async def test_delete_is_refused(self, database):
        entry_id = await self._seed_entry()

        with pytest.raises(LedgerImmutableError):
            async with DatabaseService.get_transaction() as session:
                entry = await session.get(LedgerEntry, entry_id)
                await session.delete(entry)
                await session.flush()

        async with DatabaseService.get_session() as session:
            rows = (await session.execute(select(LedgerEntry.id))).scalars().all()
            assert rows == [entry_id]
