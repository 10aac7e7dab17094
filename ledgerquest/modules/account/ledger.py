"""
LedgerRecorder
==============

Purpose
-------
Append-only audit trail of every coin movement. One entry is written in the
same transaction as the balance change it describes, so the ledger and the
balance commit or roll back together.

Domain
------
- ``append``: called only by AccountMutator, inside its transaction
- ``history``: newest-first page of an account's entries
- ``verify_account``: replay the ledger and check it reproduces the balance

Invariants
----------
- Entries are never updated or deleted (the model refuses both).
- Ordered by id, an account's entries replay to its balance: each entry's
  ``resulting_balance`` is the running sum of amounts so far.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ledgerquest.core.database.service import DatabaseService
from ledgerquest.core.exceptions import LedgerImmutableError
from ledgerquest.core.logging.logger import current_correlation_id, get_logger, new_correlation_id
from ledgerquest.core.validation.input_validator import InputValidator
from ledgerquest.database.models import Account, LedgerEntry, TransactionType
from ledgerquest.modules.shared.base_repository import BaseRepository
from ledgerquest.modules.shared.base_service import BaseService
from ledgerquest.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from ledgerquest.core.config.manager import ConfigManager
    from ledgerquest.core.event.bus import EventBus


class LedgerEntryRepository(BaseRepository[LedgerEntry]):
    """Repository for LedgerEntry. Insert and read only."""

    async def delete(self, session, instance):  # type: ignore[override]
        raise LedgerImmutableError(instance.id, "delete")

    async def delete_where(self, session, *conditions):  # type: ignore[override]
        raise LedgerImmutableError(None, "delete")


@dataclass(frozen=True)
class LedgerAudit:
    """Result of replaying one account's ledger against its balance."""

    account_id: str
    balance: int
    ledger_sum: int
    entry_count: int
    first_mismatch_entry_id: Optional[int] = None

    @property
    def consistent(self) -> bool:
        return self.balance == self.ledger_sum and self.first_mismatch_entry_id is None


class LedgerRecorder(BaseService):
    """
    Writes and reads ledger entries.

    Public Methods
    --------------
    - append() -> LedgerEntry (inside the caller's transaction)
    - history() -> newest-first entries
    - verify_account() -> LedgerAudit
    """

    component = "ledger"

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._entries = LedgerEntryRepository(
            LedgerEntry, get_logger(f"{__name__}.LedgerEntryRepository")
        )

    async def append(
        self,
        session: AsyncSession,
        account_id: str,
        amount: int,
        transaction_type: TransactionType | str,
        description: str,
        resulting_balance: int,
        metadata: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ) -> LedgerEntry:
        """
        Stage one entry on ``session`` and flush it to obtain its id.

        The caller owns the transaction; nothing here commits.
        """
        entry = LedgerEntry(
            account_id=account_id,
            amount=amount,
            transaction_type=TransactionType(transaction_type).value,
            description=description,
            resulting_balance=resulting_balance,
            meta=dict(metadata) if metadata else None,
            correlation_id=correlation_id or current_correlation_id() or new_correlation_id(),
        )
        self._entries.add(session, entry)
        await self._entries.flush(session)

        self.log.debug(
            "Ledger entry staged",
            extra={
                "ledger_entry_id": entry.id,
                "amount": amount,
                "transaction_type": entry.transaction_type,
                "resulting_balance": resulting_balance,
            },
        )
        return entry

    async def history(
        self,
        account_id: str,
        limit: int = 50,
        before_id: Optional[int] = None,
    ) -> List[LedgerEntry]:
        """Newest entries first; ``before_id`` pages backwards."""
        account_id = InputValidator.validate_account_id(account_id)
        limit = InputValidator.validate_positive_integer(limit, "limit", max_value=500)

        conditions = [LedgerEntry.account_id == account_id]
        if before_id is not None:
            conditions.append(LedgerEntry.id < before_id)

        async with DatabaseService.get_session() as session:
            return await self._entries.find_many_where(
                session,
                *conditions,
                order_by=[LedgerEntry.id.desc()],
                limit=limit,
            )

    async def verify_account(self, account_id: str) -> LedgerAudit:
        """
        Replay the ledger in id order and compare it with the stored balance.

        Raises:
            NotFoundError: If the account does not exist
        """
        account_id = InputValidator.validate_account_id(account_id)
        self.log_operation("verify_account", account_id=account_id)

        async with DatabaseService.get_session() as session:
            account = await session.get(Account, account_id)
            if account is None:
                raise NotFoundError("Account", account_id)

            entries = await self._entries.find_many_where(
                session,
                LedgerEntry.account_id == account_id,
                order_by=[LedgerEntry.id.asc()],
            )

            running = 0
            mismatch: Optional[int] = None
            for entry in entries:
                running += entry.amount
                if mismatch is None and entry.resulting_balance != running:
                    mismatch = entry.id

            audit = LedgerAudit(
                account_id=account_id,
                balance=account.coins,
                ledger_sum=running,
                entry_count=len(entries),
                first_mismatch_entry_id=mismatch,
            )

        if not audit.consistent:
            self.log.error(
                "Ledger does not reproduce balance",
                extra={
                    "account_id": account_id,
                    "balance": audit.balance,
                    "ledger_sum": audit.ledger_sum,
                    "first_mismatch_entry_id": mismatch,
                },
            )
        return audit
