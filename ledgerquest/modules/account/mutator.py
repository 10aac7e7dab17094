"""
AccountMutator
==============

Purpose
-------
The only code path that changes ``Account.coins``. Every change locks the
account row, checks the result stays non-negative, writes the balance and a
ledger entry in the same transaction, and announces ``balance.changed`` once
that transaction has committed.

Transaction Modes
-----------------
- Standalone: ``apply_delta(...)`` opens its own transaction and runs it
  under the retry policy.
- Joined: ``apply_delta(..., session=session)`` runs inside the caller's
  transaction. Reward engines use this so that their eligibility check,
  their own state change and the credit commit as one unit. The
  ``balance.changed`` notification then waits for the caller's commit.

Locking
-------
``lock_account`` takes the row lock (``SELECT ... FOR UPDATE`` on
PostgreSQL; SQLite transactions already hold the write lock from ``BEGIN
IMMEDIATE``). Engines call it first so every writer for one account acquires
locks in the same order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from ledgerquest.core.database.service import DatabaseService
from ledgerquest.core.logging.logger import get_logger
from ledgerquest.core.validation.input_validator import InputValidator
from ledgerquest.database.models import Account, TransactionType
from ledgerquest.modules.shared.base_repository import BaseRepository
from ledgerquest.modules.shared.base_service import BaseService
from ledgerquest.modules.shared.exceptions import (
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from ledgerquest.core.clock import Clock
    from ledgerquest.core.config.manager import ConfigManager
    from ledgerquest.core.database.retry_policy import DatabaseRetryPolicy
    from ledgerquest.core.event.bus import EventBus
    from ledgerquest.modules.account.ledger import LedgerRecorder

DEFAULT_MAX_SINGLE_DELTA = 10_000_000


class AccountRepository(BaseRepository[Account]):
    pass


@dataclass(frozen=True)
class MutationResult:
    account_id: str
    new_balance: int
    delta: int
    transaction_type: str
    ledger_entry_id: int


class AccountMutator(BaseService):
    """
    Atomic balance changes with a matching ledger entry.

    Public Methods
    --------------
    - lock_account() -> Account row locked in the given session
    - apply_delta() -> MutationResult
    """

    component = "mutator"

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        ledger: LedgerRecorder,
        *,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(
            config_manager, event_bus, logger, retry_policy=retry_policy, clock=clock
        )
        self._ledger = ledger
        self._accounts = AccountRepository(
            Account, get_logger(f"{__name__}.AccountRepository")
        )

    @property
    def max_single_delta(self) -> int:
        return int(self.get_config("economy.max_single_delta", DEFAULT_MAX_SINGLE_DELTA))

    async def lock_account(self, session: AsyncSession, account_id: str) -> Account:
        """
        Lock and return the account row.

        Raises:
            NotFoundError: If the account does not exist
        """
        account = await self._accounts.get(session, account_id, for_update=True)
        if account is None:
            raise NotFoundError("Account", account_id)
        return account

    async def apply_delta(
        self,
        account_id: str,
        amount: int,
        transaction_type: TransactionType | str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        session: Optional[AsyncSession] = None,
        correlation_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> MutationResult:
        """
        Add ``amount`` (signed) to the account's balance and record it.

        Args:
            account_id: Account to change
            amount: Non-zero signed delta, ``|amount| <= economy.max_single_delta``
            transaction_type: Ledger category
            description: Human-readable reason stored on the entry
            metadata: Optional structured context stored on the entry
            session: Join this transaction instead of opening one
            correlation_id: Override the log-context correlation id
            timeout: Deadline in seconds (standalone mode only)

        Raises:
            ValidationError: Zero or out-of-bounds amount, bad type or description
            NotFoundError: Unknown account
            InsufficientFundsError: A debit would take the balance below zero
        """
        account_id = InputValidator.validate_account_id(account_id)
        amount = InputValidator.validate_delta(amount, self.max_single_delta)
        description = InputValidator.validate_string(description, "description")
        try:
            tx_type = TransactionType(transaction_type)
        except ValueError:
            raise ValidationError(
                "transaction_type", f"Unknown transaction type: {transaction_type!r}"
            ) from None

        if session is not None:
            return await self._apply(
                session, account_id, amount, tx_type, description, metadata, correlation_id
            )

        async def work() -> MutationResult:
            async with DatabaseService.get_transaction() as tx:
                return await self._apply(
                    tx, account_id, amount, tx_type, description, metadata, correlation_id
                )

        return await self.run_unit(
            "account.apply_delta",
            work,
            timeout=timeout,
            account_id=account_id,
            amount=amount,
            transaction_type=tx_type.value,
        )

    async def _apply(
        self,
        session: AsyncSession,
        account_id: str,
        amount: int,
        tx_type: TransactionType,
        description: str,
        metadata: Optional[Dict[str, Any]],
        correlation_id: Optional[str],
    ) -> MutationResult:
        account = await self.lock_account(session, account_id)

        old_balance = account.coins
        new_balance = old_balance + amount
        if new_balance < 0:
            self.log.info(
                "Debit rejected: insufficient funds",
                extra={
                    "account_id": account_id,
                    "balance": old_balance,
                    "amount": amount,
                    "transaction_type": tx_type.value,
                },
            )
            raise InsufficientFundsError(account_id, required=-amount, current=old_balance)

        account.coins = new_balance
        entry = await self._ledger.append(
            session,
            account_id,
            amount,
            tx_type,
            description,
            resulting_balance=new_balance,
            metadata=metadata,
            correlation_id=correlation_id,
        )

        result = MutationResult(
            account_id=account_id,
            new_balance=new_balance,
            delta=amount,
            transaction_type=tx_type.value,
            ledger_entry_id=entry.id,
        )

        self.emit_after_commit(
            session,
            "balance.changed",
            {
                "account_id": account_id,
                "new_balance": new_balance,
                "delta": amount,
                "type": tx_type.value,
                "ledger_entry_id": entry.id,
            },
        )

        self.log.info(
            f"Balance changed: {amount:+d} ({tx_type.value})",
            extra={
                "account_id": account_id,
                "old_balance": old_balance,
                "new_balance": new_balance,
                "delta": amount,
                "ledger_entry_id": entry.id,
            },
        )
        return result
