"""
AccountService
==============

Purpose
-------
Account lifecycle and balance reads. Balances are never written here except
through AccountMutator (the optional starting balance on registration).

Public Methods
--------------
- register() -> AccountView
- get_account() / get_balance() -> read only
- update_security_profile() -> boundary for the identity layer
- delete_account() -> removes the account and every dependent row
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy.exc import IntegrityError

from ledgerquest.core.database.service import DatabaseService
from ledgerquest.core.logging.logger import get_logger
from ledgerquest.core.validation.input_validator import InputValidator
from ledgerquest.database.models import Account, TransactionType
from ledgerquest.modules.account.mutator import AccountRepository
from ledgerquest.modules.shared.base_service import BaseService
from ledgerquest.modules.shared.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from ledgerquest.core.clock import Clock
    from ledgerquest.core.config.manager import ConfigManager
    from ledgerquest.core.database.retry_policy import DatabaseRetryPolicy
    from ledgerquest.core.event.bus import EventBus
    from ledgerquest.modules.account.mutator import AccountMutator


@dataclass(frozen=True)
class AccountView:
    account_id: str
    coins: int
    email_verified: bool
    mfa_enabled: bool
    password_changed_at: Optional[datetime]

    @classmethod
    def from_model(cls, account: Account) -> "AccountView":
        return cls(
            account_id=account.id,
            coins=account.coins,
            email_verified=account.email_verified,
            mfa_enabled=account.mfa_enabled,
            password_changed_at=account.password_changed_at,
        )


class AccountService(BaseService):
    component = "account"

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        mutator: AccountMutator,
        *,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(
            config_manager, event_bus, logger, retry_policy=retry_policy, clock=clock
        )
        self._mutator = mutator
        self._accounts = AccountRepository(
            Account, get_logger(f"{__name__}.AccountRepository")
        )

    # ========================================================================
    # WRITE OPERATIONS
    # ========================================================================

    async def register(
        self,
        account_id: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
    ) -> AccountView:
        """
        Create an account with a zero balance.

        A configured ``economy.starting_balance`` is then credited through
        AccountMutator in the same transaction, so the ledger still replays
        to the balance.

        Raises:
            ValidationError: Malformed id, or an account with this id exists
        """
        account_id = InputValidator.validate_account_id(account_id or uuid.uuid4().hex)
        starting_balance = int(self.get_config("economy.starting_balance", 0))

        self.log_operation("register", account_id=account_id)

        async def work() -> AccountView:
            async with DatabaseService.get_transaction() as session:
                if await self._accounts.get(session, account_id) is not None:
                    raise ValidationError("account_id", f"Account {account_id} already exists")

                account = self._accounts.add(session, Account(id=account_id, coins=0))
                await self._accounts.flush(session)

                if starting_balance > 0:
                    await self._mutator.apply_delta(
                        account_id,
                        starting_balance,
                        TransactionType.GIFT_RECEIVED,
                        "Starting balance",
                        {"source": "registration"},
                        session=session,
                    )
                return AccountView.from_model(account)

        try:
            view = await self.run_unit("account.register", work, timeout=timeout, account_id=account_id)
        except IntegrityError as exc:
            # Concurrent registration of the same id.
            raise ValidationError("account_id", f"Account {account_id} already exists") from exc

        await self.emit_event("account.registered", {"account_id": account_id, "coins": view.coins})
        return view

    async def update_security_profile(
        self,
        account_id: str,
        *,
        email_verified: Optional[bool] = None,
        mfa_enabled: Optional[bool] = None,
        password_changed_at: Optional[datetime] = None,
        timeout: Optional[float] = None,
    ) -> AccountView:
        """Record security facts published by the identity layer."""
        account_id = InputValidator.validate_account_id(account_id)
        if password_changed_at is not None and password_changed_at.tzinfo is None:
            raise ValidationError("password_changed_at", "Must be timezone-aware")

        async def work() -> AccountView:
            async with DatabaseService.get_transaction() as session:
                account = await self._mutator.lock_account(session, account_id)
                if email_verified is not None:
                    account.email_verified = email_verified
                if mfa_enabled is not None:
                    account.mfa_enabled = mfa_enabled
                if password_changed_at is not None:
                    account.password_changed_at = password_changed_at
                return AccountView.from_model(account)

        view = await self.run_unit(
            "account.update_security_profile", work, timeout=timeout, account_id=account_id
        )
        self.log.info(
            "Security profile updated",
            extra={
                "account_id": account_id,
                "email_verified": view.email_verified,
                "mfa_enabled": view.mfa_enabled,
            },
        )
        return view

    async def delete_account(self, account_id: str, *, timeout: Optional[float] = None) -> None:
        """
        Delete the account. Ledger, streak, quests, reroll budget and grants
        go with it through ``ON DELETE CASCADE``.

        Raises:
            NotFoundError: If the account does not exist
        """
        account_id = InputValidator.validate_account_id(account_id)
        self.log_operation("delete_account", account_id=account_id)

        async def work() -> None:
            async with DatabaseService.get_transaction() as session:
                account = await self._mutator.lock_account(session, account_id)
                await self._accounts.delete(session, account)

        await self.run_unit("account.delete", work, timeout=timeout, account_id=account_id)
        await self.emit_event("account.deleted", {"account_id": account_id})

    # ========================================================================
    # READ OPERATIONS
    # ========================================================================

    async def get_account(self, account_id: str) -> AccountView:
        account_id = InputValidator.validate_account_id(account_id)
        async with DatabaseService.get_session() as session:
            account = await self._accounts.get(session, account_id)
            if account is None:
                raise NotFoundError("Account", account_id)
            return AccountView.from_model(account)

    async def get_balance(self, account_id: str) -> int:
        return (await self.get_account(account_id)).coins
