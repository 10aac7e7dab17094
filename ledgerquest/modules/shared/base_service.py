"""
Base Service Foundation

Purpose
-------
Common parent for every LedgerQuest domain service. Services hold business
rules, run units of work against the database, and publish domain events.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access over the loaded ``ConfigManager``
- Event emission helpers, including "publish after commit"
- ``run_unit``: the retry + deadline + log-context envelope that every write
  operation goes through. After-commit events of the unit are published once
  the unit has returned, outside its deadline.

What this class does NOT do:
- Open transactions itself (the unit passed to ``run_unit`` does that, so each
  retry attempt starts from a clean transaction)
- Hold SQLAlchemy sessions between calls

Usage
-----
    class DailyRewardService(BaseService):
        async def claim(self, account_id, *, timeout=None):
            async def work():
                async with DatabaseService.get_transaction() as session:
                    ...
            return await self.run_unit("daily.claim", work, account_id=account_id)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, TypeVar

from ledgerquest.core.clock import SystemClock, resolve_timezone
from ledgerquest.core.database.service import CommitScope, DatabaseService
from ledgerquest.core.exceptions import ConfigurationError, TransactionTimeoutError
from ledgerquest.core.logging.logger import LogContext

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from ledgerquest.core.clock import Clock
    from ledgerquest.core.config.manager import ConfigManager
    from ledgerquest.core.database.retry_policy import DatabaseRetryPolicy
    from ledgerquest.core.event.bus import EventBus

T = TypeVar("T")


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Loaded game tunables
        event_bus: Event bus for cross-module notifications
        logger: Structured logger instance
        retry_policy: Retry policy for units of work; ``None`` runs each unit once
        clock: Server clock; defaults to the system clock in the canonical zone
    """

    component: str = "service"

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self._retry = retry_policy
        self.log = logger
        self.clock = clock or SystemClock(
            resolve_timezone(config_manager.get("economy.canonical_timezone", "UTC"))
        )

    # =========================================================================
    # CONFIG
    # =========================================================================

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Safely retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    # =========================================================================
    # EVENTS
    # =========================================================================

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self._events.publish(event_type, {**data, **(context or {})})

    def emit_after_commit(
        self,
        session: AsyncSession,
        event_type: str,
        data: Dict[str, Any],
    ) -> None:
        """
        Queue an event on ``session``; it is published only if the
        transaction commits and dropped on rollback.
        """

        async def _publish() -> None:
            await self.emit_event(event_type, data)

        DatabaseService.after_commit(session, _publish)

    # =========================================================================
    # UNITS OF WORK
    # =========================================================================

    async def run_unit(
        self,
        operation: str,
        work: Callable[[], Awaitable[T]],
        *,
        timeout: Optional[float] = None,
        account_id: Optional[str] = None,
        **context: Any,
    ) -> T:
        """
        Run ``work`` under the retry policy and an optional deadline.

        ``work`` must open its own transaction. A deadline covers every
        attempt up to the commit. When it expires first, the running
        transaction is cancelled (and so rolled back) and
        ``TransactionTimeoutError`` is raised. Once a commit has started the
        unit is allowed to finish. Events queued with ``emit_after_commit``
        are published after that, so slow listeners never count against the
        deadline.
        """
        async with LogContext(
            account_id=account_id,
            component=self.component,
            operation=operation,
        ):
            if self._retry is not None:
                retry = self._retry

                async def attempt() -> T:
                    return await retry.execute(
                        work,
                        operation_name=operation,
                        context={"account_id": account_id, **context},
                    )
            else:
                attempt = work

            scope = CommitScope()
            try:
                with DatabaseService.defer_after_commit() as scope:
                    if timeout is None:
                        return await attempt()
                    return await self._await_with_deadline(
                        operation, attempt, timeout, scope, context
                    )
            finally:
                await DatabaseService.run_deferred(scope)

    async def _await_with_deadline(
        self,
        operation: str,
        attempt: Callable[[], Awaitable[T]],
        timeout: float,
        scope: CommitScope,
        context: Dict[str, Any],
    ) -> T:
        task = asyncio.ensure_future(attempt())
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if done:
            return task.result()

        if scope.commit_started:
            # The data may already be durable; report the real outcome.
            self.log.warning(
                f"Deadline passed during commit; waiting for it: {operation}",
                extra={"operation": operation, "timeout_seconds": timeout, **context},
            )
            return await task

        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            self.log.warning(
                f"Unit of work failed while being cancelled: {operation}",
                extra={"operation": operation, "error_type": type(task.exception()).__name__},
            )
        self.log.warning(
            f"Unit of work timed out: {operation}",
            extra={"operation": operation, "timeout_seconds": timeout, **context},
        )
        raise TransactionTimeoutError(operation, timeout)

    # =========================================================================
    # LOGGING
    # =========================================================================

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

