"""
Database Retry Policy
=====================

Purpose
-------
Re-run a whole unit of work when the store reports a transient failure
(lock timeout, dropped connection, serialization failure). Uses exponential
backoff with jitter so concurrent writers do not retry in lockstep.

Retry Pattern
-------------
The retried callable must open its own transaction so each attempt starts
from a clean slate:

>>> async def operation():
>>>     async with DatabaseService.get_transaction() as session:
>>>         ...
>>>
>>> await retry_policy.execute(operation, operation_name="daily.claim")

Never retry inside an open transaction.

Classification
--------------
- ``StorageUnavailableError`` is retried (``DatabaseService`` wraps driver
  errors into it after rolling back).
- ``TransactionTimeoutError`` and ``CircuitBreakerOpenError`` are not: the
  caller's deadline is spent, or the breaker asked us to fail fast.
- Domain exceptions propagate immediately.

Configuration
-------------
- DATABASE_RETRY_MAX_ATTEMPTS (default: 3)
- DATABASE_RETRY_INITIAL_BACKOFF_MS (default: 50)
- DATABASE_RETRY_MAX_BACKOFF_MS (default: 1000)
- DATABASE_RETRY_JITTER_MS (default: 50)
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from ledgerquest.core.config.config import Config
from ledgerquest.core.exceptions import (
    CircuitBreakerOpenError,
    StorageUnavailableError,
    TransactionTimeoutError,
)
from ledgerquest.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class DatabaseRetryConfig:
    """
    Configuration for database retry behavior.

    Attributes
    ----------
    max_attempts : int
        Maximum number of attempts (including initial attempt).
    initial_backoff_ms : int
        Initial backoff duration in milliseconds.
    max_backoff_ms : int
        Maximum backoff duration in milliseconds.
    jitter_ms : int
        Maximum random jitter to add to backoff in milliseconds.
    """

    max_attempts: int
    initial_backoff_ms: int
    max_backoff_ms: int
    jitter_ms: int
    retriable_exceptions: Tuple[Type[BaseException], ...] = (StorageUnavailableError,)
    fatal_exceptions: Tuple[Type[BaseException], ...] = (
        TransactionTimeoutError,
        CircuitBreakerOpenError,
    )

    @classmethod
    def from_config(cls) -> "DatabaseRetryConfig":
        return cls(
            max_attempts=Config.DATABASE_RETRY_MAX_ATTEMPTS,
            initial_backoff_ms=Config.DATABASE_RETRY_INITIAL_BACKOFF_MS,
            max_backoff_ms=Config.DATABASE_RETRY_MAX_BACKOFF_MS,
            jitter_ms=Config.DATABASE_RETRY_JITTER_MS,
        )


class DatabaseRetryPolicy:
    """
    Execute async units of work with retry semantics.

    Public API
    ----------
    - from_config() -> policy configured from ``Config``
    - execute(operation, operation_name, context) -> result of ``operation``
    """

    def __init__(self, config: DatabaseRetryConfig) -> None:
        self._config = config

    @classmethod
    def from_config(cls) -> "DatabaseRetryPolicy":
        return cls(DatabaseRetryConfig.from_config())

    @property
    def config(self) -> DatabaseRetryConfig:
        return self._config

    def _is_retriable(self, exc: BaseException) -> bool:
        if isinstance(exc, self._config.fatal_exceptions):
            return False
        return isinstance(exc, self._config.retriable_exceptions)

    def _compute_backoff_ms(self, attempt: int) -> int:
        """Exponential backoff ``initial * 2^(attempt-1)``, capped, plus jitter."""
        exponent = max(attempt - 1, 0)
        capped = min(
            self._config.initial_backoff_ms * (2**exponent),
            self._config.max_backoff_ms,
        )
        jitter = (
            random.randint(0, self._config.jitter_ms)
            if self._config.jitter_ms > 0
            else 0
        )
        return capped + jitter

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds, fails permanently, or attempts run out.

        Raises
        ------
        BaseException
            The last exception when retries are exhausted, or the first
            non-retriable one.
        """
        ctx_extra = dict(context or {})
        ctx_extra["retry_operation"] = operation_name

        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                if not self._is_retriable(exc):
                    raise

                will_retry = attempt < self._config.max_attempts
                logger.warning(
                    "Storage operation failed",
                    extra={
                        **ctx_extra,
                        "attempt": attempt,
                        "error_type": type(exc).__name__,
                        "will_retry": will_retry,
                    },
                )
                if not will_retry:
                    logger.error(
                        "Storage operation retries exhausted",
                        extra={
                            **ctx_extra,
                            "attempt": attempt,
                            "max_attempts": self._config.max_attempts,
                        },
                    )
                    raise

                backoff_ms = self._compute_backoff_ms(attempt)
                logger.debug(
                    "Backing off before retry",
                    extra={**ctx_extra, "attempt": attempt, "backoff_ms": backoff_ms},
                )
                await asyncio.sleep(backoff_ms / 1000.0)
