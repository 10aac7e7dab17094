"""
Circuit Breaker for Database Operations
=======================================

Purpose
-------
Fail fast when the backing store is unavailable instead of letting every
economy operation queue behind a dead connection.

Circuit States
--------------
**CLOSED**: all requests pass; consecutive storage failures are counted.
**OPEN**: requests are rejected until the recovery timeout elapses.
**HALF_OPEN**: a limited number of probe requests decide whether to close
or re-open the circuit.

Only storage failures are recorded. Domain outcomes such as insufficient
funds or an already claimed reward are successful round trips to the
database and never trip the breaker.

Configuration
-------------
- CIRCUIT_BREAKER_FAILURE_THRESHOLD (default: 5)
- CIRCUIT_BREAKER_RECOVERY_TIMEOUT (seconds, default: 60)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ledgerquest.core.config.config import Config
from ledgerquest.core.logging.logger import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerMetrics:
    """Metrics for circuit breaker monitoring."""

    state: CircuitState
    failure_count: int
    success_count: int
    consecutive_failures: int
    last_failure_time: Optional[float]
    last_state_change_time: float
    total_requests: int
    rejected_requests: int


class CircuitBreaker:
    """
    Circuit breaker guarding ``DatabaseService.get_transaction``.

    State is protected by an ``asyncio.Lock``.
    """

    def __init__(
        self,
        name: str = "database",
        failure_threshold: Optional[int] = None,
        recovery_timeout_s: Optional[float] = None,
        half_open_max_requests: int = 3,
    ) -> None:
        self.name = name
        self._failure_threshold = failure_threshold or Config.CIRCUIT_BREAKER_FAILURE_THRESHOLD
        self._recovery_timeout_s = (
            recovery_timeout_s
            if recovery_timeout_s is not None
            else float(Config.CIRCUIT_BREAKER_RECOVERY_TIMEOUT)
        )
        self._half_open_max_requests = half_open_max_requests

        self._state = CircuitState.CLOSED
        self._lock = asyncio.Lock()

        self._consecutive_failures = 0
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[float] = None
        self._last_state_change_time = time.monotonic()
        self._total_requests = 0
        self._rejected_requests = 0
        self._half_open_test_count = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    def retry_after(self) -> float:
        """Seconds until an OPEN breaker will admit a probe request."""
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return 0.0
        elapsed = time.monotonic() - self._last_failure_time
        return max(0.0, self._recovery_timeout_s - elapsed)

    async def allow_request(self) -> bool:
        async with self._lock:
            self._total_requests += 1

            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if self.retry_after() <= 0:
                    self._transition(CircuitState.HALF_OPEN)
                    self._half_open_test_count = 1
                    return True
                self._rejected_requests += 1
                return False

            if self._half_open_test_count < self._half_open_max_requests:
                self._half_open_test_count += 1
                return True
            self._rejected_requests += 1
            return False

    async def record_success(self) -> None:
        async with self._lock:
            self._success_count += 1
            self._consecutive_failures = 0
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED)

    async def record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._consecutive_failures += 1
            self._last_failure_time = time.monotonic()

            logger.warning(
                "Circuit breaker recorded failure",
                extra={
                    "breaker": self.name,
                    "state": self._state.value,
                    "consecutive_failures": self._consecutive_failures,
                    "failure_threshold": self._failure_threshold,
                },
            )

            if self._state == CircuitState.HALF_OPEN or (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self._failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        old_state = self._state
        self._state = new_state
        self._last_state_change_time = time.monotonic()
        if new_state == CircuitState.CLOSED:
            self._consecutive_failures = 0
            self._half_open_test_count = 0

        log = logger.error if new_state == CircuitState.OPEN else logger.info
        log(
            "Circuit breaker state change",
            extra={
                "breaker": self.name,
                "old_state": old_state.value,
                "new_state": new_state.value,
                "consecutive_failures": self._consecutive_failures,
                "recovery_timeout_s": self._recovery_timeout_s,
            },
        )

    def get_metrics(self) -> CircuitBreakerMetrics:
        return CircuitBreakerMetrics(
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            consecutive_failures=self._consecutive_failures,
            last_failure_time=self._last_failure_time,
            last_state_change_time=self._last_state_change_time,
            total_requests=self._total_requests,
            rejected_requests=self._rejected_requests,
        )
