"""Unit tests for DatabaseRetryPolicy classification and attempts."""

import pytest

from ledgerquest.core.exceptions import (
    CircuitBreakerOpenError,
    StorageUnavailableError,
    TransactionTimeoutError,
)
from ledgerquest.modules.shared.exceptions import InsufficientFundsError


class _Flaky:
    def __init__(self, failures, exc_factory, result="done"):
        self.failures = failures
        self.exc_factory = exc_factory
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc_factory()
        return self.result


async def test_transient_failure_is_retried(retry_policy):
    operation = _Flaky(2, lambda: StorageUnavailableError("commit"))
    assert await retry_policy.execute(operation, operation_name="test") == "done"
    assert operation.calls == 3


async def test_retries_are_bounded(retry_policy):
    operation = _Flaky(10, lambda: StorageUnavailableError("commit"))
    with pytest.raises(StorageUnavailableError):
        await retry_policy.execute(operation, operation_name="test")
    assert operation.calls == retry_policy.config.max_attempts


@pytest.mark.parametrize(
    "exc_factory",
    [
        lambda: TransactionTimeoutError("claim", 0.1),
        lambda: CircuitBreakerOpenError("database", 10.0),
        lambda: InsufficientFundsError("a", 10, 0),
        lambda: ValueError("bug"),
    ],
)
async def test_non_retriable_errors_propagate_immediately(retry_policy, exc_factory):
    operation = _Flaky(1, exc_factory)
    with pytest.raises(Exception):
        await retry_policy.execute(operation, operation_name="test")
    assert operation.calls == 1


def test_backoff_is_exponential_and_capped(retry_policy):
    assert retry_policy._compute_backoff_ms(1) == 1
    assert retry_policy._compute_backoff_ms(2) == 2
    assert retry_policy._compute_backoff_ms(3) == 4
    assert retry_policy._compute_backoff_ms(10) == 5
