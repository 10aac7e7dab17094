"""Unit tests for the exception hierarchy and its helper predicates."""

import pytest

from ledgerquest.core.exceptions import (
    CircuitBreakerOpenError,
    ConfigurationError,
    ErrorSeverity,
    LedgerImmutableError,
    StorageUnavailableError,
    TransactionTimeoutError,
    is_transient_error,
    should_alert,
)
from ledgerquest.modules.shared.exceptions import (
    AlreadyClaimedError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)


class TestInfrastructureExceptions:
    def test_storage_error_is_retryable(self):
        exc = StorageUnavailableError("commit", RuntimeError("connection reset"))
        assert exc.is_retryable
        assert is_transient_error(exc)
        assert exc.details["error_type"] == "RuntimeError"
        assert "connection reset" in exc.message

    def test_timeout_and_breaker_are_storage_errors(self):
        assert isinstance(TransactionTimeoutError("claim", 0.5), StorageUnavailableError)
        assert isinstance(CircuitBreakerOpenError("database", 3.0), StorageUnavailableError)

    def test_timeout_reports_deadline(self):
        exc = TransactionTimeoutError("daily.claim", 0.25)
        assert exc.error_code == "TRANSACTION_TIMEOUT"
        assert exc.details["timeout_seconds"] == 0.25

    def test_configuration_error_alerts(self):
        exc = ConfigurationError("quests.catalog", "empty")
        assert exc.severity is ErrorSeverity.CRITICAL
        assert should_alert(exc)
        assert not is_transient_error(exc)

    def test_ledger_immutable_to_dict(self):
        payload = LedgerImmutableError(7, "update").to_dict()
        assert payload["error_code"] == "LEDGER_IMMUTABLE"
        assert payload["details"] == {"entry_id": 7, "action": "update"}

    def test_plain_exceptions_are_not_transient(self):
        assert not is_transient_error(ValueError("nope"))
        assert should_alert(ValueError("nope"))


class TestGameRuleExceptions:
    def test_insufficient_funds_carries_amounts(self):
        exc = InsufficientFundsError("acct-1", required=200, current=130)
        assert exc.required == 200
        assert exc.current == 130

    def test_already_claimed_names_the_reward(self):
        exc = AlreadyClaimedError("daily_reward", 20158)
        assert "daily_reward" in str(exc)

    @pytest.mark.parametrize(
        "exc",
        [
            NotFoundError("Quest", 42),
            ValidationError("amount", "must not be zero"),
        ],
    )
    def test_game_rule_errors_do_not_alert(self, exc):
        assert not should_alert(exc)


def test_already_claimed_is_a_benign_retry_outcome():
    from ledgerquest.modules.shared.exceptions import is_benign_retry_outcome, is_domain_error

    assert is_benign_retry_outcome(AlreadyClaimedError("quest", 3))
    assert not is_benign_retry_outcome(InsufficientFundsError("a", 1, 0))
    assert is_domain_error(NotFoundError("Account"))
    assert not is_domain_error(StorageUnavailableError("commit"))
