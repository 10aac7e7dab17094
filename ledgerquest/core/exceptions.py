"""
Infrastructure exceptions for LedgerQuest.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
storage failures, transaction timeouts, configuration errors and ledger
integrity violations.

Design Notes
------------
- All infrastructure exceptions inherit from `LedgerQuestInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- Game-rule failures live in `ledgerquest.modules.shared.exceptions`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled (e.g., retryable errors)
    ERROR = "error"
    CRITICAL = "critical"  # Integrity or configuration failures


class LedgerQuestInfrastructureException(Exception):
    """
    Base exception for all LedgerQuest infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ConfigurationError(LedgerQuestInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
            error_code="CONFIG_ERROR",
        )


class StorageUnavailableError(LedgerQuestInfrastructureException):
    """
    Raised when the backing store cannot complete a unit of work.

    Wraps driver-level failures (connection loss, lock timeouts, serialization
    failures). The unit of work was rolled back, so retrying it is safe.

    Args:
        operation: Description of the storage operation that failed
        original_error: The underlying exception, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        original_error: Optional[BaseException] = None,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "STORAGE_UNAVAILABLE",
    ) -> None:
        self.operation = operation
        self.original_error = original_error
        reason = message or (str(original_error) if original_error else "unavailable")
        merged = {
            "operation": operation,
            "error_type": type(original_error).__name__ if original_error else None,
            **(details or {}),
        }
        super().__init__(
            f"Storage error during {operation}: {reason}",
            details=merged,
            error_code=error_code,
        )


class TransactionTimeoutError(StorageUnavailableError):
    """
    Raised when a unit of work exceeds the caller's deadline before its
    commit started.

    The transaction has been rolled back; no partial effect is visible, so
    retrying cannot apply the change twice.
    """

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            operation,
            message=f"timed out after {timeout_seconds:.3f}s",
            details={"timeout_seconds": timeout_seconds},
            error_code="TRANSACTION_TIMEOUT",
        )


class CircuitBreakerOpenError(StorageUnavailableError):
    """
    Raised when the database circuit breaker is rejecting requests.

    Args:
        breaker_name: Name of the breaker
        retry_after: Seconds until the breaker probes again
    """

    def __init__(self, breaker_name: str, retry_after: float) -> None:
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(
            f"circuit:{breaker_name}",
            message=f"circuit breaker open, retry after {retry_after:.1f}s",
            details={"breaker": breaker_name, "retry_after": retry_after},
            error_code="CIRCUIT_BREAKER_OPEN",
        )


class LedgerImmutableError(LedgerQuestInfrastructureException):
    """Raised when code attempts to update or delete a ledger entry."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, entry_id: Optional[int], action: str) -> None:
        self.entry_id = entry_id
        self.action = action
        super().__init__(
            f"Ledger entries are append-only; refused {action} of entry {entry_id}",
            details={"entry_id": entry_id, "action": action},
            error_code="LEDGER_IMMUTABLE",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: BaseException) -> bool:
    """True if the exception is an infrastructure error that may be retried."""
    if isinstance(exc, LedgerQuestInfrastructureException):
        return exc.is_retryable
    return False


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    severity = getattr(exc, "severity", None)
    if isinstance(severity, ErrorSeverity):
        return severity
    return ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    """
    Determine if an exception should trigger alerting.

    Returns:
        True if severity is ERROR or CRITICAL, False otherwise.
    """
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
