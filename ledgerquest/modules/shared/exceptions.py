"""
Domain exceptions for the LedgerQuest economy.

Purpose
-------
Define the structured exception hierarchy for game-rule outcomes: spending
more than the balance, claiming a reward twice, rerolling without budget.
These are normal, expected results of player actions and are reported to
callers as typed errors with stable codes.

Design Notes
------------
- All domain exceptions inherit from `LedgerQuestDomainException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and a stable `error_code`.
- A domain exception raised inside a unit of work rolls the whole unit back;
  none of them leave partial state behind.
- Infrastructure failures live in `ledgerquest.core.exceptions`.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ledgerquest.core.exceptions import ErrorSeverity


class LedgerQuestDomainException(Exception):
    """
    Base exception for all game-rule errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.INFO
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


class InsufficientFundsError(LedgerQuestDomainException):
    """
    Raised when a debit would take a balance below zero.

    Args:
        account_id: Account being debited
        required: Coins the debit needs
        current: Coins the account holds
    """

    def __init__(self, account_id: str, required: int, current: int) -> None:
        self.account_id = account_id
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient coins: need {required:,}, have {current:,}",
            details={
                "account_id": account_id,
                "required": required,
                "current": current,
                "deficit": required - current,
            },
            error_code="INSUFFICIENT_FUNDS",
        )


class AlreadyClaimedError(LedgerQuestDomainException):
    """
    Raised when a reward has already been granted.

    A client retrying a claim whose first attempt succeeded sees this error;
    callers treat it as a benign outcome (see ``is_benign_retry_outcome``).

    Args:
        reward: What was claimed ("daily_reward", "quest", "security:email")
        identifier: Day, quest id or predicate key
    """

    def __init__(self, reward: str, identifier: Optional[Any] = None) -> None:
        self.reward = reward
        self.identifier = identifier
        suffix = f" ({identifier})" if identifier is not None else ""
        super().__init__(
            f"{reward} already claimed{suffix}",
            details={"reward": reward, "identifier": identifier},
            error_code="ALREADY_CLAIMED",
        )


class NotCompletedError(LedgerQuestDomainException):
    """Raised when claiming a quest whose progress has not reached its target."""

    def __init__(self, quest_id: int, progress: int, target: int) -> None:
        self.quest_id = quest_id
        super().__init__(
            f"Quest {quest_id} is not completed ({progress}/{target})",
            details={"quest_id": quest_id, "progress": progress, "target": target},
            error_code="NOT_COMPLETED",
        )


class PredicateNotSatisfiedError(LedgerQuestDomainException):
    """Raised when a security reward is claimed but its condition does not hold."""

    def __init__(self, account_id: str, predicate_key: str) -> None:
        self.account_id = account_id
        self.predicate_key = predicate_key
        super().__init__(
            f"Security condition '{predicate_key}' is not satisfied",
            details={"account_id": account_id, "predicate_key": predicate_key},
            error_code="PREDICATE_NOT_SATISFIED",
        )


class NoRerollsRemainingError(LedgerQuestDomainException):
    """Raised when the daily reroll budget is spent."""

    def __init__(self, account_id: str, cap: int) -> None:
        self.account_id = account_id
        super().__init__(
            f"No quest rerolls remaining today (cap {cap})",
            details={"account_id": account_id, "cap": cap},
            error_code="NO_REROLLS_REMAINING",
        )


class CannotRerollCompletedError(LedgerQuestDomainException):
    """Raised when rerolling a quest that is already completed or claimed."""

    def __init__(self, quest_id: int) -> None:
        self.quest_id = quest_id
        super().__init__(
            f"Quest {quest_id} is completed and cannot be rerolled",
            details={"quest_id": quest_id},
            error_code="CANNOT_REROLL_COMPLETED",
        )


class NotFoundError(LedgerQuestDomainException):
    """
    Raised when a requested entity does not exist (or belongs to another account).

    Args:
        resource_type: Type of resource (e.g., "Account", "Quest")
        identifier: Optional identifier for the missing resource
    """

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(LedgerQuestDomainException):
    """
    Raised when an input fails validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


# Utility functions for exception handling patterns


def is_benign_retry_outcome(exc: BaseException) -> bool:
    """
    True when a failed retry means the original attempt already succeeded.

    A client that resends a claim after a lost response gets
    ``AlreadyClaimedError``; the reward was granted exactly once.
    """
    return isinstance(exc, AlreadyClaimedError)


def is_domain_error(exc: BaseException) -> bool:
    return isinstance(exc, LedgerQuestDomainException)
