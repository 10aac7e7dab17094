"""
Input Validation Layer for LedgerQuest

Purpose
-------
Centralized validation for every value that crosses the service boundary:
account ids, coin amounts, quest types, predicate keys, ledger page sizes.
Fails fast with ``ValidationError`` before any transaction is opened.

Non-Responsibilities
--------------------
- Business rules (eligibility, balances): service layer concern.
- Database constraints: schema concern.

Observability
-------------
Every failure is logged at debug level with field name, raw value and reason.
"""

from __future__ import annotations

import re
from typing import Any, NoReturn, Optional, Sequence

from ledgerquest.core.logging.logger import get_logger
from ledgerquest.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

ACCOUNT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:@-]{0,63}$")
MAX_DESCRIPTION_LENGTH = 255


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Stateless validators that return the normalized value or raise
    ``ValidationError``.
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        allow_zero: bool = True,
    ) -> int:
        """
        Validate an integer with optional bounds.

        Booleans and floats are rejected; coin amounts are whole numbers.
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool) or not isinstance(value, int):
            _raise_validation_error(
                field_name,
                value,
                f"Must be a whole number, got {type(value).__name__}",
            )

        if not allow_zero and value == 0:
            _raise_validation_error(field_name, value, "Cannot be zero")

        if min_value is not None and value < min_value:
            _raise_validation_error(
                field_name, value, f"Must be at least {min_value}, got {value}"
            )

        if max_value is not None and value > max_value:
            _raise_validation_error(
                field_name, value, f"Cannot exceed {max_value}, got {value}"
            )

        return value

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        return InputValidator.validate_integer(
            value, field_name, min_value=1, max_value=max_value, allow_zero=False
        )

    @staticmethod
    def validate_delta(value: Any, max_abs: int, field_name: str = "amount") -> int:
        """A signed, non-zero coin delta with ``|value| <= max_abs``."""
        return InputValidator.validate_integer(
            value,
            field_name,
            min_value=-max_abs,
            max_value=max_abs,
            allow_zero=False,
        )

    # =========================================================================
    # STRING VALIDATION
    # =========================================================================

    @staticmethod
    def validate_account_id(value: Any, field_name: str = "account_id") -> str:
        """Opaque account identifier: 1-64 chars, alphanumerics plus ``_.:@-``."""
        if not isinstance(value, str):
            _raise_validation_error(field_name, value, "Must be a string")
        if not ACCOUNT_ID_PATTERN.match(value):
            _raise_validation_error(
                field_name,
                value,
                "Must be 1-64 characters of letters, digits or _.:@-",
            )
        return value

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: int = 1,
        max_length: int = MAX_DESCRIPTION_LENGTH,
    ) -> str:
        if not isinstance(value, str):
            _raise_validation_error(field_name, value, "Must be a string")

        stripped = value.strip()
        if len(stripped) < min_length:
            _raise_validation_error(
                field_name, value, f"Must be at least {min_length} characters"
            )
        if len(stripped) > max_length:
            _raise_validation_error(
                field_name, value, f"Cannot exceed {max_length} characters"
            )
        return stripped

    @staticmethod
    def validate_choice(value: Any, field_name: str, choices: Sequence[str]) -> str:
        if value not in choices:
            _raise_validation_error(
                field_name,
                value,
                f"Must be one of: {', '.join(str(c) for c in choices)}",
            )
        return value
