"""Unit tests for InputValidator."""

import pytest

from ledgerquest.core.validation.input_validator import InputValidator
from ledgerquest.modules.shared.exceptions import ValidationError


class TestDelta:
    @pytest.mark.parametrize("value", [1, -1, 10, -10])
    def test_accepts_signed_amounts(self, value):
        assert InputValidator.validate_delta(value, max_abs=10) == value

    @pytest.mark.parametrize("value", [0, 11, -11, 1.5, True, None, "5"])
    def test_rejects_bad_amounts(self, value):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_delta(value, max_abs=10)
        assert exc_info.value.field == "amount"


class TestAccountId:
    @pytest.mark.parametrize("value", ["player-1", "a", "user@example.com", "guild:42_x"])
    def test_accepts(self, value):
        assert InputValidator.validate_account_id(value) == value

    @pytest.mark.parametrize("value", ["", " leading", "-dash", "x" * 65, 42, None])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            InputValidator.validate_account_id(value)


class TestStringAndChoice:
    def test_string_is_stripped(self):
        assert InputValidator.validate_string("  hello ", "description") == "hello"

    def test_string_too_long(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_string("x" * 300, "description")

    def test_blank_string(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_string("   ", "description")

    def test_choice(self):
        assert InputValidator.validate_choice("email", "predicate_key", ["email", "mfa"]) == "email"
        with pytest.raises(ValidationError):
            InputValidator.validate_choice("sms", "predicate_key", ["email", "mfa"])


def test_positive_integer_bounds():
    assert InputValidator.validate_positive_integer(5, "limit", max_value=500) == 5
    with pytest.raises(ValidationError):
        InputValidator.validate_positive_integer(0, "limit")
    with pytest.raises(ValidationError):
        InputValidator.validate_positive_integer(501, "limit", max_value=500)
