"""Tests for core utility helpers."""

import pytest

from agentsql.core.utils import ValidationUtils, coalesce, parse_toggle


class TestValidationUtils:
    """Test cases for ValidationUtils."""

    def test_validate_identifier(self):
        assert ValidationUtils.validate_identifier("DEBUG")
        assert not ValidationUtils.validate_identifier("12 levels")
        assert not ValidationUtils.validate_identifier("")
        assert ValidationUtils.validate_identifier("", allow_empty=True)

    def test_validate_sql_identifier(self):
        """Schema names are interpolated, so only plain identifiers pass."""
        assert ValidationUtils.validate_sql_identifier("simulation_2")
        assert ValidationUtils.validate_sql_identifier("tmp$1")
        assert not ValidationUtils.validate_sql_identifier("sim; DROP TABLE agents")
        assert not ValidationUtils.validate_sql_identifier("a" * 129)
        assert not ValidationUtils.validate_sql_identifier("")


class TestParseToggle:
    """Test cases for parse_toggle."""

    @pytest.mark.parametrize("value", ["on", "ON", "true", "yes", "1", True, 1])
    def test_true_values(self, value):
        assert parse_toggle(value) is True

    @pytest.mark.parametrize("value", ["off", "False", " no ", "0", False, 0])
    def test_false_values(self, value):
        assert parse_toggle(value) is False

    def test_invalid_value(self):
        with pytest.raises(ValueError):
            parse_toggle("maybe")


def test_coalesce():
    assert coalesce(None, 0, 5) == 0
    assert coalesce(None, None) is None
