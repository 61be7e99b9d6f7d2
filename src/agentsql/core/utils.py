"""Utility functions for agentsql.

Small validation and conversion helpers shared by the configuration layer,
the dialect table and the logging package.

Classes:
    ValidationUtils: Input validation helpers

Functions:
    parse_toggle: Convert on/off style values to booleans
    coalesce: First non-None value
"""

import re
from typing import Any, Optional, TypeVar

T = TypeVar("T")

_TRUE_VALUES = frozenset({"on", "true", "yes", "1"})
_FALSE_VALUES = frozenset({"off", "false", "no", "0"})


class ValidationUtils:
    """Utility class for common validation operations."""

    IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
    SQL_IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_$]*$")

    @classmethod
    def validate_identifier(cls, identifier: str, *, allow_empty: bool = False) -> bool:
        """Validate identifier string.

        Args:
            identifier: String to validate as identifier
            allow_empty: Whether to allow empty strings

        Returns:
            True if identifier is valid

        Example:
            >>> ValidationUtils.validate_identifier("DEBUG")
            True
            >>> ValidationUtils.validate_identifier("12 levels")
            False
        """
        if not identifier:
            return allow_empty
        return bool(cls.IDENTIFIER_PATTERN.match(identifier))

    @classmethod
    def validate_sql_identifier(cls, identifier: str) -> bool:
        """Validate an unquoted SQL identifier such as a schema name.

        Statements like ``USE <schema>`` cannot take bind parameters, so the
        name is checked before it is interpolated.

        Args:
            identifier: Identifier to validate

        Returns:
            True if identifier is safe to interpolate
        """
        if not identifier or len(identifier) > 128:
            return False
        return bool(cls.SQL_IDENTIFIER_PATTERN.match(identifier))


def parse_toggle(value: Any) -> bool:
    """Convert a toggle setting to a boolean.

    Accepts booleans and the strings on/off, true/false, yes/no and 1/0 in
    any letter case.

    Args:
        value: Value to convert

    Returns:
        Boolean value

    Raises:
        ValueError: If the value is not a recognized toggle
    """
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Not a toggle value: {value!r}")


def coalesce(*values: Optional[T]) -> Optional[T]:
    """Return first non-None value."""
    for value in values:
        if value is not None:
            return value
    return None
