"""Settings list resolution for agentsql.

Scripts describe connections as ordered lists of ``[key value]`` pairs. The
resolver checks the keys against the mode's vocabulary, merges the values
over an existing configuration and validates the result, so a partial
settings list adjusts only the fields it names.

Classes:
    SettingsMode: Explicit or pooled settings vocabulary
    ConfigurationResolver: Parses settings lists into ConnectionConfig

Example:
    >>> resolver = ConfigurationResolver(create_default_registry())
    >>> config = resolver.parse_settings(
    ...     SettingsMode.EXPLICIT,
    ...     [["brand", "mysql"], ["host", "db"], ["user", "sim"], ["schema", "world"]],
    ... )
    >>> resolver.parse_settings(SettingsMode.EXPLICIT, [["schema", "other"]], base=config).host
    'db'
"""

from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ConfigurationError, ErrorCodes
from ..database.dialects import Dialect, DialectRegistry
from ..logging import get_logger
from .models import ConnectionConfig

SettingPairs = Union[Iterable[Sequence[Any]], Mapping[str, Any]]

# Settings-list key -> ConnectionConfig field
CONNECTION_KEYS: Dict[str, str] = {
    "brand": "brand",
    "host": "host",
    "port": "port",
    "username": "username",
    "user": "username",
    "password": "password",
    "schema": "database",
    "database": "database",
    "url": "url",
    "driver": "driver",
}

POOL_KEYS: Dict[str, str] = {
    "maxconnections": "max_connections",
    "max-connections": "max_connections",
    "autodisconnect": "autodisconnect",
    "timeout": "timeout",
}

# Mandatory setting name -> ConnectionConfig field
SETTING_FIELDS: Dict[str, str] = {
    "brand": "brand",
    "host": "host",
    "username": "username",
    "schema": "database",
    "url": "url",
    "driver": "driver",
}

_FIELD_SETTINGS = {field: key for key, field in CONNECTION_KEYS.items() if key != "user" and key != "database"}
_FIELD_SETTINGS.update({"max_connections": "maxconnections", "autodisconnect": "autodisconnect", "timeout": "timeout"})


class SettingsMode(str, Enum):
    """Vocabulary a settings list is parsed with."""
    EXPLICIT = "explicit"
    POOLED = "pooled"


def normalize_pairs(pairs: SettingPairs, allowed: Mapping[str, str]) -> Dict[str, Any]:
    """Map a settings list onto model fields.

    Keys are case-insensitive and surrounding whitespace is ignored. A later
    pair for the same key wins.

    Args:
        pairs: ``[key, value]`` pairs, or a mapping
        allowed: Accepted keys and the field each one sets

    Returns:
        Field name to raw value

    Raises:
        ConfigurationError: For malformed pairs (CONFIG_INVALID_VALUE) and
            unknown keys (CONFIG_UNKNOWN_KEY)
    """
    items = pairs.items() if isinstance(pairs, Mapping) else pairs
    values: Dict[str, Any] = {}

    for index, pair in enumerate(items):
        if isinstance(pair, (str, bytes)) or not isinstance(pair, (Sequence, tuple)) or len(pair) != 2:
            raise ConfigurationError(
                f"Setting {index + 1} is not a [key value] pair: {pair!r}",
                code=ErrorCodes.CONFIG_INVALID_VALUE,
                context={"position": index + 1},
            )
        key, value = pair
        if not isinstance(key, str):
            raise ConfigurationError(
                f"Setting name must be a string, got {key!r}",
                code=ErrorCodes.CONFIG_INVALID_VALUE,
                context={"position": index + 1},
            )

        name = key.strip().lower()
        if name not in allowed:
            raise ConfigurationError(
                f"Unknown setting: {key}",
                code=ErrorCodes.CONFIG_UNKNOWN_KEY,
                context={"key": key, "allowed_keys": sorted(allowed)},
            )
        values[allowed[name]] = value

    return values


class ConfigurationResolver:
    """Turns settings lists into validated ConnectionConfig instances.

    Attributes:
        dialects: Registry used to check brands and mandatory settings
    """

    def __init__(self, dialects: DialectRegistry) -> None:
        self.dialects = dialects
        self.logger = get_logger(__name__)

    @staticmethod
    def keys_for(mode: SettingsMode) -> Dict[str, str]:
        """Accepted settings-list keys for a mode."""
        if mode is SettingsMode.POOLED:
            return {**CONNECTION_KEYS, **POOL_KEYS}
        return dict(CONNECTION_KEYS)

    def parse_settings(
        self,
        mode: SettingsMode,
        pairs: SettingPairs,
        base: Optional[ConnectionConfig] = None,
        *,
        require_complete: bool = True,
    ) -> ConnectionConfig:
        """Parse a settings list, merging it over ``base``.

        Args:
            mode: Explicit or pooled vocabulary
            pairs: Ordered ``[key, value]`` pairs
            base: Configuration supplying values for keys not in ``pairs``
            require_complete: Check the dialect's mandatory settings

        Returns:
            New configuration; ``base`` is never modified

        Raises:
            ConfigurationError: Unknown key, missing mandatory key, invalid
                value or unknown brand
        """
        updates = normalize_pairs(pairs, self.keys_for(mode))
        return self.merge(base, updates, pooled=mode is SettingsMode.POOLED, require_complete=require_complete)

    def merge(
        self,
        base: Optional[ConnectionConfig],
        updates: Mapping[str, Any],
        *,
        pooled: bool,
        require_complete: bool = True,
    ) -> ConnectionConfig:
        """Build a configuration from ``base`` with field ``updates`` applied."""
        values = base.model_dump() if base is not None else {}
        values.update(updates)
        values["pooled"] = pooled

        try:
            config = ConnectionConfig(**values)
        except PydanticValidationError as e:
            errors = [
                {
                    "setting": _FIELD_SETTINGS.get(str(error["loc"][0]), str(error["loc"][0])) if error["loc"] else None,
                    "message": error["msg"],
                }
                for error in e.errors()
            ]
            raise ConfigurationError(
                "Invalid setting value: " + "; ".join(f"{err['setting']}: {err['message']}" for err in errors),
                code=ErrorCodes.CONFIG_INVALID_VALUE,
                context={"errors": errors},
                cause=e,
            ) from e

        if config.brand:
            self.dialects.resolve(config.brand)
        if require_complete:
            self.validate(config)
        return config

    def validate(self, config: ConnectionConfig) -> Dialect:
        """Check that every mandatory setting of the config's dialect is present.

        Returns:
            The config's dialect

        Raises:
            ConfigurationError: CONFIG_MISSING_KEY listing the missing settings
        """
        if not config.brand:
            self._missing(["brand"])
        dialect = self.dialects.resolve(config.brand)
        missing = [
            name for name in dialect.required_settings
            if not getattr(config, SETTING_FIELDS[name])
        ]
        if missing:
            self._missing(missing)
        return dialect

    def _missing(self, names: Sequence[str]) -> None:
        self.logger.debug("Settings incomplete", missing=list(names))
        raise ConfigurationError(
            f"Missing mandatory setting(s): {', '.join(names)}",
            code=ErrorCodes.CONFIG_MISSING_KEY,
            context={"missing": list(names)},
        )
