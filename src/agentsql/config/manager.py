"""Configuration aspects for agentsql.

The ``ConfigurationManager`` holds the named configuration aspects a script
can read and change at run time:

- ``defaultconnection``: connection defaults for pooled mode
- ``connectionpool``: pool size and wait timeout
- ``logging``: file logging, stderr copy and level

It also remembers the most recent explicit connection settings, so that a
later ``connect`` can supply only the keys that change.
"""

import threading
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ConfigurationError, ErrorCodes
from ..core.utils import coalesce
from ..logging import get_logger
from ..logging.factory import LoggerFactory, get_factory
from .models import ConnectionConfig, LoggingConfig
from .resolver import (
    CONNECTION_KEYS,
    ConfigurationResolver,
    SettingPairs,
    SettingsMode,
    normalize_pairs,
)

DEFAULTCONNECTION = "defaultconnection"
CONNECTIONPOOL = "connectionpool"
LOGGING = "logging"

ASPECTS = (DEFAULTCONNECTION, CONNECTIONPOOL, LOGGING)

DEFAULTCONNECTION_KEYS: Dict[str, str] = {**CONNECTION_KEYS, "autodisconnect": "autodisconnect"}

CONNECTIONPOOL_KEYS: Dict[str, str] = {
    "max-connections": "max_connections",
    "maxconnections": "max_connections",
    "timeout": "timeout",
}

LOGGING_KEYS: Dict[str, str] = {
    "file-logging": "file_logging",
    "path": "path",
    "level": "level",
    "copy-to-stderr": "copy_to_stderr",
    "format": "format",
}

DEFAULT_BRAND = "mysql"
DEFAULT_HOST = "localhost"
MASK = "********"


def _render(value: Any) -> str:
    """Render a setting value the way scripts write it."""
    if isinstance(value, bool):
        return "on" if value else "off"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(coalesce(value, ""))


class ConfigurationManager:
    """Holds configuration aspects and the explicit connection settings.

    Attributes:
        resolver: Settings list parser shared with the environment
        logger_factory: Factory the ``logging`` aspect is applied to
    """

    def __init__(
        self,
        resolver: ConfigurationResolver,
        logger_factory: Optional[LoggerFactory] = None,
    ) -> None:
        self.resolver = resolver
        self.logger_factory = logger_factory or get_factory()
        self.logger = get_logger(__name__)
        self._lock = threading.RLock()
        self.reset()

    def reset(self) -> None:
        """Restore every aspect to its default and forget explicit settings."""
        with self._lock:
            self._pool_config = ConnectionConfig(brand=DEFAULT_BRAND, host=DEFAULT_HOST, pooled=True)
            self._explicit_config: Optional[ConnectionConfig] = None
            self._pooling_enabled = False
            self._logging_config = LoggingConfig()

    @property
    def pool_config(self) -> ConnectionConfig:
        """Settings pooled connections are acquired with."""
        with self._lock:
            return self._pool_config

    @property
    def explicit_config(self) -> Optional[ConnectionConfig]:
        with self._lock:
            return self._explicit_config

    @property
    def pooling_enabled(self) -> bool:
        with self._lock:
            return self._pooling_enabled

    @property
    def logging_config(self) -> LoggingConfig:
        with self._lock:
            return self._logging_config

    def explicit_settings(self, pairs: SettingPairs) -> ConnectionConfig:
        """Resolve settings for an explicit connection.

        The settings merge over the previous explicit settings, or over the
        ``defaultconnection`` aspect before the first explicit connect. The
        result is remembered only when it is valid.

        Raises:
            ConfigurationError: If the settings are invalid or incomplete
        """
        with self._lock:
            base = self._explicit_config or self._pool_config
            config = self.resolver.parse_settings(SettingsMode.EXPLICIT, pairs, base=base)
            self._explicit_config = config
        return config

    def pooled_settings(self, pairs: SettingPairs) -> ConnectionConfig:
        """Resolve pooled settings and enable pooled mode.

        Raises:
            ConfigurationError: If the settings are invalid or incomplete;
                the current pooled settings are kept
        """
        with self._lock:
            config = self.resolver.parse_settings(SettingsMode.POOLED, pairs, base=self._pool_config)
            self._pool_config = config
            self._pooling_enabled = True
        self.logger.info("Connection pooling enabled", brand=config.brand, host=config.host)
        return config

    def configure(self, aspect: str, pairs: SettingPairs) -> None:
        """Change some settings of a configuration aspect.

        Configuring ``defaultconnection`` also enables pooled mode.

        Args:
            aspect: Aspect name, case-insensitive
            pairs: ``[key, value]`` pairs for that aspect

        Raises:
            ConfigurationError: CONFIG_NOT_FOUND for an unknown aspect, or the
                resolver's codes for bad settings. Nothing changes on error.
        """
        name = self._aspect_name(aspect)

        with self._lock:
            if name == DEFAULTCONNECTION:
                updates = normalize_pairs(pairs, DEFAULTCONNECTION_KEYS)
                self._pool_config = self.resolver.merge(
                    self._pool_config, updates, pooled=True, require_complete=False
                )
                self._pooling_enabled = True
            elif name == CONNECTIONPOOL:
                updates = normalize_pairs(pairs, CONNECTIONPOOL_KEYS)
                self._pool_config = self.resolver.merge(
                    self._pool_config, updates, pooled=True, require_complete=False
                )
            else:
                updates = normalize_pairs(pairs, LOGGING_KEYS)
                self._logging_config = self._merge_logging(updates)
                self.logger_factory.configure_from_config(self._logging_config)

        self.logger.info("Configuration changed", aspect=name, keys=sorted(updates))

    def _merge_logging(self, updates: Dict[str, Any]) -> LoggingConfig:
        values = self._logging_config.model_dump()
        values.update(updates)
        try:
            return LoggingConfig(**values)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid logging setting: {e.errors()[0]['msg']}",
                code=ErrorCodes.CONFIG_INVALID_VALUE,
                context={"errors": [{"field": str(err["loc"][0]), "message": err["msg"]} for err in e.errors()]},
                cause=e,
            ) from e

    def get_configuration(self, aspect: str, *, include_secrets: bool = False) -> List[Any]:
        """Describe one aspect as ``[aspect, [key, value], ...]``.

        Values are rendered as strings and the password is masked unless
        ``include_secrets`` is set.

        Raises:
            ConfigurationError: CONFIG_NOT_FOUND for an unknown aspect
        """
        name = self._aspect_name(aspect)
        with self._lock:
            pairs = self._describe(name, include_secrets)
        return [name, *[[key, value] for key, value in pairs]]

    def get_full_configuration(self, *, include_secrets: bool = False) -> List[List[Any]]:
        """Describe every aspect."""
        return [self.get_configuration(name, include_secrets=include_secrets) for name in ASPECTS]

    def _describe(self, name: str, include_secrets: bool) -> List[Tuple[str, str]]:
        if name == DEFAULTCONNECTION:
            config = self._pool_config
            password = config.password.get_secret_value()
            if password and not include_secrets:
                password = MASK
            pairs = [
                ("brand", _render(config.brand)),
                ("host", _render(config.host)),
                ("port", _render(self._effective_port(config))),
                ("user", _render(config.username)),
                ("password", password),
                ("database", _render(config.database)),
                ("autodisconnect", _render(config.autodisconnect)),
            ]
            if config.url:
                pairs.append(("url", config.url))
            if config.driver:
                pairs.append(("driver", config.driver))
            return pairs

        if name == CONNECTIONPOOL:
            return [
                ("max-connections", _render(self._pool_config.max_connections)),
                ("timeout", _render(self._pool_config.timeout)),
            ]

        config = self._logging_config
        return [
            ("file-logging", _render(config.file_logging)),
            ("path", str(config.path)),
            ("level", config.level),
            ("copy-to-stderr", _render(config.copy_to_stderr)),
            ("format", config.format),
        ]

    def _effective_port(self, config: ConnectionConfig) -> int:
        if config.port or not config.brand:
            return config.port
        return self.resolver.dialects.resolve(config.brand).get_port(config)

    @staticmethod
    def _aspect_name(aspect: str) -> str:
        name = aspect.strip().lower() if isinstance(aspect, str) else ""
        if name not in ASPECTS:
            raise ConfigurationError(
                f"Unknown configuration aspect: {aspect}",
                code=ErrorCodes.CONFIG_NOT_FOUND,
                context={"aspect": aspect, "known_aspects": list(ASPECTS)},
            )
        return name
