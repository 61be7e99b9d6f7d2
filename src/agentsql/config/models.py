"""Configuration models for agentsql.

This module defines the Pydantic models behind every configuration aspect:
the connection settings resolved from a settings list and the logging
settings applied to the logger factory. The models validate values; which
keys a settings list may contain is decided by the resolver.

Classes:
    BaseConfig: Base configuration class
    ConnectionConfig: Connection settings for explicit and pooled connections
    LoggingConfig: Logging configuration

Example:
    >>> config = ConnectionConfig(
    ...     brand="mysql",
    ...     host="localhost",
    ...     username="netlogo",
    ...     password="secret",
    ...     database="simulation",
    ... )
    >>> config.port
    0
"""

import tempfile
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, SecretStr, field_validator

from ..core.utils import parse_toggle

TEMP_DIR_MARKER = "%t"


class BaseConfig(BaseModel):
    """Base configuration class with common functionality.

    Unknown fields are rejected and assignments are validated, so a model
    instance is always in a consistent state.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        populate_by_name=True,
        frozen=False,
    )

    def to_dict(self, *, mask_secrets: bool = True) -> Dict[str, Any]:
        """Convert configuration to dictionary.

        Args:
            mask_secrets: Whether to mask secret values

        Returns:
            Dictionary representation of configuration
        """
        data = self.model_dump()
        for key, value in data.items():
            if isinstance(value, SecretStr):
                data[key] = "***MASKED***" if mask_secrets else value.get_secret_value()
        return data


class ConnectionConfig(BaseConfig):
    """Settings for one database connection.

    ``port`` 0 means "use the dialect default". ``pooled`` marks settings that
    were resolved in pooled mode; only those carry a meaningful
    ``max_connections``, ``autodisconnect`` and ``timeout``.

    Attributes:
        brand: Dialect brand name
        host: Database server host
        port: Database server port, 0 for the dialect default
        username: Database user
        password: Database password
        database: Schema (database) to connect to
        url: Full connection URL (generic brand only)
        driver: DB-API module name (generic brand only)
        pooled: Whether connections are loaned from the pool
        max_connections: Pool size limit per fingerprint
        autodisconnect: Return pooled connections to the pool when idle
        timeout: Seconds to wait for a free pool slot
    """

    brand: Optional[str] = Field(None, description="Dialect brand name")
    host: Optional[str] = Field(None, description="Database server host")
    port: int = Field(0, ge=0, le=65535, description="Server port, 0 for dialect default")
    username: Optional[str] = Field(None, description="Database user")
    password: SecretStr = Field(SecretStr(""), description="Database password")
    database: Optional[str] = Field(None, description="Schema to connect to")
    url: Optional[str] = Field(None, description="Connection URL for the generic brand")
    driver: Optional[str] = Field(None, description="DB-API module for the generic brand")
    pooled: bool = Field(False, description="Loan connections from the pool")
    max_connections: PositiveInt = Field(20, description="Maximum pooled connections")
    autodisconnect: bool = Field(True, description="Release idle pooled connections")
    timeout: float = Field(0.0, ge=0, description="Seconds to wait for a pool slot")

    @field_validator("brand", "host", "username", "database", "url", "driver", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        """Accept numbers for text settings and strip surrounding whitespace."""
        if isinstance(v, bool) or v is None:
            return v
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        if isinstance(v, (int, float)):
            v = str(v)
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("brand")
    @classmethod
    def normalize_brand(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    @field_validator("password", mode="before")
    @classmethod
    def coerce_password(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("port", mode="before")
    @classmethod
    def coerce_port(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip() or 0
        return v

    @field_validator("autodisconnect", mode="before")
    @classmethod
    def coerce_toggle(cls, v: Any) -> bool:
        return parse_toggle(v)


class LoggingConfig(BaseConfig):
    """Logging configuration.

    Mirrors the ``logging`` configuration aspect: file logging to a
    directory, an optional copy of every line on stderr, and a level.

    Attributes:
        level: Log level
        format: Log format (json, text)
        file_logging: Write log lines to a rotating file
        path: Directory of the log file, ``%t`` for the temp directory
        file_name: Log file name inside ``path``
        copy_to_stderr: Also write log lines to stderr
        max_file_size: Maximum log file size in bytes
        backup_count: Number of rotated files to keep
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Logging level"
    )
    format: Literal["json", "text"] = Field("text", description="Log format")
    file_logging: bool = Field(False, description="Enable file logging")
    path: Path = Field(Path(tempfile.gettempdir()), description="Log directory")
    file_name: str = Field("agentsql.log", min_length=1, description="Log file name")
    copy_to_stderr: bool = Field(False, description="Copy log lines to stderr")
    max_file_size: PositiveInt = Field(10485760, description="Max file size in bytes (10MB)")
    backup_count: int = Field(5, ge=0, description="Number of backup files")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().upper()
            if v == "ALL":
                return "DEBUG"
        return v

    @field_validator("format", mode="before")
    @classmethod
    def normalize_format(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("path", mode="before")
    @classmethod
    def resolve_temp_dir(cls, v: Any) -> Any:
        """Expand the ``%t`` marker to the system temp directory."""
        if isinstance(v, str) and v.strip().startswith(TEMP_DIR_MARKER):
            return Path(tempfile.gettempdir()) / v.strip()[len(TEMP_DIR_MARKER):].lstrip("/\\")
        return v

    @field_validator("file_logging", "copy_to_stderr", mode="before")
    @classmethod
    def coerce_toggle(cls, v: Any) -> bool:
        return parse_toggle(v)

    @property
    def file_path(self) -> Path:
        """Full path of the log file."""
        return self.path / self.file_name
