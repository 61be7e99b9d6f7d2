"""agentsql configuration management.

This package turns settings lists into validated configuration.

Modules:
    models: Pydantic models for connection and logging settings
    resolver: Settings list parsing with layered defaults
    manager: Named configuration aspects (defaultconnection, connectionpool, logging)

Only the models are re-exported here; import the resolver and the manager
from their modules.

Example:
    >>> from agentsql.config import ConnectionConfig
    >>> from agentsql.config.resolver import ConfigurationResolver, SettingsMode
"""

from .models import BaseConfig, ConnectionConfig, LoggingConfig

__all__ = [
    "BaseConfig",
    "ConnectionConfig",
    "LoggingConfig",
]
