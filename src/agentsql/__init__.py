"""agentsql - SQL session layer for agent-based simulations.

agentsql lets a scripted simulation issue SQL against relational databases
through a handful of primitives. It binds one connection to each calling
execution context, optionally pools connections across contexts, resolves
settings lists into dialect-specific connection parameters and exposes
result sets as lazily advancing row cursors.

Modules:
    core: Exceptions and shared utilities
    config: Configuration models, settings resolution and aspects
    logging: Structured logging framework
    database: Dialects, connections, cursors, pool and sessions
    environment: The facade behind the scripting primitives

Example:
    >>> from agentsql import Environment
    >>> env = Environment()
    >>> env.connect("turtle 0", [["brand", "sqlite"], ["schema", ":memory:"]])
    >>> env.exec_query("turtle 0", "SELECT 1")
    >>> env.fetch_row("turtle 0")
    [1.0]
"""

__version__ = "1.0.0"
__title__ = "agentsql"
__description__ = "SQL session layer for agent-based simulations"
__license__ = "MIT"

from . import config, core, database, logging
from .environment import Environment

__all__ = [
    "Environment",
    "core",
    "config",
    "database",
    "logging",
    "__version__",
    "__title__",
    "__description__",
    "__license__",
]
