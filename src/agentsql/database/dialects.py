"""Dialect registry for agentsql.

A dialect is a frozen value describing one database brand: which DB-API
module talks to it, how its URL looks, its default port, how a connection is
opened and which statements switch, report and look up schemas. Brands are
added by registering another value, never by subclassing.

Classes:
    Dialect: Brand descriptor
    DialectRegistry: Brand name to dialect mapping

Functions:
    convert_placeholders: Rewrite ``?`` markers to a driver's paramstyle
    create_default_registry: Registry holding the built-in brands
"""

import importlib
import threading
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from ..config.models import ConnectionConfig
from ..core.exceptions import (
    ConfigurationError,
    ErrorCodes,
    StatementError,
    create_error_from_exception,
)
from ..core.utils import ValidationUtils
from ..logging import get_logger

ConnectStrategy = Callable[[ModuleType, ConnectionConfig, "Dialect"], Any]
Parameters = Union[Sequence[Any], Dict[str, Any], None]

# Mandatory settings, named as they appear in a settings list
NETWORK_SETTINGS = ("host", "username", "schema", "brand")
FILE_SETTINGS = ("schema", "brand")
GENERIC_SETTINGS = ("url", "driver", "brand")


def convert_placeholders(
    sql: str,
    paramstyle: str,
    parameters: Optional[Sequence[Any]] = None,
) -> Tuple[str, Parameters]:
    """Rewrite ``?`` placeholders outside quoted text to a DB-API paramstyle.

    Statements are written with ``?`` markers whatever the driver. Without
    parameters the statement is returned untouched so literal ``%`` signs
    survive drivers that use format paramstyles.

    Args:
        sql: Statement with ``?`` markers
        paramstyle: The driver module's ``paramstyle``
        parameters: Positional parameter values

    Returns:
        Statement and parameters in the driver's style

    Example:
        >>> convert_placeholders("SELECT * FROM t WHERE a = ? AND b = '?'", "format", [1])
        ("SELECT * FROM t WHERE a = %s AND b = '?'", [1])
    """
    if not parameters:
        return sql, None

    values = list(parameters)
    if paramstyle == "qmark":
        return sql, values

    pieces: List[str] = []
    quote: Optional[str] = None
    index = 0
    for char in sql:
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"', "`"):
            quote = char
        elif char == "?":
            index += 1
            if paramstyle in ("format", "pyformat"):
                pieces.append("%s")
            elif paramstyle == "numeric":
                pieces.append(f":{index}")
            elif paramstyle == "named":
                pieces.append(f":p{index}")
            else:
                raise StatementError(
                    f"Unsupported driver paramstyle: {paramstyle}",
                    code=ErrorCodes.QUERY_EXECUTION_FAILED,
                    context={"paramstyle": paramstyle},
                )
            continue
        if char == "%" and paramstyle in ("format", "pyformat"):
            pieces.append("%%")
            continue
        pieces.append(char)

    if index != len(values):
        raise StatementError(
            f"Statement has {index} placeholders but {len(values)} parameters were given",
            code=ErrorCodes.QUERY_EXECUTION_FAILED,
            context={"placeholders": index, "parameters": len(values)},
        )

    converted = "".join(pieces)
    if paramstyle == "named":
        return converted, {f"p{i}": value for i, value in enumerate(values, start=1)}
    return converted, values


def _connect_with_keywords(module: ModuleType, config: ConnectionConfig, dialect: "Dialect") -> Any:
    return module.connect(
        host=config.host,
        port=dialect.get_port(config),
        user=config.username,
        password=config.password.get_secret_value(),
        database=config.database,
    )


def _connect_with_url(module: ModuleType, config: ConnectionConfig, dialect: "Dialect") -> Any:
    credentials: Dict[str, Any] = {}
    if config.username:
        credentials["user"] = config.username
        credentials["password"] = config.password.get_secret_value()
    return module.connect(dialect.build_url(config), **credentials)


def _connect_to_file(module: ModuleType, config: ConnectionConfig, dialect: "Dialect") -> Any:
    # Pooled connections move between agent threads
    return module.connect(config.database, check_same_thread=False)


@dataclass(frozen=True)
class Dialect:
    """Immutable description of one database brand.

    Attributes:
        brand: Lower-case brand name used in settings lists
        driver: DB-API module name, None when taken from the ``driver`` setting
        url_template: URL pattern with host, port and schema fields, None
            when the ``url`` setting is used verbatim
        default_port: Port used when the configured port is 0
        connect_strategy: Opens a native connection from the driver module
        switch_schema_sql: Statement switching schema, None if unsupported
        current_schema_sql: Query returning the current schema
        schema_exists_sql: Query listing schemas matching one ``?`` parameter
        autocommit_mode: ``method``, ``attribute`` or ``isolation_level``
        auth_error_codes: Driver error codes that mean rejected credentials
        auth_error_markers: Message fragments that mean rejected credentials
        required_settings: Settings that must be present after merging
        aliases: Additional brand names resolving to this dialect
    """

    brand: str
    driver: Optional[str]
    url_template: Optional[str]
    default_port: int = 0
    connect_strategy: ConnectStrategy = _connect_with_keywords
    switch_schema_sql: Optional[str] = None
    current_schema_sql: Optional[str] = None
    schema_exists_sql: Optional[str] = None
    autocommit_mode: str = "attribute"
    auth_error_codes: FrozenSet[Any] = frozenset()
    auth_error_markers: Tuple[str, ...] = ("authentication failed", "access denied")
    required_settings: Tuple[str, ...] = NETWORK_SETTINGS
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    def get_port(self, config: ConnectionConfig) -> int:
        """Configured port if nonzero, else the dialect default."""
        return config.port if config.port else self.default_port

    def build_url(self, config: ConnectionConfig) -> str:
        """Build the connection URL for a configuration."""
        if self.url_template is None:
            return config.url or ""
        return self.url_template.format(
            host=config.host,
            port=self.get_port(config),
            schema=config.database,
        )

    def driver_name(self, config: ConnectionConfig) -> Optional[str]:
        return self.driver or config.driver

    def load_driver(self, config: ConnectionConfig) -> ModuleType:
        """Import the DB-API module for this dialect.

        Raises:
            DriverUnavailableError: If the module cannot be imported
        """
        name = self.driver_name(config)
        try:
            if not name:
                raise ImportError("No driver module configured")
            return importlib.import_module(name)
        except ImportError as e:
            raise create_error_from_exception(
                e,
                message=f"Database driver {name!r} for brand {self.brand!r} is not available",
                code=ErrorCodes.DRIVER_UNAVAILABLE,
                context={"brand": self.brand, "driver": name},
            ) from e

    def connect(self, config: ConnectionConfig) -> Tuple[Any, ModuleType]:
        """Open a native connection.

        Returns:
            Native DB-API connection and the driver module

        Raises:
            DriverUnavailableError: If the driver cannot be imported
            AuthenticationError: If the server rejects the credentials
            NetworkError: For every other connect failure
        """
        module = self.load_driver(config)
        try:
            native = self.connect_strategy(module, config, self)
        except Exception as e:
            raise create_error_from_exception(
                e,
                message=f"Could not connect to {self.build_url(config)}: {e}",
                code=self.classify_connect_error(e),
                context={"brand": self.brand, "host": config.host, "port": self.get_port(config)},
            ) from e
        return native, module

    def classify_connect_error(self, error: BaseException) -> str:
        """Map a driver connect error to AUTH_FAILED or NETWORK_UNREACHABLE."""
        code = getattr(error, "sqlstate", None)
        if code is None and getattr(error, "args", None) and isinstance(error.args[0], int):
            code = error.args[0]
        if code is not None and code in self.auth_error_codes:
            return ErrorCodes.AUTH_FAILED

        message = str(error).lower()
        if any(marker in message for marker in self.auth_error_markers):
            return ErrorCodes.AUTH_FAILED
        return ErrorCodes.NETWORK_UNREACHABLE

    def set_autocommit(self, native: Any, enabled: bool) -> None:
        """Switch a native connection's autocommit mode."""
        if self.autocommit_mode == "method":
            native.autocommit(enabled)
        elif self.autocommit_mode == "isolation_level":
            native.isolation_level = None if enabled else "DEFERRED"
        else:
            native.autocommit = enabled

    def switch_schema(self, connection: Any, schema: str) -> None:
        """Make ``schema`` the connection's current schema."""
        if self.switch_schema_sql is None:
            raise StatementError(
                f"Brand {self.brand!r} does not support switching schema",
                code=ErrorCodes.SCHEMA_SWITCH_UNSUPPORTED,
                context={"brand": self.brand, "schema": schema},
            )
        if not ValidationUtils.validate_sql_identifier(schema):
            raise ConfigurationError(
                f"Invalid schema name: {schema!r}",
                code=ErrorCodes.CONFIG_INVALID_VALUE,
                context={"schema": schema},
            )
        connection.run_internal(self.switch_schema_sql.format(schema=schema))

    def current_schema(self, connection: Any) -> str:
        """Name of the connection's current schema, empty if none is selected."""
        if self.current_schema_sql is None:
            raise StatementError(
                f"Brand {self.brand!r} cannot report its current schema",
                code=ErrorCodes.SCHEMA_SWITCH_UNSUPPORTED,
                context={"brand": self.brand},
            )
        rows = connection.run_internal(self.current_schema_sql)
        if not rows or rows[0][0] is None:
            return ""
        return str(rows[0][0])

    def schema_exists(self, connection: Any, schema: str) -> bool:
        """Whether a schema with this name exists, compared case-insensitively."""
        if self.schema_exists_sql is None:
            raise StatementError(
                f"Brand {self.brand!r} cannot look up schemas",
                code=ErrorCodes.SCHEMA_SWITCH_UNSUPPORTED,
                context={"brand": self.brand},
            )
        rows = connection.run_internal(self.schema_exists_sql, [schema])
        return any(str(row[0]).lower() == schema.lower() for row in rows)


MYSQL = Dialect(
    brand="mysql",
    driver="pymysql",
    url_template="mysql://{host}:{port}/{schema}",
    default_port=3306,
    connect_strategy=_connect_with_keywords,
    switch_schema_sql="USE {schema}",
    current_schema_sql="SELECT DATABASE()",
    schema_exists_sql="SELECT SCHEMA_NAME FROM INFORMATION_SCHEMA.SCHEMATA WHERE SCHEMA_NAME = ?",
    autocommit_mode="method",
    auth_error_codes=frozenset({1044, 1045, 1698}),
    aliases=("mariadb",),
)

POSTGRESQL = Dialect(
    brand="postgresql",
    driver="psycopg",
    url_template="postgresql://{host}:{port}/{schema}",
    default_port=5432,
    connect_strategy=_connect_with_url,
    switch_schema_sql="SET search_path TO {schema}",
    current_schema_sql="SELECT current_schema()",
    schema_exists_sql="SELECT schema_name FROM information_schema.schemata WHERE schema_name = ?",
    auth_error_codes=frozenset({"28000", "28P01"}),
    aliases=("postgres",),
)

SQLITE = Dialect(
    brand="sqlite",
    driver="sqlite3",
    url_template="sqlite:///{schema}",
    connect_strategy=_connect_to_file,
    current_schema_sql="SELECT name FROM pragma_database_list WHERE seq = 0",
    schema_exists_sql="SELECT name FROM pragma_database_list WHERE name = ?",
    autocommit_mode="isolation_level",
    required_settings=FILE_SETTINGS,
    aliases=("sqlite3",),
)

GENERIC = Dialect(
    brand="generic",
    driver=None,
    url_template=None,
    connect_strategy=_connect_with_url,
    required_settings=GENERIC_SETTINGS,
)

BUILTIN_DIALECTS = (MYSQL, POSTGRESQL, SQLITE, GENERIC)


class DialectRegistry:
    """Thread-safe mapping from brand name to Dialect.

    Example:
        >>> registry = create_default_registry()
        >>> registry.resolve("MySql").default_port
        3306
    """

    def __init__(self, dialects: Sequence[Dialect] = ()):
        self.logger = get_logger(__name__)
        self._dialects: Dict[str, Dialect] = {}
        self._aliases: Dict[str, str] = {}
        self._lock = threading.Lock()
        for dialect in dialects:
            self.register(dialect)

    def register(self, dialect: Dialect) -> None:
        """Register a dialect, replacing any dialect with the same brand."""
        brand = dialect.brand.lower()
        with self._lock:
            if brand in self._dialects:
                self.logger.warning(
                    "Overriding existing dialect registration",
                    brand=brand,
                    existing_driver=self._dialects[brand].driver,
                    new_driver=dialect.driver,
                )
            self._dialects[brand] = dialect
            for alias in dialect.aliases:
                self._aliases[alias.lower()] = brand

        self.logger.debug("Dialect registered", brand=brand, driver=dialect.driver)

    def resolve(self, brand: Optional[str]) -> Dialect:
        """Get the dialect for a brand name (case-insensitive).

        Raises:
            ConfigurationError: If the brand is not registered
        """
        key = (brand or "").strip().lower()
        with self._lock:
            key = self._aliases.get(key, key)
            dialect = self._dialects.get(key)
            available = sorted(self._dialects)
        if dialect is None:
            raise ConfigurationError(
                f"Unknown database brand: {brand}",
                code=ErrorCodes.UNKNOWN_BRAND,
                context={"brand": brand, "available_brands": available},
            )
        return dialect

    def is_supported(self, brand: str) -> bool:
        key = brand.strip().lower()
        with self._lock:
            return self._aliases.get(key, key) in self._dialects

    def list_brands(self) -> List[str]:
        with self._lock:
            return sorted(self._dialects)

    def unregister(self, brand: str) -> None:
        """Remove a dialect and its aliases.

        Raises:
            ConfigurationError: If the brand is not registered
        """
        key = brand.strip().lower()
        with self._lock:
            if key not in self._dialects:
                raise ConfigurationError(
                    f"Cannot unregister unknown brand: {brand}",
                    code=ErrorCodes.UNKNOWN_BRAND,
                    context={"brand": brand},
                )
            del self._dialects[key]
            self._aliases = {alias: target for alias, target in self._aliases.items() if target != key}

        self.logger.info("Dialect unregistered", brand=key)


def create_default_registry() -> DialectRegistry:
    """Create a registry holding the built-in brands."""
    return DialectRegistry(BUILTIN_DIALECTS)
