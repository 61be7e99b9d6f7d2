"""Tests for settings list resolution."""

import pytest

from agentsql.config.models import ConnectionConfig
from agentsql.config.resolver import (
    ConfigurationResolver,
    SettingsMode,
    normalize_pairs,
    CONNECTION_KEYS,
)
from agentsql.core.exceptions import ConfigurationError, ErrorCodes

MYSQL_SETTINGS = [
    ["brand", "MySql"],
    ["host", "db.example"],
    ["port", 0],
    ["user", "netlogo"],
    ["password", "secret"],
    ["schema", "simulation"],
]


@pytest.fixture
def resolver(dialects):
    return ConfigurationResolver(dialects)


class TestNormalizePairs:
    """Test cases for normalize_pairs."""

    def test_keys_case_insensitive_and_aliased(self):
        values = normalize_pairs([["HOST", "db"], [" User ", "sim"], ["Schema", "s"]], CONNECTION_KEYS)

        assert values == {"host": "db", "username": "sim", "database": "s"}

    def test_mapping_accepted(self):
        assert normalize_pairs({"brand": "sqlite"}, CONNECTION_KEYS) == {"brand": "sqlite"}

    def test_later_pair_wins(self):
        assert normalize_pairs([["host", "a"], ["host", "b"]], CONNECTION_KEYS) == {"host": "b"}

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            normalize_pairs([["host", "db"], ["foo", "bar"]], CONNECTION_KEYS)

        assert exc_info.value.code == ErrorCodes.CONFIG_UNKNOWN_KEY
        assert exc_info.value.context["key"] == "foo"

    @pytest.mark.parametrize("pair", [["host"], ["host", "db", "extra"], "host", [3, "db"]])
    def test_malformed_pair(self, pair):
        with pytest.raises(ConfigurationError) as exc_info:
            normalize_pairs([pair], CONNECTION_KEYS)

        assert exc_info.value.code == ErrorCodes.CONFIG_INVALID_VALUE


class TestConfigurationResolver:
    """Test cases for ConfigurationResolver."""

    def test_parse_explicit(self, resolver):
        config = resolver.parse_settings(SettingsMode.EXPLICIT, MYSQL_SETTINGS)

        assert config.brand == "mysql"
        assert config.host == "db.example"
        assert config.username == "netlogo"
        assert config.database == "simulation"
        assert config.pooled is False
        assert config.port == 0

    def test_pool_keys_rejected_in_explicit_mode(self, resolver):
        with pytest.raises(ConfigurationError) as exc_info:
            resolver.parse_settings(SettingsMode.EXPLICIT, MYSQL_SETTINGS + [["maxconnections", 5]])

        assert exc_info.value.code == ErrorCodes.CONFIG_UNKNOWN_KEY

    def test_parse_pooled(self, resolver):
        config = resolver.parse_settings(
            SettingsMode.POOLED,
            MYSQL_SETTINGS + [["MaxConnections", 5], ["autodisconnect", "off"], ["timeout", 2]],
        )

        assert config.pooled is True
        assert config.max_connections == 5
        assert config.autodisconnect is False
        assert config.timeout == 2.0

    def test_max_connections_alias(self, resolver):
        config = resolver.parse_settings(SettingsMode.POOLED, MYSQL_SETTINGS + [["max-connections", 3]])

        assert config.max_connections == 3

    @pytest.mark.parametrize("missing", ["host", "user", "schema", "brand"])
    def test_missing_mandatory_key(self, resolver, missing):
        settings = [pair for pair in MYSQL_SETTINGS if pair[0].lower() != missing]

        with pytest.raises(ConfigurationError) as exc_info:
            resolver.parse_settings(SettingsMode.EXPLICIT, settings)

        assert exc_info.value.code == ErrorCodes.CONFIG_MISSING_KEY
        expected = "username" if missing == "user" else missing
        assert exc_info.value.context["missing"] == [expected]

    def test_sqlite_needs_only_schema(self, resolver):
        config = resolver.parse_settings(SettingsMode.EXPLICIT, [["brand", "sqlite"], ["schema", ":memory:"]])

        assert config.database == ":memory:"

    def test_generic_needs_url_and_driver(self, resolver):
        with pytest.raises(ConfigurationError) as exc_info:
            resolver.parse_settings(SettingsMode.EXPLICIT, [["brand", "generic"], ["url", "x://y"]])

        assert exc_info.value.context["missing"] == ["driver"]

    def test_unknown_brand(self, resolver):
        with pytest.raises(ConfigurationError) as exc_info:
            resolver.parse_settings(SettingsMode.EXPLICIT, [["brand", "oracle"], ["host", "h"]])

        assert exc_info.value.code == ErrorCodes.UNKNOWN_BRAND

    def test_invalid_value(self, resolver):
        with pytest.raises(ConfigurationError) as exc_info:
            resolver.parse_settings(SettingsMode.EXPLICIT, MYSQL_SETTINGS + [["port", "abc"]])

        assert exc_info.value.code == ErrorCodes.CONFIG_INVALID_VALUE
        assert exc_info.value.context["errors"][0]["setting"] == "port"
        assert isinstance(exc_info.value.cause, Exception)

    def test_merge_keeps_unspecified_fields(self, resolver):
        """A partial settings list changes only the keys it names."""
        base = resolver.parse_settings(SettingsMode.EXPLICIT, MYSQL_SETTINGS + [["port", 3307]])

        config = resolver.parse_settings(SettingsMode.EXPLICIT, [["schema", "other"]], base=base)

        assert config.database == "other"
        assert config.host == "db.example"
        assert config.port == 3307
        assert config.username == "netlogo"
        assert config.password.get_secret_value() == "secret"
        assert base.database == "simulation"

    def test_merge_sets_mode(self, resolver):
        base = ConnectionConfig(brand="mysql", host="h", username="u", database="d", pooled=True)

        config = resolver.parse_settings(SettingsMode.EXPLICIT, [], base=base)

        assert config.pooled is False

    def test_incomplete_allowed_when_not_required(self, resolver):
        config = resolver.parse_settings(SettingsMode.POOLED, [["host", "h"]], require_complete=False)

        assert config.host == "h"
        assert config.brand is None

    def test_validate_returns_dialect(self, resolver):
        config = resolver.parse_settings(SettingsMode.EXPLICIT, [["brand", "postgres"], ["host", "h"], ["user", "u"], ["schema", "s"]])

        assert resolver.validate(config).brand == "postgresql"
