"""
Configuration management for snmpdash.

This module implements the AppConfig Pydantic model and configuration loading.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (/etc/snmpdash/config.yml or --config path)
3. Environment variables (SNMPDASH_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)

YAML is a superset of JSON, so JSON config files load unchanged.
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_CONFIG_PATH = Path("/etc/snmpdash/config.yml")
DEFAULT_ENV_PREFIX = "SNMPDASH_"

DEFAULT_HOST = "localhost"
DEFAULT_COMMUNITY = "public"
# sysUpTime.0
DEFAULT_OID = ".1.3.6.1.2.1.1.3.0"

_VALID_LOG_LEVELS = {"debug", "info", "warn", "warning", "error", "critical"}


def _normalize_log_level(v: str) -> str:
    v_lower = v.lower()
    if v_lower not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: {v}. Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    if v_lower == "warn":
        return "warning"
    return v_lower


# =============================================================================
# Server Configuration
# =============================================================================


class ServerConfig(BaseModel):
    """HTTP server settings.

    Attributes:
        listen: Listen address and port (e.g., "127.0.0.1:8080").
        log_level: Initial application log level.
        static_dir: Optional directory with dashboard assets served at "/".
    """

    listen: str = Field(
        default="127.0.0.1:8080",
        description="Listen address and port (e.g., '127.0.0.1:8080' or '0.0.0.0:8080')",
    )
    log_level: str = Field(
        default="info",
        description="Log level: debug, info, warn, error",
    )
    static_dir: str | None = Field(
        default=None,
        description="Directory with dashboard assets served at '/'",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        return _normalize_log_level(v)

    @field_validator("listen")
    @classmethod
    def validate_listen(cls, v: str) -> str:
        """Require a host:port pair with a numeric port."""
        host, sep, port = v.rpartition(":")
        if not sep or not port.isdigit():
            raise ValueError(f"Invalid listen address: {v}. Expected 'host:port'")
        return v

    @property
    def host(self) -> str:
        """Host part of the listen address (empty means all interfaces)."""
        host = self.listen.rpartition(":")[0]
        return host or "0.0.0.0"

    @property
    def port(self) -> int:
        """Port part of the listen address."""
        return int(self.listen.rpartition(":")[2])


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Emit JSON lines instead of plain text.
    """

    level: str = Field(
        default="info",
        description="Log level",
    )
    log_to_stdout: bool = Field(
        default=True,
        description="Whether to log to stdout",
    )
    json_format: bool = Field(
        default=True,
        description="Emit one JSON object per log line",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        return _normalize_log_level(v)


# =============================================================================
# Storage Configuration
# =============================================================================


class StorageConfig(BaseModel):
    """Sample store configuration.

    Attributes:
        path: Path to the embedded database file.
    """

    path: str = Field(
        default="/var/lib/snmpdash/samples.db",
        description="Path to the sample database file",
    )


# =============================================================================
# Poller Configuration
# =============================================================================


class SourceConfig(BaseModel):
    """A single SNMP polling target.

    Attributes:
        name: Source name used as the storage key. Derived from host and OID
            when empty.
        host: Device address.
        community: SNMP v2c community string.
        oid: Scalar OID to fetch.
    """

    name: str = Field(default="", description="Source name (derived when empty)")
    host: str = Field(default=DEFAULT_HOST, description="Device address")
    community: str = Field(default=DEFAULT_COMMUNITY, description="SNMP community")
    oid: str = Field(default=DEFAULT_OID, description="Scalar OID to poll")

    @field_validator("host")
    @classmethod
    def default_host(cls, v: str) -> str:
        """Empty host means localhost."""
        return v or DEFAULT_HOST

    @field_validator("community")
    @classmethod
    def default_community(cls, v: str) -> str:
        """Empty community means 'public'."""
        return v or DEFAULT_COMMUNITY

    @field_validator("oid")
    @classmethod
    def default_oid(cls, v: str) -> str:
        """Empty OID means sysUpTime.0."""
        return v or DEFAULT_OID

    @property
    def source_name(self) -> str:
        """Name under which samples of this target are stored."""
        if self.name:
            return self.name
        return f"{self.host}_{self.oid.replace('.', '-')}"


class PollerConfig(BaseModel):
    """SNMP poller configuration.

    Attributes:
        enabled: Whether the background poller runs with the server.
        interval_seconds: Pause between polling cycles.
        timeout_seconds: Timeout of a single SNMP request.
        retries: SNMP retries per request (at most one).
        port: SNMP agent UDP port.
        sources: Polling targets.
        host: Legacy single-target host (used when sources is empty).
        community: Legacy single-target community.
        oid: Legacy single-target OID.
    """

    enabled: bool = Field(default=True, description="Run the poller with the server")
    interval_seconds: float = Field(
        default=60.0,
        description="Pause between polling cycles in seconds",
        ge=1.0,
        le=86400.0,
    )
    timeout_seconds: float = Field(
        default=2.0,
        description="Timeout of a single SNMP request in seconds",
        gt=0.0,
        le=60.0,
    )
    retries: int = Field(
        default=1,
        description="SNMP retries per request",
        ge=0,
        le=1,
    )
    port: int = Field(default=161, description="SNMP agent UDP port", ge=1, le=65535)
    sources: list[SourceConfig] = Field(
        default_factory=list,
        description="Polling targets",
    )
    host: str = Field(default="", description="Legacy single source host")
    community: str = Field(default="", description="Legacy single source community")
    oid: str = Field(default="", description="Legacy single source OID")

    @model_validator(mode="after")
    def fill_legacy_source(self) -> PollerConfig:
        """Fall back to the legacy single-source fields when no sources are listed."""
        if not self.sources:
            self.sources = [
                SourceConfig(host=self.host, community=self.community, oid=self.oid)
            ]
        return self


# =============================================================================
# Auth Configuration
# =============================================================================


class AuthConfig(BaseModel):
    """OAuth2 token introspection settings.

    Authentication is disabled while introspect_url is empty.

    Attributes:
        introspect_url: RFC 7662 introspection endpoint.
        client_id: Client ID for HTTP basic auth against the endpoint.
        client_secret: Client secret for HTTP basic auth.
        timeout_seconds: Timeout of the introspection request.
    """

    introspect_url: str = Field(default="", description="Token introspection URL")
    client_id: str = Field(default="", description="Introspection client ID")
    client_secret: str = Field(default="", description="Introspection client secret")
    timeout_seconds: float = Field(
        default=5.0,
        description="Introspection request timeout in seconds",
        gt=0.0,
        le=60.0,
    )

    @property
    def enabled(self) -> bool:
        """Whether bearer tokens are required."""
        return bool(self.introspect_url)


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Top-level snmpdash configuration."""

    server: ServerConfig = Field(
        default_factory=ServerConfig,
        description="HTTP server settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings",
    )
    storage: StorageConfig = Field(
        default_factory=StorageConfig,
        description="Sample store settings",
    )
    poller: PollerConfig = Field(
        default_factory=PollerConfig,
        description="SNMP poller settings",
    )
    auth: AuthConfig = Field(
        default_factory=AuthConfig,
        description="Token introspection settings",
    )


# =============================================================================
# Configuration Loading
# =============================================================================

_TRUE_WORDS = ("true", "yes", "on")
_FALSE_WORDS = ("false", "no", "off")


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return base updated with override; nested dicts merge, other values replace."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Read a YAML (or JSON) config file; an empty file yields {}.

    Raises:
        FileNotFoundError: If config_path does not exist.
        yaml.YAMLError: If the file cannot be parsed.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    return yaml.safe_load(config_path.read_text()) or {}


def _parse_env_value(value: str) -> Any:
    """Interpret an environment string as bool, int, float, list or str."""
    lowered = value.lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False

    for convert in (int, float):
        try:
            return convert(value)
        except ValueError:
            continue

    if "," in value:
        return [_parse_env_value(item.strip()) for item in value.split(",")]
    return value


def _load_env_config(prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, Any]:
    """
    Collect ``<prefix>SECTION__KEY=value`` variables into a nested dict.

    Example:
        ``SNMPDASH_POLLER__INTERVAL_SECONDS=30`` becomes
        ``{"poller": {"interval_seconds": 30}}``.
    """
    overrides: dict[str, Any] = {}
    for name, raw in os.environ.items():
        if not name.startswith(prefix):
            continue
        *sections, leaf = name[len(prefix) :].lower().split("__")
        node = overrides
        for section in sections:
            node = node.setdefault(section, {})
        node[leaf] = _parse_env_value(raw)
    return overrides


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Turn command-line flags into a config override dict.

    The --config path is returned under the ``_config_path`` key.

    Args:
        args: Arguments to parse; sys.argv[1:] when None.
    """
    parser = argparse.ArgumentParser(
        prog="snmpdash",
        description="SNMP sample poller and dashboard API",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", "-c", help="Path to configuration file")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--db-path", help="Override sample database path")
    parser.add_argument("--listen", help="Override listen address")
    parsed = parser.parse_args(args)

    overrides: dict[str, Any] = {}
    if parsed.config:
        overrides["_config_path"] = parsed.config

    level = "debug" if parsed.debug else parsed.log_level
    if level:
        overrides["server"] = {"log_level": level}
        overrides["logging"] = {"level": level}
    if parsed.listen:
        overrides.setdefault("server", {})["listen"] = parsed.listen
    if parsed.db_path:
        overrides["storage"] = {"path": parsed.db_path}

    return overrides


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Build the AppConfig from defaults, file, environment and command line.

    Args:
        config_path: YAML file to read. When None, --config is used, then
            DEFAULT_CONFIG_PATH if it exists.
        env_prefix: Prefix of environment overrides.
        cli_args: Command-line arguments; sys.argv[1:] when None.

    Raises:
        FileNotFoundError: If an explicitly named config file is missing.
        ValidationError: If the merged configuration is invalid.

    Example:
        >>> config = load_config(config_path="/etc/snmpdash/config.yml", cli_args=[])
        >>> config.poller.sources[0].source_name
        'localhost_-1-3-6-1-2-1-1-3-0'
    """
    cli_overrides = _parse_cli_args(cli_args)
    cli_path = cli_overrides.pop("_config_path", None)

    if config_path is None and cli_path is not None:
        config_path = cli_path
    if config_path is None and DEFAULT_CONFIG_PATH.exists():
        config_path = DEFAULT_CONFIG_PATH

    layers: list[dict[str, Any]] = []
    if config_path is not None:
        layers.append(_load_yaml_config(Path(config_path)))
    layers.append(_load_env_config(env_prefix))
    layers.append(cli_overrides)

    merged: dict[str, Any] = {}
    for layer in layers:
        merged = _deep_merge(merged, layer)
    return AppConfig(**merged)
