"""
Configuration management for the HR Consultant MCP Server.

This module implements the AppConfig Pydantic model and configuration loading.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (/etc/mcp-hr/config.yml or --config path)
3. Environment variables (MCP_HR_* prefix, __ for nesting)
4. Deployment variables PORT, SERVER_BASE_URL, ADDITIONAL_ALLOWED_ORIGINS
5. Command-line arguments (highest precedence)
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = Path("/etc/mcp-hr/config.yml")

# Plain environment variables understood by existing deployments
ENV_ALIASES: dict[str, tuple[str, str]] = {
    "PORT": ("server", "port"),
    "SERVER_BASE_URL": ("server", "public_base_url"),
    "ADDITIONAL_ALLOWED_ORIGINS": ("cors", "additional_origins"),
}

_VALID_LOG_LEVELS = {"debug", "info", "warn", "warning", "error", "critical"}


def _normalize_log_level(v: str) -> str:
    v_lower = v.lower()
    if v_lower not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: {v}. Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    # Normalize 'warn' to 'warning'
    if v_lower == "warn":
        return "warning"
    return v_lower


# =============================================================================
# Server Configuration
# =============================================================================


class ServerConfig(BaseModel):
    """Server settings configuration.

    Attributes:
        host: Interface to bind.
        port: TCP port to listen on.
        public_base_url: Externally reachable URL of this server (tunnel or proxy).
        log_level: Log level handed to uvicorn.
    """

    host: str = Field(
        default="0.0.0.0",
        description="Interface to bind",
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="TCP port to listen on",
    )
    public_base_url: str | None = Field(
        default=None,
        description="Public-facing base URL (e.g. a dev tunnel); defaults to http://localhost:<port>",
    )
    log_level: str = Field(
        default="info",
        description="Log level: debug, info, warn, error",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        return _normalize_log_level(v)

    @field_validator("public_base_url")
    @classmethod
    def blank_base_url_is_unset(cls, v: str | None) -> str | None:
        """Treat an empty public base URL as not configured."""
        if v is not None and not v.strip():
            return None
        return v

    def resolved_base_url(self) -> str:
        """
        Return the public-facing base URL of this server.

        Prefers public_base_url with trailing slashes removed, otherwise
        falls back to http://localhost:<port>.
        """
        if self.public_base_url:
            return self.public_base_url.rstrip("/")
        return f"http://localhost:{self.port}"


# =============================================================================
# CORS Configuration
# =============================================================================


class CorsConfig(BaseModel):
    """Cross-origin access configuration.

    Attributes:
        additional_origins: Extra allowed origins, scheme prefixes or
            dot-prefixed domain suffixes, appended to the built-in list.
    """

    additional_origins: list[str] = Field(
        default_factory=list,
        description="Additional allowed origins (exact, 'scheme://' prefix, or '.domain' suffix)",
    )

    @field_validator("additional_origins", mode="before")
    @classmethod
    def split_comma_separated(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


# =============================================================================
# Widgets and Storage Configuration
# =============================================================================


class WidgetsConfig(BaseModel):
    """Widget artifact configuration.

    Attributes:
        assets_dir: Directory holding the built widget HTML files.
    """

    assets_dir: str = Field(
        default="assets",
        description="Directory containing built widget HTML (<id>.html or <id>-<hash>.html)",
    )


class StorageConfig(BaseModel):
    """Entity store configuration.

    Attributes:
        db_path: Path to the SQLite entity database.
        seed_dir: Directory with Consultant.json, Project.json, Assignment.json.
    """

    db_path: str = Field(
        default="data/hr.db",
        description="Path to the SQLite entity database",
    )
    seed_dir: str = Field(
        default="db",
        description="Directory containing JSON seed files",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Emit one JSON object per line instead of plain text.
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
        description="Emit JSON log lines",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        return _normalize_log_level(v)


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Attributes:
        server: Server settings.
        cors: Allowed-origin settings.
        widgets: Widget artifact settings.
        storage: Entity store settings.
        logging: Logging configuration.
    """

    server: ServerConfig = Field(
        default_factory=ServerConfig,
        description="Server settings",
    )
    cors: CorsConfig = Field(
        default_factory=CorsConfig,
        description="Cross-origin access settings",
    )
    widgets: WidgetsConfig = Field(
        default_factory=WidgetsConfig,
        description="Widget artifact settings",
    )
    storage: StorageConfig = Field(
        default_factory=StorageConfig,
        description="Entity store settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: The base dictionary.
        override: The dictionary with values to override.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to appropriate Python type.

    Args:
        value: String value from environment variable.

    Returns:
        Parsed value (bool, int, float, list, or string).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if "," in value:
        items = [item.strip() for item in value.split(",")]
        return [_parse_env_value(item) for item in items]

    return value


def _load_env_config(prefix: str = "MCP_HR_") -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Environment variables are parsed with the following rules:
    - Prefix: MCP_HR_ (configurable)
    - Nested keys: Double underscore (__) separator
    - Example: MCP_HR_SERVER__PORT=9000

    Args:
        prefix: Environment variable prefix.

    Returns:
        Dictionary with configuration values.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix) :].lower()
        parts = config_key.split("__")

        current = result
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[parts[-1]] = _parse_env_value(value)

    return result


def _load_env_aliases() -> dict[str, Any]:
    """
    Load the plain deployment variables (PORT, SERVER_BASE_URL,
    ADDITIONAL_ALLOWED_ORIGINS).

    Values are passed through as strings; the models coerce and split them.
    """
    result: dict[str, Any] = {}
    for env_name, (section, key) in ENV_ALIASES.items():
        value = os.environ.get(env_name)
        if value is None or not value.strip():
            continue
        result.setdefault(section, {})[key] = value.strip()
    return result


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the command-line parser shared by config loading and the entry point."""
    parser = argparse.ArgumentParser(
        prog="mcp-hr",
        description="HR Consultant MCP Server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--host",
        type=str,
        help="Override listen host",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Override listen port",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging with plain-text output",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed the entity store from storage.seed_dir and exit",
    )
    return parser


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Parse command-line arguments.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Dictionary with parsed arguments.
    """
    parsed = build_arg_parser().parse_args(args)

    result: dict[str, Any] = {}

    if parsed.config:
        result["_config_path"] = parsed.config

    if parsed.host:
        result.setdefault("server", {})["host"] = parsed.host

    if parsed.port:
        result.setdefault("server", {})["port"] = parsed.port

    if parsed.log_level:
        result.setdefault("server", {})["log_level"] = parsed.log_level
        result.setdefault("logging", {})["level"] = parsed.log_level

    if parsed.debug:
        result.setdefault("server", {})["log_level"] = "debug"
        result.setdefault("logging", {})["level"] = "debug"
        result["logging"]["json_format"] = False

    return result


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = "MCP_HR_",
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Args:
        config_path: Path to YAML configuration file. If None, uses default
            path or CLI --config argument.
        env_prefix: Prefix for environment variables.
        cli_args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        FileNotFoundError: If specified config file doesn't exist.
        ValidationError: If configuration is invalid.

    Example:
        >>> config = load_config(cli_args=[])
        >>> config.server.port
        8000
    """
    config_dict: dict[str, Any] = {}

    cli_config = _parse_cli_args(cli_args)

    if config_path is None:
        if "_config_path" in cli_config:
            config_path = Path(cli_config.pop("_config_path"))
        elif DEFAULT_CONFIG_PATH.exists():
            config_path = DEFAULT_CONFIG_PATH
    else:
        cli_config.pop("_config_path", None)
        if isinstance(config_path, str):
            config_path = Path(config_path)

    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_yaml_config(config_path))

    config_dict = _deep_merge(config_dict, _load_env_config(env_prefix))
    config_dict = _deep_merge(config_dict, _load_env_aliases())
    config_dict = _deep_merge(config_dict, cli_config)

    return AppConfig(**config_dict)
