"""
Configuration management for DynDNS Relay.

This module handles loading and validating configuration from TOML files,
environment variables and command-line arguments. Configuration priority
(high to low):
1. Command-line arguments
2. Environment variables
3. Configuration file
4. Default values

Secrets (the provider API token and the shared authorization code) are never
accepted on the command line; use the configuration file or the environment.
"""

from __future__ import annotations

import argparse
import copy
import logging
import os
import sys
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from dyndns_relay.cloudflare import CF_API_BASE, HTTP_TIMEOUT
from dyndns_relay.logging_config import DATE_FORMAT, LOG_FORMAT
from dyndns_relay.updater import ZoneSelection

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any, Final

# Configure basic logging for early startup messages.
# The main logging setup in "setup_logging()" reconfigures the "dyndns_relay"
# logger later; logs from this logger never go to the log file.
logger_basic = logging.getLogger(__name__)
logger_basic.setLevel(logging.DEBUG)
handler = logging.StreamHandler()
formatter = logging.Formatter(
    fmt=LOG_FORMAT,
    datefmt=DATE_FORMAT,
)
handler.setFormatter(formatter)
logger_basic.addHandler(handler)
logger_basic.propagate = False


# Environment variables holding the secrets: (env var, section, key)
ENV_OVERRIDES: Final[tuple[tuple[str, str, str], ...]] = (
    ("DYNDNS_API_TOKEN", "provider", "api_token"),
    ("DYNDNS_PRESHARED_SECRET", "auth", "code"),
)


class ConfigValidationError(Exception):
    """
    Exception raised when configuration validation fails.

    Attributes
    ----------
    message : str
        Human-readable error message describing the validation failures.
    config_path : Path | None
        Path to the configuration file that failed validation.
    """

    def __init__(self, message: str, config_path: Path | None = None) -> None:
        """
        Initialize ConfigValidationError.

        Parameters
        ----------
        message : str
            Human-readable error message.
        config_path : Path | None, optional
            Path to the configuration file.
        """
        self.config_path = config_path
        super().__init__(message)


# Configuration models (Pydantic with type validation and coercion)


class ServerConfig(BaseModel):
    """
    Server configuration.

    Attributes
    ----------
    host : str
        Host address to bind to.
    port : int
        Port number to listen on.
    update_path : str
        Path of the update endpoint.
    client_ip_header : str
        Header carrying the caller IP as seen by the edge/proxy.
    trust_peer_address : bool
        Fall back to the TCP peer address when the header is absent.
    """

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 38080
    update_path: str = "/dyndns/update"
    client_ip_header: str = "CF-Connecting-IP"
    trust_peer_address: bool = False

    @field_validator("update_path")
    @classmethod
    def check_update_path(cls, value: str) -> str:
        """Require an absolute path."""
        if not value.startswith("/"):
            msg = 'must start with "/"'
            raise ValueError(msg)
        return value


class AuthConfig(BaseModel):
    """
    Shared-secret authorization configuration.

    Attributes
    ----------
    param : str
        Query parameter carrying the shared secret.
    code : str
        The shared secret. Requests are rejected while it is empty.
    """

    param: str = Field(default="code", min_length=1)
    code: str = ""


class ProviderConfig(BaseModel):
    """
    DNS provider (CloudFlare) configuration.

    Attributes
    ----------
    api_base : str
        Base URL of the provider API.
    api_token : str
        Provider API token.
    timeout : float
        Per-call timeout in seconds.
    zone_selection : ZoneSelection
        Tie-break policy when several zones cover a hostname.
    skip_unchanged : bool
        Skip the update call when the record already holds the IP.
    """

    api_base: str = CF_API_BASE
    api_token: str = ""
    timeout: float = Field(default=HTTP_TIMEOUT, gt=0)
    zone_selection: ZoneSelection = ZoneSelection.LONGEST
    skip_unchanged: bool = False


class LoggingConfig(BaseModel):
    """
    Logging configuration.

    Attributes
    ----------
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    file_enabled : bool
        Whether to log to file.
    file_path : str
        Path to the log file.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = False
    file_path: str = "/var/log/dyndns-relay.log"

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, value: Any) -> Any:
        """Accept lowercase level names."""
        if isinstance(value, str):
            return value.upper()
        return value

    @property
    def file_path_as_path(self) -> Path:
        """
        Get the log file path as a Path object.

        Returns
        -------
        Path
            The resolved log file path.
        """
        return Path(self.file_path)


class HealthConfig(BaseModel):
    """
    Health endpoint configuration.

    Attributes
    ----------
    enabled : bool
        Whether the /health endpoint is enabled.
    """

    enabled: bool = False


class Config(BaseModel):
    """
    Application configuration.

    Attributes
    ----------
    server : ServerConfig
        Server configuration.
    auth : AuthConfig
        Shared-secret authorization configuration.
    provider : ProviderConfig
        DNS provider configuration.
    logging : LoggingConfig
        Logging configuration.
    health : HealthConfig
        Health endpoint configuration.
    """

    server: ServerConfig = ServerConfig()
    auth: AuthConfig = AuthConfig()
    provider: ProviderConfig = ProviderConfig()
    logging: LoggingConfig = LoggingConfig()
    health: HealthConfig = HealthConfig()


def _format_validation_errors(
    error: ValidationError,
    config_path: Path | None,
) -> str:
    """
    Format Pydantic validation errors into human-readable messages.

    Parameters
    ----------
    error : ValidationError
        Pydantic validation error.
    config_path : Path | None
        Path to the configuration file.

    Returns
    -------
    str
        Human-readable error message.
    """
    lines: list[str] = []

    if config_path:
        lines.append(f'Configuration error in "{config_path}":')
    else:
        lines.append("Configuration error:")

    for err in error.errors():
        # Build field path (e.g., "server.port")
        field_path = ".".join(str(loc) for loc in err["loc"])

        error_type = err["type"]
        error_input = err["input"]
        input_type = type(error_input).__name__

        value_repr = (
            f'"{error_input}"' if isinstance(error_input, str) else repr(error_input)
        )

        expected_type = _get_expected_type(error_type)
        if expected_type is None:
            lines.append(f"  [{field_path}]: {err['msg']} (value: {value_repr}).")
        else:
            lines.append(
                f"  [{field_path}]: Expected {expected_type}, got {input_type} (value: {value_repr}). {err['msg']}.",
            )

    return "\n".join(lines)


def _get_expected_type(error_type: str) -> str | None:
    """
    Get human-readable expected type from Pydantic error type.

    Parameters
    ----------
    error_type : str
        Pydantic error type string.

    Returns
    -------
    str | None
        Human-readable type name, or None for value (not type) errors.
    """
    type_mapping = {
        "int_type": "int",
        "int_parsing": "int",
        "float_type": "float",
        "float_parsing": "float",
        "bool_type": "bool",
        "bool_parsing": "bool",
        "string_type": "str",
        "list_type": "list",
        "model_type": "table",
    }
    return type_mapping.get(error_type)


def validate_config_dict(
    data: dict[str, Any],
    config_path: Path | None = None,
) -> None:
    """
    Validate configuration dictionary using Pydantic.

    Parameters
    ----------
    data : dict[str, Any]
        Configuration dictionary to validate.
    config_path : Path | None, optional
        Path to the configuration file (for error messages).

    Raises
    ------
    ConfigValidationError
        If validation fails.
    """
    try:
        Config(**data)
    except ValidationError as e:
        msg = _format_validation_errors(e, config_path)
        raise ConfigValidationError(msg, config_path) from e


def check_required_secrets(config: Config, config_path: Path | None = None) -> None:
    """
    Ensure the secrets needed to serve requests are set.

    Parameters
    ----------
    config : Config
        The loaded configuration.
    config_path : Path | None, optional
        Path to the configuration file (for error messages).

    Raises
    ------
    ConfigValidationError
        If the API token or the shared authorization code is empty.
    """
    missing: list[str] = []
    if not config.provider.api_token:
        missing.append(
            "  [provider.api_token]: API token is required "
            f"(set it in the config file or via {ENV_OVERRIDES[0][0]}).",
        )
    if not config.auth.code:
        missing.append(
            "  [auth.code]: Shared authorization code is required "
            f"(set it in the config file or via {ENV_OVERRIDES[1][0]}).",
        )
    if missing:
        header = (
            f'Configuration error in "{config_path}":'
            if config_path
            else "Configuration error:"
        )
        raise ConfigValidationError("\n".join([header, *missing]), config_path)


def load_config_from_file(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a TOML file.

    Parameters
    ----------
    config_path : Path
        Path to the configuration file.

    Returns
    -------
    dict[str, Any]
        Parsed configuration dictionary.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    tomllib.TOMLDecodeError
        If the configuration file is not valid TOML.
    """
    with config_path.open("rb") as f:
        return tomllib.load(f)


def load_config_from_env(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Collect configuration overrides from environment variables.

    Parameters
    ----------
    environ : Mapping[str, str] | None, optional
        Environment to read. If None, uses os.environ.

    Returns
    -------
    dict[str, Any]
        Nested overrides for the variables that are set and non-empty.
    """
    if environ is None:
        environ = os.environ

    overrides: dict[str, Any] = {}
    for env_var, section, key in ENV_OVERRIDES:
        value = environ.get(env_var)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge two configuration dictionaries.

    Parameters
    ----------
    base : dict[str, Any]
        Base configuration.
    override : dict[str, Any]
        Override configuration (takes precedence).

    Returns
    -------
    dict[str, Any]
        Merged configuration.
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_config(result[key], value)
        else:
            result[key] = value
    return result


def dict_to_config(data: dict[str, Any]) -> Config:
    """
    Convert a dictionary to a Config object.

    Parameters
    ----------
    data : dict[str, Any]
        Configuration dictionary.

    Returns
    -------
    Config
        Configuration object.
    """
    # Handle file_path expansion before Pydantic validation
    if "logging" in data and "file_path" in data["logging"]:
        data = copy.deepcopy(data)
        data["logging"]["file_path"] = str(
            Path(data["logging"]["file_path"]).expanduser(),
        )

    return Config.model_validate(data)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Parameters
    ----------
    args : list[str] | None, optional
        Command-line arguments. If None, uses sys.argv.

    Returns
    -------
    argparse.Namespace
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="dyndns-relay",
        description="DynDNS Relay - dynamic DNS update endpoint for CloudFlare",
    )

    # Config arguments
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.toml)",
    )

    # Server arguments
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port number to listen on",
    )
    parser.add_argument(
        "--update-path",
        type=str,
        dest="update_path",
        default=None,
        help='Path of the update endpoint (default: "/dyndns/update")',
    )
    parser.add_argument(
        "--client-ip-header",
        type=str,
        dest="client_ip_header",
        default=None,
        help='Header carrying the caller IP (default: "CF-Connecting-IP")',
    )
    peer_group = parser.add_mutually_exclusive_group()
    peer_group.add_argument(
        "--trust-peer-address",
        action="store_true",
        dest="trust_peer_address",
        default=None,
        help="Use the TCP peer address when the client IP header is absent",
    )
    peer_group.add_argument(
        "--no-trust-peer-address",
        action="store_false",
        dest="trust_peer_address",
        default=None,
        help="Never use the TCP peer address as caller IP",
    )

    # Provider arguments
    parser.add_argument(
        "--api-base",
        type=str,
        dest="api_base",
        default=None,
        help="Base URL of the CloudFlare API",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Timeout in seconds for each provider API call",
    )
    parser.add_argument(
        "--zone-selection",
        type=str,
        dest="zone_selection",
        choices=[s.value for s in ZoneSelection],
        default=None,
        help="How to pick a zone when several cover the hostname",
    )
    parser.add_argument(
        "--skip-unchanged",
        action="store_true",
        dest="skip_unchanged",
        default=None,
        help="Skip the update call when the record already holds the IP",
    )

    # Logging arguments
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Log level",
    )
    log_file_group = parser.add_mutually_exclusive_group()
    log_file_group.add_argument(
        "--log-file-enabled",
        action="store_true",
        dest="log_file_enabled",
        default=None,
        help="Enable logging to file",
    )
    log_file_group.add_argument(
        "--log-file-disabled",
        action="store_false",
        dest="log_file_enabled",
        default=None,
        help="Disable logging to file",
    )
    parser.add_argument(
        "--log-file-path",
        type=Path,
        dest="log_file_path",
        default=None,
        help="Path to the log file",
    )

    # Health endpoint arguments
    health_group = parser.add_mutually_exclusive_group()
    health_group.add_argument(
        "--health-enabled",
        action="store_true",
        dest="health_enabled",
        default=None,
        help='Enable "/health" endpoint',
    )
    health_group.add_argument(
        "--health-disabled",
        action="store_false",
        dest="health_enabled",
        default=None,
        help='Disable "/health" endpoint',
    )

    return parser.parse_args(args)


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """
    Build configuration overrides from parsed command-line arguments.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed arguments.

    Returns
    -------
    dict[str, Any]
        Nested overrides for the arguments that were given.
    """
    # (argument name, section, key)
    mapping = (
        ("host", "server", "host"),
        ("port", "server", "port"),
        ("update_path", "server", "update_path"),
        ("client_ip_header", "server", "client_ip_header"),
        ("trust_peer_address", "server", "trust_peer_address"),
        ("api_base", "provider", "api_base"),
        ("timeout", "provider", "timeout"),
        ("zone_selection", "provider", "zone_selection"),
        ("skip_unchanged", "provider", "skip_unchanged"),
        ("log_level", "logging", "level"),
        ("log_file_enabled", "logging", "file_enabled"),
        ("health_enabled", "health", "enabled"),
    )

    overrides: dict[str, Any] = {}
    for arg_name, section, key in mapping:
        value = getattr(args, arg_name)
        if value is not None:
            overrides.setdefault(section, {})[key] = value

    if args.log_file_path is not None:
        overrides.setdefault("logging", {})["file_path"] = str(args.log_file_path)

    return overrides


def load_config(
    args: argparse.Namespace | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """
    Load configuration from file, environment and command-line arguments.

    Priority (high to low):
    1. Command-line arguments
    2. Environment variables
    3. Configuration file
    4. Default values

    Parameters
    ----------
    args : argparse.Namespace | None, optional
        Parsed command-line arguments.
    environ : Mapping[str, str] | None, optional
        Environment to read secrets from. If None, uses os.environ.

    Returns
    -------
    Config
        Loaded configuration.

    Raises
    ------
    ConfigValidationError
        If the merged configuration is invalid or a required secret is missing.
    """
    if args is None:
        args = parse_args()

    config_dict: dict[str, Any] = {}

    # Load from config file if specified or if default exists
    config_path = args.config
    if config_path is not None:
        config_path = config_path.expanduser()
    if config_path is None:
        default_config = Path("config.toml")
        if default_config.exists():
            config_path = default_config

    if config_path is not None:
        if config_path.exists():
            logger_basic.info('Loading configuration from "%s".', config_path)
            try:
                config_dict = load_config_from_file(config_path)
            except tomllib.TOMLDecodeError as e:
                logger_basic.critical('Failed to parse configuration file: "%s".', e)
                sys.exit(1)
        else:
            logger_basic.critical("Configuration file not found: %s", config_path)
            sys.exit(1)

    env_overrides = load_config_from_env(environ)
    if env_overrides:
        config_dict = merge_config(config_dict, env_overrides)

    cli_overrides = _cli_overrides(args)
    if cli_overrides:
        config_dict = merge_config(config_dict, cli_overrides)

    # Validate merged configuration
    validate_config_dict(config_dict, config_path)

    config = dict_to_config(config_dict)
    check_required_secrets(config, config_path)
    return config
