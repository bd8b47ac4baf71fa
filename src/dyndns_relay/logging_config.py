"""
Logging configuration for DynDNS Relay.

This module provides logging setup with support for console and file output.
Secrets are masked in log messages: the provider's Bearer token and the
shared authorization code, which travels in the query string and therefore
shows up in uvicorn access logs.
"""

from __future__ import annotations

import copy
import logging
import logging.handlers
import re
import sys
from typing import TYPE_CHECKING

from uvicorn.config import LOGGING_CONFIG

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Final

    from dyndns_relay.config import LoggingConfig


# Pattern to match sensitive tokens in log messages
# Each tuple is (pattern, replacement)
SENSITIVE_PATTERNS: Final[list[tuple[re.Pattern[str], str]]] = [
    # Authorization header (Bearer token for the provider API)
    # Keep first 6 characters, mask the rest
    (
        re.compile(
            r"((?:Authorization:\s*)?Bearer\s+)(.{0,6})([^\s\"']*)", re.IGNORECASE,
        ),
        r"\1\2******",
    ),
]

# Query parameters whose value is masked by default
DEFAULT_MASKED_PARAMS: Final[tuple[str, ...]] = ("code",)

# Constants
LOG_FORMAT: Final[str] = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"


def build_query_param_pattern(name: str) -> tuple[re.Pattern[str], str]:
    """
    Build a pattern that fully masks the value of a query parameter.

    Parameters
    ----------
    name : str
        The query parameter name (e.g. "code").

    Returns
    -------
    tuple[re.Pattern[str], str]
        The pattern and its replacement.
    """
    return (
        re.compile(rf"([?&]{re.escape(name)}=)([^\s&#\"']*)"),
        r"\1******",
    )


class SensitiveFilter(logging.Filter):
    """
    A logging filter that masks sensitive information.

    This filter replaces tokens and secret query parameter values with
    asterisks to prevent credential leakage in log files.

    Parameters
    ----------
    masked_params : Iterable[str] | None, optional
        Query parameters whose values are masked. Defaults to "code".
    """

    # Fields in record.__dict__ that may contain sensitive data
    # These are set by formatters like uvicorn's AccessFormatter
    _SENSITIVE_DICT_KEYS: tuple[str, ...] = (
        "request_line",  # Uvicorn: "{method} {full_path} HTTP/{version}"
        "full_path",
        "path",
        "url",
    )

    def __init__(self, masked_params: Iterable[str] | None = None) -> None:
        super().__init__()
        if masked_params is None:
            masked_params = DEFAULT_MASKED_PARAMS
        self.patterns = [
            *SENSITIVE_PATTERNS,
            *(build_query_param_pattern(name) for name in masked_params),
        ]

    def mask(self, value: str) -> str:
        """
        Apply all sensitive patterns to mask a string.

        Parameters
        ----------
        value : str
            The string to process.

        Returns
        -------
        str
            The string with sensitive data masked.
        """
        result = value
        for pattern, replacement in self.patterns:
            result = pattern.sub(replacement, result)
        return result

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Filter and modify log record to mask sensitive data.

        This handles:
        - record.msg (for standard log messages)
        - record.args (for formatted messages like uvicorn access logs)
        - record.__dict__ (for fields set by custom formatters)

        Parameters
        ----------
        record : logging.LogRecord
            The log record to process.

        Returns
        -------
        bool
            Always returns True (record is always logged).
        """
        if record.msg:
            record.msg = self.mask(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self.mask(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self.mask(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        for key in self._SENSITIVE_DICT_KEYS:
            value = record.__dict__.get(key)
            if isinstance(value, str):
                record.__dict__[key] = self.mask(value)

        return True


def _configure_handler(
    handler: logging.Handler,
    masked_params: Iterable[str] | None,
) -> None:
    """
    Configure a logging handler with formatter and sensitive filter.

    Parameters
    ----------
    handler : logging.Handler
        The handler to configure.
    masked_params : Iterable[str] | None
        Query parameters whose values are masked.
    """
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handler.setFormatter(formatter)
    handler.addFilter(SensitiveFilter(masked_params))


def setup_logging(
    config: LoggingConfig,
    masked_params: Iterable[str] | None = None,
) -> None:
    """
    Set up logging based on configuration.

    Parameters
    ----------
    config : LoggingConfig
        Logging configuration.
    masked_params : Iterable[str] | None, optional
        Query parameters whose values are masked in log output.
    """
    if masked_params is not None:
        masked_params = list(masked_params)

    # Get the root logger for the package
    logger = logging.getLogger("dyndns_relay")
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    _configure_handler(console_handler, masked_params)
    logger.addHandler(console_handler)

    if config.file_enabled:
        log_path = config.file_path_as_path
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.WatchedFileHandler(
                str(log_path),
                encoding="utf-8",
                delay=False,
            )
            _configure_handler(file_handler, masked_params)
            logger.addHandler(file_handler)
            logger.info('File logging enabled: "%s".', log_path)
        except OSError as e:
            logger.critical("Failed to enable file logging: %s", e)
            sys.exit(1)

    # Prevent propagation to root logger
    logger.propagate = False


def build_uvicorn_log_config(
    config: LoggingConfig,
    masked_params: Iterable[str] | None = None,
) -> dict:
    """
    Build uvicorn log configuration dictionary with file and console handlers.

    This function creates a log configuration for uvicorn that:
    - Preserves uvicorn's default console output (with colors)
    - Adds file logging when enabled
    - Applies sensitive information filtering to all handlers, which keeps
      the shared code out of access logs

    Parameters
    ----------
    config : LoggingConfig
        Logging configuration from the application.
    masked_params : Iterable[str] | None, optional
        Query parameters whose values are masked in log output.

    Returns
    -------
    dict
        A uvicorn-compatible log configuration dictionary.

    Raises
    ------
    SystemExit
        If file logging is enabled but the log file cannot be created.
    """
    log_config = copy.deepcopy(LOGGING_CONFIG)

    # dictConfig passes extra keys to the "()" factory as keyword arguments
    filter_config: dict = {"()": f"{__name__}.SensitiveFilter"}
    if masked_params is not None:
        filter_config["masked_params"] = list(masked_params)
    log_config.setdefault("filters", {})["sensitive"] = filter_config

    log_config["handlers"]["default"].setdefault("filters", []).append("sensitive")
    log_config["handlers"]["access"].setdefault("filters", []).append("sensitive")

    if config.file_enabled:
        log_path = config.file_path_as_path

        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_path.touch(exist_ok=True)
        except OSError as e:
            logger = logging.getLogger("dyndns_relay")
            logger.critical("Failed to create log file: %s", e)
            sys.exit(1)

        log_config.setdefault("formatters", {})["file"] = {
            "format": LOG_FORMAT,
            "datefmt": DATE_FORMAT,
        }
        log_config.setdefault("handlers", {})["file"] = {
            "class": "logging.handlers.WatchedFileHandler",
            "filename": str(log_path),
            "encoding": "utf-8",
            "delay": False,
            "formatter": "file",
            "filters": ["sensitive"],
        }

        # "uvicorn.error" propagates to "uvicorn"
        log_config["loggers"]["uvicorn"]["handlers"].append("file")
        log_config["loggers"]["uvicorn.access"]["handlers"].append("file")

    return log_config
