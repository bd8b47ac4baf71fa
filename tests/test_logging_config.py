"""
Tests for logging_config module.

This module tests the SensitiveFilter and its patterns to ensure that the
provider token and the shared authorization code never reach log output.
"""

import logging
from typing import TYPE_CHECKING

import pytest

from dyndns_relay.config import LoggingConfig
from dyndns_relay.logging_config import (
    SENSITIVE_PATTERNS,
    SensitiveFilter,
    build_query_param_pattern,
    build_uvicorn_log_config,
    setup_logging,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


def apply_patterns(msg: str) -> str:
    """Apply the static sensitive patterns to a message."""
    result = msg
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


class TestSensitivePatterns:
    """Tests for SENSITIVE_PATTERNS regex patterns."""

    @pytest.mark.parametrize(
        ("original", "expected"),
        [
            # Standard Bearer token - keep 6 chars
            (
                "Authorization: Bearer abc123xyz789token",
                "Authorization: Bearer abc123******",
            ),
            # Short token (less than 6 chars) - keep all available
            ("Authorization: Bearer xy", "Authorization: Bearer xy******"),
            # Case insensitive
            (
                "authorization: bearer ABC123XYZ",
                "authorization: bearer ABC123******",
            ),
            # Without header name
            ("Bearer cf-test-token-123456", "Bearer cf-tes******"),
        ],
    )
    def test_authorization_bearer(self, original: str, expected: str) -> None:
        """Test Authorization Bearer token masking."""
        assert apply_patterns(original) == expected

    @pytest.mark.parametrize(
        "original",
        [
            "Normal log message without sensitive data",
            "Authorization: Basic abc123",  # Not Bearer
            "GET /dyndns/update?hostname=sub.example.com",
        ],
    )
    def test_non_matching_unchanged(self, original: str) -> None:
        """Test that non-matching strings are not modified."""
        assert apply_patterns(original) == original


class TestQueryParamPattern:
    """Tests for build_query_param_pattern."""

    @pytest.fixture
    def mask_code(self) -> "Callable[[str], str]":
        """Mask the "code" query parameter."""
        pattern, replacement = build_query_param_pattern("code")
        return lambda msg: pattern.sub(replacement, msg)

    @pytest.mark.parametrize(
        ("original", "expected"),
        [
            # At start
            (
                "/dyndns/update?code=SECRET&hostname=sub.example.com",
                "/dyndns/update?code=******&hostname=sub.example.com",
            ),
            # In middle
            (
                "/u?hostname=sub.example.com&code=SECRET&myip=10.0.0.5",
                "/u?hostname=sub.example.com&code=******&myip=10.0.0.5",
            ),
            # At end
            ("/u?hostname=a&code=SECRET", "/u?hostname=a&code=******"),
            # Followed by fragment or whitespace
            ("/u?code=SECRET#frag", "/u?code=******#frag"),
            ('GET /u?code=SECRET HTTP/1.1" 200', 'GET /u?code=****** HTTP/1.1" 200'),
            # Empty value
            ("/u?code=&hostname=x", "/u?code=******&hostname=x"),
            # Repeated parameter
            ("/u?code=a&code=b", "/u?code=******&code=******"),
        ],
    )
    def test_masks_value(
        self,
        mask_code: "Callable[[str], str]",
        original: str,
        expected: str,
    ) -> None:
        """Test the secret value is fully replaced."""
        assert mask_code(original) == expected

    @pytest.mark.parametrize(
        "original",
        [
            "/u?barcode=123&hostname=x",  # Different parameter
            "code=SECRET",  # Not part of a query string
            "/u?hostname=code.example.com",
        ],
    )
    def test_non_matching_unchanged(
        self,
        mask_code: "Callable[[str], str]",
        original: str,
    ) -> None:
        """Test that other parameters are not modified."""
        assert mask_code(original) == original

    def test_name_is_escaped(self) -> None:
        """Test that regex metacharacters in the name are literal."""
        pattern, replacement = build_query_param_pattern("a.b")
        assert pattern.sub(replacement, "/u?a.b=x") == "/u?a.b=******"
        assert pattern.sub(replacement, "/u?axb=x") == "/u?axb=x"


class TestSensitiveFilter:
    """Tests for SensitiveFilter logging filter."""

    @pytest.fixture
    def log_filter(self) -> SensitiveFilter:
        """Create a SensitiveFilter instance."""
        return SensitiveFilter()

    @pytest.fixture
    def make_record(self) -> "Callable[..., logging.LogRecord]":
        """Create a factory for log records."""

        def _make_record(msg: str, args: tuple = ()) -> logging.LogRecord:
            return logging.LogRecord(
                name="test",
                level=logging.INFO,
                pathname="",
                lineno=0,
                msg=msg,
                args=args,
                exc_info=None,
            )

        return _make_record

    def test_filter_always_returns_true(
        self,
        log_filter: SensitiveFilter,
        make_record: "Callable[..., logging.LogRecord]",
    ) -> None:
        """Test that filter always returns True (always logs)."""
        record = make_record("any message")
        assert log_filter.filter(record) is True

    def test_filter_masks_bearer_token(
        self,
        log_filter: SensitiveFilter,
        make_record: "Callable[..., logging.LogRecord]",
    ) -> None:
        """Test that Bearer tokens are masked in log records."""
        record = make_record("Authorization: Bearer token123456")
        log_filter.filter(record)
        assert record.msg == "Authorization: Bearer token1******"

    def test_filter_masks_code_in_message(
        self,
        log_filter: SensitiveFilter,
        make_record: "Callable[..., logging.LogRecord]",
    ) -> None:
        """Test that the shared code is masked in the message."""
        record = make_record("Request to /dyndns/update?code=SECRET&hostname=x")
        log_filter.filter(record)
        assert record.msg == "Request to /dyndns/update?code=******&hostname=x"

    def test_filter_masks_uvicorn_access_args(
        self,
        log_filter: SensitiveFilter,
        make_record: "Callable[..., logging.LogRecord]",
    ) -> None:
        """Test masking of the tuple args used by uvicorn access logs."""
        record = make_record(
            '%s - "%s %s HTTP/%s" %d',
            (
                "203.0.113.7:51234",
                "GET",
                "/dyndns/update?code=SECRET&hostname=sub.example.com",
                "1.1",
                200,
            ),
        )
        log_filter.filter(record)
        assert record.getMessage() == (
            '203.0.113.7:51234 - "GET '
            '/dyndns/update?code=******&hostname=sub.example.com HTTP/1.1" 200'
        )

    def test_filter_masks_dict_args(
        self,
        log_filter: SensitiveFilter,
        make_record: "Callable[..., logging.LogRecord]",
    ) -> None:
        """Test that dict-style args are masked."""
        record = make_record(
            "Calling %(url)s with %(auth)s",
            (
                {
                    "url": "/dyndns/update?code=SECRET",
                    "auth": "Bearer mytoken123",
                },
            ),
        )
        log_filter.filter(record)
        assert isinstance(record.args, dict)
        assert record.args["url"] == "/dyndns/update?code=******"
        assert record.args["auth"] == "Bearer mytoke******"

    def test_filter_masks_record_fields(
        self,
        log_filter: SensitiveFilter,
        make_record: "Callable[..., logging.LogRecord]",
    ) -> None:
        """Test that formatter fields like request_line are masked."""
        record = make_record("access")
        record.__dict__["request_line"] = "GET /dyndns/update?code=SECRET HTTP/1.1"
        record.__dict__["full_path"] = "/dyndns/update?code=SECRET"
        log_filter.filter(record)
        assert record.__dict__["request_line"] == "GET /dyndns/update?code=****** HTTP/1.1"
        assert record.__dict__["full_path"] == "/dyndns/update?code=******"

    def test_filter_leaves_non_strings(
        self,
        log_filter: SensitiveFilter,
        make_record: "Callable[..., logging.LogRecord]",
    ) -> None:
        """Test that non-string args are passed through."""
        record = make_record("%s %d", ("/u?code=SECRET", 403))
        log_filter.filter(record)
        assert record.args == ("/u?code=******", 403)

    def test_filter_handles_empty_message(
        self,
        log_filter: SensitiveFilter,
        make_record: "Callable[..., logging.LogRecord]",
    ) -> None:
        """Test that empty messages are handled gracefully."""
        record = make_record("")
        assert log_filter.filter(record) is True
        assert record.msg == ""

    def test_custom_masked_param(
        self,
        make_record: "Callable[..., logging.LogRecord]",
    ) -> None:
        """Test masking of a custom authorization parameter name."""
        log_filter = SensitiveFilter(masked_params=["token"])
        record = make_record("/u?token=SECRET&code=visible")
        log_filter.filter(record)
        assert record.msg == "/u?token=******&code=visible"


class TestBuildUvicornLogConfig:
    """Tests for build_uvicorn_log_config."""

    def test_filter_attached_to_handlers(self) -> None:
        log_config = build_uvicorn_log_config(LoggingConfig())

        assert log_config["filters"]["sensitive"] == {
            "()": "dyndns_relay.logging_config.SensitiveFilter",
        }
        assert "sensitive" in log_config["handlers"]["default"]["filters"]
        assert "sensitive" in log_config["handlers"]["access"]["filters"]
        assert "file" not in log_config["handlers"]

    def test_masked_params_passed_to_filter(self) -> None:
        log_config = build_uvicorn_log_config(LoggingConfig(), masked_params=("token",))
        assert log_config["filters"]["sensitive"]["masked_params"] == ["token"]

    def test_uvicorn_defaults_not_modified(self) -> None:
        from uvicorn.config import LOGGING_CONFIG

        build_uvicorn_log_config(LoggingConfig())
        assert "filters" not in LOGGING_CONFIG["handlers"]["access"]

    def test_file_handler(self, tmp_path: "Path") -> None:
        log_path = tmp_path / "logs" / "relay.log"
        config = LoggingConfig(file_enabled=True, file_path=str(log_path))

        log_config = build_uvicorn_log_config(config)

        assert log_path.exists()
        file_handler = log_config["handlers"]["file"]
        assert file_handler["filename"] == str(log_path)
        assert file_handler["filters"] == ["sensitive"]
        assert "file" in log_config["loggers"]["uvicorn"]["handlers"]
        assert "file" in log_config["loggers"]["uvicorn.access"]["handlers"]


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        """Restore the package logger after each test."""
        logger = logging.getLogger("dyndns_relay")
        handlers = list(logger.handlers)
        level = logger.level
        propagate = logger.propagate

        yield logger

        for handler in logger.handlers:
            if handler not in handlers:
                handler.close()
        logger.handlers[:] = handlers
        logger.setLevel(level)
        logger.propagate = propagate

    def test_console_handler(self, restore_logger: logging.Logger) -> None:
        setup_logging(LoggingConfig(level="warning"))

        assert restore_logger.level == logging.WARNING
        assert restore_logger.propagate is False
        assert len(restore_logger.handlers) == 1
        handler = restore_logger.handlers[0]
        assert any(isinstance(f, SensitiveFilter) for f in handler.filters)

    def test_file_logging_masks_code(
        self,
        restore_logger: logging.Logger,
        tmp_path: "Path",
    ) -> None:
        log_path = tmp_path / "relay.log"
        setup_logging(
            LoggingConfig(file_enabled=True, file_path=str(log_path)),
            masked_params=["code"],
        )

        assert len(restore_logger.handlers) == 2
        logging.getLogger("dyndns_relay.server").info(
            "Handled %s",
            "/dyndns/update?code=SECRET&hostname=x",
        )
        for handler in restore_logger.handlers:
            handler.flush()

        content = log_path.read_text(encoding="utf-8")
        assert "code=******" in content
        assert "SECRET" not in content
