"""Logging configuration for MomentSense.

Provides centralized logging setup with Rich console formatting, optional
file logging, and redaction helpers so that credentials and voice-note
content never reach a log line.

Example:
    >>> from momentsense.utils.logging import setup_logging, log_event
    >>> setup_logging(level="DEBUG")
    >>> logger = logging.getLogger("momentsense.api")
    >>> log_event(logger, "synthesis_request", request_id="abc", api_key="secret")
    # Logs: synthesis_request | {"request_id": "abc", "api_key": "[REDACTED]"}
"""

from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


# =============================================================================
# Constants
# =============================================================================

PACKAGE_NAME = "momentsense"

NOISY_LOGGERS = [
    "google",
    "google.genai",
    "urllib3",
    "httpx",
    "httpcore",
    "asyncio",
    "uvicorn.access",
]

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

REDACTED = "[REDACTED]"

# Structured payload keys that are always redacted
SENSITIVE_KEY_PATTERN = re.compile(
    r"api[_-]?key|token|password|secret|authorization|transcript|gemini|openweather",
    re.IGNORECASE,
)

MAX_LOGGED_STRING_LENGTH = 500

_console = Console(stderr=True)


# =============================================================================
# Redaction
# =============================================================================


class RedactingFilter(logging.Filter):
    """Logging filter that redacts sensitive information.

    Scans log messages for patterns that look like API keys or tokens
    and replaces them with [REDACTED].

    Example:
        >>> logger = logging.getLogger("momentsense.api")
        >>> logger.addFilter(RedactingFilter())
        >>> logger.info("Using api_key=AIzaSy123456789...")
        # Output: "Using api_key=[REDACTED]"
    """

    PATTERNS = [
        re.compile(r'(api_?key\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{16,})["\']?', re.IGNORECASE),
        re.compile(r'(appid\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{16,})["\']?', re.IGNORECASE),
        re.compile(r'(token\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{16,})["\']?', re.IGNORECASE),
        re.compile(r"(bearer\s+)([a-zA-Z0-9_\-\.]{16,})", re.IGNORECASE),
        re.compile(r'(secret\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{16,})["\']?', re.IGNORECASE),
        # Standalone Gemini keys
        re.compile(r"\bAIza[a-zA-Z0-9_\-]{30,}\b"),
    ]
    KEY_VALUE_PATTERN_COUNT = 5

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.redact(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self.redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )

        return True

    @classmethod
    def redact(cls, text: str) -> str:
        """Redact credential-looking substrings from text."""
        for pattern in cls.PATTERNS[: cls.KEY_VALUE_PATTERN_COUNT]:
            text = pattern.sub(rf"\1{REDACTED}", text)

        for pattern in cls.PATTERNS[cls.KEY_VALUE_PATTERN_COUNT :]:
            text = pattern.sub(REDACTED, text)

        return text


def redact_sensitive(data: Any) -> Any:
    """Recursively redact a structured payload before it is logged.

    Values under keys matching SENSITIVE_KEY_PATTERN are replaced, and long
    strings are truncated.

    Args:
        data: Any JSON-like value.

    Returns:
        A redacted copy; the input is not modified.
    """
    if isinstance(data, dict):
        return {
            key: REDACTED
            if isinstance(key, str) and SENSITIVE_KEY_PATTERN.search(key)
            else redact_sensitive(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact_sensitive(item) for item in data]
    if isinstance(data, str) and len(data) > MAX_LOGGED_STRING_LENGTH:
        return data[:MAX_LOGGED_STRING_LENGTH] + "...[truncated]"
    return data


def log_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.INFO,
    **data: Any,
) -> None:
    """Emit a structured telemetry line as ``event | {json}``.

    Args:
        logger: Logger to write to.
        event: Event name, e.g. "synthesis_success".
        level: Log level.
        **data: Event fields. Redacted before serialization.
    """
    if not logger.isEnabledFor(level):
        return
    payload = json.dumps(redact_sensitive(data), default=str, sort_keys=True)
    logger.log(level, f"{event} | {payload}")


# =============================================================================
# Setup Functions
# =============================================================================


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure logging for the momentsense package.

    Sets up a Rich console handler and optionally a file handler. Both
    handlers carry a RedactingFilter.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to log file.
        quiet_third_party: If True, suppress noisy third-party loggers.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger(PACKAGE_NAME)
    root_logger.setLevel(numeric_level)
    root_logger.handlers = []

    console_handler = RichHandler(
        console=_console,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=numeric_level == logging.DEBUG,
        markup=False,
    )
    console_handler.setLevel(numeric_level)
    console_handler.addFilter(RedactingFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
        file_handler.addFilter(RedactingFilter())
        root_logger.addHandler(file_handler)

    if quiet_third_party:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.propagate = False
    root_logger.debug(f"Logging configured: level={level}, file={log_file}")


# =============================================================================
# Log Context Manager
# =============================================================================


class LogContext:
    """Context manager for timing and logging operations.

    Attributes:
        message: Description of the operation.
        level: Log level for messages.
        logger: Logger instance to use.
        elapsed: Elapsed time in seconds (after exit).

    Example:
        >>> with LogContext("Venue lookup") as ctx:
        ...     pass
        # Logs: "Venue lookup..."
        # Logs: "Venue lookup completed in 0.12s"
    """

    def __init__(
        self,
        message: str,
        level: int = logging.INFO,
        logger: logging.Logger | None = None,
    ) -> None:
        self.message = message
        self.level = level
        self.logger = logger or logging.getLogger(PACKAGE_NAME)
        self.elapsed: float = 0.0
        self._start_time: float = 0.0

    @property
    def elapsed_ms(self) -> int:
        return round(self.elapsed * 1000)

    def __enter__(self) -> "LogContext":
        self._start_time = time.perf_counter()
        self.logger.log(self.level, f"{self.message}...")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.elapsed = time.perf_counter() - self._start_time

        if exc_type is not None:
            self.logger.error(
                f"{self.message} failed after {self.elapsed:.2f}s: {exc_type.__name__}"
            )
        else:
            self.logger.log(self.level, f"{self.message} completed in {self.elapsed:.2f}s")

