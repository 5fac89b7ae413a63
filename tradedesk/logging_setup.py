"""Loguru configuration for the trade desk.

Every record passes through a patcher that masks credential-shaped
strings (UUID access tokens and secret keys, 128-hex HMAC-SHA512
signatures) before any sink sees it, so a request logged with its
headers or payload never leaks the account's keys.
"""
import re
import sys
from pathlib import Path
from typing import Optional

from loguru import logger as _logger

MASK = "***"

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

_SECRET_PATTERNS = (
    re.compile(r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b"),
    re.compile(r"\b[0-9a-fA-F]{128}\b"),
)


def redact(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(MASK, text)
    return text


def _redact_record(record) -> None:
    record["message"] = redact(record["message"])


def setup_logging(
    log_file: Optional[str] = "tradedesk.log",
    level: str = "INFO",
    enable_console: bool = True,
    serialize: bool = False,
) -> None:
    """Replace all sinks with the desk's file and console sinks.

    Args:
        log_file: Path to log file, or None to skip file logging
        level: Minimum level for both sinks
        enable_console: Whether to log to stdout as well
        serialize: Write the file sink as JSON lines instead of text
    """
    _logger.remove()

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _logger.add(
            str(log_path),
            format=LOG_FORMAT,
            level=level.upper(),
            rotation="50 MB",
            retention="14 days",
            serialize=serialize,
        )

    if enable_console:
        _logger.add(sys.stdout, format=LOG_FORMAT, level=level.upper(), colorize=True)


# redaction applies even before setup_logging is called
_logger.configure(patcher=_redact_record)

logger = _logger
