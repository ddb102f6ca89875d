"""
Structured logging configuration for perpguard.

Provides JSON-formatted structured logging with:
- Wallet/secret filtering (no private keys, seeds, signatures, raw addresses)
- RPC URL reduction (provider keys often live in the URL path)
- One JSON object per line for log aggregation

Usage:
    from perpguard.logging_config import setup_logging, get_logger

    setup_logging()  # Call once at startup
    logger = get_logger(__name__)
    logger.info("action emitted", extra={"position_id": "BTC-LONG-1"})
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

# Matches http(s)/ws(s) URLs, e.g. RPC endpoints
_URL_PATTERN = re.compile(r"((?:https?|wss?)://[^\s\"'<>]+)")

# Order matters: 64-hex keys/hashes must be replaced before 40-hex addresses
_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # Private keys and tx hashes (0x + 64 hex)
    (re.compile(r"\b0x[0-9a-fA-F]{64}\b"), "[HEX64]"),
    # Wallet / contract addresses (0x + 40 hex)
    (re.compile(r"\b0x[0-9a-fA-F]{40}\b"), "[ADDRESS]"),
    # key=value style secrets
    (re.compile(r"\b(api[_-]?key|private[_-]?key)[=:]\s*['\"]?[\w\-]+['\"]?", re.I), "[KEY]"),
    # Bearer tokens
    (re.compile(r"\b(bearer|token)[=:\s]+['\"]?[\w\-\.]+['\"]?", re.I), "[TOKEN]"),
    # Email addresses
    (re.compile(r"\b[\w\.-]+@[\w\.-]+\.\w+\b"), "[EMAIL]"),
]

# Fields that must never appear in logs
BLOCKED_FIELDS: frozenset[str] = frozenset(
    {
        "private_key",
        "mnemonic",
        "seed",
        "signature",
        "api_key",
        "secret",
        "password",
        "token",
        "authorization",
        "email",
    }
)

# Fields replaced wholesale instead of logged verbatim
REDACTED_FIELDS: dict[str, str] = {
    "wallet": "[WALLET]",
    "address": "[ADDRESS]",
    "calldata": "[CALLDATA]",
    "payload": "[PAYLOAD]",
}

# LogRecord attributes that are not user-supplied extras
_RECORD_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)


def _reduce_url(url: str) -> str:
    """Reduce a URL to scheme and host.

    RPC providers embed project keys in the path, so the path is dropped.
    """
    parts = urlsplit(url)
    if not parts.netloc:
        return "[URL]"
    return f"{parts.scheme}://{parts.netloc}"


def _sanitize_text(text: str) -> str:
    """Remove secrets, addresses and URL paths from free-form text."""
    if not text:
        return text

    result = _URL_PATTERN.sub(lambda m: _reduce_url(m.group(1)), text)
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _filter_log_record(record: dict[str, Any], *, _depth: int = 0) -> dict[str, Any]:
    """Filter sensitive fields from a dict of log extras.

    Nested dicts are filtered recursively up to depth 3.
    """
    if _depth > 3:
        return {"_truncated": "max depth exceeded"}

    filtered: dict[str, Any] = {}

    for key, value in record.items():
        key_lower = key.lower()

        if any(blocked in key_lower for blocked in BLOCKED_FIELDS):
            continue

        if key_lower in REDACTED_FIELDS:
            filtered[key] = REDACTED_FIELDS[key_lower]
            continue

        if isinstance(value, (int, float, bool, type(None))):
            filtered[key] = value
        elif isinstance(value, str):
            filtered[key] = _sanitize_text(value)
        elif isinstance(value, (list, tuple, set, frozenset)):
            items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else list(value)
            if len(items) <= 10:
                filtered[key] = [_sanitize_text(str(v)) for v in items]
            else:
                filtered[key] = f"[list:{len(items)} items]"
        elif isinstance(value, dict):
            filtered[key] = _filter_log_record(value, _depth=_depth + 1)
        else:
            # Decimal, enums and contracts end up here
            filtered[key] = _sanitize_text(str(value))

    return filtered


def _collect_extras(record: logging.LogRecord) -> dict[str, Any]:
    """Return user-supplied `extra=` fields of a record."""
    return {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}


class JsonFormatter(logging.Formatter):
    """JSON log formatter, one object per line.

    Output format:
    {"ts":"2024-01-01T00:00:00.000+00:00","level":"INFO","logger":"module","msg":"...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_dict: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": _sanitize_text(record.getMessage()),
        }

        if record.levelno >= logging.WARNING:
            log_dict["file"] = record.filename
            log_dict["line"] = record.lineno

        if record.exc_info:
            log_dict["exc"] = _sanitize_text(self.formatException(record.exc_info))

        extra = _collect_extras(record)
        if extra:
            log_dict.update(_filter_log_record(extra))

        return json.dumps(log_dict, default=str, ensure_ascii=False)


class SimpleFormatter(logging.Formatter):
    """Human-readable formatter for development and tests."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as `LEVEL logger: msg | k=v ...`."""
        base = f"{record.levelname:8s} {record.name}: {_sanitize_text(record.getMessage())}"

        extra = _collect_extras(record)
        if extra:
            filtered = _filter_log_record(extra)
            if filtered:
                extra_str = " ".join(f"{k}={v}" for k, v in filtered.items())
                base = f"{base} | {extra_str}"

        return base


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = True,
    stream: Any = None,
) -> None:
    """Configure structured logging for the application.

    Call once at application startup.

    Args:
        level: Log level (default INFO).
        json_format: Use JSON formatter (default True for production).
        stream: Output stream (default stderr).
    """
    if stream is None:
        stream = sys.stderr

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter() if json_format else SimpleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
