"""
structlog setup for the MCP server.

Everything is rendered as JSON to stderr, and to a log file when one is
configured. stdout is left alone because it carries the MCP stdio transport.

Credentials never reach a log line:
  - values under credential-like keys are replaced, at any nesting depth
  - "Basic <token>" fragments are masked inside free-text values, which
    covers stdlib loggers (httpx, mcp) that format their own messages
Record payloads are logged by field name only; tools never pass raw values.
"""
from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import Any

import structlog

_MASK = "[REDACTED]"

# Compared case-insensitively against event_dict keys (and keys of nested dicts)
_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "servicenow_password",
        "authorization",
        "auth",
        "secret",
        "client_secret",
        "token",
        "access_token",
        "api_key",
        "cookie",
        "set-cookie",
    }
)

_BASIC_CREDENTIALS = re.compile(r"(Basic\s+)[A-Za-z0-9+/=]+", re.IGNORECASE)

# Third-party loggers that only log useful things at WARNING and above
_QUIET_LOGGERS = ("httpx", "httpcore", "mcp")


def _mask(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: _MASK if str(k).lower() in _SENSITIVE_KEYS else _mask(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_mask(v) for v in value]
    if isinstance(value, str):
        return _BASIC_CREDENTIALS.sub(rf"\1{_MASK}", value)
    return value


def _redact_credentials(
    logger: Any,  # noqa: ANN401 — structlog typing requirement
    method: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """structlog processor: mask credentials before any renderer runs."""
    return _mask(event_dict)


def _file_target(log_file: str | None) -> str | None:
    """Create the log directory; None means stderr only."""
    if not log_file:
        return None
    try:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        return None
    return log_file


def configure_logging(log_level: str = "INFO", log_file: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger. Call once at startup.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        log_file:  Optional extra destination; its directory is created if
                   needed, and file logging is skipped if that fails.
    """
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _redact_credentials,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.ExceptionRenderer(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # foreign_pre_chain routes stdlib records through the same redaction
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    target = _file_target(log_file)
    if target:
        handlers.append(logging.FileHandler(target, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(getattr(logging, log_level, logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
