"""
structlog setup for the gateway.

One JSON object per line on stdout (LOG_FORMAT=console for local work), each
with timestamp, level, logger and event_type. Wallet ids and payment
signatures are shortened before rendering so full identifiers never reach the
log stream, whichever module logged them.

No backend_x402 imports here; every other module imports this one.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

# Key -> number of leading characters kept in log output.
SHORTENED_KEYS = {"wallet_id": 8, "payer": 8, "signature": 16}


def short_id(value: str | None, length: int = 8) -> str:
    if not value:
        return ""
    return value if len(value) <= length else value[:length] + "..."


def _stamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def _shorten_identifiers(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, length in SHORTENED_KEYS.items():
        value = event_dict.get(key)
        if isinstance(value, str) and not value.endswith("..."):
            event_dict[key] = short_id(value, length)
    return event_dict


def _renderer() -> Any:
    if LOG_FORMAT == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            _shorten_identifiers,
            _stamp,
            _renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, LOG_LEVEL, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name).bind(logger=name)


def bind_wallet(wallet_id: str, name: str = "backend_x402") -> structlog.BoundLogger:
    """Logger for one request; every event it emits carries the payer's wallet_id."""
    return get_logger(name).bind(wallet_id=wallet_id)
