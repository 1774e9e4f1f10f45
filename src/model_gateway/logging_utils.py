"""Logging helpers for the model routing gateway."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from model_gateway.auth.context import get_request_context_optional
from model_gateway.config import load_settings

_logger = logging.getLogger(__name__)

_LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | "
    "request_id=%(request_id)s user=%(user_id)s subscription=%(subscription_id)s | %(message)s"
)
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class RequestContextFilter(logging.Filter):
    """Stamp each record with the request id and caller bound to the current request."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_request_context_optional()
        record.request_id = ctx.request_id if ctx else "-"
        record.user_id = (ctx.user_id if ctx else None) or "-"
        record.subscription_id = (ctx.subscription_id if ctx else None) or "-"
        return True


def _handler(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    handler.addFilter(RequestContextFilter())
    return handler


def configure_logging() -> None:
    """Configure process-wide logging from settings."""
    settings = load_settings()
    level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [_handler(logging.StreamHandler(sys.stderr))]

    if settings.logging.file:
        try:
            Path(settings.logging.file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(_handler(logging.FileHandler(settings.logging.file)))
        except OSError as exc:
            _logger.warning("Failed to open log file %s: %s", settings.logging.file, exc)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    # httpx logs every request at INFO; the audit middleware already covers inbound calls.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
