"""Audit logging middleware with sensitive field masking."""

from __future__ import annotations

import logging
import re
import time
import uuid
from functools import lru_cache
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..auth.context import RequestContext, reset_request_context, set_request_context
from ..utils.http import get_client_ip
from ..utils.masking import SENSITIVE_KEY_MARKERS, redact_sensitive_fields

logger = logging.getLogger(__name__)

_MAX_MASK_DEPTH = 20
_MASK = "***MASKED***"

# Control character pattern for log injection prevention.
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")

MASK_FIELDS = frozenset(SENSITIVE_KEY_MARKERS) | frozenset({"aad_application_secret", "key"})


def _sanitize_log_value(value: str) -> str:
    """Replace control characters (newlines, tabs, etc.) to prevent log injection."""
    return _CONTROL_CHAR_RE.sub("_", value)


@lru_cache(maxsize=128)
def _get_mask_pattern(field: str) -> re.Pattern:
    return re.compile(
        rf'(["\']?{re.escape(field)}["\']?\s*[:=]\s*)["\']?[^"\']*["\']?',
        re.IGNORECASE,
    )


def mask_sensitive_data(data: Any, mask_fields: frozenset[str] = MASK_FIELDS, depth: int = 0) -> Any:
    """Recursively mask sensitive fields in data structures.

    Dicts and lists go through ``redact_sensitive_fields``; strings get
    ``field=value`` / ``"field": "value"`` pairs masked.
    """
    if depth >= _MAX_MASK_DEPTH:
        return _MASK
    if isinstance(data, dict):
        return redact_sensitive_fields(data, mask=_MASK, depth=depth, max_depth=_MAX_MASK_DEPTH)
    if isinstance(data, list):
        return [mask_sensitive_data(item, mask_fields, depth + 1) for item in data]
    if isinstance(data, str):
        return mask_exception_message(data, mask_fields)
    return data


def mask_exception_message(message: str, mask_fields: frozenset[str] = MASK_FIELDS) -> str:
    masked = message
    for field in mask_fields:
        masked = _get_mask_pattern(field).sub(rf"\1{_MASK}", masked)
    return masked


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Audit logging middleware.

    - Assigns the request id and installs the request context
    - Logs REQUEST_START / REQUEST_END with caller, status and duration
    - Masks sensitive data in exception messages
    """

    EXEMPT_PATHS = frozenset({"/health", "/ready"})

    def __init__(
        self,
        app: Callable,
        enabled: bool = True,
        trust_forwarded_headers: bool = False,
    ) -> None:
        super().__init__(app)
        self.enabled = enabled
        self._trust_forwarded_headers = trust_forwarded_headers

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = _sanitize_log_value(request.headers.get("x-request-id", str(uuid.uuid4())))
        ctx_token = set_request_context(RequestContext(request_id=request_id))
        try:
            if not self.enabled or request.url.path in self.EXEMPT_PATHS:
                return await call_next(request)
            return await self._audited(request, call_next, request_id)
        finally:
            reset_request_context(ctx_token)

    async def _audited(self, request: Request, call_next: Callable, request_id: str) -> Response:
        start_time = time.time()
        client_ip = get_client_ip(
            request,
            trust_forwarded_headers=self._trust_forwarded_headers,
        )

        # Sanitize user-controlled values to prevent log injection.
        safe_path = _sanitize_log_value(request.url.path)
        safe_ip = _sanitize_log_value(client_ip)

        logger.info(
            "REQUEST_START request_id=%s method=%s path=%s client_ip=%s",
            request_id,
            request.method,
            safe_path,
            safe_ip,
        )

        error_message: str | None = None
        status_code: int = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["x-request-id"] = request_id
            return response

        except Exception as e:
            error_message = mask_exception_message(str(e))
            raise

        finally:
            duration_ms = int((time.time() - start_time) * 1000)

            # Handlers record the caller once the body has been parsed.
            user_id = getattr(request.state, "user_id", None) or "anonymous"
            safe_user_id = _sanitize_log_value(user_id)

            if error_message:
                logger.error(
                    "REQUEST_END request_id=%s user_id=%s method=%s path=%s "
                    "status=%s duration_ms=%d error=%s",
                    request_id,
                    safe_user_id,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                    error_message,
                )
            else:
                logger.info(
                    "REQUEST_END request_id=%s user_id=%s method=%s path=%s "
                    "status=%s duration_ms=%d",
                    request_id,
                    safe_user_id,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                )
