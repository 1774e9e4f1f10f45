"""Request-scoped context."""

from __future__ import annotations

import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field, replace
from typing import Callable


@dataclass(frozen=True)
class RequestContext:
    """Immutable request-scoped context used to correlate log lines."""

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str | None = None
    subscription_id: str | None = None

    def with_caller(self, user_id: str, subscription_id: str) -> "RequestContext":
        """Return new context bound to the calling user and subscription."""
        return replace(self, user_id=user_id, subscription_id=subscription_id)


_request_context: ContextVar[RequestContext | None] = ContextVar(
    "request_context",
    default=None,
)


def set_request_context(ctx: RequestContext) -> Token[RequestContext | None]:
    """Set context and return reset token."""
    return _request_context.set(ctx)


def reset_request_context(token: Token[RequestContext | None]) -> None:
    """Reset context using token from set_request_context()."""
    _request_context.reset(token)


def get_request_context() -> RequestContext:
    """Get context or raise RuntimeError."""
    ctx = _request_context.get()
    if ctx is None:
        raise RuntimeError("No request context set")
    return ctx


def get_request_context_optional() -> RequestContext | None:
    """Get context or None."""
    return _request_context.get()


def update_request_context(
    updater: Callable[[RequestContext], RequestContext],
) -> Token[RequestContext | None]:
    """Update context with a function and return reset token."""
    current = get_request_context()
    return _request_context.set(updater(current))


def current_request_id() -> str:
    ctx = _request_context.get()
    return ctx.request_id if ctx else "-"
