"""Request context and subscription ownership checks."""

from model_gateway.auth.context import (
    RequestContext,
    get_request_context,
    get_request_context_optional,
    reset_request_context,
    set_request_context,
    update_request_context,
)
from model_gateway.auth.guard import StaticUserDirectory, SubscriptionGuard, UserDirectory

__all__ = [
    "RequestContext",
    "StaticUserDirectory",
    "SubscriptionGuard",
    "UserDirectory",
    "get_request_context",
    "get_request_context_optional",
    "reset_request_context",
    "set_request_context",
    "update_request_context",
]
