"""Steps shared by every dispatch and correlation entry point."""

from __future__ import annotations

from model_gateway.auth.context import get_request_context_optional, update_request_context
from model_gateway.auth.guard import SubscriptionGuard
from model_gateway.domain.operations import ResolvedTarget, TenantCoordinate
from model_gateway.metadata.resolver import CoordinateResolver


async def prepare_target(
    guard: SubscriptionGuard,
    resolver: CoordinateResolver,
    coordinate: TenantCoordinate,
    user_id: str,
) -> ResolvedTarget:
    """Authorize the caller, then resolve the coordinate.

    Authorization comes first so an unauthorized caller never triggers
    metadata fan-out or backend traffic.
    """
    await guard.authorize(coordinate.subscription_id, user_id)
    if get_request_context_optional() is not None:
        update_request_context(lambda ctx: ctx.with_caller(user_id, coordinate.subscription_id))
    return await resolver.resolve(coordinate)
