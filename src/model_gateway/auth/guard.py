"""Subscription ownership guard."""

from __future__ import annotations

import logging
from typing import Mapping, Protocol

from model_gateway.domain.records import Subscription
from model_gateway.errors import ForbiddenError, NotFoundError
from model_gateway.metadata.catalog import MetadataStore

logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
    """Maps a subscription owner's id to the name callers present."""

    def display_name(self, user_id: str) -> str: ...


class StaticUserDirectory:
    """Directory backed by a fixed mapping; unknown ids map to themselves."""

    def __init__(self, names: Mapping[str, str] | None = None) -> None:
        self._names = dict(names or {})

    def display_name(self, user_id: str) -> str:
        return self._names.get(user_id, user_id)


class SubscriptionGuard:
    """Checks that a subscription belongs to the calling user.

    Runs before any backend call so that an unauthorized caller never causes
    remote traffic or sees backend data.
    """

    def __init__(self, store: MetadataStore, directory: UserDirectory) -> None:
        self._store = store
        self._directory = directory

    async def authorize(self, subscription_id: str, user_id: str) -> Subscription:
        subscription = await self._store.get_subscription(subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription", subscription_id)

        owner = self._directory.display_name(subscription.user_id)
        if owner != user_id:
            logger.warning(
                "Rejected caller %r for subscription %s",
                user_id,
                subscription_id,
            )
            raise ForbiddenError("UserId of request is not equal to the subscription owner.")
        return subscription
