"""Per-workspace bearer token cache.

Each workspace record names one service principal. Its token is reused until
it is within the refresh buffer of expiry; concurrent requests for the same
workspace share one identity-provider call.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from datetime import timedelta

from model_gateway.credentials.provider import BearerToken, TokenProvider
from model_gateway.domain.records import AMLWorkspace
from model_gateway.utils.time import utc_now

logger = logging.getLogger(__name__)


class WorkspaceTokenCache:
    """LRU-bounded token cache keyed by workspace record.

    The record includes the application secret, so a rotated secret is a new
    key and never reuses a token issued for the old one.
    """

    def __init__(
        self,
        provider: TokenProvider,
        refresh_buffer_seconds: int = 300,
        max_entries: int = 1000,
    ) -> None:
        self._provider = provider
        self._refresh_buffer = timedelta(seconds=refresh_buffer_seconds)
        self._max_entries = max_entries
        self._tokens: OrderedDict[AMLWorkspace, BearerToken] = OrderedDict()
        self._pending: dict[AMLWorkspace, asyncio.Task[BearerToken]] = {}

    async def token_for(self, workspace: AMLWorkspace) -> BearerToken:
        token = self._tokens.get(workspace)
        if token is not None and token.expires_at - self._refresh_buffer > utc_now():
            self._tokens.move_to_end(workspace)
            return token

        task = self._pending.get(workspace)
        if task is None:
            task = asyncio.ensure_future(self._acquire(workspace))
            self._pending[workspace] = task
        # A cancelled waiter must not cancel the acquisition other waiters share.
        return await asyncio.shield(task)

    async def _acquire(self, workspace: AMLWorkspace) -> BearerToken:
        try:
            token = await self._provider.get_token(
                workspace.aad_tenant_id,
                workspace.aad_application_id,
                workspace.aad_application_secret,
            )
        finally:
            self._pending.pop(workspace, None)

        self._tokens[workspace] = token
        self._tokens.move_to_end(workspace)
        while len(self._tokens) > self._max_entries:
            evicted, _ = self._tokens.popitem(last=False)
            logger.debug("Evicted cached token for workspace %s", evicted.workspace_name)
        return token

    def __len__(self) -> int:
        return len(self._tokens)
