"""Client-credentials token acquisition against the workspace identity provider.

The gateway authenticates to the backend as the workspace's registered
application: tenant id, application id and application secret are exchanged
for a short-lived bearer token scoped to the resource manager.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx

from model_gateway.errors import AuthError
from model_gateway.utils.time import utc_now

logger = logging.getLogger(__name__)

_DEFAULT_EXPIRES_IN_SECONDS = 3600


@dataclass(frozen=True)
class BearerToken:
    """Immutable bearer token from the identity provider."""

    access_token: str
    expires_at: datetime

    def __repr__(self) -> str:
        return f"BearerToken(access_token={self.access_token[:8]}***, expires_at={self.expires_at.isoformat()})"

    def __str__(self) -> str:
        return self.__repr__()


class TokenProvider:
    """Acquires tokens with the OAuth 2.0 client-credentials grant."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        authority_host: str = "https://login.microsoftonline.com",
        scope: str = "https://management.azure.com/.default",
    ) -> None:
        self._client = client
        self._authority_host = authority_host.rstrip("/")
        self._scope = scope

    def token_url(self, tenant_id: str) -> str:
        return f"{self._authority_host}/{tenant_id}/oauth2/v2.0/token"

    async def get_token(
        self,
        tenant_id: str,
        application_id: str,
        application_secret: str,
    ) -> BearerToken:
        """
        Exchange an application credential for a bearer token.

        Raises:
            AuthError: If the identity provider rejects the credential or
                cannot be reached.
        """
        try:
            resp = await self._client.post(
                self.token_url(tenant_id),
                data={
                    "grant_type": "client_credentials",
                    "client_id": application_id,
                    "client_secret": application_secret,
                    "scope": self._scope,
                },
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "Token request failed: tenant=%s, app=%s, error=%s",
                tenant_id,
                application_id,
                type(exc).__name__,
            )
            raise AuthError(f"Identity provider unreachable: {type(exc).__name__}") from exc

        if resp.status_code != 200:
            description = _error_description(resp)
            logger.warning(
                "Token request rejected: tenant=%s, app=%s, status=%s, error=%s",
                tenant_id,
                application_id,
                resp.status_code,
                description,
            )
            raise AuthError(f"Identity provider rejected credential: {description}")

        try:
            data = resp.json()
            access_token = data["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthError("Identity provider returned a malformed token response") from exc

        try:
            expires_in = int(data.get("expires_in", _DEFAULT_EXPIRES_IN_SECONDS))
        except (TypeError, ValueError):
            expires_in = _DEFAULT_EXPIRES_IN_SECONDS

        logger.info("Acquired token: tenant=%s, app=%s", tenant_id, application_id)
        return BearerToken(
            access_token=access_token,
            expires_at=utc_now() + timedelta(seconds=expires_in),
        )


def _error_description(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        return str(data.get("error_description") or data.get("error") or f"HTTP {resp.status_code}")
    return f"HTTP {resp.status_code}"
