"""Authorization header selection for backend calls."""

from __future__ import annotations

from model_gateway.credentials.cache import WorkspaceTokenCache
from model_gateway.domain.records import AMLWorkspace, APIVersion, AuthenticationMode
from model_gateway.errors import AuthError


class CredentialBroker:
    """Builds Authorization headers for an API version or its workspace.

    The same logical endpoint may be secured differently per version, so
    callers always go through :meth:`headers_for_version` rather than assuming
    a scheme.
    """

    def __init__(self, tokens: WorkspaceTokenCache) -> None:
        self._tokens = tokens

    async def workspace_token(self, workspace: AMLWorkspace) -> str:
        return (await self._tokens.token_for(workspace)).access_token

    async def workspace_headers(self, workspace: AMLWorkspace) -> dict[str, str]:
        """Headers for resource-manager and workspace management calls."""
        return {"Authorization": f"Bearer {await self.workspace_token(workspace)}"}

    async def headers_for_version(
        self,
        version: APIVersion,
        workspace: AMLWorkspace,
    ) -> dict[str, str]:
        """Headers for calls to the endpoints declared on ``version``."""
        mode = AuthenticationMode(version.authentication_type)
        if mode is AuthenticationMode.TOKEN:
            return await self.workspace_headers(workspace)
        if mode is AuthenticationMode.KEY:
            if not version.authentication_key:
                raise AuthError(
                    f"API version {version.version_name} uses key authentication "
                    "but has no key configured"
                )
            return {"Authorization": f"Bearer {version.authentication_key}"}
        return {}
