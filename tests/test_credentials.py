"""Tests for token acquisition, caching and authentication-mode selection."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import make_store
from model_gateway.credentials.broker import CredentialBroker
from model_gateway.credentials.cache import WorkspaceTokenCache
from model_gateway.credentials.provider import BearerToken, TokenProvider
from model_gateway.domain.records import AMLWorkspace, APIVersion, AuthenticationMode
from model_gateway.errors import AuthError


def _token(expires_at: datetime | None = None, value: str = "tok") -> BearerToken:
    return BearerToken(
        access_token=value,
        expires_at=expires_at or (datetime.now(timezone.utc) + timedelta(hours=1)),
    )


def _workspace(secret: str = "s3cret") -> AMLWorkspace:
    return AMLWorkspace(
        workspace_name="ws1",
        resource_id="/subscriptions/x/workspaces/ws1",
        aad_tenant_id="tenant-1",
        aad_application_id="app-1",
        aad_application_secret=secret,
    )


def _version(mode: AuthenticationMode, key: str | None = None) -> APIVersion:
    return APIVersion(
        product_name="p1",
        deployment_name="d1",
        version_name="v1",
        aml_workspace_name="ws1",
        authentication_type=mode,
        authentication_key=key,
    )


class TestTokenProvider:
    @pytest.mark.asyncio
    async def test_get_token_posts_client_credentials(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access_token": "abc", "expires_in": "120"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = TokenProvider(client, authority_host="https://login.example.com/")
            token = await provider.get_token("tenant-1", "app-1", "s3cret")

        assert token.access_token == "abc"
        assert token.expires_at <= datetime.now(timezone.utc) + timedelta(seconds=120)
        assert str(seen[0].url) == "https://login.example.com/tenant-1/oauth2/v2.0/token"
        form = parse_qs(seen[0].content.decode())
        assert form["grant_type"] == ["client_credentials"]
        assert form["client_id"] == ["app-1"]
        assert form["client_secret"] == ["s3cret"]
        assert form["scope"] == ["https://management.azure.com/.default"]

    @pytest.mark.asyncio
    async def test_rejected_credential_raises_auth_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                401,
                json={"error": "invalid_client", "error_description": "AADSTS7000215: bad secret"},
            )

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(AuthError, match="AADSTS7000215") as exc_info:
                await TokenProvider(client).get_token("tenant-1", "app-1", "wrong")
        assert exc_info.value.http_status == 502

    @pytest.mark.asyncio
    async def test_unreachable_identity_provider(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(AuthError, match="unreachable"):
                await TokenProvider(client).get_token("tenant-1", "app-1", "s3cret")

    @pytest.mark.asyncio
    async def test_malformed_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token_type": "Bearer"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(AuthError, match="malformed"):
                await TokenProvider(client).get_token("tenant-1", "app-1", "s3cret")

    def test_token_repr_hides_value(self) -> None:
        token = _token(value="abcdefghijklmnopqrstuvwxyz")
        assert "abcdefghijklmnop" not in repr(token)
        assert str(token) == repr(token)


class _ScriptedProvider:
    """Returns queued results in order, counting identity-provider calls."""

    def __init__(self, *results: BearerToken | Exception, delay: float = 0.0) -> None:
        self._results = list(results)
        self._delay = delay
        self.calls: list[tuple[str, str, str]] = []

    async def get_token(self, tenant_id: str, application_id: str, secret: str) -> BearerToken:
        self.calls.append((tenant_id, application_id, secret))
        if self._delay:
            await asyncio.sleep(self._delay)
        result = self._results.pop(0) if len(self._results) > 1 else self._results[0]
        if isinstance(result, Exception):
            raise result
        return result


class TestWorkspaceTokenCache:
    @pytest.mark.asyncio
    async def test_token_is_reused_until_refresh_buffer(self) -> None:
        provider = _ScriptedProvider(_token())
        cache = WorkspaceTokenCache(provider, refresh_buffer_seconds=300, max_entries=10)

        first = await cache.token_for(_workspace())
        second = await cache.token_for(_workspace())

        assert first == second
        assert provider.calls == [("tenant-1", "app-1", "s3cret")]

    @pytest.mark.asyncio
    async def test_expiring_token_is_replaced(self) -> None:
        provider = _ScriptedProvider(
            _token(datetime.now(timezone.utc) + timedelta(minutes=5), value="old"),
            _token(datetime.now(timezone.utc) + timedelta(hours=2), value="new"),
        )
        cache = WorkspaceTokenCache(provider, refresh_buffer_seconds=3600, max_entries=10)

        assert (await cache.token_for(_workspace())).access_token == "old"
        assert (await cache.token_for(_workspace())).access_token == "new"

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_acquisition(self) -> None:
        provider = _ScriptedProvider(_token(), delay=0.01)
        cache = WorkspaceTokenCache(provider)

        results = await asyncio.gather(*(cache.token_for(_workspace()) for _ in range(5)))

        assert len(provider.calls) == 1
        assert all(r == results[0] for r in results)

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter_and_is_not_cached(self) -> None:
        provider = _ScriptedProvider(AuthError("rejected"), _token(), delay=0.01)
        cache = WorkspaceTokenCache(provider)

        results = await asyncio.gather(
            cache.token_for(_workspace()),
            cache.token_for(_workspace()),
            return_exceptions=True,
        )
        assert all(isinstance(r, AuthError) for r in results)
        assert len(provider.calls) == 1
        assert len(cache) == 0

        assert (await cache.token_for(_workspace())).access_token == "tok"

    @pytest.mark.asyncio
    async def test_rotated_secret_is_a_new_entry(self) -> None:
        provider = _ScriptedProvider(_token(value="first"), _token(value="second"))
        cache = WorkspaceTokenCache(provider)

        first = await cache.token_for(_workspace("old"))
        second = await cache.token_for(_workspace("new"))

        assert (first.access_token, second.access_token) == ("first", "second")
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_lru_eviction(self) -> None:
        cache = WorkspaceTokenCache(_ScriptedProvider(_token()), max_entries=2)

        for secret in ("a", "b", "c"):
            await cache.token_for(_workspace(secret))

        assert len(cache) == 2


class TestCredentialBroker:
    def _broker(self, handler) -> tuple[CredentialBroker, httpx.AsyncClient]:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        broker = CredentialBroker(
            WorkspaceTokenCache(TokenProvider(client), refresh_buffer_seconds=300, max_entries=10)
        )
        return broker, client

    @pytest.mark.asyncio
    async def test_token_mode_uses_workspace_token(self) -> None:
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            return httpx.Response(200, json={"access_token": "ws-token", "expires_in": 3600})

        broker, client = self._broker(handler)
        async with client:
            headers = await broker.headers_for_version(
                _version(AuthenticationMode.TOKEN), _workspace()
            )
            again = await broker.workspace_headers(_workspace())

        assert headers == {"Authorization": "Bearer ws-token"}
        assert again == headers
        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_rotated_secret_gets_new_token(self) -> None:
        tokens = iter(["first", "second"])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"access_token": next(tokens), "expires_in": 3600})

        broker, client = self._broker(handler)
        async with client:
            first = await broker.workspace_token(_workspace("old"))
            second = await broker.workspace_token(_workspace("new"))

        assert (first, second) == ("first", "second")

    @pytest.mark.asyncio
    async def test_key_mode_uses_static_key_without_identity_provider(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("identity provider must not be called")

        broker, client = self._broker(handler)
        async with client:
            headers = await broker.headers_for_version(
                _version(AuthenticationMode.KEY, key="static-key"), _workspace()
            )
        assert headers == {"Authorization": "Bearer static-key"}

    @pytest.mark.asyncio
    async def test_key_mode_without_key(self) -> None:
        broker, client = self._broker(lambda request: httpx.Response(500))
        async with client:
            with pytest.raises(AuthError, match="no key configured"):
                await broker.headers_for_version(_version(AuthenticationMode.KEY), _workspace())

    @pytest.mark.asyncio
    async def test_none_mode_omits_header(self) -> None:
        broker, client = self._broker(lambda request: httpx.Response(500))
        async with client:
            headers = await broker.headers_for_version(
                _version(AuthenticationMode.NONE), _workspace()
            )
        assert headers == {}

    @pytest.mark.asyncio
    async def test_mode_given_as_plain_string(self) -> None:
        broker, client = self._broker(lambda request: httpx.Response(500))
        version = replace(_version(AuthenticationMode.NONE), authentication_type="None")
        async with client:
            assert await broker.headers_for_version(version, _workspace()) == {}

    def test_catalog_parses_authentication_mode(self) -> None:
        store = make_store()
        version = next(iter(store._versions.values()))
        assert version.authentication_type is AuthenticationMode.TOKEN
