"""Application context assembly."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import httpx

from model_gateway.auth.guard import StaticUserDirectory, SubscriptionGuard, UserDirectory
from model_gateway.backend.client import BackendClient, create_http_client
from model_gateway.backend.urls import BackendUrls
from model_gateway.config import Settings, load_settings
from model_gateway.credentials.broker import CredentialBroker
from model_gateway.credentials.cache import WorkspaceTokenCache
from model_gateway.credentials.provider import TokenProvider
from model_gateway.metadata.catalog import MetadataStore, load_catalog
from model_gateway.metadata.resolver import CoordinateResolver
from model_gateway.routing.correlator import Correlator
from model_gateway.routing.dispatcher import Dispatcher


@dataclass
class AppContext:
    """Application-wide dependency container.

    Built once per process. The HTTP client is shared by every outbound call
    and closed by the server lifespan.
    """

    settings: Settings
    http: httpx.AsyncClient
    store: MetadataStore
    dispatcher: Dispatcher
    correlator: Correlator

    async def aclose(self) -> None:
        await self.http.aclose()


def build_app_context(
    settings: Settings,
    store: MetadataStore,
    directory: UserDirectory,
    http: httpx.AsyncClient | None = None,
) -> AppContext:
    """Wire the core services around ``store`` and a shared HTTP client."""
    http = http or create_http_client(settings.backend)

    guard = SubscriptionGuard(store, directory)
    resolver = CoordinateResolver(store)
    broker = CredentialBroker(
        WorkspaceTokenCache(
            TokenProvider(
                http,
                authority_host=settings.auth.authority_host,
                scope=settings.auth.token_scope,
            ),
            refresh_buffer_seconds=settings.auth.credential_refresh_buffer_seconds,
            max_entries=settings.auth.credential_cache_max_entries,
        )
    )
    backend = BackendClient(http)

    return AppContext(
        settings=settings,
        http=http,
        store=store,
        dispatcher=Dispatcher(guard, resolver, broker, backend),
        correlator=Correlator(
            guard,
            resolver,
            broker,
            backend,
            BackendUrls(settings.backend),
            run_type=settings.backend.run_type,
        ),
    )


@lru_cache(maxsize=1)
def get_app_context() -> AppContext:
    """Get or create the application context from configuration."""
    settings = load_settings()
    store = load_catalog(settings.metadata.catalog_path)
    return build_app_context(settings, store, StaticUserDirectory(store.users))
