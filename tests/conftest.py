from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Callable

import httpx
import pytest

from model_gateway.app import AppContext, build_app_context
from model_gateway.auth.guard import StaticUserDirectory, SubscriptionGuard
from model_gateway.config import Settings
from model_gateway.domain.operations import TenantCoordinate
from model_gateway.metadata.catalog import CatalogFile, CatalogMetadataStore
from model_gateway.metadata.resolver import CoordinateResolver

SUBSCRIPTION_ID = "5f1e0c7a-3b9d-4c2e-8a41-0d6b2f9e7c13"
RESOURCE_ID = (
    "/subscriptions/0a1b2c3d/resourceGroups/ml-rg/providers/"
    "Microsoft.MachineLearningServices/workspaces/ws1"
)
TRAIN_URL = "https://pipelines.example.com/train"
BATCH_URL = "https://pipelines.example.com/batch"
DEPLOY_URL = "https://pipelines.example.com/deploy"
PREDICT_URL = "https://scoring.example.com/score"


def catalog_data(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "products": [{"id": "prod-1", "product_name": "p1"}],
        "deployments": [{"id": "dep-1", "product_name": "p1", "deployment_name": "d1"}],
        "api_versions": [
            {
                "product_name": "p1",
                "deployment_name": "d1",
                "version_name": "v1",
                "aml_workspace_name": "ws1",
                "authentication_type": "Token",
                "realtime_predict_api": PREDICT_URL,
                "train_model_api": TRAIN_URL,
                "batch_inference_api": BATCH_URL,
                "deploy_model_api": DEPLOY_URL,
            }
        ],
        "workspaces": [
            {
                "workspace_name": "ws1",
                "resource_id": RESOURCE_ID,
                "aad_tenant_id": "tenant-1",
                "aad_application_id": "app-1",
                "aad_application_secret": "s3cret",
            }
        ],
        "subscriptions": [
            {
                "subscription_id": SUBSCRIPTION_ID,
                "user_id": "owner-object-id",
                "product_name": "p1",
                "deployment_name": "d1",
            }
        ],
        "users": {"owner-object-id": "u1"},
    }
    data.update(overrides)
    return data


def make_store(**overrides: Any) -> CatalogMetadataStore:
    return CatalogMetadataStore(CatalogFile.model_validate(catalog_data(**overrides)))


def coordinate(version: str = "v1", subscription_id: str = SUBSCRIPTION_ID) -> TenantCoordinate:
    return TenantCoordinate(
        product_name="p1",
        deployment_name="d1",
        version_name=version,
        subscription_id=subscription_id,
    )


class BackendRecorder:
    """Stands in for every remote service the gateway calls.

    Routes are matched by method and URL substring, most recently added first.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: list[tuple[str, str, Callable[[httpx.Request], httpx.Response]]] = []
        self.add("POST", "/oauth2/v2.0/token", json={"access_token": "tok-1", "expires_in": 3600})
        self.add("GET", "api-version=", json={"id": RESOURCE_ID, "location": "westus2"})

    def add(
        self,
        method: str,
        url_part: str,
        status_code: int = 200,
        json: Any = None,
        text: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status_code, text=text, headers=headers)
            return httpx.Response(status_code, json=json, headers=headers)

        self._routes.insert(0, (method, url_part, respond))

    def add_handler(
        self,
        method: str,
        url_part: str,
        handler: Callable[[httpx.Request], httpx.Response],
    ) -> None:
        self._routes.insert(0, (method, url_part, handler))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, url_part, respond in self._routes:
            if request.method == method and url_part in str(request.url):
                return respond(request)
        return httpx.Response(404, text=f"no route for {request.method} {request.url}")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def calls_to(self, url_part: str) -> list[httpx.Request]:
        return [r for r in self.requests if url_part in str(r.url)]


@pytest.fixture
def store() -> CatalogMetadataStore:
    return make_store()


@pytest.fixture
def guard(store: CatalogMetadataStore) -> SubscriptionGuard:
    return SubscriptionGuard(store, StaticUserDirectory(store.users))


@pytest.fixture
def resolver(store: CatalogMetadataStore) -> CoordinateResolver:
    return CoordinateResolver(store)


@pytest.fixture
def backend() -> BackendRecorder:
    return BackendRecorder()


@pytest.fixture
def app_context(store: CatalogMetadataStore, backend: BackendRecorder) -> AppContext:
    return build_app_context(
        Settings(),
        store,
        StaticUserDirectory(store.users),
        http=backend.client(),
    )


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)
