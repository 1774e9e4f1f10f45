"""Status reconstruction for operations, models and endpoints.

The backend keeps no per-tenant job table. Operations are found again by
filtering run history on the correlation tags attached at submission, and
models and endpoints by the listing APIs' tag filter. List and get-by-id share
one path: an id only adds a clause to the filter.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from model_gateway.auth.guard import SubscriptionGuard
from model_gateway.backend.client import BackendClient, parse_json_object
from model_gateway.backend.urls import BackendUrls
from model_gateway.credentials.broker import CredentialBroker
from model_gateway.domain.operations import OperationType, ResolvedTarget, TenantCoordinate
from model_gateway.errors import BackendProtocolError
from model_gateway.metadata.resolver import CoordinateResolver
from model_gateway.routing.adapters import (
    ModelManagementAdapter,
    RecordAdapter,
    RunHistoryAdapter,
    ServiceListingAdapter,
)
from model_gateway.routing.preflight import prepare_target
from model_gateway.routing.tags import query_experiment, query_string_tags, run_filter

logger = logging.getLogger(__name__)

# Tag that narrows a run-history query to one operation.
_ID_TAGS = {
    OperationType.TRAINING: "modelId",
    OperationType.INFERENCE: "operationId",
    OperationType.DEPLOYMENT: "endpointId",
}


class Correlator:
    def __init__(
        self,
        guard: SubscriptionGuard,
        resolver: CoordinateResolver,
        broker: CredentialBroker,
        backend: BackendClient,
        urls: BackendUrls,
        run_type: str,
    ) -> None:
        self._guard = guard
        self._resolver = resolver
        self._broker = broker
        self._backend = backend
        self._urls = urls
        self._run_type = run_type
        self._models = ModelManagementAdapter()
        self._services = ServiceListingAdapter()

    async def list_training_operations(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        model_id: str | None = None,
    ) -> list[dict[str, Any]]:
        return await self._query_runs(coordinate, user_id, OperationType.TRAINING, model_id)

    async def list_inference_operations(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        operation_id: str | None = None,
    ) -> list[dict[str, Any]]:
        return await self._query_runs(coordinate, user_id, OperationType.INFERENCE, operation_id)

    async def list_deployment_operations(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        endpoint_id: str | None = None,
    ) -> list[dict[str, Any]]:
        return await self._query_runs(coordinate, user_id, OperationType.DEPLOYMENT, endpoint_id)

    async def list_models(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        model_id: str | None = None,
    ) -> list[dict[str, Any]]:
        return await self._query_listing(coordinate, user_id, self._models, self._urls.models, model_id)

    async def list_endpoints(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        endpoint_id: str | None = None,
    ) -> list[dict[str, Any]]:
        return await self._query_listing(
            coordinate, user_id, self._services, self._urls.services, endpoint_id
        )

    async def get_region(self, target: ResolvedTarget, headers: dict[str, str]) -> str:
        """Look up the workspace's region from the resource manager."""
        resp = await self._backend.get(
            self._urls.region_lookup(target.workspace.resource_id),
            headers=headers,
        )
        data = parse_json_object(resp)
        location = data.get("location")
        if not isinstance(location, str) or not location:
            logger.warning(
                "Resource metadata for workspace %s has no location",
                target.workspace.workspace_name,
            )
            raise BackendProtocolError("Resource metadata has no 'location' field", body=resp.text)
        return location

    async def _query_runs(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        operation_type: OperationType,
        item_id: str | None,
    ) -> list[dict[str, Any]]:
        narrow = (_ID_TAGS[operation_type], item_id) if item_id is not None else None
        # Build the filter before any remote call so a rejected value costs nothing.
        expression = run_filter(
            operation_type,
            self._run_type,
            user_id,
            coordinate.subscription_id,
            narrow,
        )
        target = await prepare_target(self._guard, self._resolver, coordinate, user_id)
        headers = await self._broker.workspace_headers(target.workspace)
        region = await self.get_region(target, headers)

        suffix = "deploy" if operation_type is OperationType.DEPLOYMENT else "train"
        url = self._urls.run_query(
            region,
            target.workspace.resource_id,
            query_experiment(target, coordinate.subscription_id, suffix),
        )
        logger.debug("Querying %s runs with filter %s", operation_type.value, expression)
        resp = await self._backend.post_json(url, {"filter": expression}, headers)
        return RunHistoryAdapter(operation_type).adapt(parse_json_object(resp), resp.text)

    async def _query_listing(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        adapter: RecordAdapter,
        url_for: Callable[[str, str], str],
        name: str | None,
    ) -> list[dict[str, Any]]:
        target = await prepare_target(self._guard, self._resolver, coordinate, user_id)
        params = {
            "tags": query_string_tags(
                user_id,
                target.product.product_name,
                target.deployment.deployment_name,
                coordinate.subscription_id,
            )
        }
        if name is not None:
            params["name"] = name
        headers = await self._broker.workspace_headers(target.workspace)
        region = await self.get_region(target, headers)
        resp = await self._backend.get(
            url_for(region, target.workspace.resource_id),
            headers=headers,
            params=params,
        )
        return adapter.adapt(parse_json_object(resp), resp.text)
