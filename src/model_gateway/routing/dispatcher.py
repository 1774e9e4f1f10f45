"""Submission of real-time, training, batch-inference and deployment requests."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

import httpx

from model_gateway.auth.guard import SubscriptionGuard
from model_gateway.backend.client import BackendClient
from model_gateway.credentials.broker import CredentialBroker
from model_gateway.domain.operations import OperationType, ResolvedTarget, TenantCoordinate
from model_gateway.errors import InvalidRequestError
from model_gateway.metadata.resolver import CoordinateResolver
from model_gateway.routing.identifiers import new_operation_id
from model_gateway.routing.preflight import prepare_target
from model_gateway.routing.tags import correlation_tags, submission_experiment
from model_gateway.utils.masking import redact_sensitive_fields

logger = logging.getLogger(__name__)


def _user_input(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


class Dispatcher:
    """Creates backend operations on behalf of a subscription's owner.

    Every submission is sent exactly once. The only thing returned to the
    caller is the locally minted identifier used to find the operation again.
    """

    def __init__(
        self,
        guard: SubscriptionGuard,
        resolver: CoordinateResolver,
        broker: CredentialBroker,
        backend: BackendClient,
        id_factory: Callable[[], str] = new_operation_id,
    ) -> None:
        self._guard = guard
        self._resolver = resolver
        self._broker = broker
        self._backend = backend
        self._id_factory = id_factory

    async def predict(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        payload: Any,
    ) -> httpx.Response:
        """Proxy ``payload`` to the version's real-time endpoint and return the raw response."""
        if payload is None:
            raise InvalidRequestError("Request body has no 'input' to score")
        target = await prepare_target(self._guard, self._resolver, coordinate, user_id)
        url = target.version.realtime_predict_api
        if not url:
            raise InvalidRequestError(
                f"API version {target.version.version_name} has no real-time endpoint"
            )
        headers = await self._broker.headers_for_version(target.version, target.workspace)
        if isinstance(payload, str):
            headers = {"Content-Type": "application/json", **headers}
            return await self._backend.send("POST", url, headers=headers, content=payload)
        return await self._backend.post_json(url, payload, headers)

    async def train(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        user_input: Any,
    ) -> dict[str, str]:
        target = await prepare_target(self._guard, self._resolver, coordinate, user_id)
        model_id = self._id_factory()
        body = {
            "experimentName": submission_experiment(target, "train"),
            "parameterAssignments": {
                "userInput": _user_input(user_input),
                "modelId": model_id,
                **self._owner_parameters(target, coordinate, user_id),
            },
            "tags": correlation_tags(
                target,
                coordinate,
                user_id,
                OperationType.TRAINING,
                model_id,
                model_id=model_id,
            ),
        }
        await self._submit(OperationType.TRAINING, target, model_id, body)
        return {"modelId": model_id}

    async def batch_inference(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        user_input: Any,
        model_id: str | None = None,
    ) -> dict[str, str]:
        """Submit batch inference, against ``model_id`` or the version's default model."""
        target = await prepare_target(self._guard, self._resolver, coordinate, user_id)
        operation_id = self._id_factory()
        parameters = {"userInput": _user_input(user_input)}
        if model_id is not None:
            parameters["modelId"] = model_id
        parameters["operationId"] = operation_id
        body = {
            "experimentName": submission_experiment(target, "train"),
            "parameterAssignments": parameters,
            "tags": correlation_tags(
                target,
                coordinate,
                user_id,
                OperationType.INFERENCE,
                operation_id,
                model_id=model_id,
            ),
        }
        await self._submit(OperationType.INFERENCE, target, operation_id, body)
        return {"operationId": operation_id}

    async def deploy(
        self,
        coordinate: TenantCoordinate,
        user_id: str,
        model_id: str,
        user_input: Any,
    ) -> dict[str, str]:
        target = await prepare_target(self._guard, self._resolver, coordinate, user_id)
        endpoint_id = self._id_factory()
        body = {
            "experimentName": submission_experiment(target, "deploy"),
            "parameterAssignments": {
                "userInput": _user_input(user_input),
                "endpointId": endpoint_id,
                "modelId": model_id,
                **self._owner_parameters(target, coordinate, user_id),
            },
            "tags": correlation_tags(
                target,
                coordinate,
                user_id,
                OperationType.DEPLOYMENT,
                endpoint_id,
                model_id=model_id,
                endpoint_id=endpoint_id,
            ),
        }
        await self._submit(OperationType.DEPLOYMENT, target, endpoint_id, body)
        return {"endpointId": endpoint_id}

    @staticmethod
    def _owner_parameters(
        target: ResolvedTarget,
        coordinate: TenantCoordinate,
        user_id: str,
    ) -> dict[str, str]:
        return {
            "userId": user_id,
            "productName": target.product.product_name,
            "deploymentName": target.deployment.deployment_name,
            "apiVersion": target.version.version_name,
            "subscriptionId": coordinate.subscription_id,
        }

    async def _submit(
        self,
        operation_type: OperationType,
        target: ResolvedTarget,
        operation_id: str,
        body: dict[str, Any],
    ) -> None:
        url = target.version.submission_url(operation_type)
        if not url:
            raise InvalidRequestError(
                f"API version {target.version.version_name} does not support "
                f"{operation_type.value} operations"
            )
        headers = await self._broker.headers_for_version(target.version, target.workspace)
        logger.info("Submitting %s operation %s", operation_type.value, operation_id)
        logger.debug("Submission body: %s", redact_sensitive_fields(body))
        resp = await self._backend.post_json(url, body, headers)
        logger.debug("Backend accepted %s with status %s", operation_id, resp.status_code)
