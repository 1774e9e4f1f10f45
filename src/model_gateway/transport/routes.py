"""HTTP handlers for submission and status routes.

Path segments carry the product and deployment, ``api-version`` selects the
API version. Submission routes take ``{subscriptionId, userId, input}`` in the
body; status routes take the subscription in the path and ``userid`` in the
query string.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from model_gateway.app import AppContext
from model_gateway.domain.operations import TenantCoordinate
from model_gateway.errors import InvalidRequestError

_DEPLOYMENT = "/products/{productName}/deployments/{deploymentName}"
_SUBSCRIPTION = _DEPLOYMENT + "/subscriptions/{subscriptionId}"


class CallerRequest(BaseModel):
    """Body accepted by submission routes and body-based status routes."""

    model_config = ConfigDict(extra="ignore")

    subscriptionId: str = Field(min_length=1)
    userId: str = Field(min_length=1)
    input: Any = None


def _context(request: Request) -> AppContext:
    return request.app.state.context


def _version_name(request: Request) -> str:
    version = request.query_params.get("api-version")
    if not version:
        raise InvalidRequestError("Query parameter 'api-version' is required")
    return version


def _coordinate(request: Request, subscription_id: str) -> TenantCoordinate:
    return TenantCoordinate(
        product_name=request.path_params["productName"],
        deployment_name=request.path_params["deploymentName"],
        version_name=_version_name(request),
        subscription_id=subscription_id,
    )


async def _caller_body(request: Request) -> CallerRequest:
    raw = await request.body()
    try:
        payload = json.loads(raw) if raw else {}
    except ValueError as exc:
        raise InvalidRequestError("Request body is not valid JSON") from exc
    try:
        body = CallerRequest.model_validate(payload)
    except ValidationError as exc:
        missing = ", ".join(str(err["loc"][0]) for err in exc.errors() if err["loc"])
        raise InvalidRequestError(
            f"Request body is missing or has invalid fields: {missing or 'body'}"
        ) from exc
    request.state.user_id = body.userId
    return body


def _query_caller(request: Request) -> tuple[TenantCoordinate, str]:
    user_id = request.query_params.get("userid")
    if not user_id:
        raise InvalidRequestError("Query parameter 'userid' is required")
    request.state.user_id = user_id
    return _coordinate(request, request.path_params["subscriptionId"]), user_id


async def predict(request: Request) -> Response:
    body = await _caller_body(request)
    resp = await _context(request).dispatcher.predict(
        _coordinate(request, body.subscriptionId), body.userId, body.input
    )
    return Response(
        content=resp.content,
        status_code=resp.status_code,
        media_type=resp.headers.get("content-type", "application/json"),
    )


async def batch_inference(request: Request) -> Response:
    body = await _caller_body(request)
    result = await _context(request).dispatcher.batch_inference(
        _coordinate(request, body.subscriptionId),
        body.userId,
        body.input,
        model_id=request.path_params.get("modelId"),
    )
    return JSONResponse(result)


async def train(request: Request) -> Response:
    body = await _caller_body(request)
    result = await _context(request).dispatcher.train(
        _coordinate(request, body.subscriptionId), body.userId, body.input
    )
    return JSONResponse(result)


async def deploy(request: Request) -> Response:
    body = await _caller_body(request)
    result = await _context(request).dispatcher.deploy(
        _coordinate(request, body.subscriptionId),
        body.userId,
        request.path_params["modelId"],
        body.input,
    )
    return JSONResponse(result)


async def training_operations(request: Request) -> Response:
    coordinate, user_id = _query_caller(request)
    result = await _context(request).correlator.list_training_operations(
        coordinate, user_id, request.path_params.get("modelId")
    )
    return JSONResponse(result)


async def inference_operations(request: Request) -> Response:
    coordinate, user_id = _query_caller(request)
    result = await _context(request).correlator.list_inference_operations(
        coordinate, user_id, request.path_params.get("operationId")
    )
    return JSONResponse(result)


async def inference_operations_by_body(request: Request) -> Response:
    body = await _caller_body(request)
    result = await _context(request).correlator.list_inference_operations(
        _coordinate(request, body.subscriptionId),
        body.userId,
        request.path_params.get("operationId"),
    )
    return JSONResponse(result)


async def deployment_operations(request: Request) -> Response:
    coordinate, user_id = _query_caller(request)
    result = await _context(request).correlator.list_deployment_operations(
        coordinate, user_id, request.path_params.get("endpointId")
    )
    return JSONResponse(result)


async def models(request: Request) -> Response:
    coordinate, user_id = _query_caller(request)
    result = await _context(request).correlator.list_models(
        coordinate, user_id, request.path_params.get("modelId")
    )
    return JSONResponse(result)


async def endpoints(request: Request) -> Response:
    coordinate, user_id = _query_caller(request)
    result = await _context(request).correlator.list_endpoints(
        coordinate, user_id, request.path_params.get("endpointId")
    )
    return JSONResponse(result)


def gateway_routes(prefix: str = "") -> list[Route]:
    """Routes for every submission and status endpoint, mounted under ``prefix``."""
    table: list[tuple[str, Any, list[str]]] = [
        (_DEPLOYMENT + "/predict", predict, ["POST"]),
        (_DEPLOYMENT + "/batchinference", batch_inference, ["POST"]),
        (_DEPLOYMENT + "/train", train, ["POST"]),
        (_DEPLOYMENT + "/models/{modelId}/batchinference", batch_inference, ["POST"]),
        (_DEPLOYMENT + "/models/{modelId}/deploy", deploy, ["POST"]),
        (_DEPLOYMENT + "/operations/inference", inference_operations_by_body, ["POST"]),
        (
            _DEPLOYMENT + "/operations/inference/{operationId}",
            inference_operations_by_body,
            ["POST"],
        ),
        (_SUBSCRIPTION + "/operations/training", training_operations, ["GET"]),
        (_SUBSCRIPTION + "/operations/training/{modelId}", training_operations, ["GET"]),
        (_SUBSCRIPTION + "/operations/inference", inference_operations, ["GET"]),
        (_SUBSCRIPTION + "/operations/inference/{operationId}", inference_operations, ["GET"]),
        (_SUBSCRIPTION + "/operations/deployment", deployment_operations, ["GET", "POST"]),
        (
            _SUBSCRIPTION + "/operations/deployment/{endpointId}",
            deployment_operations,
            ["GET", "POST"],
        ),
        (_SUBSCRIPTION + "/models", models, ["GET"]),
        (_SUBSCRIPTION + "/models/{modelId}", models, ["GET"]),
        (_SUBSCRIPTION + "/endpoints", endpoints, ["GET"]),
        (_SUBSCRIPTION + "/endpoints/{endpointId}", endpoints, ["GET"]),
    ]
    return [Route(prefix + path, endpoint=handler, methods=methods) for path, handler, methods in table]
