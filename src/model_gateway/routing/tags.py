"""Correlation tags, experiment names and tag-filter expressions.

The backend has no job table keyed by tenant, so every submission carries a
tag-set and later queries find it again by filtering on those tags.
"""

from __future__ import annotations

import re
from typing import Literal

from model_gateway.domain.operations import OperationType, ResolvedTarget, TenantCoordinate
from model_gateway.errors import InvalidRequestError

REQUIRED_TAG_KEYS = (
    "userId",
    "productName",
    "deploymentName",
    "apiVersion",
    "operationId",
    "operationType",
    "subscriptionId",
)

ExperimentSuffix = Literal["train", "deploy"]

_UNSAFE_FILTER_VALUE = re.compile(r"[\s'\",&=]")


def correlation_tags(
    target: ResolvedTarget,
    coordinate: TenantCoordinate,
    user_id: str,
    operation_type: OperationType,
    operation_id: str,
    *,
    model_id: str | None = None,
    endpoint_id: str | None = None,
) -> dict[str, str]:
    tags = {
        "userId": user_id,
        "productName": target.product.product_name,
        "deploymentName": target.deployment.deployment_name,
        "apiVersion": target.version.version_name,
        "operationId": operation_id,
        "operationType": operation_type.value,
        "subscriptionId": coordinate.subscription_id,
    }
    if model_id is not None:
        tags["modelId"] = model_id
    if endpoint_id is not None:
        tags["endpointId"] = endpoint_id
    # A run is only reachable later if every tag can appear in a filter.
    for key, value in tags.items():
        _filter_value(key, value)
    return tags


def experiment_name(product_id: str, deployment_id: str, scope_id: str, suffix: ExperimentSuffix) -> str:
    return f"p_{product_id}_d_{deployment_id}_s_{scope_id}_{suffix}"


def submission_experiment(target: ResolvedTarget, suffix: ExperimentSuffix) -> str:
    # Submissions scope the "s_" segment by deployment id.
    return experiment_name(target.product.id, target.deployment.id, target.deployment.id, suffix)


def query_experiment(target: ResolvedTarget, subscription_id: str, suffix: ExperimentSuffix) -> str:
    # History queries scope the "s_" segment by subscription id.
    return experiment_name(target.product.id, target.deployment.id, subscription_id, suffix)


def _filter_value(field: str, value: str) -> str:
    if not value or _UNSAFE_FILTER_VALUE.search(value):
        raise InvalidRequestError(f"Value of {field!r} not allowed in a tag filter: {value!r}")
    return value


class TagFilter:
    """Conjunction of ``<field> eq <value>`` clauses for run-history queries."""

    def __init__(self) -> None:
        self._clauses: list[str] = []

    def eq(self, field: str, value: str) -> "TagFilter":
        self._clauses.append(f"{field} eq {_filter_value(field, value)}")
        return self

    def tag(self, key: str, value: str) -> "TagFilter":
        return self.eq(f"tags/{key}", value)

    def expression(self) -> str:
        return " and ".join(self._clauses)

    def __str__(self) -> str:
        return self.expression()


def run_filter(
    operation_type: OperationType,
    run_type: str,
    user_id: str,
    subscription_id: str,
    narrow: tuple[str, str] | None = None,
) -> str:
    """Filter selecting a user's runs of one operation type.

    ``narrow`` is an extra ``(tag key, value)`` clause that turns a list
    query into a get-by-id query.
    """
    expr = (
        TagFilter()
        .tag("operationType", operation_type.value)
        .eq("runType", run_type)
        .tag("userId", user_id)
        .tag("subscriptionId", subscription_id)
    )
    if narrow is not None:
        expr.tag(*narrow)
    return expr.expression()


def query_string_tags(
    user_id: str,
    product_name: str,
    deployment_name: str,
    subscription_id: str,
) -> str:
    """Tag filter in the ``k=v,k=v`` form the listing APIs take as a query parameter."""
    pairs = {
        "userId": user_id,
        "productName": product_name,
        "deploymentName": deployment_name,
        "subscriptionId": subscription_id,
    }
    return ",".join(f"{key}={_filter_value(key, value)}" for key, value in pairs.items())
