"""Request-scoped routing values and the response shapes exposed to clients."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from model_gateway.domain.records import AMLWorkspace, APIVersion, Deployment, Product


class OperationType(str, Enum):
    TRAINING = "training"
    INFERENCE = "inference"
    DEPLOYMENT = "deployment"


def canonical_subscription_id(value: str) -> str:
    """Lower-case hyphenated form of a subscription GUID.

    Tags, filters and experiment names compare subscription ids as plain
    strings, so every spelling of the same GUID must map to one form.
    Values that are not GUIDs are only lower-cased.
    """
    try:
        return str(uuid.UUID(value))
    except ValueError:
        return value.strip().lower()


@dataclass(frozen=True)
class TenantCoordinate:
    """Identifies which tenant configuration and backend a request concerns."""

    product_name: str
    deployment_name: str
    version_name: str
    subscription_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "subscription_id", canonical_subscription_id(self.subscription_id))


@dataclass(frozen=True)
class ResolvedTarget:
    """Metadata records resolved for one request."""

    product: "Product"
    deployment: "Deployment"
    version: "APIVersion"
    workspace: "AMLWorkspace"


class _Projection(BaseModel):
    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Operation(_Projection):
    operationId: str | None = None
    operationType: str | None = None
    modelId: str | None = None
    endpointId: str | None = None
    status: str | None = None
    startTimeUtc: str | None = None
    completeTimeUtc: str | None = None
    description: str | None = None
    error: Any = None


class Model(_Projection):
    modelId: str
    startTimeUtc: str | None = None
    completeTimeUtc: str | None = None
    description: str | None = None


class Endpoint(_Projection):
    endpointId: str
    startTimeUtc: str | None = None
    completeTimeUtc: str | None = None
    scoringUrl: str | None = None
    description: str | None = None
