"""Metadata records describing products, deployments and their backends.

These are owned by the metadata store; the gateway only reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from model_gateway.domain.operations import OperationType


class AuthenticationMode(str, Enum):
    """How calls to an API version's endpoints are authorized."""

    TOKEN = "Token"
    KEY = "Key"
    NONE = "None"


@dataclass(frozen=True)
class Product:
    id: str
    product_name: str


@dataclass(frozen=True)
class Deployment:
    id: str
    product_name: str
    deployment_name: str


@dataclass(frozen=True)
class APIVersion:
    product_name: str
    deployment_name: str
    version_name: str
    aml_workspace_name: str
    authentication_type: AuthenticationMode = AuthenticationMode.TOKEN
    authentication_key: str | None = field(default=None, repr=False)
    realtime_predict_api: str | None = None
    train_model_api: str | None = None
    batch_inference_api: str | None = None
    deploy_model_api: str | None = None

    def submission_url(self, operation_type: OperationType) -> str | None:
        """Endpoint that accepts submissions for ``operation_type``."""
        return {
            OperationType.TRAINING: self.train_model_api,
            OperationType.INFERENCE: self.batch_inference_api,
            OperationType.DEPLOYMENT: self.deploy_model_api,
        }[operation_type]


@dataclass(frozen=True)
class AMLWorkspace:
    workspace_name: str
    resource_id: str
    aad_tenant_id: str
    aad_application_id: str
    # SENSITIVE: resolved secret value, never logged
    aad_application_secret: str = field(default="", repr=False)


@dataclass(frozen=True)
class Subscription:
    subscription_id: str
    user_id: str
    product_name: str
    deployment_name: str
    status: str = "Subscribed"
