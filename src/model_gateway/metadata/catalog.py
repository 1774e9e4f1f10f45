"""Metadata store interface and a YAML-backed catalog implementation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, Field, field_validator

from model_gateway.domain.operations import canonical_subscription_id
from model_gateway.domain.records import (
    AMLWorkspace,
    APIVersion,
    Deployment,
    Product,
    Subscription,
)


class MetadataStore(Protocol):
    """Read-only access to the records that describe a tenant's backend."""

    async def get_product(self, product_name: str) -> Product | None: ...

    async def get_deployment(
        self, product_name: str, deployment_name: str
    ) -> Deployment | None: ...

    async def get_api_version(
        self, product_name: str, deployment_name: str, version_name: str
    ) -> APIVersion | None: ...

    async def get_workspace(self, workspace_name: str) -> AMLWorkspace | None: ...

    async def get_subscription(self, subscription_id: str) -> Subscription | None: ...


def _ensure_list(v: Any) -> list:
    if v is None:
        return []
    return v


class CatalogFile(BaseModel):
    version: int = Field(default=1)
    products: list[Product] = Field(default_factory=list)
    deployments: list[Deployment] = Field(default_factory=list)
    api_versions: list[APIVersion] = Field(default_factory=list)
    workspaces: list[AMLWorkspace] = Field(default_factory=list)
    subscriptions: list[Subscription] = Field(default_factory=list)
    users: dict[str, str] = Field(default_factory=dict)

    @field_validator(
        "products", "deployments", "api_versions", "workspaces", "subscriptions", mode="before"
    )
    @classmethod
    def _validate_lists(cls, v: Any) -> list:
        return _ensure_list(v)

    @field_validator("users", mode="before")
    @classmethod
    def _validate_users(cls, v: Any) -> dict:
        if v is None:
            return {}
        return v


class CatalogMetadataStore:
    """In-memory metadata store built from a catalog document."""

    def __init__(self, catalog: CatalogFile) -> None:
        self._products = {p.product_name: p for p in catalog.products}
        self._deployments = {(d.product_name, d.deployment_name): d for d in catalog.deployments}
        self._versions = {
            (v.product_name, v.deployment_name, v.version_name): v for v in catalog.api_versions
        }
        self._workspaces = {w.workspace_name: w for w in catalog.workspaces}
        self._subscriptions = {
            canonical_subscription_id(s.subscription_id): s for s in catalog.subscriptions
        }
        self.users: dict[str, str] = dict(catalog.users)

    async def get_product(self, product_name: str) -> Product | None:
        return self._products.get(product_name)

    async def get_deployment(self, product_name: str, deployment_name: str) -> Deployment | None:
        return self._deployments.get((product_name, deployment_name))

    async def get_api_version(
        self, product_name: str, deployment_name: str, version_name: str
    ) -> APIVersion | None:
        return self._versions.get((product_name, deployment_name, version_name))

    async def get_workspace(self, workspace_name: str) -> AMLWorkspace | None:
        return self._workspaces.get(workspace_name)

    async def get_subscription(self, subscription_id: str) -> Subscription | None:
        return self._subscriptions.get(canonical_subscription_id(subscription_id))


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")
_MAX_ENV_VAR_DEPTH = 20


def _substitute_env_vars(value: str) -> str:
    """Substitute ${VAR} and $VAR patterns with environment variables."""

    def replace(match: re.Match[str]) -> str:
        var_name = match.group(1) or match.group(2)
        return os.environ.get(var_name, match.group(0))

    return _ENV_VAR_PATTERN.sub(replace, value)


def _process_env_vars(obj: Any, _depth: int = 0) -> Any:
    """Recursively substitute environment variables in strings."""
    if _depth > _MAX_ENV_VAR_DEPTH:
        return obj
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_env_vars(v, _depth + 1) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_env_vars(item, _depth + 1) for item in obj]
    return obj


def load_catalog(path: str | Path) -> CatalogMetadataStore:
    """Load the metadata catalog from YAML.

    Workspace secrets are written as ``${ENV_VAR}`` references and resolved
    here, so the file itself never holds them.
    """
    catalog_path = Path(path)
    if not catalog_path.exists():
        raise FileNotFoundError(f"Metadata catalog not found: {catalog_path}")
    with catalog_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return CatalogMetadataStore(CatalogFile.model_validate(_process_env_vars(data)))
