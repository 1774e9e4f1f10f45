"""Resolve a request's tenant coordinate into its metadata records."""

from __future__ import annotations

import asyncio
import logging

from model_gateway.domain.operations import ResolvedTarget, TenantCoordinate
from model_gateway.domain.records import AMLWorkspace, APIVersion, Deployment, Product
from model_gateway.errors import NotFoundError
from model_gateway.metadata.catalog import MetadataStore

logger = logging.getLogger(__name__)


class CoordinateResolver:
    """Loads the product, deployment, version and workspace for a coordinate.

    The three name lookups are independent reads and run concurrently; the
    workspace lookup depends on the version and runs after them.
    """

    def __init__(self, store: MetadataStore) -> None:
        self._store = store

    async def resolve(self, coordinate: TenantCoordinate) -> ResolvedTarget:
        product, deployment, version = await self.resolve_records(
            coordinate.product_name,
            coordinate.deployment_name,
            coordinate.version_name,
        )
        workspace = await self.resolve_workspace(version)
        return ResolvedTarget(
            product=product,
            deployment=deployment,
            version=version,
            workspace=workspace,
        )

    async def resolve_records(
        self,
        product_name: str,
        deployment_name: str,
        version_name: str,
    ) -> tuple[Product, Deployment, APIVersion]:
        results = await asyncio.gather(
            self._store.get_product(product_name),
            self._store.get_deployment(product_name, deployment_name),
            self._store.get_api_version(product_name, deployment_name, version_name),
            return_exceptions=True,
        )

        # Every lookup has finished here; surface the first failure in a stable order.
        for result in results:
            if isinstance(result, BaseException):
                raise result

        product, deployment, version = results
        if product is None:
            raise NotFoundError("Product", product_name)
        if deployment is None:
            raise NotFoundError("Deployment", f"{product_name}/{deployment_name}")
        if version is None:
            raise NotFoundError(
                "APIVersion", f"{product_name}/{deployment_name}/{version_name}"
            )

        if deployment.product_name != product.product_name:
            raise NotFoundError("Deployment", f"{product_name}/{deployment_name}")
        if (
            version.product_name != product.product_name
            or version.deployment_name != deployment.deployment_name
        ):
            raise NotFoundError(
                "APIVersion", f"{product_name}/{deployment_name}/{version_name}"
            )

        return product, deployment, version

    async def resolve_workspace(self, version: APIVersion) -> AMLWorkspace:
        workspace = await self._store.get_workspace(version.aml_workspace_name)
        if workspace is None:
            logger.warning(
                "Version %s/%s/%s references unknown workspace %s",
                version.product_name,
                version.deployment_name,
                version.version_name,
                version.aml_workspace_name,
            )
            raise NotFoundError("AMLWorkspace", version.aml_workspace_name)
        return workspace
