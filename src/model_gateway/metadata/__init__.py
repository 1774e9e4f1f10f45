"""Metadata lookups for products, deployments, versions and workspaces."""

from model_gateway.metadata.catalog import CatalogMetadataStore, MetadataStore, load_catalog
from model_gateway.metadata.resolver import CoordinateResolver

__all__ = [
    "CatalogMetadataStore",
    "CoordinateResolver",
    "MetadataStore",
    "load_catalog",
]
