"""Outbound HTTP access to the backend execution service."""

from model_gateway.backend.client import BackendClient, create_http_client
from model_gateway.backend.urls import BackendUrls

__all__ = ["BackendClient", "BackendUrls", "create_http_client"]
