"""Backend credential utilities."""

from model_gateway.credentials.broker import CredentialBroker
from model_gateway.credentials.cache import WorkspaceTokenCache
from model_gateway.credentials.provider import BearerToken, TokenProvider

__all__ = [
    "BearerToken",
    "CredentialBroker",
    "TokenProvider",
    "WorkspaceTokenCache",
]
