"""HTTP middleware for the gateway."""

from .audit import AuditMiddleware

__all__ = ["AuditMiddleware"]
