"""Routing and operation-correlation gateway for per-tenant model backends."""

__version__ = "0.1.0"
