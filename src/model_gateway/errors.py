"""Error taxonomy shared by the resolver, dispatcher and correlator."""

from __future__ import annotations

_MAX_BODY_IN_MESSAGE = 2000


class GatewayError(Exception):
    """Base error carrying a stable code and the HTTP status it maps to."""

    code = "internal_error"
    http_status = 500

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFoundError(GatewayError):
    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, name: str) -> None:
        super().__init__(f"{entity} not found: {name}")
        self.entity = entity
        self.name = name


class ForbiddenError(GatewayError):
    code = "forbidden"
    http_status = 403


class InvalidRequestError(GatewayError):
    code = "invalid_request"
    http_status = 400


class AuthError(GatewayError):
    """Raised when the identity provider rejects a workspace credential."""

    code = "auth_error"
    http_status = 502


class BackendError(GatewayError):
    """Raised when a backend HTTP call returns a non-success status."""

    code = "backend_error"
    http_status = 502

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        if body:
            message = f"{message}: {body[:_MAX_BODY_IN_MESSAGE]}"
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class BackendTimeoutError(BackendError):
    code = "backend_timeout"
    http_status = 504


class BackendProtocolError(GatewayError):
    """Raised when a backend call succeeded but the payload has the wrong shape."""

    code = "backend_protocol_error"
    http_status = 502

    def __init__(self, message: str, body: str = "") -> None:
        if body:
            message = f"{message}. The response is {body[:_MAX_BODY_IN_MESSAGE]}"
        super().__init__(message)
        self.body = body
