"""Shared HTTP utilities."""

from __future__ import annotations

from urllib.parse import urlparse

from starlette.requests import Request

_BASE_URL_ALLOWED_SCHEMES = frozenset({"http", "https"})


def normalize_base_url(value: str) -> str:
    """Normalize and validate a configured service base URL."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("base url must not be empty")

    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in _BASE_URL_ALLOWED_SCHEMES:
        raise ValueError("base url must use http or https")
    if not parsed.netloc:
        raise ValueError("base url must include host")
    if parsed.query or parsed.fragment:
        raise ValueError("base url must not include query or fragment")
    if parsed.username or parsed.password:
        raise ValueError("base url must not include userinfo")

    normalized_path = parsed.path.rstrip("/")
    return f"{parsed.scheme.lower()}://{parsed.netloc}{normalized_path}"


def first_forwarded_value(value: str | None) -> str | None:
    """Extract the first value from a comma-separated forwarded header."""
    if not value:
        return None
    first = value.split(",", 1)[0].strip()
    return first or None


def get_client_ip(request: Request, trust_forwarded_headers: bool = False) -> str:
    """Get client IP with optional trusted proxy header support."""
    if trust_forwarded_headers:
        forwarded_for = first_forwarded_value(request.headers.get("x-forwarded-for"))
        if forwarded_for:
            return forwarded_for
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
