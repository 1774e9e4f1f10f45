"""HTTP client wrapper for backend calls.

The ``httpx.AsyncClient`` is created once per process with explicit deadlines
and pool limits and injected here. Nothing is retried: submissions are not
idempotent at the backend, so every failure goes straight back to the caller.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from model_gateway.config import BackendSettings
from model_gateway.errors import BackendError, BackendProtocolError, BackendTimeoutError

logger = logging.getLogger(__name__)

_LOG_BODY_LIMIT = 500


def create_http_client(settings: BackendSettings) -> httpx.AsyncClient:
    """Create the shared client used for every outbound call."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            settings.timeout_seconds,
            connect=settings.connect_timeout_seconds,
        ),
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
        ),
    )


class BackendClient:
    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
        content: str | bytes | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send one request and return the response if its status is 2xx.

        Raises:
            BackendTimeoutError: If the call exceeded its deadline.
            BackendError: On transport failure or a non-success status; the
                raw response body is attached.
        """
        try:
            resp = await self._http.request(
                method,
                url,
                headers=headers,
                json=json,
                content=content,
                params=params,
            )
        except httpx.TimeoutException as exc:
            logger.warning("Backend call timed out: %s %s", method, url)
            raise BackendTimeoutError(f"Backend call timed out: {method} {url}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Backend call failed: %s %s (%s)", method, url, type(exc).__name__)
            raise BackendError(f"Backend call failed: {type(exc).__name__}") from exc

        if not resp.is_success:
            body = resp.text
            logger.warning(
                "Backend returned %s for %s %s: %s",
                resp.status_code,
                method,
                url,
                body[:_LOG_BODY_LIMIT],
            )
            raise BackendError(
                "Query failed with response",
                status_code=resp.status_code,
                body=body,
            )
        return resp

    async def post_json(
        self,
        url: str,
        payload: Any,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        merged = {"Content-Type": "application/json", **(headers or {})}
        return await self.send("POST", url, headers=merged, json=payload)

    async def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self.send("GET", url, headers=headers, params=params)


def parse_json_object(resp: httpx.Response) -> dict[str, Any]:
    """Decode a response body that must be a JSON object."""
    try:
        data = resp.json()
    except ValueError as exc:
        raise BackendProtocolError("Response is not valid JSON", body=resp.text) from exc
    if not isinstance(data, dict):
        raise BackendProtocolError("Response is not a JSON object", body=resp.text)
    return data
