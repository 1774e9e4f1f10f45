"""Tests for audit middleware masking and request logging."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest
from starlette.requests import Request
from starlette.responses import JSONResponse

from model_gateway.auth.context import current_request_id, get_request_context_optional
from model_gateway.middleware.audit import (
    _MAX_MASK_DEPTH,
    AuditMiddleware,
    _get_mask_pattern,
    mask_exception_message,
    mask_sensitive_data,
)


def _request(path: str = "/api/products/p1/deployments/d1/train", headers: dict[str, str] | None = None) -> Request:
    raw_headers = [
        (k.lower().encode("utf-8"), v.encode("utf-8")) for k, v in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "method": "POST",
        "path": path,
        "headers": raw_headers,
        "scheme": "https",
        "server": ("example.com", 443),
        "client": ("127.0.0.1", 12345),
    }
    return Request(scope)


def test_get_mask_pattern_cached() -> None:
    assert _get_mask_pattern("token") is _get_mask_pattern("token")


def test_mask_sensitive_data_recursive() -> None:
    masked = mask_sensitive_data(
        {
            "aad_application_secret": "s3cret",
            "nested": {"access_token": "abc", "ok": "v"},
            "list": [{"authenticationKey": "x"}, "plain"],
            "value": 1,
        }
    )
    assert masked["aad_application_secret"] == "***MASKED***"
    assert masked["nested"]["access_token"] == "***MASKED***"
    assert masked["nested"]["ok"] == "v"
    assert masked["list"][0]["authenticationKey"] == "***MASKED***"
    assert masked["list"][1] == "plain"
    assert masked["value"] == 1


def test_mask_exception_message() -> None:
    text = 'Authorization="Bearer abc" and client_secret=hunter2'
    masked = mask_exception_message(text)
    assert "hunter2" not in masked
    assert masked.count("***MASKED***") >= 2


def test_mask_sensitive_data_depth_limit() -> None:
    data: dict = {"ok": "value"}
    for _ in range(_MAX_MASK_DEPTH + 1):
        data = {"nested": data}

    current = mask_sensitive_data(data)
    for _ in range(_MAX_MASK_DEPTH):
        current = current["nested"]
    assert current == "***MASKED***"


def test_mask_sensitive_data_primitives() -> None:
    assert mask_sensitive_data(42) == 42
    assert mask_sensitive_data([{"password": "x"}, "plain"]) == [{"password": "***MASKED***"}, "plain"]


@pytest.mark.asyncio
async def test_dispatch_installs_request_context() -> None:
    middleware = AuditMiddleware(AsyncMock(), enabled=False)
    seen: dict[str, str] = {}

    async def call_next(request: Request) -> JSONResponse:
        seen["request_id"] = current_request_id()
        return JSONResponse({"ok": True})

    response = await middleware.dispatch(_request(headers={"x-request-id": "req-9"}), call_next)

    assert response.status_code == 200
    assert seen["request_id"] == "req-9"
    assert get_request_context_optional() is None


@pytest.mark.asyncio
async def test_dispatch_exempt_path_bypasses_logging(caplog: pytest.LogCaptureFixture) -> None:
    middleware = AuditMiddleware(AsyncMock(), enabled=True)
    caplog.set_level(logging.INFO)

    response = await middleware.dispatch(
        _request("/health"),
        AsyncMock(return_value=JSONResponse({"ok": True})),
    )

    assert response.status_code == 200
    assert "REQUEST_START" not in caplog.text


@pytest.mark.asyncio
async def test_dispatch_success_logs_end(caplog: pytest.LogCaptureFixture) -> None:
    middleware = AuditMiddleware(AsyncMock(), enabled=True)
    caplog.set_level(logging.INFO)

    async def call_next(request: Request) -> JSONResponse:
        request.state.user_id = "user-1"
        return JSONResponse({"modelId": "a1"}, status_code=200)

    response = await middleware.dispatch(_request(headers={"x-request-id": "req-1"}), call_next)

    assert response.status_code == 200
    assert response.headers["x-request-id"] == "req-1"
    assert "REQUEST_START request_id=req-1 method=POST" in caplog.text
    assert "client_ip=127.0.0.1" in caplog.text
    assert "REQUEST_END request_id=req-1 user_id=user-1" in caplog.text


@pytest.mark.asyncio
async def test_dispatch_anonymous_caller(caplog: pytest.LogCaptureFixture) -> None:
    middleware = AuditMiddleware(AsyncMock(), enabled=True)
    caplog.set_level(logging.INFO)

    await middleware.dispatch(
        _request(headers={"x-request-id": "req-2"}),
        AsyncMock(return_value=JSONResponse({"error": "invalid_request"}, status_code=400)),
    )

    assert "REQUEST_END request_id=req-2 user_id=anonymous" in caplog.text
    assert "status=400" in caplog.text


@pytest.mark.asyncio
async def test_dispatch_sanitizes_request_and_user_ids(caplog: pytest.LogCaptureFixture) -> None:
    middleware = AuditMiddleware(AsyncMock(), enabled=True)
    caplog.set_level(logging.INFO)

    async def call_next(request: Request) -> JSONResponse:
        request.state.user_id = "user-\n1"
        return JSONResponse({"ok": True})

    await middleware.dispatch(_request(headers={"x-request-id": "req-\n1"}), call_next)

    assert "REQUEST_START request_id=req-_1" in caplog.text
    assert "REQUEST_END request_id=req-_1 user_id=user-_1" in caplog.text


@pytest.mark.asyncio
async def test_dispatch_trusts_forwarded_for_when_configured(
    caplog: pytest.LogCaptureFixture,
) -> None:
    middleware = AuditMiddleware(AsyncMock(), enabled=True, trust_forwarded_headers=True)
    caplog.set_level(logging.INFO)

    await middleware.dispatch(
        _request(headers={"x-forwarded-for": "203.0.113.7, 10.0.0.1"}),
        AsyncMock(return_value=JSONResponse({})),
    )

    assert "client_ip=203.0.113.7" in caplog.text


@pytest.mark.asyncio
async def test_dispatch_exception_masks_error(caplog: pytest.LogCaptureFixture) -> None:
    middleware = AuditMiddleware(AsyncMock(), enabled=True)
    caplog.set_level(logging.ERROR)

    async def _raise(_: Request) -> JSONResponse:
        raise RuntimeError("authorization=Bearer very-secret-token")

    with pytest.raises(RuntimeError):
        await middleware.dispatch(_request(), _raise)

    assert "***MASKED***" in caplog.text
    assert "very-secret-token" not in caplog.text
    assert "status=500" in caplog.text
