from __future__ import annotations

import asyncio
from datetime import datetime
import errno
import json
import logging
from typing import Any

import aiohttp
import pytest

from protect_nvr.api import (
    ApiResponse,
    ProtocolError,
    RequestGateway,
    TransportError,
    classify_client_error,
)
from protect_nvr.session import Session
from protect_nvr.throttle import ErrorBudget

from conftest import FakeResponse, FakeSession

URL = "https://nvr.local/proxy/protect/api/bootstrap"


def _gateway(
    http: FakeSession,
    *,
    error_limit: int = 10,
    timeout: float = 3.5,
    clock: list[float] | None = None,
    on_auth_failure: Any = None,
) -> RequestGateway:
    clock = clock if clock is not None else [0.0]
    session = Session(csrf_token="csrf", cookie="TOKEN=abc")
    budget = ErrorBudget(error_limit=error_limit, retry_interval=300, monotonic=lambda: clock[0])
    return RequestGateway(
        http,
        session,
        budget,
        timeout=timeout,
        nvr_name=lambda: "Home NVR [UNVR]",
        on_auth_failure=on_auth_failure,
    )


@pytest.mark.asyncio
async def test_send_success_attaches_session_headers() -> None:
    http = FakeSession()
    http.responses.append(FakeResponse(200, json_data={"ok": True}))
    gateway = _gateway(http)

    response = await gateway.send(URL, "POST", {"a": 1})

    assert response is not None
    assert response.json() == {"ok": True}
    method, url, kwargs = http.calls[0]
    assert (method, url) == ("POST", URL)
    assert kwargs["headers"]["X-CSRF-Token"] == "csrf"
    assert kwargs["headers"]["Cookie"] == "TOKEN=abc"
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert kwargs["ssl"] is False
    assert json.loads(kwargs["data"]) == {"a": 1}
    assert gateway.budget.consecutive_errors == 0


@pytest.mark.asyncio
async def test_get_without_body_sends_no_data() -> None:
    http = FakeSession()
    http.responses.append(FakeResponse(200, json_data={}))
    gateway = _gateway(http)

    await gateway.send(URL)

    assert "data" not in http.calls[0][2]


def test_verify_ssl_keeps_default_context() -> None:
    gateway = RequestGateway(
        FakeSession(),
        Session(),
        ErrorBudget(error_limit=1, retry_interval=1),
        timeout=1,
        verify_ssl=True,
    )
    assert gateway.ssl is None


@pytest.mark.asyncio
async def test_unauthorized_invalidates_session(caplog: pytest.LogCaptureFixture) -> None:
    http = FakeSession()
    http.responses.append(FakeResponse(401))
    calls: list[bool] = []
    gateway = _gateway(http, on_auth_failure=lambda: calls.append(True))

    with caplog.at_level(logging.ERROR):
        assert await gateway.send(URL) is None

    assert calls == [True]
    assert gateway.budget.consecutive_errors == 1
    assert "Invalid login credentials" in caplog.text


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, message",
    [
        (403, "Insufficient privileges"),
        (500, "API access error: 500"),
    ],
)
async def test_error_statuses_are_logged(
    caplog: pytest.LogCaptureFixture, status: int, message: str
) -> None:
    http = FakeSession()
    http.responses.append(FakeResponse(status))
    gateway = _gateway(http)

    with caplog.at_level(logging.ERROR):
        assert await gateway.send(URL) is None

    assert message in caplog.text
    assert "Home NVR [UNVR]" in caplog.text
    assert gateway.budget.consecutive_errors == 1


@pytest.mark.asyncio
async def test_timeout_is_classified(caplog: pytest.LogCaptureFixture) -> None:
    async def _hang(method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
        await asyncio.sleep(1)
        return FakeResponse(200)

    gateway = _gateway(FakeSession(_hang), timeout=0.01)

    with caplog.at_level(logging.ERROR):
        assert await gateway.send(URL) is None

    assert "taking too long" in caplog.text
    assert gateway.budget.consecutive_errors == 1


@pytest.mark.asyncio
async def test_connection_reset_is_classified(caplog: pytest.LogCaptureFixture) -> None:
    http = FakeSession()
    http.responses.append(aiohttp.ServerDisconnectedError())
    gateway = _gateway(http)

    with caplog.at_level(logging.ERROR):
        assert await gateway.send(URL) is None

    assert "connection reset" in caplog.text


def test_classify_client_error() -> None:
    reset = classify_client_error(aiohttp.ClientOSError(errno.ECONNRESET, "reset by peer"))
    assert reset.kind == TransportError.RESET

    other = classify_client_error(aiohttp.ClientPayloadError("truncated"))
    assert other.kind is None


@pytest.mark.asyncio
async def test_raw_mode_returns_failures_without_accounting() -> None:
    http = FakeSession()
    http.responses.append(FakeResponse(500))
    gateway = _gateway(http)

    response = await gateway.send(URL, decode_response=False)

    assert response is not None
    assert response.status == 500
    assert gateway.budget.consecutive_errors == 0
    gateway.record_outcome(False)
    assert gateway.budget.consecutive_errors == 1


@pytest.mark.asyncio
async def test_throttled_requests_never_reach_network(caplog: pytest.LogCaptureFixture) -> None:
    clock = [100.0]
    http = FakeSession()
    http.responses.extend([FakeResponse(500), FakeResponse(500), FakeResponse(200)])
    gateway = _gateway(http, error_limit=2, clock=clock)

    assert await gateway.send(URL) is None
    assert await gateway.send(URL) is None

    with caplog.at_level(logging.INFO):
        assert await gateway.send(URL) is None
    assert "Throttling API calls" in caplog.text

    clock[0] = 399.0
    assert await gateway.send(URL) is None
    assert len(http.calls) == 2

    clock[0] = 400.0
    caplog.clear()
    with caplog.at_level(logging.INFO):
        assert await gateway.send(URL) is not None
    assert "Resuming connectivity" in caplog.text
    assert len(http.calls) == 3
    assert gateway.budget.consecutive_errors == 0
    assert gateway.budget.throttling is False


def test_response_json_errors() -> None:
    response = ApiResponse(status=200, body=b"<html>")
    with pytest.raises(ProtocolError):
        response.json()
    assert response.text() == "<html>"
    assert response.set_cookies == []


@pytest.mark.asyncio
async def test_unencodable_body_is_rejected_locally(caplog: pytest.LogCaptureFixture) -> None:
    http = FakeSession()
    gateway = _gateway(http)

    with caplog.at_level(logging.ERROR):
        result = await gateway.send(URL, "PATCH", {"resetAt": datetime(2024, 1, 1)})

    assert result is None
    assert http.calls == []
    assert gateway.budget.consecutive_errors == 0
    assert "Unable to encode the request body" in caplog.text
    assert "Home NVR [UNVR]" in caplog.text


def test_response_defaults_have_empty_headers() -> None:
    response = ApiResponse(status=204)
    assert response.ok is True
    assert len(response.headers) == 0
