# ruff: noqa: D100,D101,D102,D103,D105,D107,INP001
from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
import inspect
import json
from typing import Any

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy
import pytest

from protect_nvr.config import ProtectConfig
from protect_nvr.const import AUTH_PATH, BOOTSTRAP_PATH, CAMERAS_PATH

NVR_ADDRESS = "nvr.local"

_MISSING = object()

HeaderSpec = Mapping[str, str] | Iterable[tuple[str, str]] | None


def pytest_configure(config: pytest.Config) -> None:
    """Register custom pytest markers used across the suite."""

    if not config.pluginmanager.hasplugin("pytest_asyncio"):
        config.addinivalue_line(
            "markers", "asyncio: mark test as requiring asyncio event loop support."
        )


def _headers(spec: HeaderSpec) -> CIMultiDictProxy[str]:
    headers: CIMultiDict[str] = CIMultiDict()
    if spec is None:
        return CIMultiDictProxy(headers)
    items = spec.items() if isinstance(spec, Mapping) else spec
    for key, value in items:
        headers.add(key, value)
    return CIMultiDictProxy(headers)


class FakeResponse:
    """Minimal stand-in for ``aiohttp.ClientResponse``."""

    def __init__(
        self,
        status: int = 200,
        body: bytes = b"",
        *,
        json_data: Any = _MISSING,
        headers: HeaderSpec = None,
        reason: str | None = None,
    ) -> None:
        if json_data is not _MISSING:
            body = json.dumps(json_data).encode()
        self.status = status
        self.reason = reason or ("OK" if status < 300 else "Error")
        self.headers = _headers(headers)
        self._body = body

    async def read(self) -> bytes:
        return self._body


Handler = Callable[[str, str, dict[str, Any]], Any]


class _RequestContext:
    def __init__(
        self, session: FakeSession, method: str, url: str, kwargs: dict[str, Any]
    ) -> None:
        self._session = session
        self._method = method
        self._url = url
        self._kwargs = kwargs

    async def __aenter__(self) -> FakeResponse:
        return await self._session.respond(self._method, self._url, self._kwargs)

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None


@dataclass
class FakeMessage:
    type: aiohttp.WSMsgType
    data: Any = None
    extra: Any = None


class FakeWebSocket:
    """Scriptable websocket whose ``receive`` blocks until fed."""

    def __init__(self) -> None:
        self.messages: asyncio.Queue[FakeMessage] = asyncio.Queue()
        self.pongs: list[Any] = []
        self.closed = False
        self.close_calls = 0
        self.error: BaseException | None = None

    def feed(self, msg_type: aiohttp.WSMsgType, data: Any = None) -> None:
        self.messages.put_nowait(FakeMessage(msg_type, data))

    async def receive(self) -> FakeMessage:
        return await self.messages.get()

    async def pong(self, data: bytes = b"") -> None:
        self.pongs.append(data)

    async def close(self) -> bool:
        self.close_calls += 1
        if self.closed:
            return False
        self.closed = True
        self.feed(aiohttp.WSMsgType.CLOSED)
        return True

    def exception(self) -> BaseException | None:
        return self.error


class FakeSession:
    """Record requests and answer them from a handler or a response queue."""

    def __init__(self, handler: Handler | None = None) -> None:
        self.handler = handler
        self.responses: list[FakeResponse | BaseException] = []
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.websockets: list[FakeWebSocket] = []
        self.opened_websockets: list[FakeWebSocket] = []
        self.ws_calls: list[tuple[str, dict[str, Any]]] = []
        self.ws_error: BaseException | None = None
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> _RequestContext:
        self.calls.append((method, url, kwargs))
        return _RequestContext(self, method, url, kwargs)

    async def respond(self, method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
        if self.handler is not None:
            result = self.handler(method, url, kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def calls_to(self, method: str, suffix: str = "") -> list[tuple[str, str, dict[str, Any]]]:
        return [call for call in self.calls if call[0] == method and call[1].endswith(suffix)]

    async def ws_connect(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.ws_calls.append((url, kwargs))
        if self.ws_error is not None:
            raise self.ws_error
        ws = self.websockets.pop(0) if self.websockets else FakeWebSocket()
        self.opened_websockets.append(ws)
        return ws

    async def close(self) -> None:
        self.closed = True


def camera_payload(
    mac: str,
    *,
    camera_id: str | None = None,
    name: str = "Front Door",
    managed: bool = True,
    rtsp: Iterable[bool] = (False, True),
    model_key: str = "camera",
) -> dict[str, Any]:
    return {
        "id": camera_id or f"cam-{mac.lower()}",
        "mac": mac,
        "name": name,
        "type": "UVC G4 Pro",
        "modelKey": model_key,
        "host": "10.0.0.5",
        "isManaged": managed,
        "recordingSettings": {"mode": "always"},
        "channels": [
            {
                "id": index,
                "name": f"Channel {index}",
                "isRtspEnabled": enabled,
                "rtspAlias": f"alias{index}",
                "bitrate": 4000000,
            }
            for index, enabled in enumerate(rtsp)
        ],
    }


def bootstrap_payload(
    cameras: list[dict[str, Any]],
    *,
    permissions: Iterable[str] = ("camera:read,write:*",),
    last_update_id: str = "cursor-1",
) -> dict[str, Any]:
    return {
        "cameras": cameras,
        "nvr": {"name": "Home NVR", "type": "UNVR", "host": "10.0.0.2", "mac": "AABBCCDDEEFF"},
        "users": [{"id": "user-1", "allPermissions": list(permissions)}],
        "authUserId": "user-1",
        "lastUpdateId": last_update_id,
    }


class FakeNvr:
    """Request handler emulating the login, bootstrap and camera endpoints."""

    def __init__(self, bootstrap: dict[str, Any] | None = None) -> None:
        self.bootstrap = bootstrap if bootstrap is not None else bootstrap_payload([])
        self.bootstrap_response: FakeResponse | None = None
        self.preflight_headers: HeaderSpec = [("X-CSRF-Token", "preflight-token")]
        self.login_headers: HeaderSpec = [
            ("X-CSRF-Token", "session-token"),
            ("Set-Cookie", "TOKEN=abc123; Path=/; Secure; HttpOnly"),
        ]
        self.patch_status = 200
        self.patches: list[tuple[str, Any]] = []
        self.login_delay = 0.0

    async def __call__(self, method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
        if method == "GET" and url == f"https://{NVR_ADDRESS}":
            return FakeResponse(200, b"<html></html>", headers=self.preflight_headers)
        if method == "POST" and url.endswith(AUTH_PATH):
            if self.login_delay:
                await asyncio.sleep(self.login_delay)
            return FakeResponse(200, json_data={"username": "admin"}, headers=self.login_headers)
        if method == "GET" and url.endswith(BOOTSTRAP_PATH):
            if self.bootstrap_response is not None:
                return self.bootstrap_response
            return FakeResponse(200, json_data=self.bootstrap)
        if method == "PATCH" and CAMERAS_PATH in url:
            body = json.loads(kwargs["data"])
            self.patches.append((url, body))
            if self.patch_status != 200:
                return FakeResponse(self.patch_status)
            camera_id = url.rsplit("/", 1)[-1]
            for camera in self.bootstrap["cameras"]:
                if camera["id"] == camera_id:
                    return FakeResponse(200, json_data={**camera, **body})
        return FakeResponse(404)


async def wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""

    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


@pytest.fixture
def protect_config() -> ProtectConfig:
    return ProtectConfig(address=NVR_ADDRESS, username="admin", password="secret")


@pytest.fixture
def fake_nvr() -> FakeNvr:
    return FakeNvr(bootstrap_payload([camera_payload("AA:BB:CC:00:00:01")]))


@pytest.fixture
def fake_session(fake_nvr: FakeNvr) -> FakeSession:
    return FakeSession(fake_nvr)
