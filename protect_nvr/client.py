"""High level client for one UniFi Protect NVR."""

from __future__ import annotations

from collections.abc import Mapping
import logging
import time
from types import TracebackType
from typing import Any

import aiohttp
from pydantic import ValidationError

from .api import ApiResponse, ProtocolError, RequestGateway
from .backend.ws_client import EventChannel, MessageCallback
from .bootstrap import BootstrapSync, DeviceCallback
from .codecs.protect_models import Bootstrap, Camera
from .config import ProtectConfig
from .const import MODEL_KEY_CAMERA
from .session import Session, SessionManager
from .throttle import ErrorBudget, MonotonicCallable
from .utils import ProtectUrls, device_display_name, full_display_name

_LOGGER = logging.getLogger(__name__)


class ProtectApi:
    """Session-aware client for the Protect API and its realtime updates.

    The API is largely undocumented; it has been reverse engineered through
    the web interface. The basics are:

    1. Ask the console for a CSRF token and log in to acquire a session
       cookie.
    2. Fetch the bootstrap, which describes nearly everything about the NVR
       and its devices.
    3. Follow the realtime update websocket from the bootstrap's cursor.

    Must be created inside a running event loop when no ``session`` is given.
    """

    def __init__(
        self,
        config: ProtectConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        logger: logging.Logger | None = None,
        on_discovered: DeviceCallback | None = None,
        on_removed: DeviceCallback | None = None,
        on_message: MessageCallback | None = None,
        monotonic: MonotonicCallable = time.monotonic,
    ) -> None:
        """Wire the gateway, session manager, bootstrap sync and event channel."""

        self._config = config
        self._logger = logger or _LOGGER
        self._owns_http = session is None
        # Cookies are attached explicitly from the login response.
        self._http = session or aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
        self._urls = ProtectUrls(config.address)
        self._session = Session()
        self._budget = ErrorBudget(
            error_limit=config.error_limit,
            retry_interval=config.retry_interval,
            monotonic=monotonic,
        )
        self._gateway = RequestGateway(
            self._http,
            self._session,
            self._budget,
            timeout=config.request_timeout,
            verify_ssl=config.verify_ssl,
            nvr_name=self.nvr_name,
            on_auth_failure=self.clear_login_credentials,
            logger=self._logger,
        )
        self._sessions = SessionManager(
            self._gateway,
            self._session,
            self._urls,
            config.username,
            config.password,
            login_refresh_interval=config.login_refresh_interval,
            monotonic=monotonic,
            nvr_name=self.nvr_name,
            logger=self._logger,
        )
        self._events = EventChannel(
            self._http,
            self._sessions,
            self._urls,
            heartbeat_interval=config.heartbeat_interval,
            open_timeout=config.request_timeout,
            last_update_id=lambda: self._sync.last_update_id,
            verify_ssl=config.verify_ssl,
            nvr_name=self.nvr_name,
            on_message=on_message,
            logger=self._logger,
        )
        self._sessions.add_teardown_hook(self._events.terminate)
        self._sync = BootstrapSync(
            self._gateway,
            self._sessions,
            self._urls,
            connect_events=self._events.connect,
            on_discovered=on_discovered,
            on_removed=on_removed,
            logger=self._logger,
        )

    async def __aenter__(self) -> ProtectApi:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ----------------- Accessors -----------------

    @property
    def config(self) -> ProtectConfig:
        return self._config

    @property
    def urls(self) -> ProtectUrls:
        return self._urls

    @property
    def gateway(self) -> RequestGateway:
        return self._gateway

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def sync(self) -> BootstrapSync:
        return self._sync

    @property
    def bootstrap(self) -> Bootstrap | None:
        return self._sync.bootstrap

    @property
    def cameras(self) -> list[Camera]:
        """Return the cameras of the latest snapshot, in server order."""

        snapshot = self._sync.snapshot
        if snapshot is None:
            return []
        return list(snapshot.devices.values())

    @property
    def is_admin(self) -> bool:
        return self._session.is_admin

    @property
    def last_update_id(self) -> str | None:
        return self._sync.last_update_id

    # ----------------- Naming -----------------

    def nvr_name(self) -> str:
        """Return ``"Name [type]"`` once bootstrapped, else the NVR address."""

        return self._sync.nvr_name()

    def device_name(
        self, camera: Camera | None, name: str | None = None, *, with_info: bool = False
    ) -> str:
        return device_display_name(camera, name, with_info=with_info)

    def full_name(self, camera: Camera | None) -> str:
        return full_display_name(self.nvr_name(), camera)

    # ----------------- Public API -----------------

    async def refresh_devices(self) -> bool:
        """Refresh the bootstrap inventory and (re)connect realtime updates."""

        return await self._sync.refresh()

    def clear_login_credentials(self) -> None:
        """Forget the session and drop the realtime connection."""

        self._sessions.clear_session()

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        body: Any | None = None,
        *,
        decode_response: bool = True,
        log_errors: bool = True,
    ) -> ApiResponse | None:
        """Send a request with the current session headers."""

        return await self._gateway.send(
            url, method, body, decode_response=decode_response, log_errors=log_errors
        )

    async def login_fetch(
        self,
        url: str,
        method: str = "GET",
        body: Any | None = None,
        *,
        decode_response: bool = True,
        log_errors: bool = True,
    ) -> ApiResponse | None:
        """Log in if needed, then send the request."""

        if not await self._sessions.ensure_logged_in():
            return None
        return await self.fetch(
            url, method, body, decode_response=decode_response, log_errors=log_errors
        )

    def is_all_rtsp_configured(self) -> bool:
        """Return True when every channel of every camera has RTSP enabled."""

        return not any(camera.needs_rtsp for camera in self.cameras)

    async def enable_rtsp(self, camera: Camera) -> Camera | None:
        """Enable RTSP on every channel of ``camera`` when any is disabled."""

        if not await self._check_camera_state(camera):
            return None
        if not camera.needs_rtsp:
            return camera

        channels = [
            channel.model_copy(update={"is_rtsp_enabled": True})
            for channel in camera.channels or ()
        ]
        pushed = await self._push_channels(camera.model_copy(update={"channels": channels}))
        return pushed or camera

    async def update_channels(self, camera: Camera) -> Camera | None:
        """Push the channel list of ``camera`` and return the server's record.

        On failure the camera passed in is returned unchanged so callers can
        keep using whichever channels already stream.
        """

        if not await self._check_camera_state(camera):
            return None
        return await self._push_channels(camera) or camera

    async def _push_channels(self, camera: Camera) -> Camera | None:
        """PATCH the channels of ``camera``; return ``None`` when the NVR refused."""

        response = await self._gateway.send(
            self._urls.camera(camera.id),
            "PATCH",
            {"channels": [channel.to_payload() for channel in camera.channels or ()]},
            decode_response=False,
        )

        # Raw mode: status handling and budget accounting are ours.
        if response is None:
            return None
        if not response.ok:
            self._gateway.record_outcome(False)
            if response.status == 401:
                self.clear_login_credentials()
            if response.status == 403:
                self._logger.error(
                    "%s: Insufficient privileges to enable RTSP on all channels. Please "
                    "ensure this username has the Administrator role assigned in UniFi Protect.",
                    self.full_name(camera),
                )
            else:
                self._logger.error(
                    "%s: Unable to enable RTSP on all channels: %s.",
                    self.full_name(camera),
                    response.status,
                )
            return None

        self._gateway.record_outcome(True)
        return self._decode_camera(response, camera) or camera

    async def update_camera(
        self, camera: Camera | None, payload: Mapping[str, Any]
    ) -> Camera | None:
        """PATCH an opaque configuration ``payload`` onto ``camera``."""

        if camera is None:
            return None
        if not await self._sessions.ensure_logged_in():
            return None
        if not self._session.is_admin:
            self._logger.debug(
                "%s: Administrator role required to update the camera.", self.full_name(camera)
            )
            return None

        self._logger.debug("%s: %s", self.full_name(camera), dict(payload))
        response = await self._gateway.send(
            self._urls.camera(camera.id), "PATCH", dict(payload)
        )
        if response is None:
            self._logger.error("%s: Unable to configure the camera.", self.full_name(camera))
            return None
        return self._decode_camera(response, camera)

    async def close(self) -> None:
        """Terminate the realtime connection and release the HTTP session."""

        await self._events.close()
        if self._owns_http:
            await self._http.close()

    # ----------------- Helpers -----------------

    async def _check_camera_state(self, camera: Camera) -> bool:
        """Return True when ``camera`` may be reconfigured by this user."""

        if not await self._sessions.ensure_logged_in():
            return False
        if not self._session.is_admin:
            return False
        return camera.model_key == MODEL_KEY_CAMERA

    def _decode_camera(self, response: ApiResponse, camera: Camera) -> Camera | None:
        try:
            return Camera.model_validate(response.json())
        except (ProtocolError, ValidationError) as err:
            self._logger.error(
                "%s: Unable to parse the updated camera record: %s",
                self.full_name(camera),
                err,
            )
            return None


__all__ = ["ProtectApi"]
