"""Session credentials and the login dance for UniFi OS consoles."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import enum
import logging
import time

from .api import RequestGateway
from .const import CONTENT_TYPE_JSON, HEADER_COOKIE, HEADER_CSRF_TOKEN
from .backend.sanitize import mask_identifier
from .utils import ProtectUrls, cookie_header

_LOGGER = logging.getLogger(__name__)

MonotonicCallable = Callable[[], float]


class SessionState(enum.Enum):
    """Login lifecycle of a :class:`SessionManager`."""

    LOGGED_OUT = "logged_out"
    ACQUIRING_TOKEN = "acquiring_token"
    LOGGING_IN = "logging_in"
    LOGGED_IN = "logged_in"


@dataclass(slots=True)
class Session:
    """Credentials of the current login."""

    csrf_token: str | None = None
    cookie: str | None = None
    logged_in: bool = False
    login_age: float = 0.0
    is_admin: bool = False

    def reset(self) -> None:
        """Drop every credential."""

        self.csrf_token = None
        self.cookie = None
        self.logged_in = False
        self.login_age = 0.0
        self.is_admin = False

    def headers(self) -> dict[str, str]:
        """Return the headers attached to every request."""

        headers = {"Content-Type": CONTENT_TYPE_JSON}
        if self.csrf_token:
            headers[HEADER_CSRF_TOKEN] = self.csrf_token
        if self.cookie:
            headers[HEADER_COOKIE] = self.cookie
        return headers


class SessionManager:
    """Own the session and coalesce concurrent logins into one attempt."""

    def __init__(
        self,
        gateway: RequestGateway,
        session: Session,
        urls: ProtectUrls,
        username: str,
        password: str,
        *,
        login_refresh_interval: float,
        monotonic: MonotonicCallable = time.monotonic,
        nvr_name: Callable[[], str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialise the manager for one NVR account."""

        self._gateway = gateway
        self._session = session
        self._urls = urls
        self._username = username
        self._password = password
        self._login_refresh_interval = login_refresh_interval
        self._monotonic = monotonic
        self._nvr_name = nvr_name or (lambda: urls.address)
        self._logger = logger or _LOGGER
        self._state = SessionState.LOGGED_OUT
        self._pending_login: asyncio.Task[bool] | None = None
        self._teardown_hooks: list[Callable[[], None]] = []

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def username(self) -> str:
        return self._username

    @property
    def login_pending(self) -> bool:
        """Return True while a login round-trip is in flight."""

        return self._pending_login is not None

    def add_teardown_hook(self, hook: Callable[[], None]) -> None:
        """Register a callback run whenever the session is cleared."""

        self._teardown_hooks.append(hook)

    def clear_session(self) -> None:
        """Reset every session field and tear down dependent connections."""

        self._session.reset()
        self._state = SessionState.LOGGED_OUT
        for hook in self._teardown_hooks:
            hook()

    async def ensure_logged_in(self) -> bool:
        """Log in unless a valid session exists; share any in-flight attempt."""

        if self._pending_login is None:
            self._pending_login = asyncio.create_task(self._login_once())
        # Shielded so a cancelled waiter never aborts the attempt for the others.
        return await asyncio.shield(self._pending_login)

    async def _login_once(self) -> bool:
        try:
            return await self._login()
        finally:
            self._pending_login = None

    async def _login(self) -> bool:
        now = self._monotonic()

        if now > self._session.login_age + self._login_refresh_interval:
            self.clear_session()

        if self._session.logged_in:
            return True

        if not await self._acquire_token():
            self.clear_session()
            return False

        self._state = SessionState.LOGGING_IN
        response = await self._gateway.send(
            self._urls.auth,
            "POST",
            {"password": self._password, "username": self._username},
        )
        if response is None:
            self.clear_session()
            return False

        csrf_token = response.headers.get(HEADER_CSRF_TOKEN)
        cookie = cookie_header(response.set_cookies)
        if not csrf_token or not cookie or not self._session.csrf_token:
            self._logger.error(
                "%s: Login response did not include a session cookie and CSRF token.",
                self._nvr_name(),
            )
            self.clear_session()
            return False

        self._session.csrf_token = csrf_token
        self._session.cookie = cookie
        self._session.logged_in = True
        self._session.login_age = now
        self._state = SessionState.LOGGED_IN
        self._logger.debug("%s: Logged in as %s.", self._nvr_name(), mask_identifier(self._username))
        return True

    async def _acquire_token(self) -> bool:
        """Fetch the CSRF token UniFi OS requires before login."""

        if self._session.logged_in or self._session.csrf_token:
            return True

        self._state = SessionState.ACQUIRING_TOKEN
        response = await self._gateway.send(self._urls.base, "GET", decode_response=False)
        if response is None:
            return False
        self._gateway.record_outcome(response.ok)

        if response.ok:
            csrf_token = response.headers.get(HEADER_CSRF_TOKEN)
            # Only UniFi OS consoles hand out the token; it fingerprints the variant.
            if csrf_token:
                self._session.csrf_token = csrf_token
                return True

        self._logger.error(
            "%s: Unable to acquire a CSRF token from the controller (status %s).",
            self._nvr_name(),
            response.status,
        )
        return False


__all__ = ["Session", "SessionManager", "SessionState"]
