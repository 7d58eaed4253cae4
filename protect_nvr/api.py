"""HTTP gateway for the UniFi Protect API."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
import errno
import json
import logging
import socket
from typing import TYPE_CHECKING, Any

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy

from .backend.sanitize import redact_text
from .const import HEADER_SET_COOKIE
from .throttle import ErrorBudget, ThrottleDecision

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .session import Session

_LOGGER = logging.getLogger(__name__)


class ProtectError(Exception):
    """Base class for failures talking to the NVR."""


class AuthenticationError(ProtectError):
    """Credentials were rejected or the login response was incomplete."""


class PrivilegeError(ProtectError):
    """The user lacks the role required for the request."""


class ApiError(ProtectError):
    """The NVR answered with an unexpected non-2xx status."""

    def __init__(self, status: int, reason: str | None = None) -> None:
        super().__init__(f"API access error: {status} - {reason or ''}".rstrip(" -"))
        self.status = status
        self.reason = reason


class TransportError(ProtectError):
    """The connection to the NVR could not be made or was dropped."""

    REFUSED = "refused"
    RESET = "reset"
    NOT_FOUND = "not_found"

    def __init__(self, message: str, *, kind: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind


class RequestTimeoutError(ProtectError, TimeoutError):
    """A request exceeded its deadline and was cancelled."""


class ProtocolError(ProtectError):
    """A response body could not be decoded."""


class ChannelLivenessError(ProtectError):
    """The realtime channel went silent or reported an error."""


_EMPTY_HEADERS: CIMultiDictProxy[str] = CIMultiDictProxy(CIMultiDict())


@dataclass(frozen=True, slots=True)
class ApiResponse:
    """Fully read HTTP response."""

    status: int
    reason: str | None = None
    headers: CIMultiDictProxy[str] = field(default_factory=lambda: _EMPTY_HEADERS)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def set_cookies(self) -> list[str]:
        """Return every ``Set-Cookie`` header of the response."""

        return self.headers.getall(HEADER_SET_COOKIE, [])

    def text(self) -> str:
        return self.body.decode("utf-8", "replace")

    def json(self) -> Any:
        """Decode the body as JSON or raise :class:`ProtocolError`."""

        try:
            return json.loads(self.body)
        except ValueError as err:
            raise ProtocolError(f"Undecodable response body ({len(self.body)} bytes)") from err


def classify_client_error(err: aiohttp.ClientError) -> TransportError:
    """Map an aiohttp failure onto a :class:`TransportError`."""

    if isinstance(err, aiohttp.ClientConnectorError):
        os_error = err.os_error
        if isinstance(os_error, socket.gaierror):
            return TransportError(str(err), kind=TransportError.NOT_FOUND)
        if isinstance(os_error, ConnectionRefusedError) or os_error.errno == errno.ECONNREFUSED:
            return TransportError(str(err), kind=TransportError.REFUSED)
    if isinstance(err, aiohttp.ServerDisconnectedError) or (
        isinstance(err, OSError) and err.errno == errno.ECONNRESET
    ):
        return TransportError(str(err) or "connection reset", kind=TransportError.RESET)
    return TransportError(str(err) or type(err).__name__)


class RequestGateway:
    """Issue timed requests with session headers and an error budget."""

    def __init__(
        self,
        http: aiohttp.ClientSession,
        session: Session,
        budget: ErrorBudget,
        *,
        timeout: float,
        verify_ssl: bool = False,
        nvr_name: Callable[[], str] | None = None,
        on_auth_failure: Callable[[], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialise the gateway around a shared aiohttp session."""

        self._http = http
        self._session = session
        self._budget = budget
        self._timeout = timeout
        # ``False`` disables certificate validation, ``None`` keeps aiohttp's default.
        self._ssl: bool | None = None if verify_ssl else False
        self._nvr_name = nvr_name or (lambda: "NVR")
        self._on_auth_failure = on_auth_failure
        self._logger = logger or _LOGGER

    @property
    def budget(self) -> ErrorBudget:
        return self._budget

    @property
    def ssl(self) -> bool | None:
        """Return the ``ssl`` argument passed to aiohttp."""

        return self._ssl

    def record_outcome(self, success: bool) -> None:
        """Account for a response the caller classified itself."""

        self._budget.record_outcome(success)

    async def send(
        self,
        url: str,
        method: str = "GET",
        body: Any | None = None,
        *,
        decode_response: bool = True,
        log_errors: bool = True,
    ) -> ApiResponse | None:
        """Perform a request and return the response, or ``None`` on failure.

        With ``decode_response`` false the response is returned whatever its
        status; the caller then owns status handling and must report the
        outcome through :meth:`record_outcome`.
        """

        try:
            data = None if body is None else json.dumps(body)
        except (TypeError, ValueError) as err:
            # Nothing reached the network, so the budget is untouched.
            self._logger.error(
                "%s: Unable to encode the request body for %s %s: %s",
                self._nvr_name(),
                method,
                url,
                err,
            )
            return None

        if not self._check_budget():
            return None

        try:
            response = await self._perform(method, url, data)
            if not decode_response:
                return response
            self._raise_for_status(response)
        except AuthenticationError as err:
            self._budget.record_outcome(False)
            self._logger.error(
                "%s: Invalid login credentials given. Please check your login and password (%s).",
                self._nvr_name(),
                err,
            )
            if self._on_auth_failure is not None:
                self._on_auth_failure()
            return None
        except ProtectError as err:
            self._budget.record_outcome(False)
            self._log_failure(err, log_errors=log_errors)
            return None

        self._budget.record_outcome(True)
        return response

    def _check_budget(self) -> bool:
        """Return False when the error budget blocks the request."""

        decision = self._budget.should_throttle()
        if decision is ThrottleDecision.STARTED:
            self._logger.info(
                "%s: Throttling API calls due to errors with the %s previous attempts. "
                "Will retry again in %s minutes.",
                self._nvr_name(),
                self._budget.error_limit,
                self._budget.retry_interval / 60,
            )
        elif decision is ThrottleDecision.RESUMED:
            self._logger.info(
                "%s: Resuming connectivity to the UniFi Protect API after throttling for %s minutes.",
                self._nvr_name(),
                self._budget.retry_interval / 60,
            )
        return not decision.blocked

    async def _perform(self, method: str, url: str, data: str | None) -> ApiResponse:
        """Run the transport call, reading the body before the deadline."""

        kwargs: dict[str, Any] = {"headers": self._session.headers(), "ssl": self._ssl}
        if data is not None:
            kwargs["data"] = data
        self._logger.debug("HTTP %s %s", method, url)

        try:
            async with asyncio.timeout(self._timeout):
                async with self._http.request(method, url, **kwargs) as resp:
                    payload = await resp.read()
                    self._logger.debug("HTTP %s -> %s", url, resp.status)
                    return ApiResponse(
                        status=resp.status,
                        reason=resp.reason,
                        headers=resp.headers,
                        body=payload,
                    )
        except TimeoutError as err:
            raise RequestTimeoutError(
                f"{method} {url} exceeded {self._timeout} seconds"
            ) from err
        except aiohttp.ClientError as err:
            raise classify_client_error(err) from err

    @staticmethod
    def _raise_for_status(response: ApiResponse) -> None:
        if response.status == 401:
            raise AuthenticationError("HTTP 401")
        if response.status == 403:
            raise PrivilegeError("HTTP 403")
        if not response.ok:
            raise ApiError(response.status, response.reason)

    def _log_failure(self, err: ProtectError, *, log_errors: bool) -> None:
        """Report a failed request with the NVR identity."""

        name = self._nvr_name()
        if isinstance(err, PrivilegeError):
            self._logger.error(
                "%s: Insufficient privileges for this user. Please check the roles "
                "assigned to this user and ensure it has sufficient privileges.",
                name,
            )
        elif isinstance(err, ApiError):
            self._logger.error("%s: %s", name, err)
        elif isinstance(err, RequestTimeoutError):
            self._logger.error(
                "%s: Controller API connection terminated because it was taking too long. "
                "This error can usually be safely ignored.",
                name,
            )
        elif isinstance(err, TransportError) and err.kind == TransportError.REFUSED:
            self._logger.error("%s: Controller API connection refused.", name)
        elif isinstance(err, TransportError) and err.kind == TransportError.RESET:
            self._logger.error("%s: Controller API connection reset.", name)
        elif isinstance(err, TransportError) and err.kind == TransportError.NOT_FOUND:
            self._logger.error(
                "%s: Hostname or IP address not found. Please ensure the address you "
                "configured for this UniFi Protect controller is correct.",
                name,
            )
        elif log_errors:
            self._logger.error("%s: %s", name, redact_text(str(err)))
        else:
            self._logger.debug("%s: %s", name, redact_text(str(err)))


__all__ = [
    "ApiError",
    "ApiResponse",
    "AuthenticationError",
    "ChannelLivenessError",
    "PrivilegeError",
    "ProtectError",
    "ProtocolError",
    "RequestGateway",
    "RequestTimeoutError",
    "TransportError",
    "classify_client_error",
]
