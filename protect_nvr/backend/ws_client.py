"""Realtime update channel for UniFi Protect."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
import logging
from typing import Any

import aiohttp

from ..api import ChannelLivenessError
from ..const import HEADER_COOKIE
from ..session import SessionManager
from ..utils import ProtectUrls
from .sanitize import redact_text
from .ws_health import ChannelEvent, ChannelStatus, HeartbeatMonitor

_LOGGER = logging.getLogger(__name__)

# Seconds to wait for the peer to acknowledge a close frame.
WS_TERMINATE_TIMEOUT = 0.0
# Seconds allowed for writing the close frame. aiohttp aborts the transport
# when the write is cancelled.
WS_CLOSE_WRITE_TIMEOUT = 1.0

MessageCallback = Callable[[Any], None]
QueueItem = tuple[ChannelEvent, BaseException | None]


class EventChannel:
    """Keep at most one heartbeat-supervised realtime connection open."""

    def __init__(
        self,
        http: aiohttp.ClientSession,
        sessions: SessionManager,
        urls: ProtectUrls,
        *,
        heartbeat_interval: float,
        open_timeout: float,
        last_update_id: Callable[[], str | None] | None = None,
        verify_ssl: bool = False,
        nvr_name: Callable[[], str] | None = None,
        on_message: MessageCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialise the channel; nothing is opened until :meth:`connect`."""

        self._http = http
        self._sessions = sessions
        self._urls = urls
        self._heartbeat_interval = heartbeat_interval
        self._open_timeout = open_timeout
        self._last_update_id = last_update_id or (lambda: None)
        self._ssl: bool | None = None if verify_ssl else False
        self._nvr_name = nvr_name or (lambda: urls.address)
        self._on_message = on_message
        self._logger = logger or _LOGGER

        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._monitor: HeartbeatMonitor | None = None
        self._connect_task: asyncio.Task[bool] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._supervisor_task: asyncio.Task[None] | None = None
        self._close_tasks: set[asyncio.Task[None]] = set()
        self._closing = False

    @property
    def connected(self) -> bool:
        """Return True while a connection is recorded as live."""

        return self._ws is not None

    @property
    def monitor(self) -> HeartbeatMonitor | None:
        """Return the heartbeat state of the current or last connection."""

        return self._monitor

    async def connect(self) -> bool:
        """Open the realtime connection unless one is already live."""

        if self._ws is not None:
            return True
        if self._closing:
            return False
        if not await self._sessions.ensure_logged_in():
            return False
        if self._ws is not None:
            return True
        if self._closing:
            return False

        if self._connect_task is None:
            self._connect_task = asyncio.create_task(self._open())
        task = self._connect_task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and self._closing and not (current and current.cancelling()):
                # The socket was closed before the connection was established
                # because we are shutting down.
                self._logger.debug(
                    "%s: Realtime connection attempt abandoned during shutdown.",
                    self._nvr_name(),
                )
                return False
            raise

    async def _open(self) -> bool:
        try:
            url = self._urls.updates(self._last_update_id())
            self._logger.debug("%s: Update listener: %s", self._nvr_name(), url)
            try:
                async with asyncio.timeout(self._open_timeout):
                    ws = await self._http.ws_connect(
                        url,
                        headers={HEADER_COOKIE: self._sessions.session.cookie or ""},
                        ssl=self._ssl,
                        autoping=False,
                        heartbeat=None,
                        timeout=aiohttp.ClientWSTimeout(
                            ws_receive=None, ws_close=WS_TERMINATE_TIMEOUT
                        ),
                    )
            except (aiohttp.ClientError, TimeoutError) as err:
                self._ws = None
                self._logger.error(
                    "%s: Error connecting to the realtime update events API: %s",
                    self._nvr_name(),
                    redact_text(str(err)) or type(err).__name__,
                )
                return False

            self._start(ws)
            self._logger.info(
                "%s: Connected to the UniFi realtime update events API.", self._nvr_name()
            )
            return True
        finally:
            self._connect_task = None

    def _start(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Record ``ws`` as live and start its reader and supervisor."""

        queue: asyncio.Queue[QueueItem] = asyncio.Queue()
        monitor = HeartbeatMonitor(window=self._heartbeat_interval)
        self._ws = ws
        self._monitor = monitor
        queue.put_nowait((ChannelEvent.OPENED, None))
        self._reader_task = asyncio.create_task(self._read(ws, queue))
        self._supervisor_task = asyncio.create_task(self._supervise(ws, queue, monitor))

    async def _read(
        self, ws: aiohttp.ClientWebSocketResponse, queue: asyncio.Queue[QueueItem]
    ) -> None:
        """Translate socket messages into :class:`ChannelEvent` notifications."""

        try:
            while True:
                msg = await ws.receive()
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    queue.put_nowait((ChannelEvent.FRAME, None))
                    self._dispatch(msg.data)
                elif msg.type is aiohttp.WSMsgType.PING:
                    queue.put_nowait((ChannelEvent.FRAME, None))
                    await ws.pong(msg.data)
                elif msg.type is aiohttp.WSMsgType.PONG:
                    queue.put_nowait((ChannelEvent.FRAME, None))
                elif msg.type is aiohttp.WSMsgType.ERROR:
                    queue.put_nowait((ChannelEvent.FAILED, ws.exception()))
                    return
                else:
                    queue.put_nowait((ChannelEvent.CLOSED, None))
                    return
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as err:
            queue.put_nowait((ChannelEvent.FAILED, err))

    def _dispatch(self, data: Any) -> None:
        if self._on_message is None:
            return
        try:
            self._on_message(data)
        except Exception:
            self._logger.debug(
                "%s: realtime message handler failed", self._nvr_name(), exc_info=True
            )

    async def _supervise(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        queue: asyncio.Queue[QueueItem],
        monitor: HeartbeatMonitor,
    ) -> None:
        """Consume channel events and drop the connection once it goes quiet."""

        loop = asyncio.get_running_loop()
        while True:
            try:
                async with asyncio.timeout(monitor.remaining(now=loop.time())):
                    event, error = await queue.get()
            except TimeoutError:
                if monitor.check(now=loop.time()) is ChannelStatus.EXPIRED:
                    err = ChannelLivenessError(
                        f"no realtime traffic for {monitor.window} seconds"
                    )
                    self._logger.debug("%s: %s; terminating.", self._nvr_name(), err)
                    self._detach(ws)
                    return
                continue

            status = monitor.observe(event, now=loop.time())
            if status is ChannelStatus.CLOSED:
                self._logger.debug("%s: Realtime connection closed.", self._nvr_name())
                self._detach(ws)
                return
            if status is ChannelStatus.FAILED:
                if not self._closing:
                    self._logger.error(
                        "%s: %s",
                        self._nvr_name(),
                        ChannelLivenessError(str(error) if error else "socket error"),
                    )
                self._detach(ws)
                return

    def terminate(self) -> None:
        """Drop the current connection immediately, if any."""

        if self._ws is not None:
            self._detach(self._ws)

    def _detach(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Forget ``ws``, stop its tasks and close it in the background."""

        if self._ws is ws:
            self._ws = None
        current = asyncio.current_task()
        for task in (self._reader_task, self._supervisor_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._reader_task = None
        self._supervisor_task = None

        close_task = asyncio.get_running_loop().create_task(self._close_socket(ws))
        self._close_tasks.add(close_task)
        close_task.add_done_callback(self._close_tasks.discard)

    async def _close_socket(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async with asyncio.timeout(WS_CLOSE_WRITE_TIMEOUT):
                await ws.close()
        except TimeoutError:
            self._logger.debug(
                "%s: Close frame not written in time; connection dropped.", self._nvr_name()
            )
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as err:
            self._logger.debug("%s: Error closing realtime connection: %s", self._nvr_name(), err)

    async def close(self) -> None:
        """Shut the channel down, leaving no scheduled work behind."""

        self._closing = True
        connect_task = self._connect_task
        if connect_task is not None and not connect_task.done():
            connect_task.cancel()
            with suppress(asyncio.CancelledError):
                await connect_task
        self._connect_task = None

        pending = [
            task
            for task in (self._reader_task, self._supervisor_task)
            if task is not None and not task.done()
        ]
        self.terminate()
        for task in pending:
            with suppress(asyncio.CancelledError):
                await task
        if self._close_tasks:
            await asyncio.gather(*self._close_tasks, return_exceptions=True)


__all__ = ["EventChannel", "WS_CLOSE_WRITE_TIMEOUT", "WS_TERMINATE_TIMEOUT"]
