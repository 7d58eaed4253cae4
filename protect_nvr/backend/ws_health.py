"""Liveness tracking for the realtime update channel."""

from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import Any


class ChannelEvent(enum.Enum):
    """Notifications delivered by the socket reader to the supervisor."""

    OPENED = "opened"
    FRAME = "frame"
    CLOSED = "closed"
    FAILED = "failed"


class ChannelStatus(enum.Enum):
    """Lifecycle of one realtime connection."""

    CONNECTING = "connecting"
    OPEN = "open"
    EXPIRED = "expired"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass
class HeartbeatMonitor:
    """Track the last inbound traffic on a connection against a fixed window.

    Any frame counts as traffic: data, protocol pings and the open event
    itself. Timestamps come from the caller so the state machine can be
    driven without a running socket.
    """

    window: float
    status: ChannelStatus = ChannelStatus.CONNECTING
    last_frame_at: float | None = None
    frames_total: int = 0

    def observe(self, event: ChannelEvent, *, now: float) -> ChannelStatus:
        """Apply ``event`` received at ``now`` and return the new status."""

        if self.status in (ChannelStatus.CLOSED, ChannelStatus.FAILED, ChannelStatus.EXPIRED):
            return self.status
        if event in (ChannelEvent.OPENED, ChannelEvent.FRAME):
            self.last_frame_at = now
            if event is ChannelEvent.FRAME:
                self.frames_total += 1
            self.status = ChannelStatus.OPEN
        elif event is ChannelEvent.CLOSED:
            self.status = ChannelStatus.CLOSED
        elif event is ChannelEvent.FAILED:
            self.status = ChannelStatus.FAILED
        return self.status

    def deadline(self) -> float | None:
        """Return the time at which the connection is considered dead."""

        if self.last_frame_at is None:
            return None
        return self.last_frame_at + self.window

    def remaining(self, *, now: float) -> float:
        """Return the seconds left before expiry, never negative."""

        deadline = self.deadline()
        if deadline is None:
            return self.window
        return max(deadline - now, 0.0)

    def check(self, *, now: float) -> ChannelStatus:
        """Mark the connection expired when the window has elapsed."""

        if self.status is ChannelStatus.OPEN and self.remaining(now=now) <= 0:
            self.status = ChannelStatus.EXPIRED
        return self.status

    @property
    def alive(self) -> bool:
        return self.status in (ChannelStatus.CONNECTING, ChannelStatus.OPEN)

    def snapshot(self, *, now: float) -> dict[str, Any]:
        """Return a serializable view of the monitor state."""

        return {
            "status": self.status.value,
            "last_frame_at": self.last_frame_at,
            "frames_total": self.frames_total,
            "remaining": self.remaining(now=now) if self.alive else 0.0,
            "window": self.window,
        }


__all__ = ["ChannelEvent", "ChannelStatus", "HeartbeatMonitor"]
