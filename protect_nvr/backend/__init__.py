"""Realtime channel and shared backend helpers."""

from __future__ import annotations

from typing import Any

from .ws_health import ChannelEvent, ChannelStatus, HeartbeatMonitor

__all__ = ["ChannelEvent", "ChannelStatus", "EventChannel", "HeartbeatMonitor"]


def __getattr__(name: str) -> Any:
    """Lazily import the websocket client to avoid circular imports."""

    if name == "EventChannel":
        from .ws_client import EventChannel

        globals()[name] = EventChannel
        return EventChannel
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
