"""Resilient asyncio client for UniFi Protect NVRs."""

from __future__ import annotations

from .api import (
    ApiError,
    ApiResponse,
    AuthenticationError,
    ChannelLivenessError,
    PrivilegeError,
    ProtectError,
    ProtocolError,
    RequestGateway,
    RequestTimeoutError,
    TransportError,
)
from .bootstrap import BootstrapSync, DeviceSnapshot, PrivilegeUpdate, SnapshotDiff
from .client import ProtectApi
from .codecs import Bootstrap, Camera, CameraChannel, NvrInfo, UserConfig
from .config import CONFIG_SCHEMA, ProtectConfig
from .session import Session, SessionManager, SessionState
from .throttle import ErrorBudget, ThrottleDecision

__all__ = [
    "CONFIG_SCHEMA",
    "ApiError",
    "ApiResponse",
    "AuthenticationError",
    "Bootstrap",
    "BootstrapSync",
    "Camera",
    "CameraChannel",
    "ChannelLivenessError",
    "DeviceSnapshot",
    "ErrorBudget",
    "NvrInfo",
    "PrivilegeError",
    "PrivilegeUpdate",
    "ProtectApi",
    "ProtectConfig",
    "ProtectError",
    "ProtocolError",
    "RequestGateway",
    "RequestTimeoutError",
    "Session",
    "SessionManager",
    "SessionState",
    "SnapshotDiff",
    "ThrottleDecision",
    "TransportError",
    "UserConfig",
]
