"""Pydantic models for UniFi Protect payloads.

Only the fields this client reads are declared. Everything else is kept as
model extras so payloads round-trip to the NVR unchanged.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _ProtectModel(BaseModel):
    """Base model accepting camelCase aliases and unknown keys."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """Return the fields the server sent (or we set), under the server's keys."""

        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class CameraChannel(_ProtectModel):
    """A single video channel of a camera."""

    id: int | str | None = None
    name: str | None = None
    is_rtsp_enabled: bool | None = Field(default=None, alias="isRtspEnabled")


class Camera(_ProtectModel):
    """Camera record as returned by the bootstrap and camera endpoints."""

    id: str
    mac: str
    name: str | None = None
    type: str | None = None
    model_key: str | None = Field(default=None, alias="modelKey")
    host: str | None = None
    is_managed: bool | None = Field(default=None, alias="isManaged")
    channels: list[CameraChannel] | None = None

    @property
    def needs_rtsp(self) -> bool:
        """Return True when any channel still has RTSP disabled."""

        return any(not channel.is_rtsp_enabled for channel in self.channels or ())


class NvrInfo(_ProtectModel):
    """Summary of the NVR itself."""

    name: str | None = None
    type: str | None = None
    host: str | None = None
    mac: str | None = None


class UserConfig(_ProtectModel):
    """User account with its flattened permission strings."""

    id: str
    all_permissions: list[str] | None = Field(default=None, alias="allPermissions")


class Bootstrap(_ProtectModel):
    """Full inventory snapshot returned by ``/proxy/protect/api/bootstrap``."""

    # The only required field; everything else may be null or absent.
    cameras: list[Camera]
    nvr: NvrInfo | None = None
    users: list[UserConfig] | None = None
    auth_user_id: str | None = Field(default=None, alias="authUserId")
    last_update_id: str | None = Field(default=None, alias="lastUpdateId")

    def auth_user(self) -> UserConfig | None:
        """Return the user this session authenticated as."""

        if self.auth_user_id is None:
            return None
        for user in self.users or ():
            if user.id == self.auth_user_id:
                return user
        return None


__all__ = ["Bootstrap", "Camera", "CameraChannel", "NvrInfo", "UserConfig"]
