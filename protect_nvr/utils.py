"""Naming and URL helpers shared across the Protect client."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from http.cookies import CookieError, SimpleCookie
from urllib.parse import urlencode

from .codecs.protect_models import Bootstrap, Camera
from .const import (
    AUTH_PATH,
    BOOTSTRAP_PATH,
    CAMERAS_PATH,
    SYSTEM_WS_PATH,
    UPDATES_WS_PATH,
)


@dataclass(frozen=True, slots=True)
class ProtectUrls:
    """Build the HTTPS and WSS endpoints of one NVR."""

    address: str

    @property
    def base(self) -> str:
        """Return the base address queried for a CSRF token."""

        return f"https://{self.address}"

    @property
    def auth(self) -> str:
        return f"https://{self.address}{AUTH_PATH}"

    @property
    def bootstrap(self) -> str:
        return f"https://{self.address}{BOOTSTRAP_PATH}"

    @property
    def cameras(self) -> str:
        return f"https://{self.address}{CAMERAS_PATH}"

    def camera(self, camera_id: str) -> str:
        """Return the URL of a single camera record."""

        return f"{self.cameras}/{camera_id}"

    def updates(self, last_update_id: str | None) -> str:
        """Return the realtime updates URL resuming from ``last_update_id``."""

        query = urlencode({"lastUpdateId": last_update_id or ""})
        return f"wss://{self.address}{UPDATES_WS_PATH}?{query}"

    @property
    def system(self) -> str:
        return f"wss://{self.address}{SYSTEM_WS_PATH}"


def nvr_display_name(bootstrap: Bootstrap | None, address: str) -> str:
    """Return ``"Name [type]"`` for a bootstrapped NVR, else its address."""

    if bootstrap is not None and bootstrap.nvr is not None:
        return f"{bootstrap.nvr.name} [{bootstrap.nvr.type}]"
    return address


def device_display_name(
    camera: Camera | None, name: str | None = None, *, with_info: bool = False
) -> str:
    """Return ``"Name [type]"`` optionally followed by address and MAC."""

    if camera is None:
        return ""
    label = name if name is not None else camera.name
    text = f"{label} [{camera.type}]"
    if with_info:
        text += f" (address: {camera.host} mac: {camera.mac})"
    return text


def full_display_name(nvr_name: str, camera: Camera | None) -> str:
    """Return the NVR name followed by the device name."""

    camera_name = device_display_name(camera)
    if camera_name:
        return f"{nvr_name} {camera_name}"
    return nvr_name


def cookie_header(set_cookie_values: Iterable[str]) -> str | None:
    """Collapse ``Set-Cookie`` response headers into a ``Cookie`` header value."""

    pairs: list[str] = []
    for raw in set_cookie_values:
        jar: SimpleCookie = SimpleCookie()
        try:
            jar.load(raw)
        except CookieError:
            continue
        pairs.extend(f"{key}={morsel.value}" for key, morsel in jar.items())
    if not pairs:
        return None
    return "; ".join(pairs)


__all__ = [
    "ProtectUrls",
    "cookie_header",
    "device_display_name",
    "full_display_name",
    "nvr_display_name",
]
