"""Bootstrap inventory synchronisation."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
import enum
import logging

from pydantic import ValidationError

from .api import ProtocolError, RequestGateway
from .codecs.protect_models import Bootstrap, Camera, UserConfig
from .const import CAMERA_PERMISSION_TYPE, WRITE_PERMISSION
from .session import SessionManager
from .utils import ProtectUrls, device_display_name, full_display_name, nvr_display_name

_LOGGER = logging.getLogger(__name__)

DeviceCallback = Callable[[Camera], None]


class PrivilegeUpdate(enum.Enum):
    """How a bootstrap changed what we know about the user's role."""

    INITIAL = "initial"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class DeviceSnapshot:
    """Cameras keyed by MAC address plus the realtime resume cursor."""

    devices: dict[str, Camera] = field(default_factory=dict)
    last_update_id: str | None = None

    @classmethod
    def from_bootstrap(cls, bootstrap: Bootstrap) -> DeviceSnapshot:
        return cls(
            devices={camera.mac: camera for camera in bootstrap.cameras},
            last_update_id=bootstrap.last_update_id,
        )

    def __contains__(self, mac: object) -> bool:
        return mac in self.devices

    def __len__(self) -> int:
        return len(self.devices)


@dataclass(frozen=True, slots=True)
class SnapshotDiff:
    """Devices that appeared or vanished between two snapshots."""

    discovered: list[Camera] = field(default_factory=list)
    removed: list[Camera] = field(default_factory=list)


def diff_snapshots(previous: DeviceSnapshot | None, current: DeviceSnapshot) -> SnapshotDiff:
    """Return managed newcomers and departed devices, in snapshot order."""

    known = previous.devices if previous is not None else {}
    discovered = [
        camera
        for mac, camera in current.devices.items()
        if mac not in known and camera.is_managed
    ]
    removed = [camera for mac, camera in known.items() if mac not in current.devices]
    return SnapshotDiff(discovered=discovered, removed=removed)


def has_camera_write(permissions: Iterable[str]) -> bool:
    """Return True when a ``camera:<perms>:<scope>`` entry grants ``write``."""

    for entry in permissions:
        parts = entry.split(":")
        if parts[0] != CAMERA_PERMISSION_TYPE or len(parts) < 2:
            continue
        if WRITE_PERMISSION in parts[1].split(","):
            return True
    return False


def is_admin_user(user: UserConfig | None) -> bool:
    """Return True when ``user`` may reconfigure cameras."""

    if user is None:
        return False
    return has_camera_write(user.all_permissions or ())


class BootstrapSync:
    """Fetch the bootstrap, keep the snapshot and report inventory changes."""

    def __init__(
        self,
        gateway: RequestGateway,
        sessions: SessionManager,
        urls: ProtectUrls,
        *,
        connect_events: Callable[[], Awaitable[bool]] | None = None,
        on_discovered: DeviceCallback | None = None,
        on_removed: DeviceCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialise the synchroniser."""

        self._gateway = gateway
        self._sessions = sessions
        self._urls = urls
        self._connect_events = connect_events
        self._on_discovered = on_discovered
        self._on_removed = on_removed
        self._logger = logger or _LOGGER
        self._bootstrap: Bootstrap | None = None
        self._snapshot: DeviceSnapshot | None = None
        # Survives session resets so a re-login is not taken for a first run.
        self._admin_known: bool | None = None
        self.last_privilege_update: PrivilegeUpdate | None = None

    @property
    def bootstrap(self) -> Bootstrap | None:
        return self._bootstrap

    @property
    def snapshot(self) -> DeviceSnapshot | None:
        return self._snapshot

    @property
    def last_update_id(self) -> str | None:
        if self._snapshot is None:
            return None
        return self._snapshot.last_update_id

    def nvr_name(self) -> str:
        return nvr_display_name(self._bootstrap, self._urls.address)

    async def refresh(self) -> bool:
        """Refresh the inventory; return True when the event channel is up."""

        if not await self._sessions.ensure_logged_in():
            return False

        bootstrap = await self._fetch()
        if bootstrap is None:
            # Start the next attempt from token acquisition.
            self._sessions.clear_session()
            return False

        first_run = self._bootstrap is None
        self._bootstrap = bootstrap
        if first_run:
            self._logger.info(
                "%s: Connected to the Protect controller API (address: %s mac: %s).",
                self.nvr_name(),
                bootstrap.nvr.host if bootstrap.nvr else None,
                bootstrap.nvr.mac if bootstrap.nvr else None,
            )

        previous = self._snapshot
        self._snapshot = DeviceSnapshot.from_bootstrap(bootstrap)
        self._notify(diff_snapshots(previous, self._snapshot))
        self._update_admin_status(bootstrap)

        if self._connect_events is None:
            return True
        return await self._connect_events()

    async def _fetch(self) -> Bootstrap | None:
        """Return the decoded bootstrap or ``None`` after logging why not."""

        response = await self._gateway.send(self._urls.bootstrap)
        if response is None:
            self._logger.error(
                "%s: Unable to retrieve NVR configuration information from UniFi Protect. "
                "Will retry again later.",
                self.nvr_name(),
            )
            return None

        try:
            data = response.json()
        except ProtocolError as err:
            self._logger.error(
                "%s: Unable to parse response from UniFi Protect (%s). Will retry again later.",
                self.nvr_name(),
                err,
            )
            return None

        try:
            return Bootstrap.model_validate(data)
        except ValidationError as err:
            self._logger.error(
                "%s: Unable to retrieve camera information from UniFi Protect. "
                "Will retry again later.",
                self.nvr_name(),
            )
            self._logger.debug("%s: bootstrap validation errors: %s", self.nvr_name(), err)
            return None

    def _notify(self, diff: SnapshotDiff) -> None:
        for camera in diff.discovered:
            self._logger.info(
                "%s: Discovered %s: %s.",
                self.nvr_name(),
                camera.model_key,
                device_display_name(camera, with_info=True),
            )
            if self._on_discovered is not None:
                self._on_discovered(camera)

        for camera in diff.removed:
            self._logger.debug(
                "%s: Detected %s removal.",
                full_display_name(self.nvr_name(), camera),
                camera.model_key,
            )
            if self._on_removed is not None:
                self._on_removed(camera)

    def _update_admin_status(self, bootstrap: Bootstrap) -> None:
        """Recompute admin privilege and report first results or role changes."""

        user = bootstrap.auth_user()
        if user is None or user.all_permissions is None:
            self._logger.debug(
                "%s: Authenticated user or its permissions missing from bootstrap; "
                "privileges unchanged.",
                self.nvr_name(),
            )
            self._sessions.session.is_admin = bool(self._admin_known)
            return

        is_admin = is_admin_user(user)
        previous = self._admin_known
        self._admin_known = is_admin
        self._sessions.session.is_admin = is_admin
        username = self._sessions.username

        if previous is None:
            self.last_privilege_update = PrivilegeUpdate.INITIAL
            if not is_admin:
                self._logger.info(
                    "%s: The user '%s' requires the Administrator role in order to "
                    "automatically configure camera RTSP streams.",
                    self.nvr_name(),
                    username,
                )
        elif previous == is_admin:
            self.last_privilege_update = PrivilegeUpdate.UNCHANGED
        else:
            self.last_privilege_update = PrivilegeUpdate.CHANGED
            self._logger.info(
                "%s: Detected a role change for user '%s': the Administrator role has been %s.",
                self.nvr_name(),
                username,
                "enabled" if is_admin else "disabled",
            )


__all__ = [
    "BootstrapSync",
    "DeviceSnapshot",
    "PrivilegeUpdate",
    "SnapshotDiff",
    "diff_snapshots",
    "has_camera_write",
    "is_admin_user",
]
