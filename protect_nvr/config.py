"""Configuration schema for the Protect NVR client."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import voluptuous as vol

from .const import (
    CONF_ADDRESS,
    CONF_ERROR_LIMIT,
    CONF_HEARTBEAT_INTERVAL,
    CONF_LOGIN_REFRESH_INTERVAL,
    CONF_PASSWORD,
    CONF_REQUEST_TIMEOUT,
    CONF_RETRY_INTERVAL,
    CONF_USERNAME,
    CONF_VERIFY_SSL,
    DEFAULT_ERROR_LIMIT,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_LOGIN_REFRESH_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_INTERVAL,
    DEFAULT_VERIFY_SSL,
)


def normalize_address(value: Any) -> str:
    """Return ``host[:port]`` without scheme, path or surrounding whitespace."""

    if not isinstance(value, str):
        raise vol.Invalid("address must be a string")
    address = value.strip()
    for prefix in ("https://", "http://", "wss://", "ws://"):
        if address.lower().startswith(prefix):
            address = address[len(prefix) :]
            break
    address = address.split("/", 1)[0]
    if not address:
        raise vol.Invalid("address must not be empty")
    return address


_POSITIVE_FLOAT = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_ADDRESS): normalize_address,
        vol.Required(CONF_USERNAME): vol.All(str, vol.Length(min=1)),
        vol.Required(CONF_PASSWORD): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_ERROR_LIMIT, default=DEFAULT_ERROR_LIMIT): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Optional(CONF_RETRY_INTERVAL, default=DEFAULT_RETRY_INTERVAL): _POSITIVE_FLOAT,
        vol.Optional(
            CONF_REQUEST_TIMEOUT, default=DEFAULT_REQUEST_TIMEOUT
        ): _POSITIVE_FLOAT,
        vol.Optional(
            CONF_HEARTBEAT_INTERVAL, default=DEFAULT_HEARTBEAT_INTERVAL
        ): _POSITIVE_FLOAT,
        vol.Optional(
            CONF_LOGIN_REFRESH_INTERVAL, default=DEFAULT_LOGIN_REFRESH_INTERVAL
        ): _POSITIVE_FLOAT,
        vol.Optional(CONF_VERIFY_SSL, default=DEFAULT_VERIFY_SSL): vol.Boolean(),
    }
)


@dataclass(frozen=True, slots=True)
class ProtectConfig:
    """Validated settings for a single NVR."""

    address: str
    username: str
    password: str
    error_limit: int = DEFAULT_ERROR_LIMIT
    retry_interval: float = float(DEFAULT_RETRY_INTERVAL)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    heartbeat_interval: float = float(DEFAULT_HEARTBEAT_INTERVAL)
    login_refresh_interval: float = float(DEFAULT_LOGIN_REFRESH_INTERVAL)
    verify_ssl: bool = DEFAULT_VERIFY_SSL

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ProtectConfig:
        """Validate ``data`` against :data:`CONFIG_SCHEMA` and build a config."""

        validated = CONFIG_SCHEMA(dict(data))
        return cls(**validated)

    def __repr__(self) -> str:
        return (
            f"ProtectConfig(address={self.address!r}, username={self.username!r}, "
            f"password='***', verify_ssl={self.verify_ssl!r})"
        )
