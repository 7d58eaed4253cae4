"""Constants for the UniFi Protect NVR client."""

from __future__ import annotations

from typing import Final

# HTTP paths
AUTH_PATH: Final = "/api/auth/login"
BOOTSTRAP_PATH: Final = "/proxy/protect/api/bootstrap"
CAMERAS_PATH: Final = "/proxy/protect/api/cameras"

# Realtime websocket paths
UPDATES_WS_PATH: Final = "/proxy/protect/ws/updates"
SYSTEM_WS_PATH: Final = "/api/ws/system"

# Headers
CONTENT_TYPE_JSON: Final = "application/json"
HEADER_CSRF_TOKEN: Final = "X-CSRF-Token"
HEADER_COOKIE: Final = "Cookie"
HEADER_SET_COOKIE: Final = "Set-Cookie"

# Config keys
CONF_ADDRESS: Final = "address"
CONF_USERNAME: Final = "username"
CONF_PASSWORD: Final = "password"
CONF_ERROR_LIMIT: Final = "error_limit"
CONF_RETRY_INTERVAL: Final = "retry_interval"
CONF_REQUEST_TIMEOUT: Final = "request_timeout"
CONF_HEARTBEAT_INTERVAL: Final = "heartbeat_interval"
CONF_LOGIN_REFRESH_INTERVAL: Final = "login_refresh_interval"
CONF_VERIFY_SSL: Final = "verify_ssl"

# Defaults
DEFAULT_ERROR_LIMIT: Final = 10  # consecutive failures before throttling
DEFAULT_RETRY_INTERVAL: Final = 300  # seconds spent throttled
DEFAULT_REQUEST_TIMEOUT: Final = 3.5  # seconds
DEFAULT_HEARTBEAT_INTERVAL: Final = 10  # seconds of websocket silence tolerated
DEFAULT_LOGIN_REFRESH_INTERVAL: Final = 1800  # seconds (30 minutes)

# Local appliances ship self-signed certificates.
DEFAULT_VERIFY_SSL: Final = False

# Permission scope granting camera administration.
CAMERA_PERMISSION_TYPE: Final = "camera"
WRITE_PERMISSION: Final = "write"

MODEL_KEY_CAMERA: Final = "camera"
