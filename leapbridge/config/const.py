"""Defaults and fixed constants for the LEAP bridge gateway."""

from __future__ import annotations

import ssl
from typing import Final

PLUGIN_NAME: Final[str] = "leap-bridge-gateway"
PLATFORM_NAME: Final[str] = "LutronCasetaLeap"

DEFAULT_CONFIG_PATH: Final[str] = "/etc/leapbridge/config.json"
DEFAULT_DEBUG_LOGGING: Final[bool] = False

# LEAP listens on a fixed port on every bridge.
LEAP_PORT: Final[int] = 8081
LEAP_TLS_MIN_VERSION: Final[ssl.TLSVersion] = ssl.TLSVersion.TLSv1_2

# A freshly-heard device is not always enumerable right away.
DEVICE_REFRESH_DELAY_SECONDS: Final[float] = 30.0
BRIDGE_LOOKUP_TIMEOUT_SECONDS: Final[float] = 30.0

DISCOVERY_SERVICE_TYPE: Final[str] = "_lutron._tcp.local."
DISCOVERY_INFO_TIMEOUT_MS: Final[int] = 3000

DEFAULT_METRICS_ENABLED: Final[bool] = False
DEFAULT_METRICS_HOST: Final[str] = "127.0.0.1"
DEFAULT_METRICS_PORT: Final[int] = 9131

HEAP_SNAPSHOT_PATH_TEMPLATE: Final[str] = "/tmp/leapbridge.{stamp}.heapsnapshot"

# Click timing windows in milliseconds, keyed by ClickSpeed value.
DOUBLE_CLICK_WINDOW_MS: Final[dict[str, int]] = {
    "quick": 250,
    "default": 350,
    "relaxed": 500,
}
LONG_CLICK_THRESHOLD_MS: Final[dict[str, int]] = {
    "quick": 300,
    "default": 500,
    "relaxed": 750,
}

LOG_STREAM_ENV: Final[str] = "LEAPBRIDGE_LOG_STREAM"

SUPERVISOR_DEFAULT_MIN_BACKOFF: Final[float] = 0.5
SUPERVISOR_DEFAULT_MAX_BACKOFF: Final[float] = 30.0
SUPERVISOR_HEALTHY_WINDOW: Final[float] = 10.0
SUPERVISOR_EXPORTER_MAX_RESTARTS: Final[int] = 5
