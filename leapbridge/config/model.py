"""Data model for LEAP bridge gateway configuration."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

import msgspec

from ..security import CredentialBundle
from .const import (
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_METRICS_ENABLED,
    DEFAULT_METRICS_HOST,
    DEFAULT_METRICS_PORT,
)


class ClickSpeed(str, enum.Enum):
    QUICK = "quick"
    DEFAULT = "default"
    RELAXED = "relaxed"


class GlobalOptions(msgspec.Struct, frozen=True):
    """Feature toggles consumed by the per-type accessory handlers."""

    filter_remotes: bool = False
    filter_blinds: bool = False
    long_click_speed: ClickSpeed = ClickSpeed.DEFAULT
    double_click_speed: ClickSpeed = ClickSpeed.DEFAULT


class MetricsSettings(msgspec.Struct, frozen=True):
    enabled: bool = DEFAULT_METRICS_ENABLED
    host: str = DEFAULT_METRICS_HOST
    port: int = DEFAULT_METRICS_PORT


@dataclass(slots=True)
class GatewayConfig:
    """Strongly typed configuration for the gateway."""

    secrets: tuple[CredentialBundle, ...] = ()
    options: GlobalOptions = field(default_factory=GlobalOptions)
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    metrics: MetricsSettings = field(default_factory=MetricsSettings)
    client_factory: str | None = None
