"""Classification of the bridge's open-ended ``DeviceType`` tag."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Final


class DeviceKind(enum.Enum):
    BLIND = "blind"
    REMOTE = "remote"
    OCCUPANCY_SENSOR = "occupancy_sensor"
    NATIVE = "native"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True, slots=True)
class KnownDevice:
    kind: DeviceKind
    device_type: str


@dataclass(frozen=True, slots=True)
class UnrecognizedDevice:
    device_type: str


DeviceClass = KnownDevice | UnrecognizedDevice

BLIND_TYPES: Final[frozenset[str]] = frozenset({"SerenaTiltOnlyWoodBlind"})

# Value is the number of physical buttons on the remote.
REMOTE_TYPES: Final[dict[str, int]] = {
    "Pico2Button": 2,
    "Pico2ButtonRaiseLower": 4,
    "Pico3Button": 3,
    "Pico3ButtonRaiseLower": 5,
    "Pico4Button2Group": 4,
    "Pico4ButtonScene": 4,
    "Pico4ButtonZone": 4,
}

OCCUPANCY_TYPES: Final[frozenset[str]] = frozenset({"RPSOccupancySensor"})

# Exposed by the host platform's own bridge integration.
NATIVE_TYPES: Final[frozenset[str]] = frozenset(
    {
        "SmartBridge",
        "WallSwitch",
        "WallDimmer",
        "CasetaFanSpeedController",
    }
)

UNSUPPORTED_TYPES: Final[frozenset[str]] = frozenset({"Pico4Button", "FourGroupRemote"})

_KIND_BY_TYPE: Final[dict[str, DeviceKind]] = {
    **{name: DeviceKind.BLIND for name in BLIND_TYPES},
    **{name: DeviceKind.REMOTE for name in REMOTE_TYPES},
    **{name: DeviceKind.OCCUPANCY_SENSOR for name in OCCUPANCY_TYPES},
    **{name: DeviceKind.NATIVE for name in NATIVE_TYPES},
    **{name: DeviceKind.UNSUPPORTED for name in UNSUPPORTED_TYPES},
}


def classify(device_type: str) -> DeviceClass:
    """Map a raw ``DeviceType`` string onto the closed set of device classes."""
    kind = _KIND_BY_TYPE.get(device_type)
    if kind is None:
        return UnrecognizedDevice(device_type)
    return KnownDevice(kind, device_type)
