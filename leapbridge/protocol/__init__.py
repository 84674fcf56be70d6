"""LEAP message shapes and device classification."""

from .devices import DeviceClass, DeviceKind, KnownDevice, UnrecognizedDevice, classify
from .structures import (
    DEVICE_HEARD_URL,
    UPDATE_RESPONSE,
    BridgeNetInfo,
    DeviceHeard,
    DeviceRecord,
    Response,
    ResponseHeader,
)

__all__ = [
    "DEVICE_HEARD_URL",
    "UPDATE_RESPONSE",
    "BridgeNetInfo",
    "DeviceClass",
    "DeviceHeard",
    "DeviceKind",
    "DeviceRecord",
    "KnownDevice",
    "Response",
    "ResponseHeader",
    "UnrecognizedDevice",
    "classify",
]
