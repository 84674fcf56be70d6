"""Per-type accessory setup.

Setup is split in two explicit phases: :func:`build_setup` derives an
immutable :class:`AccessorySetup` from the device record and options, and
:func:`attach_setup` records it on the accessory handle. Controllers are
the runtime objects left behind for each managed accessory.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Final

import msgspec

from ..config.const import DOUBLE_CLICK_WINDOW_MS, LONG_CLICK_THRESHOLD_MS
from ..config.model import GlobalOptions
from ..protocol.devices import (
    REMOTE_TYPES,
    DeviceKind,
    KnownDevice,
    UnrecognizedDevice,
    classify,
)
from ..protocol.structures import DeviceRecord
from .base import AccessoryController, AccessoryHandle, BridgeAwaitable

if TYPE_CHECKING:
    from ..state.bridges import BridgeConnection

logger = logging.getLogger("leapbridge.service.handlers")

CONTEXT_BRIDGE_ID: Final[str] = "bridge_id"
CONTEXT_DEVICE: Final[str] = "device"
CONTEXT_SETUP: Final[str] = "setup"


class SkipReason(enum.Enum):
    """Why a device gets no managed accessory."""

    FILTERED = "filtered"
    NATIVE = "native"
    UNSUPPORTED = "unsupported"
    UNRECOGNIZED = "unrecognized"


class AccessorySetup(msgspec.Struct, frozen=True):
    """What a handler decided to expose for one device."""

    kind: DeviceKind
    device_type: str
    name: str
    serial: str
    services: tuple[str, ...]
    settings: dict[str, Any] = msgspec.field(default_factory=dict)


def device_from_context(accessory: AccessoryHandle) -> DeviceRecord:
    return DeviceRecord.from_raw(accessory.context[CONTEXT_DEVICE])


def populate_context(accessory: AccessoryHandle, bridge_id: str, device: DeviceRecord) -> None:
    accessory.context[CONTEXT_BRIDGE_ID] = bridge_id
    accessory.context[CONTEXT_DEVICE] = device.to_context()


def build_setup(kind: DeviceKind, device: DeviceRecord, options: GlobalOptions) -> AccessorySetup:
    """Pure: derive the setup for *device* without touching any handle."""
    name = device.full_name
    serial = device.identity_seed
    match kind:
        case DeviceKind.BLIND:
            return AccessorySetup(
                kind=kind,
                device_type=device.device_type,
                name=name,
                serial=serial,
                services=("WindowCovering",),
                settings={"tilt_only": True},
            )
        case DeviceKind.REMOTE:
            buttons = REMOTE_TYPES.get(device.device_type, 0)
            return AccessorySetup(
                kind=kind,
                device_type=device.device_type,
                name=name,
                serial=serial,
                services=tuple(f"StatelessProgrammableSwitch:{index}" for index in range(1, buttons + 1)),
                settings={
                    "buttons": buttons,
                    "double_click_ms": DOUBLE_CLICK_WINDOW_MS[options.double_click_speed.value],
                    "long_click_ms": LONG_CLICK_THRESHOLD_MS[options.long_click_speed.value],
                },
            )
        case DeviceKind.OCCUPANCY_SENSOR:
            return AccessorySetup(
                kind=kind,
                device_type=device.device_type,
                name=name,
                serial=serial,
                services=("OccupancySensor",),
            )
        case _:
            raise ValueError(f"device kind {kind.value} has no accessory setup")


def attach_setup(accessory: AccessoryHandle, setup: AccessorySetup) -> None:
    accessory.context[CONTEXT_SETUP] = msgspec.to_builtins(setup)


class _Controller:
    def __init__(
        self,
        gateway: Any,
        accessory: AccessoryHandle,
        bridge: BridgeAwaitable,
        setup: AccessorySetup,
    ) -> None:
        self.gateway = gateway
        self.accessory = accessory
        self.bridge = bridge
        self.setup = setup

    def __repr__(self) -> str:
        return f"{type(self).__name__}(uuid={self.accessory.UUID!r}, name={self.setup.name!r})"


class BlindController(_Controller):
    """Tilt-only wood blind."""


class RemoteController(_Controller):
    """Multi-button remote; click timing comes from the global options."""

    @property
    def double_click_window(self) -> float:
        return self.setup.settings["double_click_ms"] / 1000.0

    @property
    def long_click_threshold(self) -> float:
        return self.setup.settings["long_click_ms"] / 1000.0


class OccupancySensorController(_Controller):
    """Occupancy sensor; unusable until its bridge session is available."""

    def __init__(
        self,
        gateway: Any,
        accessory: AccessoryHandle,
        bridge: BridgeAwaitable,
        setup: AccessorySetup,
    ) -> None:
        super().__init__(gateway, accessory, bridge, setup)
        self.connection: BridgeConnection | None = None

    @property
    def ready(self) -> bool:
        return self.connection is not None

    async def initialize(self) -> None:
        self.connection = await self.bridge
        logger.debug(
            "Occupancy sensor %s bound to bridge %s",
            self.setup.name,
            self.connection.bridge_id,
        )


ControllerFactory = Callable[
    [Any, AccessoryHandle, BridgeAwaitable, GlobalOptions],
    AccessoryController,
]


def _factory(kind: DeviceKind, controller_cls: type[_Controller]) -> ControllerFactory:
    def create(
        gateway: Any,
        accessory: AccessoryHandle,
        bridge: BridgeAwaitable,
        options: GlobalOptions,
    ) -> AccessoryController:
        setup = build_setup(kind, device_from_context(accessory), options)
        attach_setup(accessory, setup)
        return controller_cls(gateway, accessory, bridge, setup)

    return create


DEFAULT_CONTROLLER_FACTORIES: Final[Mapping[DeviceKind, ControllerFactory]] = {
    DeviceKind.BLIND: _factory(DeviceKind.BLIND, BlindController),
    DeviceKind.REMOTE: _factory(DeviceKind.REMOTE, RemoteController),
    DeviceKind.OCCUPANCY_SENSOR: _factory(DeviceKind.OCCUPANCY_SENSOR, OccupancySensorController),
}


class ControllerDispatcher:
    """Decides whether a device gets an accessory and attaches its controller."""

    def __init__(
        self,
        gateway: Any,
        options: GlobalOptions,
        factories: Mapping[DeviceKind, ControllerFactory] | None = None,
    ) -> None:
        self._gateway = gateway
        self._options = options
        self._factories = dict(DEFAULT_CONTROLLER_FACTORIES if factories is None else factories)

    def select(self, device: DeviceRecord, *, restoring: bool = False) -> DeviceKind | SkipReason:
        """Return the kind to set up, or the logged reason for skipping it."""
        name = device.full_name
        device_class = classify(device.device_type)
        match device_class:
            case KnownDevice(kind=DeviceKind.BLIND):
                if self._options.filter_blinds:
                    logger.warning("Serena wood blinds support disabled. Skipping %s", name)
                    return SkipReason.FILTERED
                return DeviceKind.BLIND
            case KnownDevice(kind=DeviceKind.REMOTE):
                if self._options.filter_remotes:
                    logger.warning("Pico remote support disabled. Skipping %s", name)
                    return SkipReason.FILTERED
                return DeviceKind.REMOTE
            case KnownDevice(kind=DeviceKind.OCCUPANCY_SENSOR):
                return DeviceKind.OCCUPANCY_SENSOR
            case KnownDevice(kind=DeviceKind.NATIVE) if not restoring:
                logger.info("Device type %s supported natively, skipping setup", device.device_type)
                return SkipReason.NATIVE
            case KnownDevice(kind=DeviceKind.UNSUPPORTED) if not restoring:
                logger.info(
                    "Device type %s not yet supported, skipping setup. Please file a request ticket.",
                    device.device_type,
                )
                return SkipReason.UNSUPPORTED
            case UnrecognizedDevice(device_type=tag) if not restoring:
                logger.info(
                    "Device type %s not recognized, skipping setup. "
                    "Please file a ticket to include information about it",
                    tag,
                )
                return SkipReason.UNRECOGNIZED
            case KnownDevice() | UnrecognizedDevice():
                logger.warning(
                    "Accessory %s (%s) was cached but is not supported. Did you downgrade?",
                    name,
                    device.device_type,
                )
                return SkipReason.UNRECOGNIZED
            case _:
                raise TypeError(f"unhandled device class {device_class!r}")

    def attach(
        self,
        kind: DeviceKind,
        accessory: AccessoryHandle,
        bridge: BridgeAwaitable,
    ) -> AccessoryController:
        factory = self._factories.get(kind)
        if factory is None:
            raise LookupError(f"no controller factory for {kind.value}")
        return factory(self._gateway, accessory, bridge, self._options)
