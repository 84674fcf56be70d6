"""Re-attaching controllers to accessories restored by the host platform."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

import msgspec

from ..protocol.devices import DeviceKind
from ..protocol.structures import DeviceRecord
from ..security import normalize_bridge_id
from .base import AccessoryController, AccessoryHandle, InitializingController
from .handlers import CONTEXT_BRIDGE_ID, ControllerDispatcher, SkipReason, device_from_context
from .tasks import BackgroundTasks

if TYPE_CHECKING:
    from ..state.context import GatewayState

logger = logging.getLogger("leapbridge.service.restore")


class AccessoryRestoreHandler:
    """Host-platform callback invoked once per cached accessory."""

    def __init__(
        self,
        state: GatewayState,
        dispatcher: ControllerDispatcher,
        controllers: dict[str, AccessoryController],
        tasks: BackgroundTasks,
    ) -> None:
        self.state = state
        self.dispatcher = dispatcher
        self.controllers = controllers
        self.tasks = tasks

    def configure_accessory(self, accessory: AccessoryHandle) -> None:
        logger.info("Restoring cached accessory %s", accessory.display_name)
        try:
            bridge_id = normalize_bridge_id(accessory.context[CONTEXT_BRIDGE_ID])
            device = device_from_context(accessory)
        except (KeyError, AttributeError, TypeError, msgspec.ValidationError) as exc:
            logger.error(
                "Cached accessory %s has an unreadable context, leaving it unmanaged: %s",
                accessory.display_name,
                exc,
            )
            return

        try:
            kind = self.dispatcher.select(device, restoring=True)
            if kind is SkipReason.FILTERED:
                return
            if isinstance(kind, DeviceKind):
                self._attach(kind, accessory, bridge_id, device)
        except Exception as exc:
            logger.exception(
                "Failed to restore cached accessory %s",
                accessory.display_name,
                extra={"uuid": accessory.UUID, "bridge_id": bridge_id},
            )
            self.state.record_device_failure(device.full_name, exc)
            return

        # Unsupported cached accessories stay indexed so they are never re-created.
        if self.state.accessories.add(accessory):
            self.state.record_restore()

    def _attach(self, kind: DeviceKind, accessory: AccessoryHandle, bridge_id: str, device: DeviceRecord) -> None:
        bridge = self.state.bridges.bridge_future(bridge_id)
        controller = self.dispatcher.attach(kind, accessory, bridge)
        if kind is DeviceKind.OCCUPANCY_SENSOR:
            sensor = cast(InitializingController, controller)
            self.tasks.spawn(
                sensor.initialize(),
                name=f"initialize-{accessory.UUID}",
                on_error=lambda exc: self.state.record_device_failure(device.full_name, exc),
            )
        self.controllers[accessory.UUID] = controller
