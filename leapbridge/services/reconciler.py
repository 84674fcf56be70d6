"""Device inventory reconciliation against the accessory index."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any, cast

from ..config.const import PLATFORM_NAME, PLUGIN_NAME
from ..protocol.devices import DeviceKind
from ..protocol.structures import DeviceRecord
from .base import AccessoryController, HostPlatform, InitializingController
from .handlers import ControllerDispatcher, populate_context

if TYPE_CHECKING:
    from ..state.bridges import BridgeConnection
    from ..state.context import GatewayState

logger = logging.getLogger("leapbridge.service.reconciler")


class DeviceReconciler:
    """Turns a bridge's inventory into registered, indexed accessories.

    Passes for the same bridge are serialised; passes for different bridges
    interleave freely.
    """

    def __init__(
        self,
        state: GatewayState,
        host: HostPlatform,
        dispatcher: ControllerDispatcher,
        controllers: dict[str, AccessoryController],
    ) -> None:
        self.state = state
        self.host = host
        self.dispatcher = dispatcher
        self.controllers = controllers
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def reconcile(self, connection: BridgeConnection) -> None:
        async with self._locks[connection.bridge_id]:
            await self._reconcile(connection)

    async def _reconcile(self, connection: BridgeConnection) -> None:
        bridge_id = connection.bridge_id
        self.state.record_reconcile_pass()
        try:
            devices = await connection.get_device_inventory()
        except Exception as exc:
            logger.error("Failed to fetch device inventory from bridge %s: %s", bridge_id, exc)
            self.state.record_reconcile_failure(bridge_id, exc)
            return

        logger.info("Got %d device(s) from bridge %s", len(devices), bridge_id)
        for device in devices:
            try:
                await self.process_device(connection, device)
            except Exception as exc:
                logger.exception("Failed to set up device %s", device.full_name)
                self.state.record_device_failure(device.full_name, exc)

    async def process_device(self, connection: BridgeConnection, device: DeviceRecord) -> bool:
        """Set up one device; returns True when a new accessory was indexed."""
        uuid = self.host.generate_uuid(device.identity_seed)
        if uuid in self.state.accessories:
            logger.debug("Accessory %s (%s) already set up", device.full_name, uuid)
            return False

        kind = self.dispatcher.select(device)
        if not isinstance(kind, DeviceKind):
            return False

        accessory = self.host.create_accessory(device.full_name, uuid)
        populate_context(accessory, connection.bridge_id, device)
        controller = self.dispatcher.attach(kind, accessory, self._resolved(connection))
        if kind is DeviceKind.OCCUPANCY_SENSOR:
            await cast(InitializingController, controller).initialize()

        try:
            self.host.register_platform_accessories(PLUGIN_NAME, PLATFORM_NAME, [accessory])
        except Exception as exc:
            logger.error("Failed to register accessory %s: %s", device.full_name, exc)
            self.state.record_registration_failure(device.full_name, exc)
            return False

        self.state.accessories.add(accessory)
        self.controllers[accessory.UUID] = controller
        self.state.record_registration()
        logger.info(
            "Registered %s accessory %s",
            kind.value,
            device.full_name,
            extra={"uuid": uuid, "bridge_id": connection.bridge_id},
        )
        return True

    @staticmethod
    def _resolved(connection: BridgeConnection) -> asyncio.Future[Any]:
        future = asyncio.get_running_loop().create_future()
        future.set_result(connection)
        return future
