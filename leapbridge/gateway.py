"""The gateway platform: owns the shared state and wires the services."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from transitions import Machine

from .config.const import BRIDGE_LOOKUP_TIMEOUT_SECONDS, DEVICE_REFRESH_DELAY_SECONDS, PLATFORM_NAME
from .config.model import GatewayConfig
from .config.settings import build_credential_store
from .protocol.devices import DeviceKind
from .protocol.structures import BridgeNetInfo
from .security import build_tls_context
from .services.base import (
    AccessoryController,
    AccessoryHandle,
    ClientFactory,
    DiscoveryTransport,
    HostPlatform,
    UnsolicitedListener,
)
from .services.discovery import DiscoveryListener, TlsContextFactory
from .services.handlers import ControllerDispatcher, ControllerFactory
from .services.reconciler import DeviceReconciler
from .services.restore import AccessoryRestoreHandler
from .services.tasks import BackgroundTasks
from .services.unsolicited import UnsolicitedRouter
from .state.accessories import AccessoryIndex
from .state.bridges import BridgeConnection, BridgeConnectionRegistry
from .state.context import GatewayState, create_gateway_state

logger = logging.getLogger("leapbridge.gateway")

FinderFactory = Callable[[], DiscoveryTransport]


class GatewayPlatform:
    """Discovers bridges and keeps the host's accessories in step with them.

    Lifecycle::

        initializing -> retired                      (no credentials at all)
        initializing -> restoring -> discovering -> stopped

    Cached accessories are restored while ``restoring``; discovery starts on
    the host's finished-launching signal and only ever once.
    """

    STATE_INITIALIZING = "initializing"
    STATE_RETIRED = "retired"
    STATE_RESTORING = "restoring"
    STATE_DISCOVERING = "discovering"
    STATE_STOPPED = "stopped"

    def __init__(
        self,
        config: GatewayConfig,
        host: HostPlatform,
        client_factory: ClientFactory,
        finder_factory: FinderFactory,
        *,
        state: GatewayState | None = None,
        controller_factories: Mapping[DeviceKind, ControllerFactory] | None = None,
        refresh_delay: float = DEVICE_REFRESH_DELAY_SECONDS,
        lookup_timeout: float = BRIDGE_LOOKUP_TIMEOUT_SECONDS,
        tls_context_factory: TlsContextFactory = build_tls_context,
    ) -> None:
        self.config = config
        self.options = config.options
        self.host = host
        self.credentials = build_credential_store(config)
        self.state = state or create_gateway_state()
        self.controllers: dict[str, AccessoryController] = {}
        self.tasks = BackgroundTasks(logger)
        self.finder: DiscoveryTransport | None = None
        self._finder_factory = finder_factory

        self.dispatcher = ControllerDispatcher(self, self.options, controller_factories)
        self.reconciler = DeviceReconciler(self.state, host, self.dispatcher, self.controllers)
        self.router = UnsolicitedRouter(
            self.state,
            self.state.bridges,
            self.reconciler.reconcile,
            self.tasks,
            refresh_delay=refresh_delay,
            lookup_timeout=lookup_timeout,
        )
        self.restorer = AccessoryRestoreHandler(self.state, self.dispatcher, self.controllers, self.tasks)
        self.discovery = DiscoveryListener(
            self.state,
            self.credentials,
            client_factory,
            self._attach_router,
            self.tasks,
            self.reconciler.reconcile,
            tls_context_factory,
        )

        self.state_machine = Machine(
            model=self,
            states=[
                self.STATE_INITIALIZING,
                self.STATE_RETIRED,
                self.STATE_RESTORING,
                {"name": self.STATE_DISCOVERING, "on_enter": "_on_enter_discovering"},
                self.STATE_STOPPED,
            ],
            initial=self.STATE_INITIALIZING,
            ignore_invalid_triggers=True,
            model_attribute="lifecycle_state",
            after_state_change="_sync_lifecycle",
        )
        self.state_machine.add_transition(trigger="retire", source=self.STATE_INITIALIZING, dest=self.STATE_RETIRED)
        self.state_machine.add_transition(
            trigger="start_restoring", source=self.STATE_INITIALIZING, dest=self.STATE_RESTORING
        )
        self.state_machine.add_transition(
            trigger="begin_discovery", source=self.STATE_RESTORING, dest=self.STATE_DISCOVERING
        )
        self.state_machine.add_transition(
            trigger="shut_down",
            source=[self.STATE_RETIRED, self.STATE_RESTORING, self.STATE_DISCOVERING],
            dest=self.STATE_STOPPED,
        )

        if self.credentials.is_empty:
            logger.warning("No bridge credentials configured. Bridge discovery is disabled.")
            self.retire()
        else:
            self.start_restoring()
            host.on_did_finish_launching(self._on_finished_launching)

        logger.info("%s platform finished early initialization", PLATFORM_NAME)

    @property
    def accessories(self) -> AccessoryIndex:
        return self.state.accessories

    @property
    def bridges(self) -> BridgeConnectionRegistry:
        return self.state.bridges

    def _sync_lifecycle(self) -> None:
        self.state.lifecycle = self.lifecycle_state

    def _attach_router(self, connection: BridgeConnection) -> None:
        connection.subscribe(self.router.on_notification)

    def _on_finished_launching(self) -> None:
        if not self.begin_discovery():
            logger.debug("Finished-launching signal in state %s ignored", self.lifecycle_state)

    def _on_enter_discovering(self) -> None:
        logger.info("Finished launching; starting up automatic discovery")
        self.finder = self._finder_factory()
        self.finder.begin_searching(self.handle_bridge_discovered, self.discovery.on_failed)

    def handle_bridge_discovered(self, net_info: BridgeNetInfo) -> None:
        self.discovery.on_discovered(net_info)

    def configure_accessory(self, accessory: AccessoryHandle) -> None:
        """Host-platform restore callback."""
        if self.lifecycle_state != self.STATE_RESTORING:
            logger.warning(
                "Not restoring accessory %s while %s",
                accessory.display_name,
                self.lifecycle_state,
            )
            return
        self.restorer.configure_accessory(accessory)

    def add_unsolicited_listener(self, listener: UnsolicitedListener) -> Callable[[], None]:
        return self.router.add_listener(listener)

    def snapshot(self) -> dict[str, Any]:
        return self.state.build_snapshot()

    async def stop(self) -> None:
        if not self.shut_down():
            return
        logger.info("Stopping %s platform", PLATFORM_NAME)
        await self.router.cancel_pending()
        await self.tasks.cancel_all()
        if self.finder is not None:
            await self.finder.close()
            self.finder = None
        await self.state.bridges.close()
