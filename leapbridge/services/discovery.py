"""Turning discovery broadcasts into authenticated bridge connections."""

from __future__ import annotations

import logging
import ssl
from collections.abc import Callable
from typing import TYPE_CHECKING

from ..config.const import LEAP_PORT
from ..errors import MissingBridgeCredentials
from ..protocol.structures import BridgeNetInfo
from ..security import CredentialBundle, CredentialStore, build_tls_context, normalize_bridge_id
from ..state.bridges import BridgeConnection
from .base import ClientFactory
from .tasks import BackgroundTasks

if TYPE_CHECKING:
    from ..state.context import GatewayState

logger = logging.getLogger("leapbridge.service.discovery")

TlsContextFactory = Callable[[CredentialBundle], ssl.SSLContext]


class DiscoveryListener:
    """Handles ``discovered`` and ``failed`` events of a discovery transport."""

    def __init__(
        self,
        state: GatewayState,
        credentials: CredentialStore,
        client_factory: ClientFactory,
        on_connected: Callable[[BridgeConnection], None],
        tasks: BackgroundTasks,
        reconcile: Callable[[BridgeConnection], object],
        tls_context_factory: TlsContextFactory = build_tls_context,
    ) -> None:
        self.state = state
        self.credentials = credentials
        self.client_factory = client_factory
        self.on_connected = on_connected
        self.tasks = tasks
        self.reconcile = reconcile
        self.tls_context_factory = tls_context_factory

    def on_failed(self, error: BaseException) -> None:
        logger.error("Could not complete network discovery: %s", error)
        self.state.record_discovery_failure(error)

    def on_discovered(self, net_info: BridgeNetInfo) -> BridgeConnection | None:
        """Connect to a newly seen bridge.

        Returns the new connection, or ``None`` for a bridge that already has
        one. Raises :class:`MissingBridgeCredentials` when no trust material
        is stored for it, and ``RuntimeError`` when the stored material cannot
        be loaded; nothing is registered in either case.
        """
        bridge_id = normalize_bridge_id(net_info.bridge_id)
        self.state.record_bridge_discovered()
        if self.state.bridges.has_bridge(bridge_id):
            logger.info("Bridge %s already known, not re-connecting", bridge_id)
            self.state.record_bridge_ignored()
            return None

        bundle = self.credentials.lookup(bridge_id)
        if bundle is None:
            logger.critical(
                "No credentials for bridge %s at %s. Add a secrets entry for it.",
                bridge_id,
                net_info.ip_addr,
            )
            self.state.record_fatal_bridge(bridge_id)
            raise MissingBridgeCredentials(bridge_id)

        try:
            tls_context = self.tls_context_factory(bundle)
        except RuntimeError:
            self.state.record_fatal_bridge(bridge_id)
            raise

        logger.info("Connecting to bridge %s at %s:%d", bridge_id, net_info.ip_addr, LEAP_PORT)
        client = self.client_factory(net_info.ip_addr, LEAP_PORT, tls_context)
        connection = BridgeConnection(bridge_id, client, net_info)
        self.on_connected(connection)
        self.state.bridges.add_bridge(connection)

        self.tasks.spawn(
            self.reconcile(connection),
            name=f"reconcile-{bridge_id}",
            on_error=lambda exc: self.state.record_reconcile_failure(bridge_id, exc),
        )
        return connection
