"""Live bridge sessions and the identity-keyed registry holding them."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable

import msgspec

from ..errors import BridgeLookupError
from ..protocol.structures import BridgeNetInfo, DeviceRecord
from ..security import normalize_bridge_id
from ..services.base import BridgeClient, Notification, UnsolicitedListener

logger = logging.getLogger("leapbridge.state.bridges")


class BridgeConnection:
    """An authenticated session to one bridge, keyed by its identity."""

    def __init__(
        self,
        bridge_id: str,
        client: BridgeClient,
        net_info: BridgeNetInfo | None = None,
    ) -> None:
        self.bridge_id = normalize_bridge_id(bridge_id)
        self.client = client
        self.net_info = net_info
        self._listeners: list[UnsolicitedListener] = []
        self._client_hooked = False

    def __repr__(self) -> str:
        return f"BridgeConnection(bridge_id={self.bridge_id!r})"

    async def get_device_inventory(self) -> list[DeviceRecord]:
        raw_devices = await self.client.get_device_inventory()
        records: list[DeviceRecord] = []
        for raw in raw_devices:
            try:
                records.append(DeviceRecord.from_raw(raw))
            except (msgspec.ValidationError, TypeError) as exc:
                logger.warning(
                    "Bridge %s returned an unreadable device definition: %s",
                    self.bridge_id,
                    exc,
                    extra={"raw_device": raw},
                )
        return records

    def subscribe(self, listener: UnsolicitedListener) -> None:
        self._listeners.append(listener)
        if not self._client_hooked:
            self.client.subscribe_unsolicited(self._on_message)
            self._client_hooked = True

    def _on_message(self, message: Notification) -> None:
        for listener in list(self._listeners):
            listener(self.bridge_id, message)

    async def close(self) -> None:
        closer = getattr(self.client, "close", None)
        if closer is None:
            return
        result = closer()
        if inspect.isawaitable(result):
            await result


class BridgeConnectionRegistry:
    """Tracks live connections; lookups may wait for a bridge not yet added."""

    def __init__(self) -> None:
        self._bridges: dict[str, BridgeConnection] = {}
        self._waiters: dict[str, asyncio.Future[BridgeConnection]] = {}

    def __contains__(self, bridge_id: object) -> bool:
        return isinstance(bridge_id, str) and self.has_bridge(bridge_id)

    def __len__(self) -> int:
        return len(self._bridges)

    def has_bridge(self, bridge_id: str) -> bool:
        return normalize_bridge_id(bridge_id) in self._bridges

    def connections(self) -> list[BridgeConnection]:
        return list(self._bridges.values())

    def add_bridge(self, connection: BridgeConnection) -> None:
        bridge_id = connection.bridge_id
        if bridge_id in self._bridges:
            raise ValueError(f"bridge {bridge_id} already has an active connection")
        self._bridges[bridge_id] = connection
        waiter = self._waiters.get(bridge_id)
        if waiter is not None and not waiter.done():
            waiter.set_result(connection)
        logger.info("Bridge %s registered", bridge_id)

    def bridge_future(self, bridge_id: str) -> asyncio.Future[BridgeConnection]:
        """Return a future resolved with the bridge's connection.

        Must be called with a running event loop.
        """
        key = normalize_bridge_id(bridge_id)
        waiter = self._waiters.get(key)
        if waiter is None:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters[key] = waiter
            connection = self._bridges.get(key)
            if connection is not None:
                waiter.set_result(connection)
        return waiter

    async def get_bridge(self, bridge_id: str, *, timeout: float | None = None) -> BridgeConnection:
        waiter = self.bridge_future(bridge_id)
        try:
            if timeout is None:
                return await asyncio.shield(waiter)
            return await asyncio.wait_for(asyncio.shield(waiter), timeout)
        except TimeoutError as exc:
            raise BridgeLookupError(
                f"bridge {normalize_bridge_id(bridge_id)} not connected after {timeout:.1f}s"
            ) from exc

    async def close(self) -> None:
        for bridge_id, waiter in self._waiters.items():
            if not waiter.done():
                waiter.set_exception(BridgeLookupError(f"registry closed before bridge {bridge_id} connected"))
                # Nobody may be awaiting it; keep asyncio from reporting it.
                waiter.exception()
        for connection in self.connections():
            try:
                await connection.close()
            except (OSError, RuntimeError) as exc:
                logger.warning("Error closing bridge %s: %s", connection.bridge_id, exc)
