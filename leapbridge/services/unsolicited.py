"""Routing of unsolicited bridge notifications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import msgspec

from ..config.const import BRIDGE_LOOKUP_TIMEOUT_SECONDS, DEVICE_REFRESH_DELAY_SECONDS
from ..errors import BridgeLookupError
from ..protocol.structures import Response, extract_device_heard
from .base import Notification, UnsolicitedListener
from .tasks import BackgroundTasks

if TYPE_CHECKING:
    from ..state.bridges import BridgeConnection, BridgeConnectionRegistry
    from ..state.context import GatewayState

logger = logging.getLogger("leapbridge.service.unsolicited")

Reconcile = Callable[["BridgeConnection"], Awaitable[None]]


def _parse(bridge_id: str, message: Notification) -> Response | None:
    try:
        return Response.from_raw(message)
    except (msgspec.ValidationError, TypeError) as exc:
        logger.debug("Unsolicited message from bridge %s is not a LEAP response: %s", bridge_id, exc)
        return None


class UnsolicitedRouter:
    """Fans notifications out to listeners, or schedules a refresh.

    Listeners receive each message exactly as the client delivered it.
    A ``deviceheard`` update schedules one delayed re-reconciliation of the
    owning bridge and is not forwarded. While a refresh is pending for a
    bridge, further ``deviceheard`` updates for it are absorbed.
    """

    def __init__(
        self,
        state: GatewayState,
        bridges: BridgeConnectionRegistry,
        reconcile: Reconcile,
        tasks: BackgroundTasks,
        *,
        refresh_delay: float = DEVICE_REFRESH_DELAY_SECONDS,
        lookup_timeout: float = BRIDGE_LOOKUP_TIMEOUT_SECONDS,
    ) -> None:
        self.state = state
        self.bridges = bridges
        self.reconcile = reconcile
        self.tasks = tasks
        self.refresh_delay = refresh_delay
        self.lookup_timeout = lookup_timeout
        self._listeners: list[UnsolicitedListener] = []
        self._pending: dict[str, asyncio.Task[None]] = {}

    def add_listener(self, listener: UnsolicitedListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def pending_refresh(self, bridge_id: str) -> bool:
        task = self._pending.get(bridge_id)
        return task is not None and not task.done()

    def on_notification(self, bridge_id: str, message: Notification) -> None:
        response = _parse(bridge_id, message)
        if response is not None and response.is_device_heard:
            self._on_device_heard(bridge_id, response)
            return

        if not self._listeners:
            logger.debug("No listener for unsolicited message from bridge %s", bridge_id)
            return
        for listener in list(self._listeners):
            try:
                listener(bridge_id, message)
            except Exception:
                logger.exception("Unsolicited listener %r failed", listener)
        self.state.record_unsolicited_forwarded()

    def _on_device_heard(self, bridge_id: str, response: Response) -> None:
        try:
            heard = extract_device_heard(response)
        except msgspec.ValidationError as exc:
            logger.warning("Malformed deviceheard update from bridge %s: %s", bridge_id, exc)
            return

        logger.info(
            "New %s s/n %s heard on bridge %s. Triggering refresh in %.0fs.",
            heard.device_type,
            heard.serial_number,
            bridge_id,
            self.refresh_delay,
        )
        if self.pending_refresh(bridge_id):
            logger.debug("Refresh already pending for bridge %s", bridge_id)
            return

        self.state.record_refresh_scheduled()
        self._pending[bridge_id] = self.tasks.spawn(
            self._refresh(bridge_id),
            name=f"refresh-{bridge_id}",
            on_error=lambda exc: self.state.record_refresh_failure(bridge_id, exc),
        )

    async def _refresh(self, bridge_id: str) -> None:
        try:
            await asyncio.sleep(self.refresh_delay)
        finally:
            # Notifications heard from here on belong to the next pass.
            self._pending.pop(bridge_id, None)
        try:
            connection = await self.bridges.get_bridge(bridge_id, timeout=self.lookup_timeout)
        except BridgeLookupError as exc:
            logger.error("Failed to look up bridge %s for refresh: %s", bridge_id, exc)
            self.state.record_refresh_failure(bridge_id, exc)
            return
        await self.reconcile(connection)

    async def cancel_pending(self) -> None:
        pending = [task for task in self._pending.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()
