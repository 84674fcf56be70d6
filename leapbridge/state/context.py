"""Runtime state container for the LEAP bridge gateway."""

from __future__ import annotations

import logging
import time
from typing import Any

import msgspec

from .accessories import AccessoryIndex
from .bridges import BridgeConnectionRegistry

logger = logging.getLogger("leapbridge.state")


class GatewayState(msgspec.Struct):
    """Shared mutable state; only touched from the event loop thread."""

    accessories: AccessoryIndex = msgspec.field(default_factory=AccessoryIndex)
    bridges: BridgeConnectionRegistry = msgspec.field(default_factory=BridgeConnectionRegistry)
    lifecycle: str = "initializing"
    started_unix: float = msgspec.field(default_factory=time.time)
    bridges_discovered: int = 0
    bridges_ignored: int = 0
    discovery_failures: int = 0
    fatal_bridges: list[str] = msgspec.field(default_factory=list)
    reconcile_passes: int = 0
    reconcile_failures: int = 0
    devices_failed: int = 0
    accessories_registered: int = 0
    registration_failures: int = 0
    accessories_restored: int = 0
    refreshes_scheduled: int = 0
    refresh_failures: int = 0
    unsolicited_forwarded: int = 0
    supervisor_restarts: dict[str, int] = msgspec.field(default_factory=dict)
    supervisors_failed: list[str] = msgspec.field(default_factory=list)
    last_error: str | None = None

    def record_bridge_discovered(self) -> None:
        self.bridges_discovered += 1

    def record_bridge_ignored(self) -> None:
        self.bridges_ignored += 1

    def record_discovery_failure(self, exc: BaseException) -> None:
        self.discovery_failures += 1
        self.last_error = f"discovery: {exc}"

    def record_fatal_bridge(self, bridge_id: str) -> None:
        if bridge_id not in self.fatal_bridges:
            self.fatal_bridges.append(bridge_id)
        self.last_error = f"no credentials for bridge {bridge_id}"

    def record_reconcile_pass(self) -> None:
        self.reconcile_passes += 1

    def record_reconcile_failure(self, bridge_id: str, exc: BaseException) -> None:
        self.reconcile_failures += 1
        self.last_error = f"inventory {bridge_id}: {exc}"

    def record_device_failure(self, name: str, exc: BaseException) -> None:
        self.devices_failed += 1
        self.last_error = f"device {name}: {exc}"

    def record_registration(self) -> None:
        self.accessories_registered += 1

    def record_registration_failure(self, name: str, exc: BaseException) -> None:
        self.registration_failures += 1
        self.last_error = f"register {name}: {exc}"

    def record_restore(self) -> None:
        self.accessories_restored += 1

    def record_refresh_scheduled(self) -> None:
        self.refreshes_scheduled += 1

    def record_refresh_failure(self, bridge_id: str, exc: BaseException) -> None:
        self.refresh_failures += 1
        self.last_error = f"refresh {bridge_id}: {exc}"

    def record_unsolicited_forwarded(self) -> None:
        self.unsolicited_forwarded += 1

    def record_supervisor_failure(self, name: str, exc: BaseException, *, fatal: bool = False) -> None:
        self.supervisor_restarts[name] = self.supervisor_restarts.get(name, 0) + 1
        self.last_error = f"{name}: {exc}"
        if fatal and name not in self.supervisors_failed:
            self.supervisors_failed.append(name)
            logger.critical("Supervised task %s gave up after %d failure(s)", name, self.supervisor_restarts[name])

    def mark_supervisor_healthy(self, name: str) -> None:
        self.supervisor_restarts.pop(name, None)
        if name in self.supervisors_failed:
            self.supervisors_failed.remove(name)

    def build_snapshot(self) -> dict[str, Any]:
        return {
            "lifecycle": self.lifecycle,
            "uptime_seconds": max(0.0, time.time() - self.started_unix),
            "bridges_connected": len(self.bridges),
            "bridges_discovered": self.bridges_discovered,
            "bridges_ignored": self.bridges_ignored,
            "bridges_fatal": len(self.fatal_bridges),
            "discovery_failures": self.discovery_failures,
            "accessories_indexed": len(self.accessories),
            "accessories_registered": self.accessories_registered,
            "accessories_restored": self.accessories_restored,
            "registration_failures": self.registration_failures,
            "reconcile_passes": self.reconcile_passes,
            "reconcile_failures": self.reconcile_failures,
            "devices_failed": self.devices_failed,
            "refreshes_scheduled": self.refreshes_scheduled,
            "refresh_failures": self.refresh_failures,
            "unsolicited_forwarded": self.unsolicited_forwarded,
            "supervisor_restarts": sum(self.supervisor_restarts.values()),
            "supervisors_failed": len(self.supervisors_failed),
            "last_error": self.last_error,
        }


def create_gateway_state() -> GatewayState:
    return GatewayState()
