"""Interfaces of the collaborators the gateway core consumes.

Everything here is structural: concrete transports, protocol clients and
host platforms only need to provide these methods.
"""

from __future__ import annotations

import ssl
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from ..protocol.structures import BridgeNetInfo, DeviceRecord, Response

if TYPE_CHECKING:
    from ..state.bridges import BridgeConnection

RawMessage = Mapping[str, Any]
# Whatever the client delivered, untouched.
Notification = RawMessage | Response
UnsolicitedListener = Callable[[str, Notification], None]


class BridgeClient(Protocol):
    """Authenticated LEAP session to a single bridge."""

    async def get_device_inventory(self) -> Sequence[RawMessage | DeviceRecord]: ...

    def subscribe_unsolicited(self, callback: Callable[[Notification], None]) -> None: ...


# (host, port, mutual-TLS context) -> session
ClientFactory = Callable[[str, int, ssl.SSLContext], BridgeClient]


class DiscoveryTransport(Protocol):
    """Network search for bridges."""

    def begin_searching(
        self,
        discovered: Callable[[BridgeNetInfo], None],
        failed: Callable[[BaseException], None],
    ) -> None: ...

    async def close(self) -> None: ...


class AccessoryHandle(Protocol):
    """Host-platform object representing one exposed device."""

    UUID: str
    display_name: str
    context: dict[str, Any]


class HostPlatform(Protocol):
    def create_accessory(self, name: str, uuid: str) -> AccessoryHandle: ...

    def generate_uuid(self, seed: str) -> str: ...

    def register_platform_accessories(
        self,
        plugin_name: str,
        platform_name: str,
        accessories: Sequence[AccessoryHandle],
    ) -> None: ...

    def on_did_finish_launching(self, callback: Callable[[], None]) -> None: ...


class AccessoryController(Protocol):
    """Runtime object a per-type handler leaves attached to an accessory."""

    accessory: AccessoryHandle


@runtime_checkable
class InitializingController(AccessoryController, Protocol):
    """Controller that must finish async setup once its bridge is known."""

    async def initialize(self) -> None: ...


BridgeAwaitable = Awaitable["BridgeConnection"]


__all__ = [
    "AccessoryController",
    "AccessoryHandle",
    "BridgeAwaitable",
    "BridgeClient",
    "ClientFactory",
    "DiscoveryTransport",
    "HostPlatform",
    "InitializingController",
    "Notification",
    "RawMessage",
    "UnsolicitedListener",
]
