"""In-process host platform.

Keeps registered accessories in memory and replays a cached set through the
platform's restore callback before announcing that launching finished.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Final, Protocol

from .errors import DuplicateAccessoryError
from .services.base import AccessoryHandle

logger = logging.getLogger("leapbridge.host")

ACCESSORY_NAMESPACE: Final[uuid.UUID] = uuid.UUID("6f3b1c2e-8a4d-5e7f-9b10-2c3d4e5f6a7b")


@dataclass(slots=True)
class PlatformAccessory:
    display_name: str
    UUID: str
    context: dict[str, Any] = field(default_factory=dict)


class _RestoringPlatform(Protocol):
    def configure_accessory(self, accessory: AccessoryHandle) -> None: ...


class MemoryHostPlatform:
    def __init__(self) -> None:
        self.registered: dict[str, AccessoryHandle] = {}
        self.registrations: list[tuple[str, str, list[str]]] = []
        self._launch_callbacks: list[Callable[[], None]] = []
        self._launched = False

    @property
    def launched(self) -> bool:
        return self._launched

    def create_accessory(self, name: str, uuid: str) -> PlatformAccessory:
        return PlatformAccessory(display_name=name, UUID=uuid)

    def generate_uuid(self, seed: str) -> str:
        return str(uuid.uuid5(ACCESSORY_NAMESPACE, seed))

    def register_platform_accessories(
        self,
        plugin_name: str,
        platform_name: str,
        accessories: Sequence[AccessoryHandle],
    ) -> None:
        duplicates = [accessory.UUID for accessory in accessories if accessory.UUID in self.registered]
        if duplicates:
            raise DuplicateAccessoryError(f"accessory UUID(s) already registered: {', '.join(duplicates)}")
        for accessory in accessories:
            self.registered[accessory.UUID] = accessory
        self.registrations.append((plugin_name, platform_name, [accessory.UUID for accessory in accessories]))
        logger.debug("Registered %d accessory(ies) for %s/%s", len(accessories), plugin_name, platform_name)

    def on_did_finish_launching(self, callback: Callable[[], None]) -> None:
        self._launch_callbacks.append(callback)

    def launch(self, platform: _RestoringPlatform, cached: Iterable[AccessoryHandle] = ()) -> None:
        """Restore *cached* accessories, then fire the finished-launching signal."""
        for accessory in cached:
            self.registered.setdefault(accessory.UUID, accessory)
            platform.configure_accessory(accessory)
        self._launched = True
        logger.info("Finished launching with %d cached accessory(ies)", len(self.registered))
        for callback in list(self._launch_callbacks):
            callback()
