"""De-duplication index of exposed accessories."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from ..services.base import AccessoryHandle

logger = logging.getLogger("leapbridge.state.accessories")


class AccessoryIndex:
    """UUID to accessory handle mapping with insert-once semantics.

    Entries come from host-platform restore or from fresh reconciliation and
    are never removed while the process runs.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[str, AccessoryHandle] = {}

    def __contains__(self, uuid: object) -> bool:
        return uuid in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, uuid: str) -> AccessoryHandle | None:
        return self._entries.get(uuid)

    def add(self, accessory: AccessoryHandle) -> bool:
        """Insert *accessory*; an existing entry for the same UUID always wins."""
        if accessory.UUID in self._entries:
            logger.debug("Accessory %s already indexed; keeping existing entry", accessory.UUID)
            return False
        self._entries[accessory.UUID] = accessory
        return True

    def handles(self) -> list[AccessoryHandle]:
        return list(self._entries.values())
