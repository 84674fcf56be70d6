"""msgspec structures for the LEAP payloads the gateway consumes.

Field names follow the bridge's PascalCase JSON keys through ``rename``.
Unknown keys are ignored so newer firmware payloads still decode.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Final

import msgspec

UPDATE_RESPONSE: Final[str] = "UpdateResponse"
DEVICE_HEARD_URL: Final[str] = "/device/status/deviceheard"


class BridgeNetInfo(msgspec.Struct, frozen=True):
    """A bridge announcement as produced by a discovery transport."""

    bridge_id: str
    ip_addr: str
    system_type: str | None = None


class DeviceRecord(msgspec.Struct, frozen=True, rename="pascal"):
    """One end device as reported by the bridge inventory."""

    device_type: str
    serial_number: int | str
    fully_qualified_name: tuple[str, ...] = ()
    name: str | None = None
    model_number: str | None = None

    @property
    def identity_seed(self) -> str:
        return str(self.serial_number)

    @property
    def full_name(self) -> str:
        if self.fully_qualified_name:
            return " ".join(self.fully_qualified_name)
        return self.name or self.identity_seed

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | DeviceRecord) -> DeviceRecord:
        if isinstance(raw, DeviceRecord):
            return raw
        return msgspec.convert(raw, cls)

    def to_context(self) -> dict[str, Any]:
        return msgspec.to_builtins(self)


class ResponseHeader(msgspec.Struct, frozen=True, rename="pascal"):
    url: str | None = None
    status_code: str | None = None
    message_body_type: str | None = None
    client_tag: str | None = None


class Response(msgspec.Struct, frozen=True, rename="pascal"):
    """Envelope of every message a bridge sends, solicited or not."""

    communique_type: str = ""
    header: ResponseHeader = msgspec.field(default_factory=ResponseHeader)
    body: Any = None

    @property
    def is_device_heard(self) -> bool:
        return self.communique_type == UPDATE_RESPONSE and self.header.url == DEVICE_HEARD_URL

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | Response) -> Response:
        if isinstance(raw, Response):
            return raw
        return msgspec.convert(raw, cls)


class DeviceHeard(msgspec.Struct, frozen=True, rename="pascal"):
    device_type: str
    serial_number: int | str


class _DeviceStatus(msgspec.Struct, frozen=True, rename="pascal"):
    device_heard: DeviceHeard


class _DeviceStatusBody(msgspec.Struct, frozen=True, rename="pascal"):
    device_status: _DeviceStatus


def extract_device_heard(response: Response) -> DeviceHeard:
    """Pull the heard device out of a deviceheard update.

    Raises ``msgspec.ValidationError`` when the body has another shape.
    """
    body = msgspec.convert(response.body, _DeviceStatusBody)
    return body.device_status.device_heard
