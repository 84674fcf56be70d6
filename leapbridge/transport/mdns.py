"""mDNS discovery of LEAP bridges using zeroconf."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any, Final

from zeroconf import ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from ..config.const import DISCOVERY_INFO_TIMEOUT_MS, DISCOVERY_SERVICE_TYPE
from ..errors import BridgeDiscoveryError
from ..protocol.structures import BridgeNetInfo
from ..services.tasks import BackgroundTasks

logger = logging.getLogger("leapbridge.transport.mdns")

# Bridges advertise their serial as the host name, e.g. ``Lutron-0a1b2c3d.local.``
_SERVER_PATTERN: Final[re.Pattern[str]] = re.compile(r"^Lutron-([0-9a-fA-F]+)\.local\.?$")

DiscoveredCallback = Callable[[BridgeNetInfo], None]
FailedCallback = Callable[[BaseException], None]


def bridge_id_from_server(server: str | None) -> str | None:
    if not server:
        return None
    match = _SERVER_PATTERN.match(server)
    if match is None:
        return None
    return match.group(1).lower()


def net_info_from_service(info: AsyncServiceInfo) -> BridgeNetInfo:
    bridge_id = bridge_id_from_server(info.server)
    if bridge_id is None:
        raise BridgeDiscoveryError(f"unexpected bridge host name {info.server!r} for {info.name}")
    addresses = info.parsed_addresses()
    if not addresses:
        raise BridgeDiscoveryError(f"bridge {bridge_id} advertised no address")
    system_type = None
    properties = info.properties or {}
    raw_type = properties.get(b"systype")
    if isinstance(raw_type, bytes):
        system_type = raw_type.decode("utf-8", errors="replace")
    return BridgeNetInfo(bridge_id=bridge_id, ip_addr=addresses[0], system_type=system_type)


class ZeroconfBridgeFinder:
    """Browses ``_lutron._tcp`` and reports each resolved bridge."""

    def __init__(
        self,
        *,
        service_type: str = DISCOVERY_SERVICE_TYPE,
        info_timeout_ms: int = DISCOVERY_INFO_TIMEOUT_MS,
        zeroconf_factory: Callable[[], AsyncZeroconf] = AsyncZeroconf,
    ) -> None:
        self.service_type = service_type
        self.info_timeout_ms = info_timeout_ms
        self._zeroconf_factory = zeroconf_factory
        self._zeroconf: AsyncZeroconf | None = None
        self._browser: AsyncServiceBrowser | None = None
        self._tasks = BackgroundTasks(logger)
        self._discovered: DiscoveredCallback | None = None
        self._failed: FailedCallback | None = None

    def begin_searching(self, discovered: DiscoveredCallback, failed: FailedCallback) -> None:
        if self._browser is not None:
            raise RuntimeError("discovery already started")
        self._discovered = discovered
        self._failed = failed
        self._zeroconf = self._zeroconf_factory()
        self._browser = AsyncServiceBrowser(
            self._zeroconf.zeroconf,
            [self.service_type],
            handlers=[self._on_service_state_change],
        )
        logger.info("Browsing for %s", self.service_type)

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
        **_: Any,
    ) -> None:
        if state_change is not ServiceStateChange.Added:
            logger.debug("Ignoring %s for %s", state_change.name, name)
            return
        self._tasks.spawn(
            self._resolve(zeroconf, service_type, name),
            name=f"mdns-resolve-{name}",
        )

    async def _resolve(self, zeroconf: Zeroconf, service_type: str, name: str) -> None:
        info = AsyncServiceInfo(service_type, name)
        try:
            if not await info.async_request(zeroconf, self.info_timeout_ms):
                raise BridgeDiscoveryError(f"no answer resolving {name}")
            net_info = net_info_from_service(info)
        except BridgeDiscoveryError as exc:
            self._report_failure(exc)
            return
        except OSError as exc:
            self._report_failure(BridgeDiscoveryError(f"resolving {name} failed: {exc}"))
            return

        logger.debug("Resolved %s to bridge %s at %s", name, net_info.bridge_id, net_info.ip_addr)
        if self._discovered is not None:
            self._discovered(net_info)

    def _report_failure(self, exc: BaseException) -> None:
        if self._failed is not None:
            self._failed(exc)
        else:
            logger.warning("Discovery failure with no handler: %s", exc)

    async def close(self) -> None:
        await self._tasks.cancel_all()
        if self._browser is not None:
            await self._browser.async_cancel()
            self._browser = None
        if self._zeroconf is not None:
            await self._zeroconf.async_close()
            self._zeroconf = None
