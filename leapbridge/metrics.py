"""Prometheus exporter for gateway state."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Iterator
from http import HTTPStatus
from typing import Any, cast
from urllib.parse import urlsplit

import msgspec
import psutil
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily, InfoMetricFamily
from prometheus_client.registry import Collector

from .state.context import GatewayState

logger = logging.getLogger("leapbridge.metrics")

_SANITIZE_RE = re.compile(r"[^a-zA-Z0-9_]")
_METRIC_PREFIX = "leapbridge"
_INFO_METRIC = "leapbridge_info"
_GAUGE_DOC = "LEAP bridge gateway state counter"
_INFO_DOC = "LEAP bridge gateway informational value"

_TEXT_PLAIN = "text/plain; charset=utf-8"
_JSON = "application/json"

_snapshot_encoder = msgspec.json.Encoder(enc_hook=str)


def _sanitize_metric_name(name: str) -> str:
    cleaned = _SANITIZE_RE.sub("_", name.lower()).strip("_") or f"{_METRIC_PREFIX}_metric"
    if cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


class GatewayStateCollector(Collector):
    """Projects ``GatewayState.build_snapshot()`` into gauges and an info family."""

    def __init__(self, state: GatewayState, process: psutil.Process | None = None) -> None:
        self._state = state
        self._process = process

    def collect(self) -> Iterator[Any]:
        info_values: list[tuple[str, str]] = []
        for key, value in self._state.build_snapshot().items():
            name = f"{_METRIC_PREFIX}_{key}"
            if isinstance(value, bool):
                yield self._gauge(name, 1.0 if value else 0.0)
            elif isinstance(value, (int, float)):
                yield self._gauge(name, float(value))
            else:
                info_values.append((key, "null" if value is None else str(value)))

        if self._process is not None:
            try:
                memory = self._process.memory_info()
            except psutil.Error as exc:
                logger.debug("Process memory unavailable: %s", exc)
            else:
                yield self._gauge(f"{_METRIC_PREFIX}_process_rss_bytes", float(memory.rss))

        if info_values:
            info = InfoMetricFamily(_INFO_METRIC, _INFO_DOC, labels=("key",))
            for key, value in info_values:
                info.add_metric((key,), {"value": value})
            yield info

    @staticmethod
    def _gauge(name: str, value: float) -> GaugeMetricFamily:
        metric = GaugeMetricFamily(_sanitize_metric_name(name), _GAUGE_DOC)
        metric.add_metric((), value)
        return metric


class PrometheusExporter:
    """Small asyncio HTTP listener for gateway state.

    ``/metrics`` (and ``/``) serve the Prometheus text format; ``/snapshot``
    serves the raw state snapshot as JSON.
    """

    def __init__(self, state: GatewayState, host: str, port: int) -> None:
        self._state = state
        self._routes: dict[str, tuple[Callable[[], bytes], str]] = {
            "/": (self.render, CONTENT_TYPE_LATEST),
            "/metrics": (self.render, CONTENT_TYPE_LATEST),
            "/snapshot": (self.render_snapshot, _JSON),
        }
        self._host = host
        self._port = port
        self._server: asyncio.AbstractServer | None = None
        self._resolved_port: int | None = None
        self._registry = CollectorRegistry()
        self._registry.register(GatewayStateCollector(state, psutil.Process()))

    @property
    def port(self) -> int:
        return self._resolved_port or self._port

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await asyncio.start_server(self._handle_client, host=self._host, port=self._port)
        for sock in self._server.sockets or []:
            sockname = sock.getsockname()
            if isinstance(sockname, tuple) and len(sockname) >= 2:
                self._resolved_port = cast(int, sockname[1])
                break
        logger.info("Prometheus exporter listening", extra={"host": self._host, "port": self.port})

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Prometheus exporter stopped")

    async def run(self) -> None:
        await self.start()
        assert self._server is not None
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    def render(self) -> bytes:
        return generate_latest(self._registry)

    def render_snapshot(self) -> bytes:
        return _snapshot_encoder.encode(self._state.build_snapshot())

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            request = await _read_request(reader)
            if request is not None:
                writer.write(self._dispatch(*request))
                await writer.drain()
        except (OSError, ValueError) as exc:
            logger.warning("Metrics client request error: %s", exc)
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except (OSError, RuntimeError):
                logger.debug("Error closing metrics client connection", exc_info=True)

    def _dispatch(self, method: str | None, path: str) -> bytes:
        if method is None:
            return _http_response(400)
        route = self._routes.get(urlsplit(path).path)
        if route is None:
            return _http_response(404)
        if method != "GET":
            return _http_response(405)
        render, content_type = route
        return _http_response(200, render(), content_type)


async def _read_request(reader: asyncio.StreamReader) -> tuple[str | None, str] | None:
    """Return ``(method, path)``, ``(None, "")`` if malformed, ``None`` if the peer sent nothing."""
    request_line = await reader.readline()
    if not request_line:
        return None
    parts = request_line.decode("ascii", errors="ignore").split()
    # Headers are drained and ignored; so is any body.
    while True:
        line = await reader.readline()
        if not line or line in (b"\r\n", b"\n"):
            break
    if len(parts) < 3 or not parts[2].startswith("HTTP/"):
        return None, ""
    return parts[0], parts[1]


def _http_response(status: int, body: bytes = b"", content_type: str = _TEXT_PLAIN) -> bytes:
    head = (
        f"HTTP/1.1 {status} {HTTPStatus(status).phrase}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n\r\n"
    )
    return head.encode("ascii") + body


__all__ = ["GatewayStateCollector", "PrometheusExporter"]
