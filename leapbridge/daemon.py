#!/usr/bin/env python3
"""Daemon entry point for the LEAP bridge gateway.

Architecture:
    main() -> GatewayDaemon -> TaskGroup
        └── prometheus-exporter (optional, supervised)

run() returns once SIGTERM, SIGINT or request_stop() fires. The gateway
itself is event driven: discovery callbacks and spawned reconciliation
tasks share the loop with these long-lived tasks.
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import signal
import sys
from collections.abc import Iterable, Sequence
from typing import NoReturn

import uvloop

from .config.const import DEFAULT_CONFIG_PATH, SUPERVISOR_EXPORTER_MAX_RESTARTS
from .config.logging import configure_logging
from .config.model import GatewayConfig
from .config.settings import load_gateway_config
from .diagnostics import MemoryDiagnostics
from .errors import ConfigurationError
from .gateway import FinderFactory, GatewayPlatform
from .host import MemoryHostPlatform
from .metrics import PrometheusExporter
from .services.base import AccessoryHandle, ClientFactory
from .state.context import create_gateway_state
from .supervisor import supervise_task
from .transport import ZeroconfBridgeFinder

logger = logging.getLogger("leapbridge")


def load_client_factory(reference: str) -> ClientFactory:
    """Resolve a ``module:attribute`` reference to a protocol client factory."""
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"client factory {reference!r} is not of the form module:callable")
    try:
        target: object = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"cannot import client factory module {module_name}: {exc}") from exc
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise ConfigurationError(f"{module_name} has no attribute {attribute}") from exc
    if not callable(target):
        raise ConfigurationError(f"client factory {reference} is not callable")
    return target  # type: ignore[return-value]


class GatewayDaemon:
    """Runs a :class:`GatewayPlatform` on an in-process host until stopped."""

    def __init__(
        self,
        config: GatewayConfig,
        client_factory: ClientFactory,
        *,
        host: MemoryHostPlatform | None = None,
        finder_factory: FinderFactory = ZeroconfBridgeFinder,
        diagnostics: MemoryDiagnostics | None = None,
        cached_accessories: Iterable[AccessoryHandle] = (),
        install_signal_handlers: bool = True,
    ) -> None:
        self.config = config
        self.state = create_gateway_state()
        self.host = host or MemoryHostPlatform()
        self.platform = GatewayPlatform(config, self.host, client_factory, finder_factory, state=self.state)
        self.diagnostics = diagnostics
        self.exporter: PrometheusExporter | None = None
        if config.metrics.enabled:
            self.exporter = PrometheusExporter(self.state, config.metrics.host, config.metrics.port)
        self._cached = list(cached_accessories)
        self._install_signal_handlers = install_signal_handlers
        self._stop_event: asyncio.Event | None = None

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def _run_exporter(self) -> None:
        assert self.exporter is not None
        await supervise_task(
            "prometheus-exporter",
            self.exporter.run,
            state=self.state,
            max_restarts=SUPERVISOR_EXPORTER_MAX_RESTARTS,
        )

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        if self._install_signal_handlers:
            for signum in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(signum, self.request_stop)
        if self.diagnostics is not None:
            self.diagnostics.install(loop)

        self.host.launch(self.platform, self._cached)
        try:
            async with asyncio.TaskGroup() as task_group:
                workers: list[asyncio.Task[None]] = []
                if self.exporter is not None:
                    workers.append(task_group.create_task(self._run_exporter(), name="prometheus-exporter"))
                await self._stop_event.wait()
                logger.info("Shutdown requested")
                for worker in workers:
                    worker.cancel()
        except* asyncio.CancelledError:
            logger.info("Main task cancelled; shutting down.")
        except* Exception as exc_group:
            for group_exc in exc_group.exceptions:
                logger.critical("Unhandled exception in main task group: %s", group_exc, exc_info=group_exc)
            raise
        finally:
            await self.platform.stop()
            if self.diagnostics is not None:
                self.diagnostics.uninstall()
            if self._install_signal_handlers:
                for signum in (signal.SIGTERM, signal.SIGINT):
                    loop.remove_signal_handler(signum)
            logger.info("LEAP bridge gateway stopped.")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="leapbridge", description="LEAP bridge discovery gateway")
    parser.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"path to the JSON platform block (default: {DEFAULT_CONFIG_PATH})",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> NoReturn:  # pragma: no cover (entry point wrapper)
    args = _parse_args(argv)
    try:
        config = load_gateway_config(args.config)
    except ConfigurationError as exc:
        sys.exit(f"leapbridge: {exc}")
    configure_logging(config)

    if config.client_factory is None:
        logger.critical("No clientFactory configured; cannot talk to any bridge.")
        sys.exit(1)
    try:
        client_factory = load_client_factory(config.client_factory)
    except ConfigurationError as exc:
        logger.critical("Startup aborted: %s", exc)
        sys.exit(1)

    logger.info("Starting LEAP bridge gateway with %d bridge secret(s)", len(config.secrets))
    try:
        daemon = GatewayDaemon(config, client_factory, diagnostics=MemoryDiagnostics())
        asyncio.run(daemon.run(), loop_factory=uvloop.new_event_loop)
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user.")
        sys.exit(0)
    except ExceptionGroup as exc_group:
        for group_exc in exc_group.exceptions:
            logger.critical("Fatal error in task group: %s", group_exc, exc_info=group_exc)
        sys.exit(1)
    except OSError as exc:
        logger.critical("System/OS error during daemon execution: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
