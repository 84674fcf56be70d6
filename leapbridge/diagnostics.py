"""Optional memory diagnostics hook.

Installed by the daemon on ``SIGUSR2``. The first signal starts
``tracemalloc``; every later one writes a snapshot that can be loaded with
``tracemalloc.Snapshot.load``.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
import tracemalloc
from pathlib import Path

import psutil

from .config.const import HEAP_SNAPSHOT_PATH_TEMPLATE

logger = logging.getLogger("leapbridge.diagnostics")


class MemoryDiagnostics:
    def __init__(
        self,
        path_template: str = HEAP_SNAPSHOT_PATH_TEMPLATE,
        process: psutil.Process | None = None,
    ) -> None:
        self.path_template = path_template
        self._process = process or psutil.Process()
        self._installed: tuple[asyncio.AbstractEventLoop, int] | None = None

    def install(self, loop: asyncio.AbstractEventLoop, signum: int = signal.SIGUSR2) -> None:
        loop.add_signal_handler(signum, self.dump)
        self._installed = (loop, signum)
        logger.debug("Memory diagnostics installed on %s", signal.Signals(signum).name)

    def uninstall(self) -> None:
        if self._installed is None:
            return
        loop, signum = self._installed
        loop.remove_signal_handler(signum)
        self._installed = None

    def dump(self) -> Path | None:
        """Log current memory usage and write a heap snapshot if tracing."""
        try:
            memory = self._process.memory_info()
        except psutil.Error as exc:
            logger.warning("Could not read process memory usage: %s", exc)
        else:
            logger.warning("Current memory usage: rss=%d, vms=%d", memory.rss, memory.vms)

        if not tracemalloc.is_tracing():
            tracemalloc.start()
            logger.warning("Started allocation tracing; signal again to dump a heap snapshot")
            return None

        path = Path(self.path_template.format(stamp=int(time.time() * 1000)))
        logger.warning("Got request to dump heap. Dumping to %s", path)
        try:
            tracemalloc.take_snapshot().dump(str(path))
        except OSError as exc:
            logger.error("Heap dump to %s failed: %s", path, exc)
            return None
        logger.info("Heap dump to %s finished.", path)
        return path
