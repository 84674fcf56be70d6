"""Tests for the SIGUSR2 memory diagnostics hook."""

from __future__ import annotations

import signal
from pathlib import Path
from unittest.mock import MagicMock, patch

import psutil

from leapbridge import diagnostics
from leapbridge.diagnostics import MemoryDiagnostics


def _process() -> MagicMock:
    process = MagicMock()
    process.memory_info.return_value = MagicMock(rss=4096, vms=8192)
    return process


def test_install_and_uninstall_manage_the_signal_handler() -> None:
    loop = MagicMock()
    diag = MemoryDiagnostics(process=_process())

    diag.install(loop)
    loop.add_signal_handler.assert_called_once_with(signal.SIGUSR2, diag.dump)

    diag.uninstall()
    loop.remove_signal_handler.assert_called_once_with(signal.SIGUSR2)

    # A second uninstall is a no-op.
    diag.uninstall()
    loop.remove_signal_handler.assert_called_once()


def test_first_dump_starts_tracing(caplog) -> None:
    diag = MemoryDiagnostics(process=_process())

    with patch.object(diagnostics, "tracemalloc") as tracer:
        tracer.is_tracing.return_value = False
        with caplog.at_level("WARNING", logger="leapbridge.diagnostics"):
            assert diag.dump() is None

    tracer.start.assert_called_once_with()
    tracer.take_snapshot.assert_not_called()
    assert "rss=4096, vms=8192" in caplog.text


def test_dump_writes_snapshot_when_tracing(tmp_path: Path) -> None:
    template = str(tmp_path / "heap.{stamp}.snapshot")
    diag = MemoryDiagnostics(template, process=_process())

    with patch.object(diagnostics, "tracemalloc") as tracer, patch.object(diagnostics.time, "time", return_value=12.5):
        tracer.is_tracing.return_value = True
        path = diag.dump()

    assert path == tmp_path / "heap.12500.snapshot"
    tracer.take_snapshot.return_value.dump.assert_called_once_with(str(path))


def test_dump_failure_is_logged(tmp_path: Path, caplog) -> None:
    diag = MemoryDiagnostics(str(tmp_path / "heap.{stamp}"), process=_process())

    with patch.object(diagnostics, "tracemalloc") as tracer:
        tracer.is_tracing.return_value = True
        tracer.take_snapshot.return_value.dump.side_effect = OSError("disk full")
        with caplog.at_level("ERROR", logger="leapbridge.diagnostics"):
            assert diag.dump() is None

    assert "disk full" in caplog.text


def test_unreadable_process_memory_does_not_block_dump() -> None:
    process = MagicMock()
    process.memory_info.side_effect = psutil.AccessDenied()
    diag = MemoryDiagnostics(process=process)

    with patch.object(diagnostics, "tracemalloc") as tracer:
        tracer.is_tracing.return_value = False
        diag.dump()

    tracer.start.assert_called_once_with()
