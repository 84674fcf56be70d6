"""Tests for the logging configuration."""

import json
import logging
import sys
from unittest.mock import patch

from leapbridge.config import logging as log_mod
from leapbridge.config.model import GatewayConfig
from leapbridge.protocol.structures import BridgeNetInfo


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="leapbridge.service.reconciler",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Got %d device(s)",
        args=(3,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_trims_prefix_and_serialises_extras() -> None:
    record = _record(
        raw=b"\x01\xab",
        net_info=BridgeNetInfo(bridge_id="aa11", ip_addr="10.0.0.2"),
        custom_obj=object(),
    )

    payload = json.loads(log_mod.StructuredLogFormatter().format(record))

    assert payload["logger"] == "service.reconciler"
    assert payload["level"] == "INFO"
    assert payload["message"] == "Got 3 device(s)"
    assert payload["ts"].endswith("Z")
    assert payload["extra"]["raw"] == "01 AB"
    assert payload["extra"]["net_info"] == {"bridge_id": "aa11", "ip_addr": "10.0.0.2", "system_type": None}
    assert "object" in payload["extra"]["custom_obj"]


def test_formatter_includes_exception() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(log_mod.StructuredLogFormatter().format(record))

    assert "ValueError: boom" in payload["exception"]
    assert "extra" not in payload


def test_configure_logging_prefers_syslog(tmp_path, monkeypatch) -> None:
    fake_socket = tmp_path / "log"
    fake_socket.touch()
    monkeypatch.delenv(log_mod.LOG_STREAM_ENV, raising=False)

    with patch.object(log_mod, "SYSLOG_SOCKET", fake_socket):
        with patch.object(log_mod, "dictConfig") as mock_dict_config:
            log_mod.configure_logging(GatewayConfig(debug_logging=True))

    mock_dict_config.assert_called_once()
    config_arg = mock_dict_config.call_args[0][0]
    assert config_arg["root"]["level"] == "DEBUG"
    handler_cfg = config_arg["handlers"]["leapbridge"]
    assert handler_cfg["formatter"] == "structured"

    with patch.object(log_mod, "SYSLOG_SOCKET", fake_socket), patch.object(log_mod, "SysLogHandler") as syslog:
        handler = handler_cfg["()"]()
    syslog.assert_called_once()
    assert syslog.call_args.kwargs["address"] == str(fake_socket)
    assert handler is syslog.return_value


def test_build_handler_falls_back_to_stream(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv(log_mod.LOG_STREAM_ENV, raising=False)
    with patch.object(log_mod, "SYSLOG_SOCKET", tmp_path / "missing"), patch.object(
        log_mod, "SYSLOG_SOCKET_FALLBACK", tmp_path / "missing-too"
    ):
        handler = log_mod._build_handler()

    assert type(handler) is logging.StreamHandler


def test_stream_env_forces_stderr(tmp_path, monkeypatch) -> None:
    fake_socket = tmp_path / "log"
    fake_socket.touch()
    monkeypatch.setenv(log_mod.LOG_STREAM_ENV, "1")

    with patch.object(log_mod, "SYSLOG_SOCKET", fake_socket):
        handler = log_mod._build_handler()

    assert type(handler) is logging.StreamHandler


def test_configure_logging_applies_info_level(monkeypatch) -> None:
    monkeypatch.setenv(log_mod.LOG_STREAM_ENV, "1")

    log_mod.configure_logging(GatewayConfig())

    root = logging.getLogger()
    assert root.level == logging.INFO
    assert any(isinstance(h.formatter, log_mod.StructuredLogFormatter) for h in root.handlers)


def test_formatter_lifts_bridge_context_to_top_level() -> None:
    record = _record(bridge_id="aa11", uuid="u-1", attempt=2)

    payload = json.loads(log_mod.StructuredLogFormatter().format(record))

    assert payload["bridge_id"] == "aa11"
    assert payload["uuid"] == "u-1"
    assert payload["extra"] == {"attempt": 2}


def test_chatty_libraries_are_quiet_unless_debugging() -> None:
    quiet = log_mod.build_logging_config(GatewayConfig())
    verbose = log_mod.build_logging_config(GatewayConfig(debug_logging=True))

    assert quiet["loggers"] == {"zeroconf": {"level": "WARNING"}, "transitions": {"level": "WARNING"}}
    assert verbose["loggers"]["zeroconf"] == {"level": "DEBUG"}
    assert verbose["root"]["level"] == "DEBUG"


def test_configure_logging_applies_library_levels(monkeypatch) -> None:
    monkeypatch.setenv(log_mod.LOG_STREAM_ENV, "1")

    log_mod.configure_logging(GatewayConfig())

    assert logging.getLogger("zeroconf").level == logging.WARNING
    assert logging.getLogger("transitions").level == logging.WARNING
