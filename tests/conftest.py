"""Pytest configuration for LEAP bridge gateway tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

from leapbridge.host import MemoryHostPlatform  # noqa: E402
from leapbridge.state.context import GatewayState, create_gateway_state  # noqa: E402
from tests.fakes import FakeClientFactory, FakeFinder  # noqa: E402


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)
    for name in ("zeroconf", "transitions"):
        logging.getLogger(name).setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def reset_fake_finders():
    FakeFinder.instances.clear()
    yield
    FakeFinder.instances.clear()


@pytest.fixture()
def gateway_state() -> GatewayState:
    return create_gateway_state()


@pytest.fixture()
def host() -> MemoryHostPlatform:
    return MemoryHostPlatform()


@pytest.fixture()
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()
