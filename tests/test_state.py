"""Tests for the accessory index, bridge registry and gateway counters."""

from __future__ import annotations

import asyncio

import pytest

from leapbridge.errors import BridgeLookupError
from leapbridge.host import PlatformAccessory
from leapbridge.state.accessories import AccessoryIndex
from leapbridge.state.bridges import BridgeConnection, BridgeConnectionRegistry
from leapbridge.state.context import GatewayState
from tests.fakes import FakeBridgeClient, device_payload


def test_accessory_index_never_replaces_entries() -> None:
    index = AccessoryIndex()
    first = PlatformAccessory(display_name="one", UUID="u-1")
    second = PlatformAccessory(display_name="two", UUID="u-1")

    assert index.add(first) is True
    assert index.add(second) is False
    assert index.get("u-1") is first
    assert len(index) == 1
    assert "u-1" in index
    assert list(index) == ["u-1"]
    assert index.handles() == [first]


def test_connection_normalizes_identity() -> None:
    connection = BridgeConnection("AA11", FakeBridgeClient())

    assert connection.bridge_id == "aa11"
    assert "aa11" in repr(connection)


@pytest.mark.asyncio
async def test_connection_inventory_skips_malformed_devices() -> None:
    client = FakeBridgeClient()
    client.inventory = [device_payload("Pico3Button", 1), {"DeviceType": "Broken"}, device_payload("WallDimmer", 2)]
    connection = BridgeConnection("aa11", client)

    records = await connection.get_device_inventory()

    assert [record.identity_seed for record in records] == ["1", "2"]


def test_connection_forwards_messages_unchanged() -> None:
    client = FakeBridgeClient()
    connection = BridgeConnection("AA11", client)
    seen: list[tuple[str, object]] = []
    update = {"CommuniqueType": "ReadResponse", "Header": {"Url": "/zone/1", "ClientTag": "t1"}}

    connection.subscribe(lambda bridge_id, message: seen.append((bridge_id, message)))
    connection.subscribe(lambda bridge_id, message: seen.append((bridge_id, message)))
    client.emit(update)
    client.emit({"CommuniqueType": 17})

    assert len(client.callbacks) == 1
    assert len(seen) == 4
    assert seen[0] == ("aa11", update)
    assert seen[0][1] is update
    assert seen[2][1] == {"CommuniqueType": 17}


@pytest.mark.asyncio
async def test_connection_close_awaits_client() -> None:
    client = FakeBridgeClient()

    await BridgeConnection("aa11", client).close()

    assert client.closed


@pytest.mark.asyncio
async def test_registry_rejects_second_connection_for_identity() -> None:
    registry = BridgeConnectionRegistry()
    registry.add_bridge(BridgeConnection("AA11", FakeBridgeClient()))

    with pytest.raises(ValueError):
        registry.add_bridge(BridgeConnection("aa11", FakeBridgeClient()))

    assert len(registry) == 1
    assert registry.has_bridge("Aa11")
    assert "AA11" in registry


@pytest.mark.asyncio
async def test_registry_lookup_waits_for_pending_bridge() -> None:
    registry = BridgeConnectionRegistry()
    lookup = asyncio.create_task(registry.get_bridge("AA11"))
    await asyncio.sleep(0)
    assert not lookup.done()

    connection = BridgeConnection("aa11", FakeBridgeClient())
    registry.add_bridge(connection)

    assert await lookup is connection
    assert await registry.get_bridge("aa11") is connection
    assert registry.bridge_future("AA11").result() is connection


@pytest.mark.asyncio
async def test_registry_lookup_times_out() -> None:
    registry = BridgeConnectionRegistry()

    with pytest.raises(BridgeLookupError, match="aa11"):
        await registry.get_bridge("AA11", timeout=0.01)


@pytest.mark.asyncio
async def test_registry_close_fails_waiters_and_closes_clients() -> None:
    registry = BridgeConnectionRegistry()
    client = FakeBridgeClient()
    registry.add_bridge(BridgeConnection("aa11", client))
    waiter = registry.bridge_future("bb22")

    await registry.close()

    assert client.closed
    assert isinstance(waiter.exception(), BridgeLookupError)


def test_snapshot_reports_counters() -> None:
    state = GatewayState()
    state.record_bridge_discovered()
    state.record_fatal_bridge("bb22")
    state.record_fatal_bridge("bb22")
    state.record_device_failure("Hall Sensor", RuntimeError("boom"))
    state.record_supervisor_failure("prometheus-exporter", OSError("port busy"), fatal=True)

    snapshot = state.build_snapshot()

    assert snapshot["lifecycle"] == "initializing"
    assert snapshot["bridges_discovered"] == 1
    assert snapshot["bridges_fatal"] == 1
    assert snapshot["devices_failed"] == 1
    assert snapshot["supervisor_restarts"] == 1
    assert snapshot["supervisors_failed"] == 1
    assert snapshot["last_error"] == "prometheus-exporter: port busy"

    state.mark_supervisor_healthy("prometheus-exporter")
    assert state.build_snapshot()["supervisors_failed"] == 0
