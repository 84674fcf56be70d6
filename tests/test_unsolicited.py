"""Tests for unsolicited notification routing and device-heard refreshes."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from leapbridge.config.const import DEVICE_REFRESH_DELAY_SECONDS
from leapbridge.protocol.structures import Response
from leapbridge.services.tasks import BackgroundTasks
from leapbridge.services.unsolicited import UnsolicitedRouter
from leapbridge.state.bridges import BridgeConnection
from leapbridge.state.context import GatewayState
from tests.fakes import FakeBridgeClient, device_heard_payload

ZONE_UPDATE = {"CommuniqueType": "UpdateResponse", "Header": {"Url": "/zone/3/status"}, "Body": {"Level": 40}}


def _router(state: GatewayState, reconcile: AsyncMock, *, delay: float = 0.01, timeout: float = 0.05):
    tasks = BackgroundTasks()
    router = UnsolicitedRouter(state, state.bridges, reconcile, tasks, refresh_delay=delay, lookup_timeout=timeout)
    return router, tasks


def test_default_refresh_delay_is_thirty_seconds() -> None:
    assert DEVICE_REFRESH_DELAY_SECONDS == 30.0
    router = UnsolicitedRouter(GatewayState(), GatewayState().bridges, AsyncMock(), BackgroundTasks())
    assert router.refresh_delay == 30.0


@pytest.mark.asyncio
async def test_other_notifications_are_forwarded_verbatim(gateway_state) -> None:
    reconcile = AsyncMock()
    router, _ = _router(gateway_state, reconcile)
    first, second = MagicMock(), MagicMock()
    router.add_listener(first)
    router.add_listener(second)
    response = Response.from_raw(ZONE_UPDATE)

    router.on_notification("aa11", response)

    first.assert_called_once_with("aa11", response)
    second.assert_called_once_with("aa11", response)
    assert not router.pending_refresh("aa11")
    await asyncio.sleep(0.03)
    reconcile.assert_not_awaited()
    assert gateway_state.unsolicited_forwarded == 1


@pytest.mark.asyncio
async def test_raw_messages_reach_listeners_unchanged(gateway_state) -> None:
    reconcile = AsyncMock()
    router, _ = _router(gateway_state, reconcile, delay=0.0)
    client = FakeBridgeClient()
    connection = BridgeConnection("aa11", client)
    gateway_state.bridges.add_bridge(connection)
    connection.subscribe(router.on_notification)
    listener = MagicMock()
    router.add_listener(listener)
    tagged = {
        "CommuniqueType": "ReadResponse",
        "Header": {"Url": "/zone/1/status", "ClientTag": "tag-7", "StatusCode": "200 OK"},
        "Body": {"ZoneStatus": {"Level": 75}},
    }
    malformed = {"CommuniqueType": 17}

    client.emit(tagged)
    client.emit(malformed)
    client.emit(device_heard_payload())
    await asyncio.sleep(0.02)

    assert [call.args for call in listener.call_args_list] == [("aa11", tagged), ("aa11", malformed)]
    assert listener.call_args_list[0].args[1] is tagged
    assert listener.call_args_list[0].args[1]["Header"]["ClientTag"] == "tag-7"
    reconcile.assert_awaited_once_with(connection)
    assert gateway_state.unsolicited_forwarded == 2


def test_client_tag_is_decoded_for_routing() -> None:
    response = Response.from_raw({"Header": {"Url": "/zone/1", "ClientTag": "tag-7"}})

    assert response.header.client_tag == "tag-7"


@pytest.mark.asyncio
async def test_notification_without_listener_is_dropped(gateway_state) -> None:
    router, _ = _router(gateway_state, AsyncMock())

    router.on_notification("aa11", Response.from_raw(ZONE_UPDATE))

    assert gateway_state.unsolicited_forwarded == 0


@pytest.mark.asyncio
async def test_raising_listener_does_not_affect_others(gateway_state) -> None:
    router, _ = _router(gateway_state, AsyncMock())
    broken = MagicMock(side_effect=RuntimeError("listener bug"))
    healthy = MagicMock()
    router.add_listener(broken)
    router.add_listener(healthy)

    router.on_notification("aa11", Response.from_raw(ZONE_UPDATE))

    healthy.assert_called_once()


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery(gateway_state) -> None:
    router, _ = _router(gateway_state, AsyncMock())
    listener = MagicMock()
    unsubscribe = router.add_listener(listener)

    unsubscribe()
    unsubscribe()
    router.on_notification("aa11", Response.from_raw(ZONE_UPDATE))

    listener.assert_not_called()


@pytest.mark.asyncio
async def test_device_heard_schedules_exactly_one_refresh(gateway_state) -> None:
    reconcile = AsyncMock()
    router, _ = _router(gateway_state, reconcile)
    listener = MagicMock()
    router.add_listener(listener)
    connection = BridgeConnection("aa11", FakeBridgeClient())
    gateway_state.bridges.add_bridge(connection)

    router.on_notification("aa11", Response.from_raw(device_heard_payload()))

    listener.assert_not_called()
    assert router.pending_refresh("aa11")
    reconcile.assert_not_awaited()

    await asyncio.sleep(0.05)

    reconcile.assert_awaited_once_with(connection)
    assert gateway_state.refreshes_scheduled == 1
    assert not router.pending_refresh("aa11")


@pytest.mark.asyncio
async def test_device_heard_refresh_is_debounced_per_bridge(gateway_state) -> None:
    reconcile = AsyncMock()
    router, _ = _router(gateway_state, reconcile)
    aa11 = BridgeConnection("aa11", FakeBridgeClient())
    bb22 = BridgeConnection("bb22", FakeBridgeClient())
    gateway_state.bridges.add_bridge(aa11)
    gateway_state.bridges.add_bridge(bb22)

    for serial in (1, 2, 3):
        router.on_notification("aa11", Response.from_raw(device_heard_payload(serial=serial)))
    router.on_notification("bb22", Response.from_raw(device_heard_payload()))
    await asyncio.sleep(0.05)

    assert reconcile.await_count == 2
    assert {call.args[0] for call in reconcile.await_args_list} == {aa11, bb22}

    router.on_notification("aa11", Response.from_raw(device_heard_payload(serial=4)))
    await asyncio.sleep(0.05)
    assert reconcile.await_count == 3


@pytest.mark.asyncio
async def test_device_heard_waits_for_pending_bridge(gateway_state) -> None:
    reconcile = AsyncMock()
    router, _ = _router(gateway_state, reconcile, delay=0.0, timeout=1.0)

    router.on_notification("aa11", Response.from_raw(device_heard_payload()))
    await asyncio.sleep(0.01)
    reconcile.assert_not_awaited()

    connection = BridgeConnection("aa11", FakeBridgeClient())
    gateway_state.bridges.add_bridge(connection)
    await asyncio.sleep(0.01)

    reconcile.assert_awaited_once_with(connection)


@pytest.mark.asyncio
async def test_failed_bridge_lookup_is_logged_not_retried(gateway_state, caplog) -> None:
    reconcile = AsyncMock()
    router, _ = _router(gateway_state, reconcile, delay=0.0, timeout=0.01)

    router.on_notification("cc33", Response.from_raw(device_heard_payload()))
    await asyncio.sleep(0.05)

    reconcile.assert_not_awaited()
    assert gateway_state.refresh_failures == 1
    assert "Failed to look up bridge cc33" in caplog.text


@pytest.mark.asyncio
async def test_refresh_failure_is_contained(gateway_state) -> None:
    reconcile = AsyncMock(side_effect=RuntimeError("inventory exploded"))
    router, tasks = _router(gateway_state, reconcile, delay=0.0)
    gateway_state.bridges.add_bridge(BridgeConnection("aa11", FakeBridgeClient()))

    router.on_notification("aa11", Response.from_raw(device_heard_payload()))
    await asyncio.sleep(0.02)

    assert gateway_state.refresh_failures == 1
    assert len(tasks) == 0


@pytest.mark.asyncio
async def test_malformed_device_heard_is_dropped(gateway_state) -> None:
    reconcile = AsyncMock()
    router, _ = _router(gateway_state, reconcile, delay=0.0)
    listener = MagicMock()
    router.add_listener(listener)
    payload = device_heard_payload()
    payload["Body"] = {"DeviceStatus": {}}

    router.on_notification("aa11", Response.from_raw(payload))
    await asyncio.sleep(0.01)

    listener.assert_not_called()
    reconcile.assert_not_awaited()
    assert gateway_state.refreshes_scheduled == 0


@pytest.mark.asyncio
async def test_cancel_pending_drops_scheduled_refresh(gateway_state) -> None:
    reconcile = AsyncMock()
    router, _ = _router(gateway_state, reconcile, delay=10.0)

    router.on_notification("aa11", Response.from_raw(device_heard_payload()))
    assert router.pending_refresh("aa11")
    await router.cancel_pending()

    assert not router.pending_refresh("aa11")
    reconcile.assert_not_awaited()
