"""HomeWizard Telemetrie-Quellen ohne echtes Netzwerk"""

import asyncio
import json
import logging

import aiohttp
import pytest

from em24_meter import TelemetrySnapshot
from em24_registers import read_s32le
from homewizard_client import (
    HomeWizardPoller,
    HomeWizardWebsocketClient,
    log_power,
    power_direction,
    translate_v2,
)


class FakeResponse:
    def __init__(self, data=None, status_error=None):
        self.data = data
        self.status_error = status_error

    def raise_for_status(self):
        if self.status_error is not None:
            raise self.status_error

    async def json(self, content_type=None):
        if isinstance(self.data, Exception):
            raise self.data
        return self.data


class FakeRequest:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error

    async def __aenter__(self):
        if self.error is not None:
            raise self.error
        return self.response

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        return FakeRequest(self.response, self.error)


@pytest.mark.asyncio
async def test_fetch_success():
    session = FakeSession(FakeResponse({"active_power_w": -150, "active_voltage_l1_v": 230.5}))
    poller = HomeWizardPoller("10.0.0.5", lambda r: None, session=session)

    result = await poller.fetch()

    assert result.ok
    assert result.snapshot.active_power_w == -150.0
    assert session.urls == ["http://10.0.0.5/api/v1/data"]


@pytest.mark.asyncio
async def test_fetch_network_error_is_failure_value():
    session = FakeSession(error=aiohttp.ClientConnectionError("unreachable"))
    poller = HomeWizardPoller("10.0.0.5", lambda r: None, session=session)

    result = await poller.fetch()

    assert not result.ok
    assert "unreachable" in result.error


@pytest.mark.asyncio
async def test_fetch_timeout_is_failure_value():
    session = FakeSession(error=asyncio.TimeoutError())
    poller = HomeWizardPoller("10.0.0.5", lambda r: None, session=session)

    result = await poller.fetch()

    assert not result.ok
    assert "TimeoutError" in result.error


@pytest.mark.asyncio
async def test_fetch_invalid_json_is_failure_value():
    session = FakeSession(FakeResponse(json.JSONDecodeError("bad", "x", 0)))
    poller = HomeWizardPoller("10.0.0.5", lambda r: None, session=session)

    result = await poller.fetch()

    assert not result.ok


@pytest.mark.asyncio
async def test_poll_once_updates_then_freezes(meter):
    session = FakeSession(FakeResponse({"total_power_import_kwh": 1234.6}))
    poller = HomeWizardPoller("10.0.0.5", meter.consume, session=session)

    await poller.poll_once()
    assert read_s32le(meter.store, 0x0034) == 12346

    session.error = aiohttp.ClientConnectionError("gone")
    before = meter.store.snapshot()
    result = await poller.poll_once()

    assert not result.ok
    assert meter.store.snapshot() == before
    assert meter.failed_polls == 1


@pytest.mark.asyncio
async def test_poller_start_stop_with_injected_session(meter):
    session = FakeSession(FakeResponse({"active_power_w": 10}))
    poller = HomeWizardPoller("10.0.0.5", meter.consume, interval_ms=10, session=session)

    await poller.start()
    await asyncio.sleep(0.05)
    await poller.stop()

    assert len(session.urls) >= 1
    assert read_s32le(meter.store, 0x0028) == 100


def test_power_direction():
    assert power_direction(150) == "importing"
    assert power_direction(-150) == "exporting"
    assert power_direction(0) == "idle"


def test_translate_v2_field_names():
    assert translate_v2({"power_w": -5, "energy_import_kwh": 1.5, "unused": 1}) == {
        "active_power_w": -5,
        "total_power_import_kwh": 1.5,
    }


@pytest.mark.asyncio
async def test_websocket_authorization_flow():
    client = HomeWizardWebsocketClient("10.0.0.5", "TOKEN", lambda r: None)

    reply = await client.handle_message(json.dumps({"type": "authorization_requested", "data": {}}))
    assert reply == {"type": "authorization", "data": "TOKEN"}

    reply = await client.handle_message(json.dumps({"type": "authorized"}))
    assert reply == {"type": "subscribe", "data": "measurement"}


@pytest.mark.asyncio
async def test_websocket_measurement_deduplicated():
    client = HomeWizardWebsocketClient("10.0.0.5", "TOKEN", lambda r: None)
    msg = json.dumps({"type": "measurement", "data": {"power_w": 42}})

    assert await client.handle_message(msg) is None
    assert await client.handle_message(msg) is None
    assert await client.handle_message("kein json") is None

    assert client._message_queue.qsize() == 1


def test_websocket_deliver_updates_meter(meter):
    client = HomeWizardWebsocketClient("10.0.0.5", "TOKEN", meter.consume)

    client.deliver({"power_w": -150, "voltage_l1_v": 230.5, "energy_export_kwh": 2.3})

    assert read_s32le(meter.store, 0x0028) == -1500
    assert read_s32le(meter.store, 0x0000) == 2305
    assert read_s32le(meter.store, 0x004E) == 23


def test_log_power_keeps_fraction(caplog):
    with caplog.at_level(logging.INFO, logger="homewizard_client"):
        log_power(TelemetrySnapshot(active_power_w=-233.5))
    assert "233.5W exporting" in caplog.text
