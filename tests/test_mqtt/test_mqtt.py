"""Tests for the device MQTT transport."""

from __future__ import annotations

import json
from dataclasses import dataclass

import aiomqtt
import pytest
from conftest import build_heartbeat

from grid_watch.config.schema import MQTTConfig
from grid_watch.ecoflow.credentials import MQTTCredentials
from grid_watch.ecoflow.monitor import GridMonitor
from grid_watch.mqtt.client import DeviceMQTTClient
from grid_watch.status.model import GridStatus
from grid_watch.status.tracker import GridStatusTracker

SN = "R351ZEB4HF4E0484"
CREDS = MQTTCredentials("mqtt-e.ecoflow.com", 8883, "app-abc", "pw-xyz", "42")


@dataclass
class FakeMessage:
    topic: str
    payload: object


class FakeMessages:
    def __init__(self, messages: list[FakeMessage], on_exhausted=None) -> None:
        self._messages = list(messages)
        self._on_exhausted = on_exhausted

    def __aiter__(self):
        return self

    async def __anext__(self) -> FakeMessage:
        if self._messages:
            return self._messages.pop(0)
        if self._on_exhausted is not None:
            self._on_exhausted()
        raise StopAsyncIteration


class FakeClient:
    """Stands in for aiomqtt.Client: replays a fixed list of messages."""

    def __init__(self, messages: list[FakeMessage], on_exhausted=None) -> None:
        self.messages = FakeMessages(messages, on_exhausted)
        self.subscriptions: list[tuple[str, int]] = []
        self.published: list[tuple[str, str]] = []

    async def __aenter__(self) -> FakeClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscriptions.append((topic, qos))

    async def publish(self, topic: str, payload: str, qos: int = 0) -> None:
        self.published.append((topic, payload))


class RefusingClient:
    async def __aenter__(self):
        raise aiomqtt.MqttError("connection refused")

    async def __aexit__(self, *exc_info) -> None:
        return None


def _setup(sink, **kwargs) -> tuple[DeviceMQTTClient, GridMonitor]:
    monitor = GridMonitor(GridStatusTracker(history_sink=sink))
    config = MQTTConfig(reconnect_delay_seconds=0.01)
    return DeviceMQTTClient(CREDS, SN, monitor, config, **kwargs), monitor


@pytest.mark.asyncio
class TestSession:
    async def test_subscribes_and_dispatches(self, sink, monkeypatch) -> None:
        client, monitor = _setup(sink)
        fake = FakeClient([
            FakeMessage(client.topic, build_heartbeat(2)),
            FakeMessage(client.topic, '{"params": {}}'),
            FakeMessage(client.topic, None),
        ])
        monkeypatch.setattr(client, "_create_client", lambda: fake)

        await client._session()

        assert fake.subscriptions == [(f"/app/device/property/{SN}", 1)]
        assert fake.published == []
        assert client.is_connected
        assert monitor.get_grid_status().connected
        assert monitor.get_grid_status().status is GridStatus.ONLINE
        assert monitor.message_count == 2

    async def test_status_request_on_connect(self, sink, monkeypatch) -> None:
        client, _ = _setup(sink, request_status_on_connect=True)
        fake = FakeClient([])
        monkeypatch.setattr(client, "_create_client", lambda: fake)

        await client._session()

        topic, payload = fake.published[0]
        assert topic == f"/app/42/{SN}/thing/property/get"
        assert json.loads(payload)["operateType"] == "get"

    async def test_handler_error_does_not_end_session(self, sink, monkeypatch) -> None:
        client, monitor = _setup(sink)

        def broken(topic, payload):
            raise RuntimeError("boom")

        monkeypatch.setattr(monitor, "handle_message", broken)
        fake = FakeClient([FakeMessage(client.topic, b"\x00"), FakeMessage(client.topic, b"\x01")])
        monkeypatch.setattr(client, "_create_client", lambda: fake)

        await client._session()
        assert client.is_connected


@pytest.mark.asyncio
class TestRun:
    async def test_disconnect_resets_status(self, sink, monkeypatch) -> None:
        client, monitor = _setup(sink)
        fake = FakeClient([FakeMessage(client.topic, build_heartbeat(2))], on_exhausted=client.stop)
        monkeypatch.setattr(client, "_create_client", lambda: fake)

        await client.run()

        assert not client.is_connected
        assert monitor.get_grid_status().status is GridStatus.UNKNOWN
        assert sink.statuses == [GridStatus.ONLINE, GridStatus.UNKNOWN]

    async def test_reconnects_after_error(self, sink, monkeypatch) -> None:
        client, monitor = _setup(sink)
        attempts: list[object] = []

        def create():
            attempts.append(None)
            if len(attempts) == 1:
                return RefusingClient()
            return FakeClient([], on_exhausted=client.stop)

        monkeypatch.setattr(client, "_create_client", create)

        await client.run()

        assert len(attempts) == 2
        assert not client.is_connected
        # Never online, so the disconnect changes nothing
        assert sink.records == []

    async def test_stop_before_run(self, sink, monkeypatch) -> None:
        client, _ = _setup(sink)
        client.stop()

        def create():
            raise AssertionError("should not connect")

        monkeypatch.setattr(client, "_create_client", create)
        await client.run()


class TestClientFactory:
    @pytest.mark.asyncio
    async def test_builds_tls_client(self, sink) -> None:
        client, _ = _setup(sink)
        mqtt = client._create_client()
        assert isinstance(mqtt, aiomqtt.Client)
