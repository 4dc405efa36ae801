from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest

from dentibook.domain import BusUnavailable
from dentibook.mqtt_bus import MqttBus


def _bus(client: MagicMock, **kwargs) -> MqttBus:
    return MqttBus(host="localhost", port=1883, qos=1, client=client, **kwargs)


def _reason(failure: bool) -> SimpleNamespace:
    return SimpleNamespace(is_failure=failure)


def test_subscribes_to_routed_topics_on_connect() -> None:
    client = MagicMock()
    bus = _bus(client)
    bus.route("data/dentist/request", lambda payload: None)
    bus.route("booking/save", lambda payload: None)

    client.on_connect(client, None, {}, _reason(False), None)

    client.subscribe.assert_called_once_with([("data/dentist/request", 1), ("booking/save", 1)])


def test_refused_connection_does_not_subscribe() -> None:
    client = MagicMock()
    bus = _bus(client)
    bus.route("booking/save", lambda payload: None)

    client.on_connect(client, None, {}, _reason(True), None)

    client.subscribe.assert_not_called()


def test_message_is_dispatched_by_topic() -> None:
    client = MagicMock()
    bus = _bus(client)
    received: list[bytes] = []
    bus.route("booking/save", received.append)

    client.on_message(client, None, SimpleNamespace(topic="booking/save", payload=b"{}"))
    client.on_message(client, None, SimpleNamespace(topic="other/topic", payload=b"x"))

    assert received == [b"{}"]


def test_publish_uses_default_qos() -> None:
    client = MagicMock()
    client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_SUCCESS)
    bus = _bus(client)

    bus.publish("booking/error/S1", '"No free slots available"')

    client.publish.assert_called_once_with("booking/error/S1", '"No free slots available"', qos=1)


def test_publish_failure_raises_bus_unavailable() -> None:
    client = MagicMock()
    client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_NO_CONN)
    bus = _bus(client)

    with pytest.raises(BusUnavailable):
        bus.publish("booking/confirmed/S1", "{}", 1)


def test_connect_retries_then_gives_up(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("tenacity.nap.time.sleep", lambda _seconds: None)
    client = MagicMock()
    client.connect.side_effect = ConnectionRefusedError("refused")
    bus = _bus(client)

    with pytest.raises(BusUnavailable):
        bus.connect(attempts=3)

    assert client.connect.call_count == 3
    client.connect.assert_called_with("localhost", 1883, 60)


def test_connect_succeeds_after_transient_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("tenacity.nap.time.sleep", lambda _seconds: None)
    client = MagicMock()
    client.connect.side_effect = [ConnectionRefusedError("refused"), 0]
    bus = _bus(client)

    bus.connect(attempts=3)

    assert client.connect.call_count == 2
