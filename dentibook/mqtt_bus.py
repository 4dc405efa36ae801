from __future__ import annotations

import logging
from typing import Callable

import paho.mqtt.client as mqtt
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from dentibook.domain import BusUnavailable

logger = logging.getLogger(__name__)

MessageHandler = Callable[[bytes], None]


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    exc = retry_state.outcome.exception() if retry_state.outcome is not None else None
    logger.warning(
        "Broker connect attempt %s failed (%s), next try in %s sec.",
        retry_state.attempt_number,
        f"{type(exc).__name__}: {exc}" if exc else "unknown",
        f"{sleep_seconds:.0f}" if sleep_seconds is not None else "?",
    )


class MqttBus:
    """Thin wrapper over a paho client: topic routing, subscribe on (re)connect, checked publish."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 1883,
        client_id: str = "",
        qos: int = 1,
        keepalive: int = 60,
        client: mqtt.Client | None = None,
    ):
        self._host = host
        self._port = port
        self._qos = qos
        self._keepalive = keepalive
        self._handlers: dict[str, MessageHandler] = {}

        self._client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

    def route(self, topic: str, handler: MessageHandler) -> None:
        self._handlers[topic] = handler

    @property
    def topics(self) -> list[str]:
        return list(self._handlers)

    def connect(self, *, attempts: int = 5) -> None:
        decorated = retry(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            retry=retry_if_exception_type(OSError),
            before_sleep=_log_before_sleep,
            reraise=True,
        )(self._client.connect)

        logger.info("Connecting to MQTT broker %s:%s", self._host, self._port)
        try:
            decorated(self._host, self._port, self._keepalive)
        except OSError as e:
            raise BusUnavailable(f"Cannot reach MQTT broker {self._host}:{self._port}: {e}") from e

    def publish(self, topic: str, payload: str, qos: int | None = None) -> None:
        info = self._client.publish(topic, payload, qos=self._qos if qos is None else qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise BusUnavailable(f"Publish to {topic} failed: {mqtt.error_string(info.rc)}")
        logger.debug("Published to %s: %s", topic, payload)

    def loop_forever(self) -> None:
        self._client.loop_forever()

    def stop(self) -> None:
        self._client.disconnect()

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            logger.error("Broker refused connection: %s", reason_code)
            return

        logger.info("Connected to MQTT broker %s:%s", self._host, self._port)
        if not self._handlers:
            return
        # Subscribing here means a reconnect restores the subscriptions too.
        client.subscribe([(topic, self._qos) for topic in self._handlers])
        logger.info("Subscribed to topics: %s", ", ".join(self._handlers))

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            logger.warning("Disconnected from broker unexpectedly (%s), paho will reconnect", reason_code)
        else:
            logger.info("Disconnected from broker")

    def _on_message(self, client, userdata, message) -> None:
        handler = self._handlers.get(message.topic)
        if handler is None:
            logger.debug("No handler for topic %s", message.topic)
            return
        handler(message.payload)
