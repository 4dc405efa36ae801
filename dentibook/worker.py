from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable

from pymongo.errors import ConnectionFailure
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from dentibook.admission import AdmissionController
from dentibook.config import Settings
from dentibook.domain import StoreUnavailable
from dentibook.mqtt_bus import MqttBus
from dentibook.store import MongoStore

logger = logging.getLogger(__name__)

DENTIST_REQUEST_TOPIC = "data/dentist/request"
SAVE_BOOKING_TOPIC = "booking/save"


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    # Type and message only; a full traceback per attempt is noise.
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_before_attempt(retry_state: RetryCallState) -> None:
    logger.info("MongoDB ping, attempt %s", retry_state.attempt_number)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    reason = _short_exc(retry_state)
    if sleep_seconds is None:
        logger.warning("MongoDB not reachable (%s)", reason)
        return
    logger.warning("MongoDB not reachable (%s), retrying in %.0f sec.", reason, sleep_seconds)


def connect_store(settings: Settings) -> MongoStore:
    store = MongoStore.from_uri(settings.mongo_uri, settings.mongo_db)

    ping = retry(
        stop=stop_after_attempt(settings.connect_retry_attempts),
        wait=wait_exponential(multiplier=2, min=2, max=30),
        retry=retry_if_exception_type(ConnectionFailure),
        before=_log_before_attempt,
        before_sleep=_log_before_sleep,
        reraise=True,
    )(store.ping)

    try:
        ping()
    except ConnectionFailure as e:
        store.close()
        raise StoreUnavailable(f"Cannot reach MongoDB at {settings.mongo_uri}: {e}") from e

    store.ensure_indexes()
    logger.info("Connected to Mongo database: %s", settings.mongo_db)
    return store


def _run_safely(handler: Callable[..., None], *args: object) -> None:
    # Nothing may escape into the pool or the bus network thread.
    try:
        handler(*args)
    except Exception:
        logger.exception("Unhandled error in %s", getattr(handler, "__name__", handler))


def register_routes(bus: MqttBus, controller: AdmissionController, executor: Executor) -> None:
    """Hand every inbound message to the pool so the network thread never waits on MongoDB."""

    def on_dentist_request(_payload: bytes) -> None:
        executor.submit(_run_safely, controller.handle_dentist_request)

    def on_save_booking(payload: bytes) -> None:
        executor.submit(_run_safely, controller.handle_save, payload)

    bus.route(DENTIST_REQUEST_TOPIC, on_dentist_request)
    bus.route(SAVE_BOOKING_TOPIC, on_save_booking)


def build_bus(settings: Settings) -> MqttBus:
    return MqttBus(
        host=settings.mqtt_host,
        port=settings.mqtt_port,
        client_id=settings.mqtt_client_id,
        qos=settings.mqtt_qos,
        keepalive=settings.mqtt_keepalive,
    )


def run_forever(settings: Settings) -> None:
    store = connect_store(settings)
    bus = build_bus(settings)
    executor = ThreadPoolExecutor(max_workers=settings.worker_threads, thread_name_prefix="admission")

    try:
        controller = AdmissionController(store, bus, qos=settings.mqtt_qos)
        register_routes(bus, controller, executor)
        bus.connect(attempts=settings.connect_retry_attempts)

        logger.info("Worker started. threads=%s qos=%s", settings.worker_threads, settings.mqtt_qos)
        bus.loop_forever()
    finally:
        # Drain accepted requests while the broker connection is still open.
        executor.shutdown(wait=True)
        try:
            bus.stop()
        except Exception:
            logger.warning("Failed to disconnect from broker cleanly", exc_info=True)
        store.close()
        logger.info("Worker stopped")
