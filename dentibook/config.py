from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    # Empty string lets the broker assign a client id.
    mqtt_client_id: str = ""
    mqtt_qos: int = 1
    mqtt_keepalive: int = 60

    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "dentistimoDB"

    # How many admission pipelines may run at the same time.
    worker_threads: int = 4

    # Retry tuning
    # How many times we try to reach the broker / MongoDB on start-up.
    connect_retry_attempts: int = 5


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected integer.") from e


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    mqtt_port = _int_env("MQTT_PORT", 1883)
    if not 0 < mqtt_port < 65536:
        raise RuntimeError("MQTT_PORT must be in 1..65535")

    mqtt_qos = _int_env("MQTT_QOS", 1)
    if mqtt_qos not in (0, 1, 2):
        raise RuntimeError("MQTT_QOS must be 0, 1 or 2")

    mqtt_keepalive = _int_env("MQTT_KEEPALIVE", 60)
    if mqtt_keepalive < 1:
        raise RuntimeError("MQTT_KEEPALIVE must be >= 1")

    worker_threads = _int_env("WORKER_THREADS", 4)
    if worker_threads < 1:
        raise RuntimeError("WORKER_THREADS must be >= 1")

    connect_retry_attempts = _int_env("CONNECT_RETRY_ATTEMPTS", 5)
    if connect_retry_attempts < 1:
        raise RuntimeError("CONNECT_RETRY_ATTEMPTS must be >= 1")

    return Settings(
        mqtt_host=os.getenv("MQTT_HOST", "localhost"),
        mqtt_port=mqtt_port,
        mqtt_client_id=os.getenv("MQTT_CLIENT_ID", ""),
        mqtt_qos=mqtt_qos,
        mqtt_keepalive=mqtt_keepalive,
        mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
        mongo_db=os.getenv("MONGO_DB", "dentistimoDB"),
        worker_threads=worker_threads,
        connect_retry_attempts=connect_retry_attempts,
    )
