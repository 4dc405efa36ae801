from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Hashable, Iterator, Protocol

from dentibook.availability import BookingStore, has_capacity
from dentibook.domain import (
    UNSUCCESSFUL_MESSAGE,
    Booking,
    BookingError,
    BookingRequest,
    MalformedRequest,
    NoFreeSlots,
    parse_booking_request,
    recover_session_id,
)
from dentibook.time_format import normalize_time

logger = logging.getLogger(__name__)

DENTIST_RESPONSE_TOPIC = "data/dentist/response"
BOOKING_CONFIRMED_TOPIC = "booking/confirmed/"
BOOKING_ERROR_TOPIC = "booking/error/"


class Publisher(Protocol):
    def publish(self, topic: str, payload: str, qos: int) -> None: ...


class SlotLocks:
    """One lock per (clinic, date, time), dropped again when nobody holds or waits for it.

    Serializes check + insert for the same slot. Only valid while this
    process is the single writer of bookings.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)

        try:
            with lock:
                yield
        finally:
            with self._guard:
                _, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def _slot_key(request: BookingRequest) -> tuple[str, str, str]:
    # dentistid may arrive as 1 or "1" from different clients
    return (str(request.dentistid), request.date, request.time)


class AdmissionController:
    def __init__(self, store: BookingStore, bus: Publisher, *, qos: int = 1, locks: SlotLocks | None = None):
        self._store = store
        self._bus = bus
        self._qos = qos
        self._locks = locks if locks is not None else SlotLocks()

    def handle_dentist_request(self) -> None:
        try:
            clinics = self._store.find_all_clinics()
        except BookingError as e:
            logger.error("Dentist list request failed (%s: %s)", type(e).__name__, e)
            return

        payload = json.dumps([c.to_payload() for c in clinics], ensure_ascii=False, default=str)
        self._bus.publish(DENTIST_RESPONSE_TOPIC, payload, self._qos)
        logger.info("Published %d clinics to %s", len(clinics), DENTIST_RESPONSE_TOPIC)

    def handle_save(self, payload: bytes | str) -> None:
        """Run one admission pipeline and publish exactly one answer for its session."""
        try:
            request = parse_booking_request(payload)
        except MalformedRequest as e:
            session_id = recover_session_id(payload)
            if session_id is None:
                logger.warning("Dropping booking request without session id (%s)", e)
                return
            logger.warning("Malformed booking request for session=%s (%s)", session_id, e)
            self._publish_error(session_id, UNSUCCESSFUL_MESSAGE)
            return

        try:
            booking = self._admit(request)
        except BookingError as e:
            logger.info(
                "Booking rejected: session=%s clinic=%s date=%s time=%s (%s: %s)",
                request.sessionid,
                request.dentistid,
                request.date,
                request.time,
                type(e).__name__,
                e,
            )
            self._publish_error(request.sessionid, e.public_message)
            return
        except Exception:
            logger.exception("Admission failed unexpectedly: session=%s", request.sessionid)
            self._publish_error(request.sessionid, UNSUCCESSFUL_MESSAGE)
            return

        self._publish_confirmation(request.sessionid, booking)

    def _admit(self, request: BookingRequest) -> Booking:
        request = replace(request, time=normalize_time(request.time))

        with self._locks.hold(_slot_key(request)):
            if not has_capacity(self._store, request.dentistid, request.date, request.time):
                raise NoFreeSlots(f"All chairs taken for {request.date} {request.time}")

            booking = Booking.from_request(request)
            self._store.create_booking(booking)

        logger.info(
            "Booking saved: session=%s clinic=%s date=%s time=%s",
            request.sessionid,
            booking.dentistid,
            booking.date,
            booking.time,
        )
        return booking

    def _publish_confirmation(self, session_id: str, booking: Booking) -> None:
        topic = BOOKING_CONFIRMED_TOPIC + session_id
        self._bus.publish(topic, json.dumps(booking.confirmation(), ensure_ascii=False, default=str), self._qos)

    def _publish_error(self, session_id: str, message: str) -> None:
        self._bus.publish(BOOKING_ERROR_TOPIC + session_id, json.dumps(message), self._qos)
