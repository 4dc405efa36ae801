from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any

UNSUCCESSFUL_MESSAGE = "Booking was unsuccessful"
NO_FREE_SLOTS_MESSAGE = "No free slots available"


class BookingError(RuntimeError):
    """Base for everything that ends an admission pipeline with a rejection."""

    public_message = UNSUCCESSFUL_MESSAGE


class MalformedRequest(BookingError):
    pass


class InvalidTimeFormat(BookingError):
    pass


class ClinicNotFound(BookingError):
    pass


class NoFreeSlots(BookingError):
    public_message = NO_FREE_SLOTS_MESSAGE


class SavingError(BookingError):
    pass


class StoreUnavailable(BookingError):
    pass


class BusUnavailable(BookingError):
    pass


@dataclass(frozen=True)
class Clinic:
    """A dental office. `dentists` is the number of chairs per time slot."""

    id: Any
    name: str
    dentists: int
    owner: str | None = None
    address: str | None = None
    city: str | None = None
    coordinate: dict | None = None
    opening_hours: dict | None = None

    @classmethod
    def from_document(cls, doc: dict) -> "Clinic":
        return cls(
            id=doc.get("id"),
            name=str(doc.get("name", "")),
            dentists=int(doc.get("dentists", 0)),
            owner=doc.get("owner"),
            address=doc.get("address"),
            city=doc.get("city"),
            coordinate=doc.get("coordinate"),
            opening_hours=doc.get("openinghours"),
        )

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "owner": self.owner,
            "dentists": self.dentists,
            "address": self.address,
            "city": self.city,
            "coordinate": self.coordinate,
            "openinghours": self.opening_hours,
        }


@dataclass(frozen=True)
class BookingRequest:
    dentistid: Any
    userid: Any
    requestid: Any
    issuance: Any
    date: str
    time: str
    sessionid: str
    name: str | None = None


@dataclass(frozen=True)
class Booking:
    dentistid: Any
    userid: Any
    requestid: Any
    issuance: Any
    date: str
    time: str
    name: str | None = None

    @classmethod
    def from_request(cls, request: BookingRequest) -> "Booking":
        return cls(
            dentistid=request.dentistid,
            userid=request.userid,
            requestid=request.requestid,
            issuance=request.issuance,
            date=request.date,
            time=request.time,
            name=request.name,
        )

    def to_document(self) -> dict:
        return asdict(self)

    def confirmation(self) -> dict:
        return {
            "userid": self.userid,
            "requestid": self.requestid,
            "date": self.date,
            "time": self.time,
            "name": self.name,
        }


_REQUIRED_FIELDS = ("dentistid", "userid", "requestid", "issuance", "date", "time", "sessionid")

# Characters that would change the meaning of the reply topic.
_TOPIC_UNSAFE = frozenset("/+#\x00")


def _decode_object(payload: bytes | str) -> dict:
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRequest("Payload is not valid UTF-8") from e

    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as e:
        raise MalformedRequest(f"Payload is not valid JSON: {e.msg}") from e

    if not isinstance(raw, dict):
        raise MalformedRequest(f"Expected a JSON object, got {type(raw).__name__}")
    return raw


def _session_id(value: Any) -> str | None:
    """Session ids end up as the last topic level, so only plain strings/ints qualify."""
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return None
    session_id = str(value)
    if not session_id or _TOPIC_UNSAFE.intersection(session_id):
        return None
    return session_id


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def recover_session_id(payload: bytes | str) -> str | None:
    """Best-effort extraction of `sessionid` from a payload that failed to decode."""
    try:
        raw = _decode_object(payload)
    except MalformedRequest:
        return None
    return _session_id(raw.get("sessionid"))


def parse_booking_request(payload: bytes | str) -> BookingRequest:
    raw = _decode_object(payload)

    missing = [f for f in _REQUIRED_FIELDS if raw.get(f) in (None, "")]
    if missing:
        raise MalformedRequest(f"Missing fields: {', '.join(missing)}")

    if not isinstance(raw["time"], str) or not isinstance(raw["date"], str):
        raise MalformedRequest("Fields 'date' and 'time' must be strings")

    # The ids go into store filters as they are; objects would turn into query operators.
    dentist_id = raw["dentistid"]
    if isinstance(dentist_id, bool) or not isinstance(dentist_id, (str, int)):
        raise MalformedRequest("Field 'dentistid' must be a string or an integer")

    for field in ("userid", "requestid", "issuance"):
        if not _is_scalar(raw[field]):
            raise MalformedRequest(f"Field '{field}' must be a scalar value")

    session_id = _session_id(raw["sessionid"])
    if session_id is None:
        raise MalformedRequest("Field 'sessionid' is not a usable topic level")

    name = raw.get("name")
    if name is not None and not _is_scalar(name):
        raise MalformedRequest("Field 'name' must be a scalar value")

    return BookingRequest(
        dentistid=dentist_id,
        userid=raw["userid"],
        requestid=raw["requestid"],
        issuance=raw["issuance"],
        date=raw["date"],
        time=raw["time"],
        sessionid=session_id,
        name=str(name) if name is not None else None,
    )
