from __future__ import annotations

import logging
from typing import Any

from bson.errors import BSONError
from pymongo import ASCENDING, MongoClient
from pymongo.errors import PyMongoError

from dentibook.domain import Booking, Clinic, SavingError, StoreUnavailable

logger = logging.getLogger(__name__)

CLINICS_COLLECTION = "dentists"
BOOKINGS_COLLECTION = "bookings"

# Driver errors plus what BSON encoding raises for values it cannot represent
# (e.g. integers wider than 8 bytes).
_DRIVER_ERRORS = (PyMongoError, BSONError, OverflowError, ValueError)

# A clinic document with a non-numeric `dentists` count fails to convert.
_READ_ERRORS = _DRIVER_ERRORS + (TypeError,)


class MongoStore:
    """Clinics and bookings kept in MongoDB.

    Clinics are read-only here. Bookings are only ever inserted and counted.
    """

    def __init__(self, client: MongoClient, db_name: str):
        self._client = client
        self._db = client[db_name]
        self._clinics = self._db[CLINICS_COLLECTION]
        self._bookings = self._db[BOOKINGS_COLLECTION]

    @classmethod
    def from_uri(cls, uri: str, db_name: str, *, server_selection_timeout_ms: int = 5000) -> "MongoStore":
        client = MongoClient(uri, serverSelectionTimeoutMS=server_selection_timeout_ms)
        return cls(client, db_name)

    def ping(self) -> None:
        # MongoClient connects lazily, so this is the first real round trip.
        self._client.admin.command("ping")

    def ensure_indexes(self) -> None:
        self._bookings.create_index(
            [("dentistid", ASCENDING), ("date", ASCENDING), ("time", ASCENDING)],
            name="slot_lookup",
        )

    def close(self) -> None:
        self._client.close()

    def find_all_clinics(self) -> list[Clinic]:
        try:
            return [Clinic.from_document(doc) for doc in self._clinics.find({})]
        except _READ_ERRORS as e:
            raise StoreUnavailable(f"Failed to load clinics: {type(e).__name__}: {e}") from e

    def find_clinic(self, clinic_id: Any) -> Clinic | None:
        """Look a clinic up by its public `id` field, not Mongo's `_id`.

        Clients address clinics by the `id` they got from the dentist broadcast,
        which is also the value stored as `dentistid` on bookings.
        """
        try:
            doc = self._clinics.find_one({"id": clinic_id})
            return Clinic.from_document(doc) if doc is not None else None
        except _READ_ERRORS as e:
            raise StoreUnavailable(f"Failed to load clinic {clinic_id!r}: {type(e).__name__}: {e}") from e

    def count_bookings(self, clinic_id: Any, date: str, time: str) -> int:
        try:
            return self._bookings.count_documents({"dentistid": clinic_id, "date": date, "time": time})
        except _DRIVER_ERRORS as e:
            raise StoreUnavailable(f"Failed to count bookings: {type(e).__name__}: {e}") from e

    def create_booking(self, booking: Booking) -> None:
        try:
            result = self._bookings.insert_one(booking.to_document())
        except _DRIVER_ERRORS as e:
            raise SavingError(f"Failed to save booking: {type(e).__name__}: {e}") from e
        logger.debug("Booking stored: _id=%s", result.inserted_id)
