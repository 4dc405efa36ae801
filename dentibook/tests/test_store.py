from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import AutoReconnect, WriteError

from dentibook.domain import Booking, SavingError, StoreUnavailable
from dentibook.store import MongoStore


def _store() -> tuple[MongoStore, MagicMock, MagicMock]:
    clinics, bookings = MagicMock(), MagicMock()
    db = MagicMock()
    db.__getitem__.side_effect = {"dentists": clinics, "bookings": bookings}.__getitem__
    client = MagicMock()
    client.__getitem__.return_value = db
    return MongoStore(client, "dentistimoDB"), clinics, bookings


def _booking() -> Booking:
    return Booking(
        dentistid=1, userid="u", requestid="r", issuance="i", date="2024-05-01", time="9:00-9:50", name="Anna"
    )


def test_find_clinic_by_numeric_id() -> None:
    store, clinics, _ = _store()
    clinics.find_one.return_value = {"_id": ObjectId(), "id": 1, "name": "Your Dentist", "dentists": 3}

    clinic = store.find_clinic(1)

    clinics.find_one.assert_called_once_with({"id": 1})
    assert clinic is not None and clinic.dentists == 3


def test_find_clinic_missing_returns_none() -> None:
    store, clinics, _ = _store()
    clinics.find_one.return_value = None

    assert store.find_clinic(42) is None


def test_count_bookings_filters_on_exact_slot() -> None:
    store, _, bookings = _store()
    bookings.count_documents.return_value = 2

    assert store.count_bookings(1, "2024-05-01", "9:00-9:50") == 2
    bookings.count_documents.assert_called_once_with({"dentistid": 1, "date": "2024-05-01", "time": "9:00-9:50"})


def test_read_errors_become_store_unavailable() -> None:
    store, clinics, bookings = _store()
    clinics.find.side_effect = AutoReconnect("primary stepped down")
    bookings.count_documents.side_effect = AutoReconnect("primary stepped down")

    with pytest.raises(StoreUnavailable):
        store.find_all_clinics()
    with pytest.raises(StoreUnavailable):
        store.count_bookings(1, "2024-05-01", "9:00-9:50")


def test_create_booking_inserts_document() -> None:
    store, _, bookings = _store()

    store.create_booking(_booking())

    bookings.insert_one.assert_called_once_with(
        {
            "dentistid": 1,
            "userid": "u",
            "requestid": "r",
            "issuance": "i",
            "date": "2024-05-01",
            "time": "9:00-9:50",
            "name": "Anna",
        }
    )


def test_write_error_becomes_saving_error() -> None:
    store, _, bookings = _store()
    bookings.insert_one.side_effect = WriteError("validation failed")

    with pytest.raises(SavingError):
        store.create_booking(_booking())


def test_oversized_integer_becomes_saving_error() -> None:
    store, _, bookings = _store()
    bookings.insert_one.side_effect = OverflowError("MongoDB can only handle up to 8-byte ints")

    with pytest.raises(SavingError):
        store.create_booking(_booking())


@pytest.mark.parametrize("dentists", [None, "many", {"n": 2}])
def test_clinic_with_bad_capacity_becomes_store_unavailable(dentists) -> None:
    store, clinics, _ = _store()
    clinics.find_one.return_value = {"id": 1, "name": "Your Dentist", "dentists": dentists}
    clinics.find.return_value = [{"id": 1, "name": "Your Dentist", "dentists": dentists}]

    with pytest.raises(StoreUnavailable):
        store.find_clinic(1)
    with pytest.raises(StoreUnavailable):
        store.find_all_clinics()
