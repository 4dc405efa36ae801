from __future__ import annotations

import threading
import time
from typing import Any

import pytest

from dentibook.domain import Booking, Clinic, SavingError


class FakeStore:
    """In-memory stand-in for MongoStore, so tests never touch a real database."""

    def __init__(self) -> None:
        self.clinics: dict[Any, Clinic] = {}
        self.bookings: list[Booking] = []
        self.fail_on_create = False
        # Widens the window between the capacity read and the insert.
        self.count_delay_seconds = 0.0
        self._mutex = threading.Lock()

    def add_clinic(self, clinic_id: Any, dentists: int, name: str = "Clinic") -> Clinic:
        clinic = Clinic(id=clinic_id, name=name, dentists=dentists)
        self.clinics[clinic_id] = clinic
        return clinic

    def find_all_clinics(self) -> list[Clinic]:
        return list(self.clinics.values())

    def find_clinic(self, clinic_id: Any) -> Clinic | None:
        return self.clinics.get(clinic_id)

    def count_bookings(self, clinic_id: Any, date: str, time_: str) -> int:
        with self._mutex:
            count = sum(
                1 for b in self.bookings if b.dentistid == clinic_id and b.date == date and b.time == time_
            )
        if self.count_delay_seconds:
            time.sleep(self.count_delay_seconds)
        return count

    def create_booking(self, booking: Booking) -> None:
        if self.fail_on_create:
            raise SavingError("write concern failed")
        with self._mutex:
            self.bookings.append(booking)


class FakeBus:
    def __init__(self) -> None:
        self.published: list[tuple[str, str, int]] = []
        self._mutex = threading.Lock()

    def publish(self, topic: str, payload: str, qos: int) -> None:
        with self._mutex:
            self.published.append((topic, payload, qos))

    def topics(self) -> list[str]:
        return [topic for topic, _, _ in self.published]


@pytest.fixture
def store() -> FakeStore:
    s = FakeStore()
    s.add_clinic("C1", dentists=2, name="Your Dentist")
    return s


@pytest.fixture
def bus() -> FakeBus:
    return FakeBus()
