from __future__ import annotations

import logging
from typing import Any, Protocol

from dentibook.domain import Booking, Clinic, ClinicNotFound

logger = logging.getLogger(__name__)


class BookingStore(Protocol):
    def find_all_clinics(self) -> list[Clinic]: ...

    def find_clinic(self, clinic_id: Any) -> Clinic | None: ...

    def count_bookings(self, clinic_id: Any, date: str, time: str) -> int: ...

    def create_booking(self, booking: Booking) -> None: ...


def has_capacity(store: BookingStore, clinic_id: Any, date: str, normalized_time: str) -> bool:
    """True while the clinic still has a free chair for exactly this date and time.

    Intervals are compared as plain strings, there is no overlap detection.
    """
    clinic = store.find_clinic(clinic_id)
    if clinic is None:
        raise ClinicNotFound(f"Unknown clinic id: {clinic_id!r}")

    booked = store.count_bookings(clinic_id, date, normalized_time)
    logger.debug(
        "Capacity for clinic=%s date=%s time=%s: booked=%d total=%d",
        clinic_id,
        date,
        normalized_time,
        booked,
        clinic.dentists,
    )
    return booked < clinic.dentists
