"""Appointment writes: the chat agent's executor and the booking form builder.

Neither path checks the slot for collisions before writing; two requests
for the same slot both succeed.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from datetime import date as date_cls
from datetime import datetime, timedelta
from typing import Any, Protocol

from clinic_agent.models import AppointmentRecord, BookingOutcome, ResolvedBooking
from clinic_agent.services.metrics import metrics
from clinic_agent.services.supabase_client import SupabaseAPIError

logger = logging.getLogger(__name__)

FORM_SESSION_DURATION = timedelta(hours=1)
RECURRENCE_TYPES = ("none", "weekly", "monthly")


class AppointmentStore(Protocol):
    def create_appointment(self, record: AppointmentRecord) -> dict[str, Any]: ...

    def create_appointments(self, records: list[AppointmentRecord]) -> list[dict[str, Any]]: ...


# ── Chat bookings ───────────────────────────────────────────────────


class BookingExecutor:
    """Turn a resolved chat booking into exactly one appointment row.

    Chat bookings get a zero-length window (``end_time == start_time``); the
    clinic sets the real duration when it reviews the day's list.
    """

    def __init__(self, store: AppointmentStore, utc_offset: str = "") -> None:
        self._store = store
        self._utc_offset = utc_offset

    def build_record(self, booking: ResolvedBooking) -> AppointmentRecord:
        starts_at = f"{booking.date}T{booking.time}:00{self._utc_offset}"
        return AppointmentRecord(
            patient_name=booking.patient_name,
            patient_phone=booking.phone,
            service_id=booking.service_id,
            start_time=starts_at,
            end_time=starts_at,
            status="confirmed",
            notes=f"Booked via AI chat ({booking.provenance})",
        )

    def execute(self, booking: ResolvedBooking) -> BookingOutcome:
        record = self.build_record(booking)
        try:
            self._store.create_appointment(record)
        except SupabaseAPIError as exc:
            logger.error("Chat booking for %s failed: %s", booking.patient_name, exc)
            metrics.record_booking(success=False)
            return BookingOutcome(success=False, record=record, error=str(exc))

        logger.info(
            "Chat booking created: %s on %s at %s (service_id=%s)",
            booking.patient_name, booking.date, booking.time, booking.service_id,
        )
        metrics.record_booking(success=True)
        return BookingOutcome(success=True, record=record)


# ── Booking form ────────────────────────────────────────────────────


def _add_months(value: datetime, months: int) -> datetime:
    """Same day-of-month *months* later, clamped to the month's last day."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def build_form_appointments(
    *,
    service_id: str,
    date: str,
    time: str,
    name: str,
    phone: str,
    email: str | None = None,
    recurrence: str = "none",
    sessions: int = 1,
    utc_offset: str = "",
) -> list[AppointmentRecord]:
    """Build the one-hour appointments requested through the booking form.

    A series of more than one session shares a ``recurring_group_id`` and is
    spaced weekly or monthly; with ``recurrence="none"`` every session lands
    on the same slot.

    Raises ``ValueError`` for an unparseable date/time, an unknown recurrence
    or a non-positive session count.
    """
    if recurrence not in RECURRENCE_TYPES:
        raise ValueError(f"Unknown recurrence {recurrence!r}")
    if sessions < 1:
        raise ValueError("sessions must be at least 1")

    start = datetime.combine(
        date_cls.fromisoformat(date),
        datetime.strptime(time, "%H:%M").time(),
    )
    if utc_offset:
        start = start.replace(tzinfo=datetime.strptime(utc_offset, "%z").tzinfo)
    group_id = str(uuid.uuid4()) if sessions > 1 else None

    records: list[AppointmentRecord] = []
    for i in range(sessions):
        if recurrence == "weekly":
            current = start + timedelta(weeks=i)
        elif recurrence == "monthly":
            current = _add_months(start, i)
        else:
            current = start

        records.append(
            AppointmentRecord(
                patient_name=name,
                patient_phone=phone,
                patient_email=email,
                service_id=service_id,
                start_time=current.isoformat(),
                end_time=(current + FORM_SESSION_DURATION).isoformat(),
                status="confirmed",
                recurring_group_id=group_id,
                notes=(
                    f"Session {i + 1} of {sessions} ({recurrence})"
                    if sessions > 1
                    else "Web Booking"
                ),
            )
        )
    return records
