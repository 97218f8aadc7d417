"""
Appointment double-booking detection.

Pure functions over time slots and statuses; no I/O. The caller fetches the
doctor's existing bookings and persists the result.

Slots behave as half-open intervals [start, end): back-to-back bookings
(one ends exactly when the next starts) do not conflict.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from utils.timezone import DEFAULT_CLINIC_TIMEZONE, format_local

# Statuses that still occupy the doctor's time. CANCELLED and NO_SHOW are inert.
CONFLICT_CHECKED_STATUSES = frozenset({"SCHEDULED", "CONFIRMED", "IN_PROGRESS", "COMPLETED"})


@dataclass(frozen=True)
class TimeSlot:
    """A bookable interval."""

    start_time: datetime
    end_time: datetime


def is_valid_time_slot(start_time: datetime, end_time: datetime) -> bool:
    """True iff end_time is strictly after start_time."""
    return end_time > start_time


def has_time_conflict(existing: TimeSlot, new_slot: TimeSlot) -> bool:
    """True iff the two slots overlap. Touching endpoints do not count."""
    return existing.start_time < new_slot.end_time and new_slot.start_time < existing.end_time


def should_check_for_conflicts(status: Any) -> bool:
    """Whether a booking in this status blocks other bookings."""
    return getattr(status, "value", status) in CONFLICT_CHECKED_STATUSES


def find_conflict(new_slot: TimeSlot, existing: Iterable[Any]) -> Any | None:
    """
    First existing appointment that blocks new_slot, or None.

    Args:
        new_slot: Proposed slot (already validated with is_valid_time_slot)
        existing: The same doctor's appointments; each needs start_time,
            end_time and status attributes

    Returns:
        The blocking appointment, or None if the slot is free.
    """
    for appointment in existing:
        if not should_check_for_conflicts(appointment.status):
            continue
        if has_time_conflict(TimeSlot(appointment.start_time, appointment.end_time), new_slot):
            return appointment
    return None


def build_conflict_message(
    appointment: Any,
    patient_name: str | None = None,
    tz_name: str = DEFAULT_CLINIC_TIMEZONE,
) -> str:
    """User-facing explanation of why a slot is taken."""
    when = format_local(appointment.start_time, tz_name)
    if patient_name:
        return f"The doctor already has an appointment with {patient_name} at {when}"
    return f"The doctor already has an appointment at {when}"
