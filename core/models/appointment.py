"""Appointment domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from core.conflict_validator import TimeSlot, is_valid_time_slot


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status."""

    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


# Calendar colors per status
STATUS_COLORS: dict[AppointmentStatus, str] = {
    AppointmentStatus.SCHEDULED: "#3b82f6",
    AppointmentStatus.CONFIRMED: "#10b981",
    AppointmentStatus.IN_PROGRESS: "#f59e0b",
    AppointmentStatus.COMPLETED: "#6b7280",
    AppointmentStatus.CANCELLED: "#ef4444",
    AppointmentStatus.NO_SHOW: "#dc2626",
}


class AppointmentCreate(BaseModel):
    """Data required to book an appointment."""

    patient_id: UUID
    doctor_id: UUID
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    reason: str | None = Field(None, max_length=1000)
    notes: str | None = Field(None, max_length=10000)

    @model_validator(mode="after")
    def require_valid_slot(self) -> "AppointmentCreate":
        if not is_valid_time_slot(self.start_time, self.end_time):
            raise ValueError("end_time must be after start_time")
        return self


class AppointmentUpdate(BaseModel):
    """Data that can be updated on an appointment. All fields optional."""

    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: AppointmentStatus | None = None
    reason: str | None = Field(None, max_length=1000)
    notes: str | None = Field(None, max_length=10000)

    @property
    def reschedules(self) -> bool:
        """Whether this update moves the booking in time or to another doctor."""
        return any(v is not None for v in (self.doctor_id, self.start_time, self.end_time))


class AppointmentFilter(BaseModel):
    """Listing filters. Date range applies to start_time."""

    doctor_id: UUID | None = None
    patient_id: UUID | None = None
    status: AppointmentStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class Appointment(BaseModel):
    """Full appointment entity as stored."""

    id: UUID
    clinic_id: UUID
    patient_id: UUID
    doctor_id: UUID
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    reason: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime

    # Populated when the query joins patients/users
    patient_name: str | None = None
    doctor_name: str | None = None

    model_config = {"from_attributes": True}

    @property
    def slot(self) -> TimeSlot:
        return TimeSlot(self.start_time, self.end_time)


class CalendarEvent(BaseModel):
    """Appointment rendered for the calendar view."""

    id: str
    title: str
    start: datetime
    end: datetime
    background_color: str
    border_color: str
    resource: dict
