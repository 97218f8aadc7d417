"""Prescription domain models."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field


class Medication(BaseModel):
    """One prescribed drug."""

    name: str = Field(..., min_length=1, max_length=255)
    dosage: str = Field(..., min_length=1, max_length=255)
    route: str = Field(..., min_length=1, max_length=100)
    frequency: str | None = Field(None, max_length=255)
    duration: str | None = Field(None, max_length=255)
    instructions: str | None = Field(None, max_length=2000)


class PrescriptionCreate(BaseModel):
    """Data required to issue a prescription from a medical note."""

    patient_id: UUID
    medical_note_id: UUID
    medications: list[Medication] = Field(..., min_length=1)
    instructions: str | None = Field(None, max_length=5000)
    valid_until: date | None = None


class PrescriptionUpdate(BaseModel):
    medications: list[Medication] | None = Field(None, min_length=1)
    instructions: str | None = Field(None, max_length=5000)
    valid_until: date | None = None
    digital_signature: str | None = Field(None, max_length=10000)


class Prescription(BaseModel):
    """Full prescription as stored."""

    id: UUID
    clinic_id: UUID
    patient_id: UUID
    doctor_id: UUID
    medical_note_id: UUID
    issue_date: datetime
    medications: list[Medication]
    instructions: str | None
    valid_until: date | None
    digital_signature: str | None
    created_at: datetime
    updated_at: datetime

    # Joined for display
    patient_name: str | None = None
    doctor_name: str | None = None

    model_config = {"from_attributes": True}


class PrescriptionFilter(BaseModel):
    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    search: str | None = None
