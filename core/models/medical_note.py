"""Medical note domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class Specialty(str, Enum):
    GENERAL = "GENERAL"
    PEDIATRICS = "PEDIATRICS"
    CARDIOLOGY = "CARDIOLOGY"
    DERMATOLOGY = "DERMATOLOGY"
    GYNECOLOGY = "GYNECOLOGY"
    ORTHOPEDICS = "ORTHOPEDICS"
    NEUROLOGY = "NEUROLOGY"
    OPHTHALMOLOGY = "OPHTHALMOLOGY"
    OTORHINOLARYNGOLOGY = "OTORHINOLARYNGOLOGY"
    PSYCHIATRY = "PSYCHIATRY"


class NoteType(str, Enum):
    """Kind of encounter the note documents."""

    CONSULTATION = "CONSULTATION"
    FOLLOWUP = "FOLLOWUP"
    EMERGENCY = "EMERGENCY"
    PROCEDURE = "PROCEDURE"


class VitalSigns(BaseModel):
    """Vitals taken during the encounter. Bounds reject typos, not pathology."""

    blood_pressure_systolic: int | None = Field(None, ge=50, le=250)
    blood_pressure_diastolic: int | None = Field(None, ge=30, le=150)
    heart_rate: int | None = Field(None, ge=30, le=200)
    temperature: float | None = Field(None, ge=30, le=45)
    weight: float | None = Field(None, ge=1, le=500)
    height: float | None = Field(None, ge=30, le=300)
    oxygen_saturation: int | None = Field(None, ge=50, le=100)
    respiratory_rate: int | None = Field(None, ge=8, le=40)


class MedicalNoteCreate(BaseModel):
    """Data required to document an encounter."""

    patient_id: UUID
    appointment_id: UUID | None = None
    specialty: Specialty | None = None
    type: NoteType | None = None
    chief_complaint: str = Field(..., min_length=1, max_length=2000)
    current_illness: str | None = Field(None, max_length=10000)
    vital_signs: VitalSigns | None = None
    physical_exam: str | None = Field(None, max_length=10000)
    diagnosis: str = Field(..., min_length=1, max_length=2000)
    prognosis: str | None = Field(None, max_length=2000)
    treatment: str | None = Field(None, max_length=10000)
    notes: str | None = Field(None, max_length=10000)


class MedicalNoteUpdate(BaseModel):
    """Fields that can be revised on a note. Patient and appointment are fixed."""

    specialty: Specialty | None = None
    type: NoteType | None = None
    chief_complaint: str | None = Field(None, min_length=1, max_length=2000)
    current_illness: str | None = Field(None, max_length=10000)
    vital_signs: VitalSigns | None = None
    physical_exam: str | None = Field(None, max_length=10000)
    diagnosis: str | None = Field(None, min_length=1, max_length=2000)
    prognosis: str | None = Field(None, max_length=2000)
    treatment: str | None = Field(None, max_length=10000)
    notes: str | None = Field(None, max_length=10000)


class MedicalNote(BaseModel):
    """Full medical note as stored."""

    id: UUID
    clinic_id: UUID
    patient_id: UUID
    doctor_id: UUID
    appointment_id: UUID | None
    specialty: Specialty | None
    type: NoteType | None
    chief_complaint: str
    current_illness: str | None
    vital_signs: VitalSigns | None
    physical_exam: str | None
    diagnosis: str
    prognosis: str | None
    treatment: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime

    # Joined for display
    patient_name: str | None = None
    doctor_name: str | None = None

    model_config = {"from_attributes": True}


class MedicalNoteFilter(BaseModel):
    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None
