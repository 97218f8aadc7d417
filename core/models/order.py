"""Lab and imaging order domain models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    """Lifecycle shared by lab and imaging orders."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ResultFlag(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class StudyType(str, Enum):
    """Imaging study codes."""

    RX = "RX"        # plain radiography
    USG = "USG"      # ultrasound
    TAC = "TAC"      # CT
    RM = "RM"        # MRI
    ECG = "ECG"
    EO = "EO"        # spirometry
    MAM = "MAM"      # mammography
    DENS = "DENS"    # bone densitometry
    OTRO = "OTRO"


# =============================================================================
# LAB ORDERS
# =============================================================================


class LabTest(BaseModel):
    """A test requested on a lab order."""

    name: str = Field(..., min_length=1, max_length=255)
    code: str | None = Field(None, max_length=50)
    price: Decimal | None = Field(None, ge=0)


class LabOrderCreate(BaseModel):
    patient_id: UUID
    doctor_id: UUID | None = None
    medical_note_id: UUID | None = None
    tests: list[LabTest] = Field(..., min_length=1)
    instructions: str | None = Field(None, max_length=5000)


class LabOrderUpdate(BaseModel):
    status: OrderStatus | None = None
    instructions: str | None = Field(None, max_length=5000)
    results_file_url: str | None = Field(None, max_length=2000)
    results_file_name: str | None = Field(None, max_length=255)


class LabResultCreate(BaseModel):
    test_name: str = Field(..., min_length=1, max_length=255)
    result: str | None = Field(None, max_length=1000)
    unit: str | None = Field(None, max_length=50)
    reference_range: str | None = Field(None, max_length=100)
    flag: ResultFlag | None = None


class LabResult(BaseModel):
    id: UUID
    lab_order_id: UUID
    test_name: str
    result: str | None
    unit: str | None
    reference_range: str | None
    flag: ResultFlag | None
    result_date: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class LabOrder(BaseModel):
    """Full lab order as stored, with its results."""

    id: UUID
    clinic_id: UUID
    patient_id: UUID
    doctor_id: UUID
    medical_note_id: UUID | None
    order_date: datetime
    tests: list[LabTest]
    instructions: str | None
    status: OrderStatus
    results_file_url: str | None
    results_file_name: str | None
    created_at: datetime
    updated_at: datetime

    patient_name: str | None = None
    doctor_name: str | None = None
    results: list[LabResult] = Field(default_factory=list)

    model_config = {"from_attributes": True}


# =============================================================================
# IMAGING ORDERS
# =============================================================================


class ImagingOrderCreate(BaseModel):
    patient_id: UUID
    doctor_id: UUID | None = None
    medical_note_id: UUID | None = None
    study_type: StudyType
    body_part: str = Field(..., min_length=1, max_length=255)
    reason: str | None = Field(None, max_length=2000)
    clinical_notes: str | None = Field(None, max_length=5000)


class ImagingOrderUpdate(BaseModel):
    status: OrderStatus | None = None
    report_url: str | None = Field(None, max_length=2000)
    images_url: str | None = Field(None, max_length=2000)
    report_file_name: str | None = Field(None, max_length=255)
    images_file_name: str | None = Field(None, max_length=255)
    findings: str | None = Field(None, max_length=10000)
    impression: str | None = Field(None, max_length=10000)


class ImagingOrder(BaseModel):
    """Full imaging order as stored."""

    id: UUID
    clinic_id: UUID
    patient_id: UUID
    doctor_id: UUID
    medical_note_id: UUID | None
    order_date: datetime
    study_type: StudyType
    body_part: str
    reason: str | None
    clinical_notes: str | None
    status: OrderStatus
    report_url: str | None
    images_url: str | None
    report_file_name: str | None
    images_file_name: str | None
    findings: str | None
    impression: str | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    patient_name: str | None = None
    doctor_name: str | None = None

    model_config = {"from_attributes": True}


class OrderFilter(BaseModel):
    """Filters for listing lab or imaging orders."""

    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    medical_note_id: UUID | None = None
    status: OrderStatus | None = None
    study_type: StudyType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
