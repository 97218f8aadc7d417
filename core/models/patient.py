"""Patient domain models."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, EmailStr, field_validator

CURP_PATTERN = r"^[A-Z]{4}\d{6}[A-Z]{6}[A-Z0-9]{2}$"


class Gender(str, Enum):
    """Patient gender as recorded at registration."""

    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class BloodType(str, Enum):
    """ABO/Rh blood type."""

    A_POSITIVE = "A_POSITIVE"
    A_NEGATIVE = "A_NEGATIVE"
    B_POSITIVE = "B_POSITIVE"
    B_NEGATIVE = "B_NEGATIVE"
    AB_POSITIVE = "AB_POSITIVE"
    AB_NEGATIVE = "AB_NEGATIVE"
    O_POSITIVE = "O_POSITIVE"
    O_NEGATIVE = "O_NEGATIVE"


class PatientCreate(BaseModel):
    """Data required to register a patient."""

    first_name: str = Field(..., min_length=2, max_length=255)
    last_name: str = Field(..., min_length=2, max_length=255)
    middle_name: str | None = Field(None, max_length=255)
    curp: str | None = Field(None, pattern=CURP_PATTERN)
    birth_date: date
    gender: Gender
    blood_type: BloodType | None = None
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    mobile: str | None = Field(None, max_length=50)
    address: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)
    notes: str | None = Field(None, max_length=10000)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        """Forms submit an empty string when no email is given."""
        if value == "":
            return None
        return value


class PatientUpdate(BaseModel):
    """Data that can be updated on a patient. All fields optional."""

    first_name: str | None = Field(None, min_length=2, max_length=255)
    last_name: str | None = Field(None, min_length=2, max_length=255)
    middle_name: str | None = Field(None, max_length=255)
    curp: str | None = Field(None, pattern=CURP_PATTERN)
    birth_date: date | None = None
    gender: Gender | None = None
    blood_type: BloodType | None = None
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    mobile: str | None = Field(None, max_length=50)
    address: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)
    notes: str | None = Field(None, max_length=10000)


class Patient(BaseModel):
    """Full patient entity as stored."""

    id: UUID
    clinic_id: UUID
    first_name: str
    last_name: str
    middle_name: str | None
    curp: str | None
    birth_date: date
    gender: Gender
    blood_type: BloodType | None
    email: str | None
    phone: str | None
    mobile: str | None
    address: str | None
    city: str | None
    state: str | None
    zip_code: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def full_name(self) -> str:
        """First, middle and last name for display."""
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
