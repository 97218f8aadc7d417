"""Pydantic models for the request's authenticated identity."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Staff role within a clinic."""

    ADMIN = "ADMIN"
    DOCTOR = "DOCTOR"
    NURSE = "NURSE"
    RECEPTIONIST = "RECEPTIONIST"


class Session(BaseModel):
    """A signed-in staff member's session, as issued by the auth provider."""

    token: str = Field(..., description="Session token (opaque string)")
    user_id: UUID
    clinic_id: UUID
    role: Role
    expires_at: datetime
