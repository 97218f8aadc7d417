"""Invoice and payment domain models.

Amounts are Decimal with two places (NUMERIC(12, 2) in the database) to avoid
binary floating point drift.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class InvoiceStatus(str, Enum):
    """Invoice payment-completion status."""

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    CHECK = "CHECK"


class InvoiceItemCreate(BaseModel):
    """One billable line on a new invoice."""

    service_id: UUID | None = None
    description: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(1, ge=1)
    unit_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    discount: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)


class InvoiceCreate(BaseModel):
    """Data required to issue an invoice."""

    patient_id: UUID
    due_date: datetime | None = None
    notes: str | None = Field(None, max_length=2000)
    items: list[InvoiceItemCreate] = Field(..., min_length=1)


class InvoiceUpdate(BaseModel):
    """Data that can be updated on an invoice. All fields optional."""

    status: InvoiceStatus | None = None
    due_date: datetime | None = None
    notes: str | None = Field(None, max_length=2000)


class InvoiceFilter(BaseModel):
    """Listing filters. Date range applies to issue date."""

    patient_id: UUID | None = None
    status: InvoiceStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class PaymentCreate(BaseModel):
    """A payment received against an invoice."""

    amount: Decimal = Field(..., ge=Decimal("0.01"), max_digits=12, decimal_places=2)
    method: PaymentMethod
    reference: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)


class InvoiceItem(BaseModel):
    """Stored invoice line."""

    id: UUID
    invoice_id: UUID
    service_id: UUID | None
    description: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total: Decimal

    model_config = {"from_attributes": True}


class Payment(BaseModel):
    """Stored payment."""

    id: UUID
    invoice_id: UUID
    amount: Decimal
    method: PaymentMethod
    reference: str | None
    notes: str | None
    payment_date: datetime

    model_config = {"from_attributes": True}


class Invoice(BaseModel):
    """Full invoice entity as stored, with its lines and payments."""

    id: UUID
    clinic_id: UUID
    patient_id: UUID
    issued_by_id: UUID
    invoice_number: str
    status: InvoiceStatus
    issue_date: datetime
    due_date: datetime | None
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    notes: str | None
    created_at: datetime
    updated_at: datetime

    items: list[InvoiceItem] = Field(default_factory=list)
    payments: list[Payment] = Field(default_factory=list)

    # Derived from payments by the service
    total_paid: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")

    model_config = {"from_attributes": True}

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID


class InvoiceSummary(BaseModel):
    """Aggregate over a page of invoices."""

    total_invoices: int
    total_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal
