"""Core domain models."""

from core.models.patient import Patient, PatientCreate, PatientUpdate, Gender, BloodType
from core.models.appointment import (
    Appointment, AppointmentCreate, AppointmentUpdate, AppointmentFilter,
    AppointmentStatus, CalendarEvent, STATUS_COLORS,
)
from core.models.invoice import (
    Invoice, InvoiceCreate, InvoiceUpdate, InvoiceFilter, InvoiceStatus, InvoiceSummary,
    InvoiceItem, InvoiceItemCreate, Payment, PaymentCreate, PaymentMethod,
)
from core.models.medical_note import (
    MedicalNote, MedicalNoteCreate, MedicalNoteUpdate, MedicalNoteFilter,
    NoteType, Specialty, VitalSigns,
)
from core.models.prescription import (
    Prescription, PrescriptionCreate, PrescriptionUpdate, PrescriptionFilter, Medication,
)
from core.models.order import (
    OrderStatus, OrderFilter, ResultFlag, StudyType,
    LabOrder, LabOrderCreate, LabOrderUpdate, LabTest, LabResult, LabResultCreate,
    ImagingOrder, ImagingOrderCreate, ImagingOrderUpdate,
)

__all__ = [
    # Patient
    "Patient", "PatientCreate", "PatientUpdate", "Gender", "BloodType",
    # Appointment
    "Appointment", "AppointmentCreate", "AppointmentUpdate", "AppointmentFilter",
    "AppointmentStatus", "CalendarEvent", "STATUS_COLORS",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceUpdate", "InvoiceFilter", "InvoiceStatus", "InvoiceSummary",
    "InvoiceItem", "InvoiceItemCreate", "Payment", "PaymentCreate", "PaymentMethod",
    # Medical note
    "MedicalNote", "MedicalNoteCreate", "MedicalNoteUpdate", "MedicalNoteFilter",
    "NoteType", "Specialty", "VitalSigns",
    # Prescription
    "Prescription", "PrescriptionCreate", "PrescriptionUpdate", "PrescriptionFilter", "Medication",
    # Orders
    "OrderStatus", "OrderFilter", "ResultFlag", "StudyType",
    "LabOrder", "LabOrderCreate", "LabOrderUpdate", "LabTest", "LabResult", "LabResultCreate",
    "ImagingOrder", "ImagingOrderCreate", "ImagingOrderUpdate",
]
