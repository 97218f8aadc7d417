"""GET /api/data — unified read endpoint."""

from datetime import date, timedelta
from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from api.config import AppConfig
from core.audit import AuditAction
from core.models import (
    AppointmentFilter, AppointmentStatus, InvoiceFilter, InvoiceStatus,
    MedicalNoteFilter, OrderFilter, OrderStatus, PrescriptionFilter, StudyType,
)
from utils.timezone import local_day_bounds, parse_iso


VALID_TYPES = {
    "patients", "appointments", "calendar", "invoices", "audit",
    "medical_notes", "prescriptions", "lab_orders", "imaging_orders",
}


def _uuid(value: str | None, name: str) -> UUID | None:
    if value is None:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise ValueError(f"'{name}' must be a UUID")


def create_data_router(services: dict, config: AppConfig | None = None) -> APIRouter:
    router = APIRouter()
    config = config or AppConfig()

    patient_svc = services["patient"]
    appointment_svc = services["appointment"]
    invoice_svc = services["invoice"]
    note_svc = services["medical_note"]
    prescription_svc = services["prescription"]
    lab_svc = services["lab_order"]
    imaging_svc = services["imaging_order"]
    audit = services["audit"]

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        search: str | None = Query(None),
        patient_id: str | None = Query(None),
        doctor_id: str | None = Query(None),
        medical_note_id: str | None = Query(None),
        study_type: str | None = Query(None),
        status: str | None = Query(None),
        start: str | None = Query(None),
        end: str | None = Query(None),
        day: date | None = Query(None),
        entity_type: str | None = Query(None),
        action: str | None = Query(None),
        limit: int | None = Query(None, ge=1),
        offset: int = Query(0, ge=0),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        limit = min(limit or config.default_page_size, config.max_page_size)
        start_dt = parse_iso(start) if start else None
        end_dt = parse_iso(end) if end else None

        if type == "patients":
            return _handle_patients(patient_svc, id, search, limit, offset)

        if type == "appointments":
            filters = AppointmentFilter(
                doctor_id=_uuid(doctor_id, "doctor_id"),
                patient_id=_uuid(patient_id, "patient_id"),
                status=AppointmentStatus(status) if status else None,
                start_date=start_dt,
                end_date=end_dt,
            )
            return _handle_appointments(appointment_svc, id, filters, limit, offset)

        if type == "calendar":
            return _handle_calendar(appointment_svc, config, day, start_dt, end_dt, _uuid(doctor_id, "doctor_id"))

        if type == "invoices":
            filters = InvoiceFilter(
                patient_id=_uuid(patient_id, "patient_id"),
                status=InvoiceStatus(status) if status else None,
                start_date=start_dt,
                end_date=end_dt,
            )
            return _handle_invoices(invoice_svc, id, filters, limit, offset)

        if type == "medical_notes":
            filters = MedicalNoteFilter(
                patient_id=_uuid(patient_id, "patient_id"),
                doctor_id=_uuid(doctor_id, "doctor_id"),
                start_date=start_dt,
                end_date=end_dt,
                search=search,
            )
            return _handle_records(note_svc, id, filters, limit, offset)

        if type == "prescriptions":
            filters = PrescriptionFilter(
                patient_id=_uuid(patient_id, "patient_id"),
                doctor_id=_uuid(doctor_id, "doctor_id"),
                search=search,
            )
            return _handle_records(prescription_svc, id, filters, limit, offset)

        if type in ("lab_orders", "imaging_orders"):
            if study_type and type == "lab_orders":
                raise ValueError("'study_type' applies to imaging_orders only")
            filters = OrderFilter(
                patient_id=_uuid(patient_id, "patient_id"),
                doctor_id=_uuid(doctor_id, "doctor_id"),
                medical_note_id=_uuid(medical_note_id, "medical_note_id"),
                status=OrderStatus(status) if status else None,
                study_type=StudyType(study_type) if study_type else None,
                start_date=start_dt,
                end_date=end_dt,
            )
            svc = lab_svc if type == "lab_orders" else imaging_svc
            return _handle_records(svc, id, filters, limit, offset)

        if type == "audit":
            return _handle_audit(audit, id, entity_type, action, start_dt, end_dt, limit, offset)

    return router


def _handle_patients(patient_svc, id, search, limit, offset):
    if id:
        patient = patient_svc.view(_uuid(id, "id"))
        return success_response(patient.model_dump(mode="json")).model_dump(mode="json")

    patients, total = patient_svc.search(search, limit, offset)
    return success_response(
        [p.model_dump(mode="json") for p in patients], total=total
    ).model_dump(mode="json")


def _handle_appointments(appointment_svc, id, filters, limit, offset):
    if id:
        appointment = appointment_svc.get_by_id(_uuid(id, "id"))
        if appointment is None:
            raise ValueError(f"Appointment {id} not found")
        return success_response(appointment.model_dump(mode="json")).model_dump(mode="json")

    appointments, total = appointment_svc.list_filtered(filters, limit, offset)
    return success_response(
        [a.model_dump(mode="json") for a in appointments], total=total
    ).model_dump(mode="json")


def _handle_calendar(appointment_svc, config, day, start_dt, end_dt, doctor_id):
    if day is not None:
        start_dt, end_dt = local_day_bounds(day, config.clinic_timezone)
    elif start_dt is None or end_dt is None:
        raise ValueError("'calendar' type requires 'day' or both 'start' and 'end'")

    if end_dt <= start_dt:
        raise ValueError("'end' must be after 'start'")
    if end_dt - start_dt > timedelta(days=config.max_calendar_days):
        raise ValueError(f"Calendar window may not exceed {config.max_calendar_days} days")

    events = appointment_svc.calendar_events(start_dt, end_dt, doctor_id)
    return success_response(
        [e.model_dump(mode="json") for e in events]
    ).model_dump(mode="json")


def _handle_invoices(invoice_svc, id, filters, limit, offset):
    if id:
        invoice = invoice_svc.view(_uuid(id, "id"))
        return success_response(invoice.model_dump(mode="json")).model_dump(mode="json")

    invoices, total, summary = invoice_svc.list_filtered(filters, limit, offset)
    return success_response(
        {
            "invoices": [i.model_dump(mode="json") for i in invoices],
            "summary": summary.model_dump(mode="json"),
        },
        total=total,
    ).model_dump(mode="json")


def _handle_records(svc, id, filters, limit, offset):
    """Audited single read by id, or a filtered page with its total."""
    if id:
        record = svc.view(_uuid(id, "id"))
        return success_response(record.model_dump(mode="json")).model_dump(mode="json")

    records, total = svc.list_filtered(filters, limit, offset)
    return success_response(
        [r.model_dump(mode="json") for r in records], total=total
    ).model_dump(mode="json")


def _handle_audit(audit, id, entity_type, action, start_dt, end_dt, limit, offset):
    if id and not entity_type:
        raise ValueError("'audit' lookups by id require 'entity_type'")

    entries, total = audit.search(
        action=AuditAction(action) if action else None,
        entity_type=entity_type,
        entity_id=_uuid(id, "id"),
        start=start_dt,
        end=end_dt,
        limit=limit,
        offset=offset,
    )
    return success_response(entries, total=total).model_dump(mode="json")
