"""POST /api/actions — unified mutation endpoint."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from auth.permissions import ADMIN_ONLY, BILLING, CLINICAL, FRONT_DESK, require_role
from core.models import (
    PatientCreate, PatientUpdate,
    AppointmentCreate, AppointmentUpdate, AppointmentStatus,
    InvoiceCreate, InvoiceUpdate,
    PaymentCreate,
    MedicalNoteCreate, MedicalNoteUpdate,
    PrescriptionCreate, PrescriptionUpdate,
    LabOrderCreate, LabOrderUpdate, LabResultCreate,
    ImagingOrderCreate, ImagingOrderUpdate,
)


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "patient": PatientHandler(services["patient"]),
        "appointment": AppointmentHandler(services["appointment"]),
        "invoice": InvoiceHandler(services["invoice"]),
        "medical_note": MedicalNoteHandler(services["medical_note"]),
        "prescription": PrescriptionHandler(services["prescription"]),
        "lab_order": LabOrderHandler(services["lab_order"]),
        "imaging_order": ImagingOrderHandler(services["imaging_order"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        require_role(handler.ROLES.get(body.action, handler.DEFAULT_ROLES), f"{body.domain}.{body.action}")

        method = getattr(handler, f"_handle_{body.action}")
        result = method(dict(body.data))
        return success_response(result).model_dump(mode="json")

    return router


def _id(data: dict, key: str = "id") -> UUID:
    """Pull a required UUID out of an action payload."""
    value = data.pop(key, None)
    if value is None:
        raise ValueError(f"'{key}' is required")
    try:
        return UUID(str(value))
    except ValueError:
        raise ValueError(f"'{key}' must be a UUID")


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class PatientHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete", "restore"}
    DEFAULT_ROLES = FRONT_DESK
    ROLES = {"delete": ADMIN_ONLY, "restore": ADMIN_ONLY}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        patient = self.service.create(PatientCreate(**data))
        return patient.model_dump(mode="json")

    def _handle_update(self, data: dict):
        patient_id = _id(data)
        patient = self.service.update(patient_id, PatientUpdate(**data))
        return patient.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        patient_id = _id(data)
        deleted = self.service.delete(patient_id)
        if not deleted:
            raise ValueError(f"Patient {patient_id} not found")
        return {"deleted": True}

    def _handle_restore(self, data: dict):
        patient = self.service.restore(_id(data))
        return patient.model_dump(mode="json")


class AppointmentHandler:
    ALLOWED_ACTIONS = {"create", "update", "update_status", "cancel"}
    DEFAULT_ROLES = FRONT_DESK
    ROLES: dict = {}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        appointment = self.service.create(AppointmentCreate(**data))
        return appointment.model_dump(mode="json")

    def _handle_update(self, data: dict):
        appointment_id = _id(data)
        appointment = self.service.update(appointment_id, AppointmentUpdate(**data))
        return appointment.model_dump(mode="json")

    def _handle_update_status(self, data: dict):
        appointment_id = _id(data)
        if "status" not in data:
            raise ValueError("'status' is required")
        appointment = self.service.update_status(appointment_id, AppointmentStatus(data["status"]))
        return appointment.model_dump(mode="json")

    def _handle_cancel(self, data: dict):
        appointment = self.service.cancel(_id(data))
        return appointment.model_dump(mode="json")


class InvoiceHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete", "add_payment"}
    DEFAULT_ROLES = BILLING
    ROLES = {"delete": ADMIN_ONLY}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        invoice = self.service.create(InvoiceCreate(**data))
        return invoice.model_dump(mode="json")

    def _handle_update(self, data: dict):
        invoice_id = _id(data)
        invoice = self.service.update(invoice_id, InvoiceUpdate(**data))
        return invoice.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        invoice_id = _id(data)
        deleted = self.service.delete(invoice_id)
        if not deleted:
            raise ValueError(f"Invoice {invoice_id} not found")
        return {"deleted": True}

    def _handle_add_payment(self, data: dict):
        invoice_id = _id(data, "invoice_id")
        payment = self.service.add_payment(invoice_id, PaymentCreate(**data))
        return payment.model_dump(mode="json")


class MedicalNoteHandler:
    ALLOWED_ACTIONS = {"create", "update"}
    DEFAULT_ROLES = CLINICAL
    ROLES: dict = {}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        note = self.service.create(MedicalNoteCreate(**data))
        return note.model_dump(mode="json")

    def _handle_update(self, data: dict):
        note_id = _id(data)
        note = self.service.update(note_id, MedicalNoteUpdate(**data))
        return note.model_dump(mode="json")


class PrescriptionHandler:
    ALLOWED_ACTIONS = {"create", "update"}
    DEFAULT_ROLES = CLINICAL
    ROLES: dict = {}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        prescription = self.service.create(PrescriptionCreate(**data))
        return prescription.model_dump(mode="json")

    def _handle_update(self, data: dict):
        prescription_id = _id(data)
        prescription = self.service.update(prescription_id, PrescriptionUpdate(**data))
        return prescription.model_dump(mode="json")


class LabOrderHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete", "add_results"}
    DEFAULT_ROLES = CLINICAL
    ROLES: dict = {}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        order = self.service.create(LabOrderCreate(**data))
        return order.model_dump(mode="json")

    def _handle_update(self, data: dict):
        order_id = _id(data)
        order = self.service.update(order_id, LabOrderUpdate(**data))
        return order.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        order_id = _id(data)
        deleted = self.service.delete(order_id)
        if not deleted:
            raise ValueError(f"Lab order {order_id} not found")
        return {"deleted": True}

    def _handle_add_results(self, data: dict):
        order_id = _id(data)
        results = [LabResultCreate(**r) for r in data.get("results") or []]
        created = self.service.add_results(order_id, results)
        return [r.model_dump(mode="json") for r in created]


class ImagingOrderHandler:
    ALLOWED_ACTIONS = {"create", "update", "delete"}
    DEFAULT_ROLES = CLINICAL
    ROLES: dict = {}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict):
        order = self.service.create(ImagingOrderCreate(**data))
        return order.model_dump(mode="json")

    def _handle_update(self, data: dict):
        order_id = _id(data)
        order = self.service.update(order_id, ImagingOrderUpdate(**data))
        return order.model_dump(mode="json")

    def _handle_delete(self, data: dict):
        order_id = _id(data)
        deleted = self.service.delete(order_id)
        if not deleted:
            raise ValueError(f"Imaging order {order_id} not found")
        return {"deleted": True}
