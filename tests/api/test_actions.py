"""Tests for POST /api/actions."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from auth.types import Role
from core.exceptions import (
    DuplicateCurpError, InvoiceNotDeletableError, PaymentNotAllowedError, PrescriptionExistsError,
    SchedulingConflictError,
)
from core.models import Appointment, AppointmentStatus, LabResult, MedicalNote, Patient, Payment

NOW = datetime(2024, 3, 5, 16, 0, tzinfo=timezone.utc)
CLINIC_ID = uuid4()


def make_patient():
    return Patient(
        id=uuid4(), clinic_id=CLINIC_ID, first_name="Ana", last_name="López", middle_name=None,
        curp=None, birth_date=date(1985, 1, 1), gender="FEMALE", blood_type=None, email=None,
        phone=None, mobile=None, address=None, city=None, state=None, zip_code=None, notes=None,
        created_at=NOW, updated_at=NOW,
    )


def make_appointment(status="SCHEDULED"):
    return Appointment(
        id=uuid4(), clinic_id=CLINIC_ID, patient_id=uuid4(), doctor_id=uuid4(),
        start_time=NOW, end_time=NOW + timedelta(minutes=30), status=status,
        reason=None, notes=None, created_at=NOW, updated_at=NOW,
    )


def make_note():
    return MedicalNote(
        id=uuid4(), clinic_id=CLINIC_ID, patient_id=uuid4(), doctor_id=uuid4(), appointment_id=None,
        specialty=None, type="CONSULTATION", chief_complaint="Cefalea", current_illness=None,
        vital_signs=None, physical_exam=None, diagnosis="Migraña", prognosis=None, treatment=None,
        notes=None, created_at=NOW, updated_at=NOW,
    )


def booking():
    return {
        "patient_id": str(uuid4()),
        "doctor_id": str(uuid4()),
        "start_time": "2024-03-05T16:00:00Z",
        "end_time": "2024-03-05T16:30:00Z",
    }


def act(client, domain, action, data):
    return client.post("/api/actions", json={"domain": domain, "action": action, "data": data})


class TestDispatch:
    """Routing of domain/action pairs."""

    def test_requires_auth(self, unauthed_client):
        response = act(unauthed_client, "patient", "create", {})

        assert response.status_code == 401

    def test_unknown_domain(self, client):
        response = act(client, "customer", "create", {})

        assert response.status_code == 400
        assert "Valid domains" in response.json()["error"]["message"]

    def test_action_not_allowed(self, client):
        response = act(client, "appointment", "delete", {"id": str(uuid4())})

        assert response.status_code == 400
        assert "not allowed" in response.json()["error"]["message"]

    def test_missing_id(self, client):
        response = act(client, "patient", "update", {"phone": "555"})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "'id' is required"

    def test_malformed_body(self, client):
        response = client.post("/api/actions", json={"domain": "patient"})

        assert response.status_code == 422


class TestPatientActions:
    """domain=patient."""

    def test_create(self, client, patient_service):
        patient_service.create.return_value = make_patient()

        response = act(client, "patient", "create", {
            "first_name": "Ana", "last_name": "López", "birth_date": "1985-01-01", "gender": "FEMALE",
        })

        assert response.status_code == 200
        assert response.json()["data"]["last_name"] == "López"
        assert patient_service.create.call_args.args[0].birth_date == date(1985, 1, 1)

    def test_invalid_payload_is_422(self, client, patient_service):
        response = act(client, "patient", "create", {"first_name": "Ana"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        patient_service.create.assert_not_called()

    def test_duplicate_curp_is_409(self, client, patient_service):
        patient_service.create.side_effect = DuplicateCurpError("LOPA850101MDFRRN09")

        response = act(client, "patient", "create", {
            "first_name": "Ana", "last_name": "López", "birth_date": "1985-01-01",
            "gender": "FEMALE", "curp": "LOPA850101MDFRRN09",
        })

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_EXISTS"

    def test_delete_missing_is_404(self, client, patient_service):
        patient_service.delete.return_value = False

        response = act(client, "patient", "delete", {"id": str(uuid4())})

        assert response.status_code == 404


class TestAppointmentActions:
    """domain=appointment."""

    def test_create(self, client, appointment_service):
        appointment_service.create.return_value = make_appointment()

        response = act(client, "appointment", "create", booking())

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "SCHEDULED"

    def test_conflict_is_409(self, client, appointment_service):
        appointment_service.create.side_effect = SchedulingConflictError(
            "Doctor already has an appointment with Ana López at 2024-03-05 10:00"
        )

        response = act(client, "appointment", "create", booking())

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "APPOINTMENT_CONFLICT"
        assert "Ana López" in error["message"]

    def test_end_before_start_is_422(self, client, appointment_service):
        data = dict(booking(), end_time="2024-03-05T15:00:00Z")

        response = act(client, "appointment", "create", data)

        assert response.status_code == 422
        appointment_service.create.assert_not_called()

    def test_update_status(self, client, appointment_service):
        appointment_id = uuid4()
        appointment_service.update_status.return_value = make_appointment("CONFIRMED")

        response = act(client, "appointment", "update_status", {"id": str(appointment_id), "status": "CONFIRMED"})

        assert response.status_code == 200
        appointment_service.update_status.assert_called_once_with(appointment_id, AppointmentStatus.CONFIRMED)

    def test_update_status_requires_status(self, client):
        response = act(client, "appointment", "update_status", {"id": str(uuid4())})

        assert response.status_code == 400

    def test_cancel(self, client, appointment_service):
        appointment_service.cancel.return_value = make_appointment("CANCELLED")

        response = act(client, "appointment", "cancel", {"id": str(uuid4())})

        assert response.json()["data"]["status"] == "CANCELLED"


class TestInvoiceActions:
    """domain=invoice."""

    def test_add_payment(self, client, invoice_service):
        invoice_id = uuid4()
        invoice_service.add_payment.return_value = Payment(
            id=uuid4(), invoice_id=invoice_id, amount=Decimal("250.00"), method="CASH",
            reference=None, notes=None, payment_date=NOW,
        )

        response = act(client, "invoice", "add_payment", {
            "invoice_id": str(invoice_id), "amount": "250.00", "method": "CASH",
        })

        assert response.status_code == 200
        assert response.json()["data"]["amount"] == "250.00"
        called_id, payment = invoice_service.add_payment.call_args.args
        assert called_id == invoice_id
        assert payment.amount == Decimal("250.00")

    def test_payment_on_cancelled_invoice(self, client, invoice_service):
        invoice_service.add_payment.side_effect = PaymentNotAllowedError("Invoice INV-000001 is cancelled")

        response = act(client, "invoice", "add_payment", {
            "invoice_id": str(uuid4()), "amount": "10.00", "method": "CARD",
        })

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "PAYMENT_NOT_ALLOWED"

    def test_paid_invoice_not_deletable(self, client, invoice_service):
        invoice_service.delete.side_effect = InvoiceNotDeletableError("Paid invoices cannot be deleted")

        response = act(client, "invoice", "delete", {"id": str(uuid4())})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVOICE_NOT_DELETABLE"


class TestRoles:
    """Role checks run before the handler."""

    @pytest.mark.parametrize("role", [Role.NURSE])
    def test_nurse_cannot_bill(self, client, invoice_service, role):
        response = act(client, "invoice", "create", {
            "patient_id": str(uuid4()),
            "items": [{"description": "Consulta", "unit_price": "500.00"}],
        })

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"
        invoice_service.create.assert_not_called()

    @pytest.mark.parametrize("role", [Role.DOCTOR, Role.RECEPTIONIST])
    def test_only_admin_deletes_patients(self, client, patient_service, role):
        response = act(client, "patient", "delete", {"id": str(uuid4())})

        assert response.status_code == 403
        patient_service.delete.assert_not_called()

    @pytest.mark.parametrize("role", [Role.RECEPTIONIST])
    def test_front_desk_books(self, client, appointment_service, role):
        appointment_service.create.return_value = make_appointment()

        response = act(client, "appointment", "create", booking())

        assert response.status_code == 200


class TestClinicalActions:
    """domain=medical_note, prescription, lab_order, imaging_order."""

    @pytest.mark.parametrize("role", [Role.DOCTOR])
    def test_doctor_writes_note(self, client, medical_note_service, role):
        medical_note_service.create.return_value = make_note()

        response = act(client, "medical_note", "create", {
            "patient_id": str(uuid4()), "chief_complaint": "Cefalea", "diagnosis": "Migraña",
            "vital_signs": {"heart_rate": 80},
        })

        assert response.status_code == 200
        assert response.json()["data"]["diagnosis"] == "Migraña"
        note = medical_note_service.create.call_args.args[0]
        assert note.vital_signs.heart_rate == 80

    def test_implausible_vitals_are_422(self, client, medical_note_service):
        response = act(client, "medical_note", "create", {
            "patient_id": str(uuid4()), "chief_complaint": "Fiebre", "diagnosis": "Gripe",
            "vital_signs": {"temperature": 60},
        })

        assert response.status_code == 422
        medical_note_service.create.assert_not_called()

    @pytest.mark.parametrize("role", [Role.NURSE, Role.RECEPTIONIST])
    def test_only_clinicians_write_notes(self, client, medical_note_service, role):
        response = act(client, "medical_note", "create", {
            "patient_id": str(uuid4()), "chief_complaint": "Cefalea", "diagnosis": "Migraña",
        })

        assert response.status_code == 403
        medical_note_service.create.assert_not_called()

    def test_second_prescription_is_409(self, client, prescription_service):
        note_id = uuid4()
        prescription_service.create.side_effect = PrescriptionExistsError(note_id)

        response = act(client, "prescription", "create", {
            "patient_id": str(uuid4()), "medical_note_id": str(note_id),
            "medications": [{"name": "Paracetamol", "dosage": "500 mg", "route": "oral"}],
        })

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_EXISTS"

    def test_add_lab_results(self, client, lab_order_service):
        order_id = uuid4()
        lab_order_service.add_results.return_value = [LabResult(
            id=uuid4(), lab_order_id=order_id, test_name="Glucosa", result="92", unit="mg/dL",
            reference_range="70-100", flag="NORMAL", result_date=NOW, created_at=NOW,
        )]

        response = act(client, "lab_order", "add_results", {
            "id": str(order_id), "results": [{"test_name": "Glucosa", "result": "92", "flag": "NORMAL"}],
        })

        assert response.status_code == 200
        assert response.json()["data"][0]["test_name"] == "Glucosa"
        called_id, results = lab_order_service.add_results.call_args.args
        assert called_id == order_id
        assert results[0].flag.value == "NORMAL"

    def test_delete_missing_imaging_order_is_404(self, client, imaging_order_service):
        imaging_order_service.delete.return_value = False

        response = act(client, "imaging_order", "delete", {"id": str(uuid4())})

        assert response.status_code == 404
