"""API test fixtures — authenticated TestClient over mocked services."""

from datetime import timedelta
from unittest.mock import Mock
from uuid import UUID

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from api.config import AppConfig
from auth.session import SessionReader
from auth.types import Role, Session
from core.audit import AuditLogger
from core.services.appointment_service import AppointmentService
from core.services.imaging_order_service import ImagingOrderService
from core.services.invoice_service import InvoiceService
from core.services.lab_order_service import LabOrderService
from core.services.medical_note_service import MedicalNoteService
from core.services.patient_service import PatientService
from core.services.prescription_service import PrescriptionService
from utils.timezone import now_utc

# Must match tests/conftest.py
TEST_CLINIC_ID = UUID("00000000-0000-0000-0000-0000000000c1")
TEST_ADMIN_ID = UUID("00000000-0000-0000-0000-000000000001")


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def patient_service():
    return Mock(spec=PatientService)


@pytest.fixture
def appointment_service():
    return Mock(spec=AppointmentService)


@pytest.fixture
def invoice_service():
    return Mock(spec=InvoiceService)


@pytest.fixture
def medical_note_service():
    return Mock(spec=MedicalNoteService)


@pytest.fixture
def prescription_service():
    return Mock(spec=PrescriptionService)


@pytest.fixture
def lab_order_service():
    return Mock(spec=LabOrderService)


@pytest.fixture
def imaging_order_service():
    return Mock(spec=ImagingOrderService)


@pytest.fixture
def audit_service():
    return Mock(spec=AuditLogger)


@pytest.fixture
def services(
    patient_service, appointment_service, invoice_service, audit_service,
    medical_note_service, prescription_service, lab_order_service, imaging_order_service,
):
    return {
        "patient": patient_service,
        "appointment": appointment_service,
        "invoice": invoice_service,
        "medical_note": medical_note_service,
        "prescription": prescription_service,
        "lab_order": lab_order_service,
        "imaging_order": imaging_order_service,
        "audit": audit_service,
    }


# =============================================================================
# AUTH FIXTURES
# =============================================================================


@pytest.fixture
def role() -> Role:
    """Role of the signed-in user. Override in a test module or via parametrize."""
    return Role.ADMIN


@pytest.fixture
def mock_session_reader(role):
    mock = Mock(spec=SessionReader)
    mock.validate_session.return_value = Session(
        token="test-token",
        user_id=TEST_ADMIN_ID,
        clinic_id=TEST_CLINIC_ID,
        role=role,
        expires_at=now_utc() + timedelta(hours=8),
    )
    return mock


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(mock_session_reader, services):
    """Full application with auth middleware, error handlers, and data/actions routes."""
    return create_app(services, mock_session_reader, AppConfig(max_calendar_days=31))


@pytest.fixture
def client(app):
    """Authenticated test client."""
    c = TestClient(app, raise_server_exceptions=False)
    c.cookies.set("session_token", "test-token")
    return c


@pytest.fixture
def unauthed_client(app):
    """Unauthenticated test client (no session cookie)."""
    return TestClient(app, raise_server_exceptions=False)
