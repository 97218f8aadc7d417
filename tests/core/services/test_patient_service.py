"""Tests for PatientService - registration, search, soft delete and restore."""

from datetime import date, datetime, timezone
from uuid import UUID, uuid4

import pytest

from core.audit import AuditAction
from core.exceptions import DuplicateCurpError
from core.models import Gender, PatientCreate, PatientUpdate
from core.services.patient_service import PatientService

# Must match conftest.py
TEST_CLINIC_ID = UUID("00000000-0000-0000-0000-0000000000c1")

CURP = "LOPA850101MDFRRN09"
NOW = datetime(2024, 3, 5, 18, 0, tzinfo=timezone.utc)


def patient_row(**overrides):
    row = {
        "id": uuid4(),
        "clinic_id": TEST_CLINIC_ID,
        "first_name": "Ana",
        "last_name": "López",
        "middle_name": None,
        "curp": CURP,
        "birth_date": date(1985, 1, 1),
        "gender": "FEMALE",
        "blood_type": None,
        "email": None,
        "phone": "5551234567",
        "mobile": None,
        "address": None,
        "city": None,
        "state": None,
        "zip_code": None,
        "notes": None,
        "created_at": NOW,
        "updated_at": NOW,
        "deleted_at": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def service(postgres, audit):
    return PatientService(postgres, audit)


@pytest.fixture
def new_patient():
    return PatientCreate(
        first_name="Ana",
        last_name="López",
        curp=CURP,
        birth_date=date(1985, 1, 1),
        gender=Gender.FEMALE,
        phone="5551234567",
        email="",
    )


class TestPatientCreateModel:
    """Input validation on registration."""

    def test_blank_email_becomes_none(self, new_patient):
        assert new_patient.email is None

    def test_malformed_curp_rejected(self):
        with pytest.raises(ValueError):
            PatientCreate(
                first_name="Ana", last_name="López", curp="NOT-A-CURP",
                birth_date=date(1985, 1, 1), gender=Gender.FEMALE,
            )


class TestCreate:
    """Registering patients."""

    def test_creates_and_audits(self, service, postgres, audit, new_patient, as_receptionist):
        postgres.execute_single.return_value = None
        postgres.execute_returning.return_value = [patient_row()]

        patient = service.create(new_patient)

        assert patient.full_name == "Ana López"
        kwargs = audit.log_change.call_args.kwargs
        assert kwargs["action"] == AuditAction.CREATE
        assert kwargs["entity_name"] == "Ana López"

    def test_duplicate_curp_rejected(self, service, postgres, new_patient, as_receptionist):
        postgres.execute_single.return_value = {"id": uuid4()}

        with pytest.raises(DuplicateCurpError, match=CURP):
            service.create(new_patient)

        postgres.execute_returning.assert_not_called()


class TestReadAndSearch:
    """Record access and listing."""

    def test_view_is_audited(self, service, postgres, audit, as_doctor):
        row = patient_row()
        postgres.execute_single.return_value = row

        service.view(row["id"])

        audit.log_access.assert_called_once_with("patient", row["id"], "Ana López")

    def test_view_missing_raises_not_found(self, service, postgres, as_doctor):
        postgres.execute_single.return_value = None

        with pytest.raises(ValueError, match="not found"):
            service.view(uuid4())

    def test_search_matches_several_columns(self, service, postgres, as_doctor):
        postgres.execute_scalar.return_value = 1
        postgres.execute.return_value = [patient_row()]

        patients, total = service.search("lóp", limit=10)

        assert total == 1
        assert patients[0].last_name == "López"
        query, params = postgres.execute.call_args.args
        assert "ILIKE" in query
        assert params[1:6] == ("%lóp%",) * 5


class TestUpdate:
    """Editing patient records."""

    def test_changes_are_audited(self, service, postgres, audit, as_doctor):
        row = patient_row()
        postgres.execute_single.return_value = row
        postgres.execute_returning.return_value = [dict(row, phone="5559999999")]

        service.update(row["id"], PatientUpdate(phone="5559999999"))

        changes = audit.log_change.call_args.kwargs["changes"]
        assert changes == {"phone": {"old": "5551234567", "new": "5559999999"}}

    def test_curp_taken_by_other_patient(self, service, postgres, as_doctor):
        row = patient_row(curp=None)
        postgres.execute_single.side_effect = [row, {"id": uuid4()}]

        with pytest.raises(DuplicateCurpError):
            service.update(row["id"], PatientUpdate(curp=CURP))

    def test_empty_update_returns_current(self, service, postgres, audit, as_doctor):
        row = patient_row()
        postgres.execute_single.return_value = row

        result = service.update(row["id"], PatientUpdate())

        assert result.id == row["id"]
        postgres.execute_returning.assert_not_called()
        audit.log_change.assert_not_called()


class TestDeleteAndRestore:
    """Soft delete keeps the record recoverable."""

    def test_soft_delete(self, service, postgres, audit, as_admin):
        row = patient_row()
        postgres.execute_single.return_value = row
        postgres.execute_returning.return_value = [{"id": row["id"]}]

        assert service.delete(row["id"]) is True

        query = postgres.execute_returning.call_args.args[0]
        assert "deleted_at" in query
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.DELETE

    def test_delete_missing_returns_false(self, service, postgres, as_admin):
        postgres.execute_single.return_value = None

        assert service.delete(uuid4()) is False

    def test_restore(self, service, postgres, as_admin):
        row = patient_row(deleted_at=NOW)
        postgres.execute_single.side_effect = [row, None]
        postgres.execute_returning.return_value = [dict(row, deleted_at=None)]

        restored = service.restore(row["id"])

        assert restored.is_deleted is False

    def test_restore_active_patient_rejected(self, service, postgres, as_admin):
        postgres.execute_single.return_value = patient_row()

        with pytest.raises(ValueError, match="not deleted"):
            service.restore(uuid4())

    def test_restore_blocked_by_reused_curp(self, service, postgres, as_admin):
        row = patient_row(deleted_at=NOW)
        postgres.execute_single.side_effect = [row, {"id": uuid4()}]

        with pytest.raises(DuplicateCurpError):
            service.restore(row["id"])
