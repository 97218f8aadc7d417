"""
Patient service for registration and record maintenance.

Handles patient lifecycle: register, read, update, soft delete, restore.
All queries are scoped to the current clinic via RLS and an explicit
clinic_id filter.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.exceptions import DuplicateCurpError
from core.models import Patient, PatientCreate, PatientUpdate
from utils.user_context import get_current_clinic_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "first_name", "last_name", "middle_name", "curp", "birth_date",
    "gender", "blood_type", "email", "phone", "mobile",
    "address", "city", "state", "zip_code", "notes"
}


class PatientService:
    """Service for patient operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def _curp_taken(self, curp: str, exclude_id: UUID | None = None) -> bool:
        row = self.postgres.execute_single(
            """
            SELECT id FROM patients
            WHERE clinic_id = %s AND curp = %s AND deleted_at IS NULL
            """,
            (get_current_clinic_id(), curp)
        )
        return row is not None and str(row["id"]) != str(exclude_id)

    def create(self, data: PatientCreate) -> Patient:
        """
        Register a new patient.

        Raises:
            DuplicateCurpError: If the CURP is already registered in this clinic
        """
        if data.curp and self._curp_taken(data.curp):
            raise DuplicateCurpError(data.curp)

        clinic_id = get_current_clinic_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO patients (
                id, clinic_id, first_name, last_name, middle_name, curp,
                birth_date, gender, blood_type, email, phone, mobile,
                address, city, state, zip_code, notes,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), clinic_id, data.first_name, data.last_name, data.middle_name, data.curp,
                data.birth_date, data.gender.value,
                data.blood_type.value if data.blood_type else None,
                data.email, data.phone, data.mobile,
                data.address, data.city, data.state, data.zip_code, data.notes,
                now, now
            )
        )[0]

        patient = Patient.model_validate(row)

        self.audit.log_change(
            entity_type="patient",
            entity_id=patient.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)},
            entity_name=patient.full_name
        )

        return patient

    def get_by_id(self, patient_id: UUID, include_deleted: bool = False) -> Patient | None:
        """
        Get patient by ID.

        Returns:
            Patient if found (and not deleted unless include_deleted), None otherwise.
        """
        query = "SELECT * FROM patients WHERE id = %s AND clinic_id = %s"
        if not include_deleted:
            query += " AND deleted_at IS NULL"

        row = self.postgres.execute_single(query, (patient_id, get_current_clinic_id()))
        if row is None:
            return None

        return Patient.model_validate(row)

    def view(self, patient_id: UUID) -> Patient:
        """
        Open a patient's record. Access is audited.

        Raises:
            ValueError: If patient not found
        """
        patient = self.get_by_id(patient_id)
        if patient is None:
            raise ValueError(f"Patient {patient_id} not found")

        self.audit.log_access("patient", patient.id, patient.full_name)
        return patient

    def update(self, patient_id: UUID, data: PatientUpdate) -> Patient:
        """
        Update patient fields.

        Raises:
            ValueError: If patient not found
            DuplicateCurpError: If the new CURP belongs to another patient
        """
        current = self.get_by_id(patient_id)
        if current is None:
            raise ValueError(f"Patient {patient_id} not found")

        updates = data.model_dump(exclude_none=True)
        if not updates:
            return current

        for field in updates:
            if field not in _UPDATABLE_COLUMNS:
                logger.warning(
                    f"Attempted to update unknown field '{field}' on patient {patient_id}"
                )

        if "curp" in updates and updates["curp"] != current.curp:
            if self._curp_taken(updates["curp"], exclude_id=patient_id):
                raise DuplicateCurpError(updates["curp"])

        for enum_field in ("gender", "blood_type"):
            if enum_field in updates and hasattr(updates[enum_field], "value"):
                updates[enum_field] = updates[enum_field].value

        valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
        if not valid_updates:
            return current

        set_parts = []
        params = []
        for field, value in valid_updates.items():
            set_parts.append(f"{field} = %s")
            params.append(value)

        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.append(patient_id)

        row = self.postgres.execute_returning(
            f"""
            UPDATE patients
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]

        updated = Patient.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="patient",
                entity_id=patient_id,
                action=AuditAction.UPDATE,
                changes=changes,
                entity_name=updated.full_name
            )

        return updated

    def search(self, query: str | None = None, limit: int = 10, offset: int = 0) -> tuple[list[Patient], int]:
        """
        List patients, optionally matching name, CURP, email or phone.

        Returns:
            (patients ordered by last name, total matching count)
        """
        conditions = ["clinic_id = %s", "deleted_at IS NULL"]
        params: list = [get_current_clinic_id()]

        if query:
            pattern = f"%{query}%"
            conditions.append(
                "(first_name ILIKE %s OR last_name ILIKE %s OR curp ILIKE %s "
                "OR email ILIKE %s OR phone ILIKE %s)"
            )
            params.extend([pattern] * 5)

        where = " AND ".join(conditions)
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM patients WHERE {where}",
            tuple(params)
        )
        rows = self.postgres.execute(
            f"""
            SELECT * FROM patients
            WHERE {where}
            ORDER BY last_name ASC, first_name ASC
            LIMIT %s OFFSET %s
            """,
            tuple(params) + (limit, offset)
        )

        return [Patient.model_validate(row) for row in rows], total or 0

    def delete(self, patient_id: UUID) -> bool:
        """
        Soft delete a patient. Clinical history is kept.

        Returns:
            True if deleted, False if not found
        """
        current = self.get_by_id(patient_id)
        if current is None:
            return False

        now = now_utc()
        self.postgres.execute_returning(
            """
            UPDATE patients
            SET deleted_at = %s, updated_at = %s
            WHERE id = %s
            RETURNING id
            """,
            (now, now, patient_id)
        )

        self.audit.log_change(
            entity_type="patient",
            entity_id=patient_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")},
            entity_name=current.full_name
        )

        return True

    def restore(self, patient_id: UUID) -> Patient:
        """
        Undo a soft delete.

        Raises:
            ValueError: If patient not found or not deleted
            DuplicateCurpError: If another active patient now holds the CURP
        """
        current = self.get_by_id(patient_id, include_deleted=True)
        if current is None:
            raise ValueError(f"Patient {patient_id} not found")

        if not current.is_deleted:
            raise ValueError(f"Patient {patient_id} is not deleted")

        # CURP may have been reused while this record was deleted
        if current.curp and self._curp_taken(current.curp, exclude_id=patient_id):
            raise DuplicateCurpError(current.curp)

        row = self.postgres.execute_returning(
            """
            UPDATE patients
            SET deleted_at = NULL, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (now_utc(), patient_id)
        )[0]

        restored = Patient.model_validate(row)

        self.audit.log_change(
            entity_type="patient",
            entity_id=patient_id,
            action=AuditAction.UPDATE,
            changes={"deleted_at": {"old": current.deleted_at.isoformat(), "new": None}},
            entity_name=restored.full_name
        )

        return restored
