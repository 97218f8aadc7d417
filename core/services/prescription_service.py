"""
Prescription service.

A prescription is issued from a medical note of the same patient, one per
note. A unique index on medical_note_id backs the check against concurrent
issues.
"""

import logging
from uuid import UUID, uuid4

import psycopg2.errors
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.exceptions import PrescriptionExistsError
from core.models import Prescription, PrescriptionCreate, PrescriptionUpdate, PrescriptionFilter
from utils.user_context import get_current_clinic_id, get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {"medications", "instructions", "valid_until", "digital_signature"}

_SELECT_WITH_NAMES = """
    SELECT rx.*,
           concat_ws(' ', p.first_name, p.middle_name, p.last_name) AS patient_name,
           u.name AS doctor_name
    FROM prescriptions rx
    JOIN patients p ON p.id = rx.patient_id
    LEFT JOIN users u ON u.id = rx.doctor_id
"""

_DISPLAY_FIELDS = {"patient_name", "doctor_name"}


class PrescriptionService:
    """Service for prescription operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: PrescriptionCreate) -> Prescription:
        """
        Issue a prescription from a medical note, signed by the current user.

        Raises:
            ValueError: If the patient, or the note for that patient, is not found
            PrescriptionExistsError: If the note already has a prescription
        """
        clinic_id = get_current_clinic_id()

        patient = self.postgres.execute_single(
            """
            SELECT concat_ws(' ', first_name, middle_name, last_name) AS name
            FROM patients
            WHERE id = %s AND clinic_id = %s AND deleted_at IS NULL
            """,
            (data.patient_id, clinic_id)
        )
        if patient is None:
            raise ValueError(f"Patient {data.patient_id} not found")

        note = self.postgres.execute_single(
            "SELECT id FROM medical_notes WHERE id = %s AND patient_id = %s AND clinic_id = %s",
            (data.medical_note_id, data.patient_id, clinic_id)
        )
        if note is None:
            raise ValueError(f"Medical note {data.medical_note_id} not found for this patient")

        existing = self.postgres.execute_single(
            "SELECT id FROM prescriptions WHERE medical_note_id = %s",
            (data.medical_note_id,)
        )
        if existing is not None:
            raise PrescriptionExistsError(data.medical_note_id)

        now = now_utc()
        try:
            row = self.postgres.execute_returning(
                """
                INSERT INTO prescriptions (
                    id, clinic_id, patient_id, doctor_id, medical_note_id,
                    issue_date, medications, instructions, valid_until,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), clinic_id, data.patient_id, get_current_user_id(), data.medical_note_id,
                    now, Json([m.model_dump(exclude_none=True) for m in data.medications]),
                    data.instructions, data.valid_until,
                    now, now
                )
            )[0]
        except psycopg2.errors.UniqueViolation:
            raise PrescriptionExistsError(data.medical_note_id)

        prescription = Prescription.model_validate({**row, "patient_name": patient["name"]})

        self.audit.log_change(
            entity_type="prescription",
            entity_id=prescription.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)},
            entity_name=f"Prescription - {patient['name']}"
        )

        return prescription

    def get_by_id(self, prescription_id: UUID) -> Prescription | None:
        row = self.postgres.execute_single(
            _SELECT_WITH_NAMES + " WHERE rx.id = %s AND rx.clinic_id = %s",
            (prescription_id, get_current_clinic_id())
        )
        if row is None:
            return None

        return Prescription.model_validate(row)

    def view(self, prescription_id: UUID) -> Prescription:
        """
        Open a prescription. Access is audited.

        Raises:
            ValueError: If prescription not found
        """
        prescription = self.get_by_id(prescription_id)
        if prescription is None:
            raise ValueError(f"Prescription {prescription_id} not found")

        self.audit.log_access("prescription", prescription.id, f"Prescription - {prescription.patient_name}")
        return prescription

    def update(self, prescription_id: UUID, data: PrescriptionUpdate) -> Prescription:
        """
        Revise or sign a prescription.

        Raises:
            ValueError: If prescription not found
        """
        current = self.get_by_id(prescription_id)
        if current is None:
            raise ValueError(f"Prescription {prescription_id} not found")

        updates = data.model_dump(mode="json", exclude_none=True)
        valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
        if not valid_updates:
            return current

        if "medications" in valid_updates:
            valid_updates["medications"] = Json(valid_updates["medications"])

        set_parts = []
        params = []
        for field, value in valid_updates.items():
            set_parts.append(f"{field} = %s")
            params.append(value)

        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.append(prescription_id)

        row = self.postgres.execute_returning(
            f"""
            UPDATE prescriptions
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]

        updated = Prescription.model_validate(
            {**row, "patient_name": current.patient_name, "doctor_name": current.doctor_name}
        )

        changes = compute_changes(
            current.model_dump(mode="json", exclude=_DISPLAY_FIELDS),
            updated.model_dump(mode="json", exclude=_DISPLAY_FIELDS)
        )
        if changes:
            self.audit.log_change(
                entity_type="prescription",
                entity_id=prescription_id,
                action=AuditAction.UPDATE,
                changes=changes,
                entity_name=f"Prescription - {current.patient_name}"
            )

        return updated

    def list_filtered(
        self,
        filters: PrescriptionFilter,
        limit: int = 20,
        offset: int = 0
    ) -> tuple[list[Prescription], int]:
        """
        List prescriptions, newest first. Search matches patient name and CURP.

        Returns:
            (prescriptions, total matching count)
        """
        conditions = ["rx.clinic_id = %s"]
        params: list = [get_current_clinic_id()]

        if filters.patient_id is not None:
            conditions.append("rx.patient_id = %s")
            params.append(filters.patient_id)
        if filters.doctor_id is not None:
            conditions.append("rx.doctor_id = %s")
            params.append(filters.doctor_id)
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append("(p.first_name ILIKE %s OR p.last_name ILIKE %s OR p.curp ILIKE %s)")
            params.extend([pattern] * 3)

        where = " AND ".join(conditions)
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM prescriptions rx JOIN patients p ON p.id = rx.patient_id WHERE {where}",
            tuple(params)
        )
        rows = self.postgres.execute(
            _SELECT_WITH_NAMES + f" WHERE {where} ORDER BY rx.issue_date DESC LIMIT %s OFFSET %s",
            tuple(params) + (limit, offset)
        )

        return [Prescription.model_validate(row) for row in rows], total or 0
