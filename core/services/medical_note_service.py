"""
Medical note service for documenting encounters.

A note written against an appointment moves that appointment along: the
first note starts it (IN_PROGRESS), and any later revision completes it.
There is at most one note per appointment; writing a second one revises
the first. Note and appointment change in one transaction.
"""

import logging
from uuid import UUID, uuid4

import psycopg2.errors
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction, compute_changes
from core.models import (
    AppointmentStatus, MedicalNote, MedicalNoteCreate, MedicalNoteUpdate, MedicalNoteFilter,
)
from utils.user_context import get_current_clinic_id, get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "specialty", "type", "chief_complaint", "current_illness", "vital_signs",
    "physical_exam", "diagnosis", "prognosis", "treatment", "notes"
}

# Appointments a note may still move forward
_OPEN_APPOINTMENT_STATUSES = [
    AppointmentStatus.SCHEDULED.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.IN_PROGRESS.value,
]

_SELECT_WITH_NAMES = """
    SELECT n.*,
           concat_ws(' ', p.first_name, p.middle_name, p.last_name) AS patient_name,
           u.name AS doctor_name
    FROM medical_notes n
    JOIN patients p ON p.id = n.patient_id
    LEFT JOIN users u ON u.id = n.doctor_id
"""

_DISPLAY_FIELDS = {"patient_name", "doctor_name"}


class MedicalNoteService:
    """Service for medical note operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def _patient_name(self, patient_id: UUID) -> str | None:
        """Display name of an active patient of this clinic, None if there is none."""
        row = self.postgres.execute_single(
            """
            SELECT concat_ws(' ', first_name, middle_name, last_name) AS name
            FROM patients
            WHERE id = %s AND clinic_id = %s AND deleted_at IS NULL
            """,
            (patient_id, get_current_clinic_id())
        )
        return row["name"] if row else None

    def _advance_appointment(self, tx: Transaction, appointment_id: UUID, status: AppointmentStatus) -> None:
        rows = tx.execute(
            """
            UPDATE appointments
            SET status = %s, updated_at = %s
            WHERE id = %s AND status = ANY(%s)
            RETURNING id
            """,
            (status.value, now_utc(), appointment_id, _OPEN_APPOINTMENT_STATUSES)
        )
        if rows:
            logger.info(f"Appointment {appointment_id} moved to {status.value} by medical note")

    def create(self, data: MedicalNoteCreate) -> MedicalNote:
        """
        Document an encounter, written by the current user.

        If the appointment already has a note, that note is revised instead.

        Raises:
            ValueError: If the patient or appointment is not found
        """
        patient_name = self._patient_name(data.patient_id)
        if patient_name is None:
            raise ValueError(f"Patient {data.patient_id} not found")

        clinic_id = get_current_clinic_id()

        if data.appointment_id is not None:
            appointment = self.postgres.execute_single(
                "SELECT id FROM appointments WHERE id = %s AND patient_id = %s AND clinic_id = %s",
                (data.appointment_id, data.patient_id, clinic_id)
            )
            if appointment is None:
                raise ValueError(f"Appointment {data.appointment_id} not found for this patient")

            existing = self.postgres.execute_single(
                "SELECT id FROM medical_notes WHERE appointment_id = %s AND clinic_id = %s",
                (data.appointment_id, clinic_id)
            )
            if existing is not None:
                revision = MedicalNoteUpdate(**data.model_dump(exclude={"patient_id", "appointment_id"}))
                return self.update(existing["id"], revision)

        now = now_utc()
        try:
            with self.postgres.transaction() as tx:
                row = tx.execute_single(
                    """
                    INSERT INTO medical_notes (
                        id, clinic_id, patient_id, doctor_id, appointment_id,
                        specialty, type, chief_complaint, current_illness, vital_signs,
                        physical_exam, diagnosis, prognosis, treatment, notes,
                        created_at, updated_at
                    ) VALUES (
                        %s, %s, %s, %s, %s,
                        %s, %s, %s, %s, %s,
                        %s, %s, %s, %s, %s,
                        %s, %s
                    )
                    RETURNING *
                    """,
                    (
                        uuid4(), clinic_id, data.patient_id, get_current_user_id(), data.appointment_id,
                        data.specialty.value if data.specialty else None,
                        data.type.value if data.type else None,
                        data.chief_complaint, data.current_illness,
                        Json(data.vital_signs.model_dump(exclude_none=True)) if data.vital_signs else None,
                        data.physical_exam, data.diagnosis, data.prognosis, data.treatment, data.notes,
                        now, now
                    )
                )
                if data.appointment_id is not None:
                    self._advance_appointment(tx, data.appointment_id, AppointmentStatus.IN_PROGRESS)
        except psycopg2.errors.UniqueViolation:
            raise ValueError(
                f"Appointment {data.appointment_id} was just documented by another request; please retry"
            )

        note = MedicalNote.model_validate({**row, "patient_name": patient_name})

        self.audit.log_change(
            entity_type="medical_note",
            entity_id=note.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)},
            entity_name=f"Medical note - {patient_name}"
        )

        return note

    def get_by_id(self, note_id: UUID) -> MedicalNote | None:
        row = self.postgres.execute_single(
            _SELECT_WITH_NAMES + " WHERE n.id = %s AND n.clinic_id = %s",
            (note_id, get_current_clinic_id())
        )
        if row is None:
            return None

        return MedicalNote.model_validate(row)

    def view(self, note_id: UUID) -> MedicalNote:
        """
        Open a medical note. Access is audited.

        Raises:
            ValueError: If note not found
        """
        note = self.get_by_id(note_id)
        if note is None:
            raise ValueError(f"Medical note {note_id} not found")

        self.audit.log_access("medical_note", note.id, f"Medical note - {note.patient_name}")
        return note

    def update(self, note_id: UUID, data: MedicalNoteUpdate) -> MedicalNote:
        """
        Revise a note. A note tied to an appointment completes it.

        Raises:
            ValueError: If note not found
        """
        current = self.get_by_id(note_id)
        if current is None:
            raise ValueError(f"Medical note {note_id} not found")

        updates = data.model_dump(mode="json", exclude_none=True)
        valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
        if not valid_updates:
            return current

        if "vital_signs" in valid_updates:
            valid_updates["vital_signs"] = Json(valid_updates["vital_signs"])

        set_parts = []
        params = []
        for field, value in valid_updates.items():
            set_parts.append(f"{field} = %s")
            params.append(value)

        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.append(note_id)

        with self.postgres.transaction() as tx:
            row = tx.execute_single(
                f"""
                UPDATE medical_notes
                SET {', '.join(set_parts)}
                WHERE id = %s
                RETURNING *
                """,
                tuple(params)
            )
            if current.appointment_id is not None:
                self._advance_appointment(tx, current.appointment_id, AppointmentStatus.COMPLETED)

        updated = MedicalNote.model_validate(
            {**row, "patient_name": current.patient_name, "doctor_name": current.doctor_name}
        )

        changes = compute_changes(
            current.model_dump(mode="json", exclude=_DISPLAY_FIELDS),
            updated.model_dump(mode="json", exclude=_DISPLAY_FIELDS)
        )
        if changes:
            self.audit.log_change(
                entity_type="medical_note",
                entity_id=note_id,
                action=AuditAction.UPDATE,
                changes=changes,
                entity_name=f"Medical note - {current.patient_name}"
            )

        return updated

    def list_filtered(
        self,
        filters: MedicalNoteFilter,
        limit: int = 20,
        offset: int = 0
    ) -> tuple[list[MedicalNote], int]:
        """
        List notes, newest first. Search matches patient name, diagnosis
        and chief complaint.

        Returns:
            (notes, total matching count)
        """
        conditions = ["n.clinic_id = %s"]
        params: list = [get_current_clinic_id()]

        if filters.patient_id is not None:
            conditions.append("n.patient_id = %s")
            params.append(filters.patient_id)
        if filters.doctor_id is not None:
            conditions.append("n.doctor_id = %s")
            params.append(filters.doctor_id)
        if filters.start_date is not None:
            conditions.append("n.created_at >= %s")
            params.append(filters.start_date)
        if filters.end_date is not None:
            conditions.append("n.created_at <= %s")
            params.append(filters.end_date)
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                "(p.first_name ILIKE %s OR p.last_name ILIKE %s "
                "OR n.diagnosis ILIKE %s OR n.chief_complaint ILIKE %s)"
            )
            params.extend([pattern] * 4)

        where = " AND ".join(conditions)
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM medical_notes n JOIN patients p ON p.id = n.patient_id WHERE {where}",
            tuple(params)
        )
        rows = self.postgres.execute(
            _SELECT_WITH_NAMES + f" WHERE {where} ORDER BY n.created_at DESC LIMIT %s OFFSET %s",
            tuple(params) + (limit, offset)
        )

        return [MedicalNote.model_validate(row) for row in rows], total or 0
