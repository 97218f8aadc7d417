"""
Appointment service for booking and calendar operations.

Every booking or reschedule is checked against the doctor's existing
appointments with the conflict validator before it is written. The
appointments table also carries an exclusion constraint over
(doctor_id, time range) for active statuses, so two requests racing for
the same slot cannot both commit; the loser gets the same conflict error.
"""

import logging
from datetime import datetime
from uuid import UUID, uuid4

import psycopg2.errors

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.conflict_validator import (
    TimeSlot,
    build_conflict_message,
    find_conflict,
    is_valid_time_slot,
    should_check_for_conflicts,
)
from core.exceptions import SchedulingConflictError
from core.models import (
    Appointment, AppointmentCreate, AppointmentUpdate, AppointmentFilter,
    AppointmentStatus, CalendarEvent, STATUS_COLORS,
)
from utils.user_context import get_current_clinic_id
from utils.timezone import DEFAULT_CLINIC_TIMEZONE, now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "patient_id", "doctor_id", "start_time", "end_time", "status", "reason", "notes"
}

# Appointment row plus display names
_SELECT_WITH_NAMES = """
    SELECT a.*,
           concat_ws(' ', p.first_name, p.middle_name, p.last_name) AS patient_name,
           u.name AS doctor_name
    FROM appointments a
    JOIN patients p ON p.id = a.patient_id
    LEFT JOIN users u ON u.id = a.doctor_id
"""


class AppointmentService:
    """Service for appointment operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        tz_name: str = DEFAULT_CLINIC_TIMEZONE
    ):
        self.postgres = postgres
        self.audit = audit
        self.tz_name = tz_name

    # -------------------------------------------------------------------------
    # Conflict checking
    # -------------------------------------------------------------------------

    def _doctor_bookings_near(
        self,
        doctor_id: UUID,
        slot: TimeSlot,
        exclude_id: UUID | None = None
    ) -> list[Appointment]:
        """The doctor's appointments whose time range touches the slot, any status."""
        query = _SELECT_WITH_NAMES + """
            WHERE a.clinic_id = %s AND a.doctor_id = %s
              AND a.start_time <= %s AND a.end_time >= %s
        """
        params: list = [get_current_clinic_id(), doctor_id, slot.end_time, slot.start_time]
        if exclude_id is not None:
            query += " AND a.id <> %s"
            params.append(exclude_id)
        query += " ORDER BY a.start_time ASC"

        rows = self.postgres.execute(query, tuple(params))
        return [Appointment.model_validate(row) for row in rows]

    def _ensure_slot_free(
        self,
        doctor_id: UUID,
        slot: TimeSlot,
        exclude_id: UUID | None = None
    ) -> None:
        """
        Raises:
            ValueError: If the slot is empty or inverted
            SchedulingConflictError: If an active booking overlaps the slot
        """
        if not is_valid_time_slot(slot.start_time, slot.end_time):
            raise ValueError("end_time must be after start_time")

        conflict = find_conflict(slot, self._doctor_bookings_near(doctor_id, slot, exclude_id))
        if conflict is not None:
            logger.info(
                "Rejected booking for doctor %s: overlaps appointment %s", doctor_id, conflict.id
            )
            raise SchedulingConflictError(
                build_conflict_message(conflict, conflict.patient_name, self.tz_name),
                conflicting_appointment_id=conflict.id
            )

    def _patient_exists(self, patient_id: UUID) -> bool:
        row = self.postgres.execute_single(
            "SELECT id FROM patients WHERE id = %s AND clinic_id = %s AND deleted_at IS NULL",
            (patient_id, get_current_clinic_id())
        )
        return row is not None

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create(self, data: AppointmentCreate) -> Appointment:
        """
        Book an appointment.

        Raises:
            ValueError: If the patient is not found or the slot is invalid
            SchedulingConflictError: If the doctor is already booked
        """
        if not self._patient_exists(data.patient_id):
            raise ValueError(f"Patient {data.patient_id} not found")

        slot = TimeSlot(data.start_time, data.end_time)
        if should_check_for_conflicts(data.status):
            self._ensure_slot_free(data.doctor_id, slot)

        now = now_utc()
        try:
            row = self.postgres.execute_returning(
                """
                INSERT INTO appointments (
                    id, clinic_id, patient_id, doctor_id,
                    start_time, end_time, status, reason, notes,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s,
                    %s, %s, %s, %s, %s,
                    %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), get_current_clinic_id(), data.patient_id, data.doctor_id,
                    data.start_time, data.end_time, data.status.value, data.reason, data.notes,
                    now, now
                )
            )[0]
        except psycopg2.errors.ExclusionViolation:
            raise SchedulingConflictError("The doctor already has an appointment in this time slot")

        appointment = Appointment.model_validate(row)

        self.audit.log_change(
            entity_type="appointment",
            entity_id=appointment.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return appointment

    def get_by_id(self, appointment_id: UUID) -> Appointment | None:
        """
        Get appointment by ID, with patient and doctor names.

        Returns:
            Appointment if found in the current clinic, None otherwise.
        """
        row = self.postgres.execute_single(
            _SELECT_WITH_NAMES + " WHERE a.id = %s AND a.clinic_id = %s",
            (appointment_id, get_current_clinic_id())
        )

        if row is None:
            return None

        return Appointment.model_validate(row)

    def update(self, appointment_id: UUID, data: AppointmentUpdate) -> Appointment:
        """
        Update or reschedule an appointment.

        Moving the appointment (doctor or times) or reactivating it re-runs the
        conflict check, ignoring the appointment itself.

        Raises:
            ValueError: If appointment not found or the resulting slot is invalid
            SchedulingConflictError: If the new slot is taken
        """
        current = self.get_by_id(appointment_id)
        if current is None:
            raise ValueError(f"Appointment {appointment_id} not found")

        updates = data.model_dump(exclude_none=True)
        if not updates:
            return current

        for field in updates:
            if field not in _UPDATABLE_COLUMNS:
                logger.warning(
                    f"Attempted to update unknown field '{field}' on appointment {appointment_id}"
                )

        if "patient_id" in updates and not self._patient_exists(updates["patient_id"]):
            raise ValueError(f"Patient {updates['patient_id']} not found")

        slot = TimeSlot(
            data.start_time or current.start_time,
            data.end_time or current.end_time
        )
        if not is_valid_time_slot(slot.start_time, slot.end_time):
            raise ValueError("end_time must be after start_time")

        new_status = data.status or current.status
        reactivated = should_check_for_conflicts(new_status) and not should_check_for_conflicts(current.status)
        if should_check_for_conflicts(new_status) and (data.reschedules or reactivated):
            self._ensure_slot_free(data.doctor_id or current.doctor_id, slot, exclude_id=appointment_id)

        if "status" in updates and hasattr(updates["status"], "value"):
            updates["status"] = updates["status"].value

        valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}

        set_parts = []
        params = []
        for field, value in valid_updates.items():
            set_parts.append(f"{field} = %s")
            params.append(value)

        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.append(appointment_id)

        try:
            row = self.postgres.execute_returning(
                f"""
                UPDATE appointments
                SET {', '.join(set_parts)}
                WHERE id = %s
                RETURNING *
                """,
                tuple(params)
            )[0]
        except psycopg2.errors.ExclusionViolation:
            raise SchedulingConflictError("The doctor already has an appointment in this time slot")

        updated = Appointment.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json", exclude={"patient_name", "doctor_name"}),
            updated.model_dump(mode="json", exclude={"patient_name", "doctor_name"})
        )
        if changes:
            self.audit.log_change(
                entity_type="appointment",
                entity_id=appointment_id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated

    def update_status(self, appointment_id: UUID, status: AppointmentStatus) -> Appointment:
        """
        Move an appointment to a new status.

        Raises:
            ValueError: If appointment not found
            SchedulingConflictError: If reactivating into a slot that is now taken
        """
        return self.update(appointment_id, AppointmentUpdate(status=status))

    def cancel(self, appointment_id: UUID) -> Appointment:
        """
        Cancel an appointment, freeing the doctor's slot.

        Raises:
            ValueError: If appointment not found or already cancelled
        """
        current = self.get_by_id(appointment_id)
        if current is None:
            raise ValueError(f"Appointment {appointment_id} not found")

        if current.status == AppointmentStatus.CANCELLED:
            raise ValueError(f"Appointment {appointment_id} already cancelled")

        return self.update(appointment_id, AppointmentUpdate(status=AppointmentStatus.CANCELLED))

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    def list_filtered(
        self,
        filters: AppointmentFilter,
        limit: int = 100,
        offset: int = 0
    ) -> tuple[list[Appointment], int]:
        """
        List appointments matching filters.

        Returns:
            (appointments ordered by start_time, total matching count)
        """
        conditions = ["a.clinic_id = %s"]
        params: list = [get_current_clinic_id()]

        if filters.doctor_id is not None:
            conditions.append("a.doctor_id = %s")
            params.append(filters.doctor_id)
        if filters.patient_id is not None:
            conditions.append("a.patient_id = %s")
            params.append(filters.patient_id)
        if filters.status is not None:
            conditions.append("a.status = %s")
            params.append(filters.status.value)
        if filters.start_date is not None:
            conditions.append("a.start_time >= %s")
            params.append(filters.start_date)
        if filters.end_date is not None:
            conditions.append("a.start_time <= %s")
            params.append(filters.end_date)

        where = " AND ".join(conditions)
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM appointments a WHERE {where}",
            tuple(params)
        )
        rows = self.postgres.execute(
            _SELECT_WITH_NAMES + f" WHERE {where} ORDER BY a.start_time ASC LIMIT %s OFFSET %s",
            tuple(params) + (limit, offset)
        )

        return [Appointment.model_validate(row) for row in rows], total or 0

    def calendar_events(
        self,
        start: datetime,
        end: datetime,
        doctor_id: UUID | None = None
    ) -> list[CalendarEvent]:
        """
        Appointments overlapping [start, end) shaped for the calendar view.

        Colors follow STATUS_COLORS.
        """
        query = _SELECT_WITH_NAMES + """
            WHERE a.clinic_id = %s AND a.start_time < %s AND a.end_time > %s
        """
        params: list = [get_current_clinic_id(), end, start]
        if doctor_id is not None:
            query += " AND a.doctor_id = %s"
            params.append(doctor_id)
        query += " ORDER BY a.start_time ASC"

        rows = self.postgres.execute(query, tuple(params))

        events = []
        for row in rows:
            apt = Appointment.model_validate(row)
            color = STATUS_COLORS[apt.status]
            events.append(CalendarEvent(
                id=str(apt.id),
                title=f"{apt.patient_name} - Dr. {apt.doctor_name}",
                start=apt.start_time,
                end=apt.end_time,
                background_color=color,
                border_color=color,
                resource={
                    "appointment_id": str(apt.id),
                    "patient_id": str(apt.patient_id),
                    "patient_name": apt.patient_name,
                    "doctor_id": str(apt.doctor_id),
                    "doctor_name": apt.doctor_name,
                    "status": apt.status.value,
                    "reason": apt.reason,
                },
            ))

        return events
