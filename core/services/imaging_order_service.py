"""
Imaging order service.

An imaging order carries one study. The radiologist's report and images
are attached by URL on update; moving the order to COMPLETED stamps
completed_at.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.models import ImagingOrder, ImagingOrderCreate, ImagingOrderUpdate, OrderFilter, OrderStatus
from core.services.lab_order_service import order_conditions
from utils.user_context import get_current_clinic_id, get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "status", "report_url", "images_url", "report_file_name", "images_file_name",
    "findings", "impression"
}

_SELECT_WITH_NAMES = """
    SELECT o.*,
           concat_ws(' ', p.first_name, p.middle_name, p.last_name) AS patient_name,
           u.name AS doctor_name
    FROM imaging_orders o
    JOIN patients p ON p.id = o.patient_id
    LEFT JOIN users u ON u.id = o.doctor_id
"""

_DISPLAY_FIELDS = {"patient_name", "doctor_name"}


class ImagingOrderService:
    """Service for imaging order operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: ImagingOrderCreate) -> ImagingOrder:
        """
        Order an imaging study. The ordering doctor defaults to the current user.

        Raises:
            ValueError: If the patient, or the given note for that patient, is not found
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

        if data.medical_note_id is not None:
            note = self.postgres.execute_single(
                "SELECT id FROM medical_notes WHERE id = %s AND patient_id = %s AND clinic_id = %s",
                (data.medical_note_id, data.patient_id, clinic_id)
            )
            if note is None:
                raise ValueError(f"Medical note {data.medical_note_id} not found for this patient")

        now = now_utc()
        row = self.postgres.execute_returning(
            """
            INSERT INTO imaging_orders (
                id, clinic_id, patient_id, doctor_id, medical_note_id,
                order_date, study_type, body_part, reason, clinical_notes, status,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), clinic_id, data.patient_id, data.doctor_id or get_current_user_id(),
                data.medical_note_id,
                now, data.study_type.value, data.body_part, data.reason, data.clinical_notes,
                OrderStatus.PENDING.value,
                now, now
            )
        )[0]

        order = ImagingOrder.model_validate({**row, "patient_name": patient["name"]})

        self.audit.log_change(
            entity_type="imaging_order",
            entity_id=order.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)},
            entity_name=f"Imaging order - {patient['name']}"
        )

        return order

    def get_by_id(self, order_id: UUID) -> ImagingOrder | None:
        row = self.postgres.execute_single(
            _SELECT_WITH_NAMES + " WHERE o.id = %s AND o.clinic_id = %s",
            (order_id, get_current_clinic_id())
        )
        if row is None:
            return None

        return ImagingOrder.model_validate(row)

    def view(self, order_id: UUID) -> ImagingOrder:
        """
        Open an imaging order. Access is audited.

        Raises:
            ValueError: If order not found
        """
        order = self.get_by_id(order_id)
        if order is None:
            raise ValueError(f"Imaging order {order_id} not found")

        self.audit.log_access("imaging_order", order.id, f"Imaging order - {order.patient_name}")
        return order

    def update(self, order_id: UUID, data: ImagingOrderUpdate) -> ImagingOrder:
        """
        Update status, report or findings.

        Raises:
            ValueError: If order not found
        """
        current = self.get_by_id(order_id)
        if current is None:
            raise ValueError(f"Imaging order {order_id} not found")

        updates = data.model_dump(mode="json", exclude_none=True)
        valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
        if not valid_updates:
            return current

        now = now_utc()
        if valid_updates.get("status") == OrderStatus.COMPLETED.value and current.completed_at is None:
            valid_updates["completed_at"] = now

        set_parts = []
        params = []
        for field, value in valid_updates.items():
            set_parts.append(f"{field} = %s")
            params.append(value)

        set_parts.append("updated_at = %s")
        params.append(now)
        params.append(order_id)

        row = self.postgres.execute_returning(
            f"""
            UPDATE imaging_orders
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]

        updated = ImagingOrder.model_validate(
            {**row, "patient_name": current.patient_name, "doctor_name": current.doctor_name}
        )

        changes = compute_changes(
            current.model_dump(mode="json", exclude=_DISPLAY_FIELDS),
            updated.model_dump(mode="json", exclude=_DISPLAY_FIELDS)
        )
        if changes:
            self.audit.log_change(
                entity_type="imaging_order",
                entity_id=order_id,
                action=AuditAction.UPDATE,
                changes=changes,
                entity_name=f"Imaging order - {current.patient_name}"
            )

        return updated

    def delete(self, order_id: UUID) -> bool:
        """
        Returns:
            True if deleted, False if not found
        """
        current = self.get_by_id(order_id)
        if current is None:
            return False

        self.postgres.execute_returning(
            "DELETE FROM imaging_orders WHERE id = %s RETURNING id",
            (order_id,)
        )

        self.audit.log_change(
            entity_type="imaging_order",
            entity_id=order_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json", exclude=_DISPLAY_FIELDS)},
            entity_name=f"Imaging order - {current.patient_name}"
        )

        return True

    def list_filtered(
        self,
        filters: OrderFilter,
        limit: int = 20,
        offset: int = 0
    ) -> tuple[list[ImagingOrder], int]:
        """
        List imaging orders, newest first.

        Returns:
            (orders, total matching count)
        """
        conditions, params = order_conditions(filters)
        if filters.study_type is not None:
            conditions.append("o.study_type = %s")
            params.append(filters.study_type.value)

        where = " AND ".join(conditions)
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM imaging_orders o WHERE {where}",
            tuple(params)
        )
        rows = self.postgres.execute(
            _SELECT_WITH_NAMES + f" WHERE {where} ORDER BY o.order_date DESC LIMIT %s OFFSET %s",
            tuple(params) + (limit, offset)
        )

        return [ImagingOrder.model_validate(row) for row in rows], total or 0
