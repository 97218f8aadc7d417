"""
Lab order service.

Orders list the requested tests; results are recorded per test and
completing the results completes the order.
"""

import logging
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.models import (
    LabOrder, LabOrderCreate, LabOrderUpdate, LabResult, LabResultCreate, OrderFilter, OrderStatus,
)
from utils.user_context import get_current_clinic_id, get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {"status", "instructions", "results_file_url", "results_file_name"}

_SELECT_WITH_NAMES = """
    SELECT o.*,
           concat_ws(' ', p.first_name, p.middle_name, p.last_name) AS patient_name,
           u.name AS doctor_name
    FROM lab_orders o
    JOIN patients p ON p.id = o.patient_id
    LEFT JOIN users u ON u.id = o.doctor_id
"""

_DISPLAY_FIELDS = {"patient_name", "doctor_name", "results"}


class LabOrderService:
    """Service for lab order operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def _patient_name(self, patient_id: UUID) -> str | None:
        row = self.postgres.execute_single(
            """
            SELECT concat_ws(' ', first_name, middle_name, last_name) AS name
            FROM patients
            WHERE id = %s AND clinic_id = %s AND deleted_at IS NULL
            """,
            (patient_id, get_current_clinic_id())
        )
        return row["name"] if row else None

    def create(self, data: LabOrderCreate) -> LabOrder:
        """
        Order lab tests. The ordering doctor defaults to the current user.

        Raises:
            ValueError: If the patient, or the given note for that patient, is not found
        """
        patient_name = self._patient_name(data.patient_id)
        if patient_name is None:
            raise ValueError(f"Patient {data.patient_id} not found")

        clinic_id = get_current_clinic_id()
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
            INSERT INTO lab_orders (
                id, clinic_id, patient_id, doctor_id, medical_note_id,
                order_date, tests, instructions, status,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), clinic_id, data.patient_id, data.doctor_id or get_current_user_id(),
                data.medical_note_id,
                now, Json([t.model_dump(mode="json", exclude_none=True) for t in data.tests]),
                data.instructions, OrderStatus.PENDING.value,
                now, now
            )
        )[0]

        order = LabOrder.model_validate({**row, "patient_name": patient_name})

        self.audit.log_change(
            entity_type="lab_order",
            entity_id=order.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)},
            entity_name=f"Lab order - {patient_name}"
        )

        return order

    def get_by_id(self, order_id: UUID) -> LabOrder | None:
        """
        Get a lab order with its results.

        Returns:
            LabOrder if found in the current clinic, None otherwise.
        """
        row = self.postgres.execute_single(
            _SELECT_WITH_NAMES + " WHERE o.id = %s AND o.clinic_id = %s",
            (order_id, get_current_clinic_id())
        )
        if row is None:
            return None

        results = self.postgres.execute(
            "SELECT * FROM lab_results WHERE lab_order_id = %s ORDER BY created_at ASC",
            (order_id,)
        )
        return LabOrder.model_validate({**row, "results": results})

    def view(self, order_id: UUID) -> LabOrder:
        """
        Open a lab order. Access is audited.

        Raises:
            ValueError: If order not found
        """
        order = self.get_by_id(order_id)
        if order is None:
            raise ValueError(f"Lab order {order_id} not found")

        self.audit.log_access("lab_order", order.id, f"Lab order - {order.patient_name}")
        return order

    def update(self, order_id: UUID, data: LabOrderUpdate) -> LabOrder:
        """
        Raises:
            ValueError: If order not found
        """
        current = self.get_by_id(order_id)
        if current is None:
            raise ValueError(f"Lab order {order_id} not found")

        updates = data.model_dump(mode="json", exclude_none=True)
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
        params.append(order_id)

        row = self.postgres.execute_returning(
            f"""
            UPDATE lab_orders
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]

        updated = LabOrder.model_validate({
            **row,
            "patient_name": current.patient_name,
            "doctor_name": current.doctor_name,
            "results": current.results,
        })

        changes = compute_changes(
            current.model_dump(mode="json", exclude=_DISPLAY_FIELDS),
            updated.model_dump(mode="json", exclude=_DISPLAY_FIELDS)
        )
        if changes:
            self.audit.log_change(
                entity_type="lab_order",
                entity_id=order_id,
                action=AuditAction.UPDATE,
                changes=changes,
                entity_name=f"Lab order - {current.patient_name}"
            )

        return updated

    def delete(self, order_id: UUID) -> bool:
        """
        Delete a lab order and its results.

        Returns:
            True if deleted, False if not found
        """
        current = self.get_by_id(order_id)
        if current is None:
            return False

        self.postgres.execute_returning(
            "DELETE FROM lab_orders WHERE id = %s RETURNING id",
            (order_id,)
        )

        self.audit.log_change(
            entity_type="lab_order",
            entity_id=order_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json", exclude=_DISPLAY_FIELDS)},
            entity_name=f"Lab order - {current.patient_name}"
        )

        return True

    def add_results(self, order_id: UUID, results: list[LabResultCreate]) -> list[LabResult]:
        """
        Record results for an order and mark it COMPLETED.

        A result with a value is dated now; an empty one stays undated.

        Raises:
            ValueError: If order not found or no results given
        """
        if not results:
            raise ValueError("At least one result is required")

        current = self.get_by_id(order_id)
        if current is None:
            raise ValueError(f"Lab order {order_id} not found")

        now = now_utc()
        statements = [
            (
                """
                INSERT INTO lab_results (
                    id, lab_order_id, test_name, result, unit,
                    reference_range, flag, result_date, created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    uuid4(), order_id, r.test_name, r.result, r.unit,
                    r.reference_range, r.flag.value if r.flag else None,
                    now if r.result else None, now
                )
            )
            for r in results
        ]
        statements.append((
            "UPDATE lab_orders SET status = %s, updated_at = %s WHERE id = %s",
            (OrderStatus.COMPLETED.value, now, order_id)
        ))

        inserted = self.postgres.execute_many_returning(statements)
        created = [LabResult.model_validate(rows[0]) for rows in inserted[:-1]]

        self.audit.log_change(
            entity_type="lab_order",
            entity_id=order_id,
            action=AuditAction.UPDATE,
            changes={
                "results_added": [r.model_dump(mode="json", exclude_none=True) for r in results],
                "status": {"old": current.status.value, "new": OrderStatus.COMPLETED.value},
            },
            entity_name=f"Lab results - {current.patient_name}"
        )

        return created

    def list_filtered(
        self,
        filters: OrderFilter,
        limit: int = 20,
        offset: int = 0
    ) -> tuple[list[LabOrder], int]:
        """
        List lab orders, newest first. Results are not loaded.

        Returns:
            (orders, total matching count)
        """
        conditions, params = order_conditions(filters)
        where = " AND ".join(conditions)

        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM lab_orders o WHERE {where}",
            tuple(params)
        )
        rows = self.postgres.execute(
            _SELECT_WITH_NAMES + f" WHERE {where} ORDER BY o.order_date DESC LIMIT %s OFFSET %s",
            tuple(params) + (limit, offset)
        )

        return [LabOrder.model_validate(row) for row in rows], total or 0


def order_conditions(filters: OrderFilter) -> tuple[list[str], list]:
    """WHERE conditions over alias o shared by lab and imaging order listings."""
    conditions = ["o.clinic_id = %s"]
    params: list = [get_current_clinic_id()]

    if filters.patient_id is not None:
        conditions.append("o.patient_id = %s")
        params.append(filters.patient_id)
    if filters.doctor_id is not None:
        conditions.append("o.doctor_id = %s")
        params.append(filters.doctor_id)
    if filters.medical_note_id is not None:
        conditions.append("o.medical_note_id = %s")
        params.append(filters.medical_note_id)
    if filters.status is not None:
        conditions.append("o.status = %s")
        params.append(filters.status.value)
    if filters.start_date is not None:
        conditions.append("o.order_date >= %s")
        params.append(filters.start_date)
    if filters.end_date is not None:
        conditions.append("o.order_date <= %s")
        params.append(filters.end_date)

    return conditions, params
