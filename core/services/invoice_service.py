"""
Invoice service for billing and payments.

Money math and status rules live in core.invoice_calculator; this service
loads and persists invoices, their lines and their payments.
"""

import logging
from decimal import Decimal
from uuid import UUID, uuid4

import psycopg2.errors

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.exceptions import InvoiceNotDeletableError, PaymentNotAllowedError
from core.invoice_calculator import (
    calculate_balance,
    calculate_invoice_totals,
    calculate_item_total,
    calculate_total_paid,
    can_add_payment,
    can_delete_invoice,
    determine_payment_status,
    generate_invoice_number,
)
from core.models import (
    Invoice, InvoiceCreate, InvoiceUpdate, InvoiceFilter, InvoiceStatus, InvoiceSummary,
    Payment, PaymentCreate,
)
from utils.user_context import get_current_clinic_id, get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {"status", "due_date", "notes"}

_INVOICE_FIELDS = set(Invoice.model_fields) - {"items", "payments", "total_paid", "balance"}


class InvoiceService:
    """Service for invoice operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def _last_invoice_number(self) -> str | None:
        return self.postgres.execute_scalar(
            """
            SELECT invoice_number FROM invoices
            WHERE clinic_id = %s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (get_current_clinic_id(),)
        )

    def _hydrate(self, row: dict, items: list[dict], payments: list[dict]) -> Invoice:
        """Build an Invoice with lines, payments and derived paid/balance."""
        invoice = Invoice.model_validate({
            **{k: v for k, v in row.items() if k in _INVOICE_FIELDS},
            "items": items,
            "payments": payments,
        })
        invoice.total_paid = calculate_total_paid(invoice.payments)
        invoice.balance = calculate_balance(invoice.total, invoice.total_paid)
        return invoice

    def create(self, data: InvoiceCreate) -> Invoice:
        """
        Issue an invoice with its lines.

        The invoice number continues the clinic's INV-NNNNNN sequence.

        Returns:
            Created invoice in PENDING status
        """
        clinic_id = get_current_clinic_id()
        patient = self.postgres.execute_single(
            "SELECT id FROM patients WHERE id = %s AND clinic_id = %s AND deleted_at IS NULL",
            (data.patient_id, clinic_id)
        )
        if patient is None:
            raise ValueError(f"Patient {data.patient_id} not found")

        totals = calculate_invoice_totals(data.items)
        invoice_id = uuid4()
        invoice_number = generate_invoice_number(self._last_invoice_number())
        now = now_utc()

        statements = [(
            """
            INSERT INTO invoices (
                id, clinic_id, patient_id, issued_by_id,
                invoice_number, status, issue_date, due_date,
                subtotal, discount, tax, total, notes,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                invoice_id, clinic_id, data.patient_id, get_current_user_id(),
                invoice_number, "PENDING", now, data.due_date,
                totals.subtotal, totals.total_discount, totals.tax, totals.total, data.notes,
                now, now
            )
        )]
        for item in data.items:
            statements.append((
                """
                INSERT INTO invoice_items (
                    id, invoice_id, service_id, description,
                    quantity, unit_price, discount, total
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    uuid4(), invoice_id, item.service_id, item.description,
                    item.quantity, item.unit_price, item.discount, calculate_item_total(item)
                )
            ))

        try:
            results = self.postgres.execute_many_returning(statements)
        except psycopg2.errors.UniqueViolation:
            raise ValueError(f"Invoice number {invoice_number} was just issued; please retry")

        invoice = self._hydrate(results[0][0], [rows[0] for rows in results[1:]], [])

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={
                "created": {
                    "invoice_number": invoice_number,
                    "patient_id": str(data.patient_id),
                    "subtotal": str(totals.subtotal),
                    "discount": str(totals.total_discount),
                    "total": str(totals.total),
                    "items": len(data.items)
                }
            },
            entity_name=f"Invoice {invoice_number}"
        )

        return invoice

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID with lines and payments.

        Returns:
            Invoice if found in the current clinic, None otherwise.
        """
        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE id = %s AND clinic_id = %s",
            (invoice_id, get_current_clinic_id())
        )
        if row is None:
            return None

        items = self.postgres.execute(
            "SELECT * FROM invoice_items WHERE invoice_id = %s ORDER BY description ASC",
            (invoice_id,)
        )
        payments = self.postgres.execute(
            "SELECT * FROM payments WHERE invoice_id = %s ORDER BY payment_date ASC",
            (invoice_id,)
        )

        return self._hydrate(row, items, payments)

    def view(self, invoice_id: UUID) -> Invoice:
        """
        Open an invoice. Access is audited.

        Raises:
            ValueError: If invoice not found
        """
        invoice = self.get_by_id(invoice_id)
        if invoice is None:
            raise ValueError(f"Invoice {invoice_id} not found")

        self.audit.log_access("invoice", invoice.id, f"Invoice {invoice.invoice_number}")
        return invoice

    def list_filtered(
        self,
        filters: InvoiceFilter,
        limit: int = 10,
        offset: int = 0
    ) -> tuple[list[Invoice], int, InvoiceSummary]:
        """
        List invoices matching filters, newest first.

        Returns:
            (invoices without lines, total matching count, summary over the page)
        """
        conditions = ["i.clinic_id = %s"]
        params: list = [get_current_clinic_id()]

        if filters.patient_id is not None:
            conditions.append("i.patient_id = %s")
            params.append(filters.patient_id)
        if filters.status is not None:
            conditions.append("i.status = %s")
            params.append(filters.status.value)
        if filters.start_date is not None:
            conditions.append("i.issue_date >= %s")
            params.append(filters.start_date)
        if filters.end_date is not None:
            conditions.append("i.issue_date <= %s")
            params.append(filters.end_date)

        where = " AND ".join(conditions)
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM invoices i WHERE {where}",
            tuple(params)
        ) or 0
        rows = self.postgres.execute(
            f"""
            SELECT i.*,
                   COALESCE((SELECT SUM(p.amount) FROM payments p WHERE p.invoice_id = i.id), 0)
                       AS paid_amount
            FROM invoices i
            WHERE {where}
            ORDER BY i.created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params) + (limit, offset)
        )

        invoices = []
        for row in rows:
            invoice = self._hydrate(row, [], [])
            invoice.total_paid = Decimal(row["paid_amount"])
            invoice.balance = calculate_balance(invoice.total, invoice.total_paid)
            invoices.append(invoice)

        total_amount = sum((inv.total for inv in invoices), Decimal("0"))
        total_paid = sum((inv.total_paid for inv in invoices), Decimal("0"))
        summary = InvoiceSummary(
            total_invoices=total,
            total_amount=total_amount,
            total_paid=total_paid,
            total_pending=total_amount - total_paid,
        )

        return invoices, total, summary

    def update(self, invoice_id: UUID, data: InvoiceUpdate) -> Invoice:
        """
        Update invoice status, due date or notes.

        Raises:
            ValueError: If invoice not found
        """
        current = self.get_by_id(invoice_id)
        if current is None:
            raise ValueError(f"Invoice {invoice_id} not found")

        updates = data.model_dump(exclude_none=True)
        if "status" in updates and hasattr(updates["status"], "value"):
            updates["status"] = updates["status"].value

        valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
        if not valid_updates:
            return current

        set_parts = [f"{field} = %s" for field in valid_updates]
        params = list(valid_updates.values())
        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.append(invoice_id)

        row = self.postgres.execute_returning(
            f"""
            UPDATE invoices
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]

        updated = self._hydrate(
            row,
            [item.model_dump() for item in current.items],
            [payment.model_dump() for payment in current.payments]
        )

        changes = compute_changes(
            current.model_dump(mode="json", exclude={"items", "payments"}),
            updated.model_dump(mode="json", exclude={"items", "payments"})
        )
        if changes:
            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.UPDATE,
                changes=changes,
                entity_name=f"Invoice {current.invoice_number}"
            )

        return updated

    def delete(self, invoice_id: UUID) -> bool:
        """
        Delete an unpaid invoice that has no payments.

        Returns:
            True if deleted, False if not found

        Raises:
            InvoiceNotDeletableError: If the invoice is paid or has payments
        """
        current = self.get_by_id(invoice_id)
        if current is None:
            return False

        check = can_delete_invoice(current.status, len(current.payments) > 0)
        if not check.can_delete:
            raise InvoiceNotDeletableError(check.reason)

        self.postgres.execute_many_returning([
            ("DELETE FROM invoice_items WHERE invoice_id = %s", (invoice_id,)),
            ("DELETE FROM invoices WHERE id = %s", (invoice_id,)),
        ])

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")},
            entity_name=f"Invoice {current.invoice_number}"
        )

        return True

    def add_payment(self, invoice_id: UUID, data: PaymentCreate) -> Payment:
        """
        Record a payment and move the invoice to the status it implies.

        The invoice row is locked and its payments re-summed inside the
        write transaction, so concurrent payments on one invoice are applied
        one after the other and the last one sees every earlier amount.

        Payments on PAID invoices are accepted (adjustments, overpayment).

        Raises:
            ValueError: If invoice not found
            PaymentNotAllowedError: If the invoice is cancelled
        """
        now = now_utc()

        with self.postgres.transaction() as tx:
            invoice = tx.execute_single(
                "SELECT invoice_number, status, total FROM invoices WHERE id = %s FOR UPDATE",
                (invoice_id,)
            )
            if invoice is None:
                raise ValueError(f"Invoice {invoice_id} not found")

            old_status = InvoiceStatus(invoice["status"])
            check = can_add_payment(old_status)
            if not check.can_add:
                raise PaymentNotAllowedError(check.reason)

            old_total_paid = tx.execute_single(
                "SELECT COALESCE(SUM(amount), 0) AS total_paid FROM payments WHERE invoice_id = %s",
                (invoice_id,)
            )["total_paid"]
            new_total_paid = old_total_paid + data.amount
            new_status = determine_payment_status(invoice["total"], new_total_paid)

            payment_row = tx.execute_single(
                """
                INSERT INTO payments (
                    id, invoice_id, amount, method, reference, notes, payment_date
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (uuid4(), invoice_id, data.amount, data.method.value, data.reference, data.notes, now)
            )
            if new_status != old_status:
                tx.execute(
                    "UPDATE invoices SET status = %s, updated_at = %s WHERE id = %s",
                    (new_status.value, now, invoice_id)
                )

        payment = Payment.model_validate(payment_row)

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.UPDATE,
            changes={
                "payment_recorded": str(data.amount),
                "total_paid": {"old": str(old_total_paid), "new": str(new_total_paid)},
                "status": {"old": old_status.value, "new": new_status.value}
            },
            entity_name=f"Payment on invoice {invoice['invoice_number']}"
        )

        if new_status != old_status:
            logger.info("Invoice %s moved %s -> %s", invoice["invoice_number"],
                        old_status.value, new_status.value)

        return payment
