"""
Invoice money math and payment-status rules.

Pure functions over Decimal amounts; no I/O. Items need quantity, unit_price
and discount attributes; payments need an amount attribute.

Tax is not modelled here and is always zero. Negative line totals (a discount
larger than the line) are passed through unchanged.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from core.models.invoice import InvoiceStatus

_INVOICE_NUMBER = re.compile(r"INV-([0-9]+)")
_ZERO = Decimal("0")


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    total_discount: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class DeleteCheck:
    can_delete: bool
    reason: str | None = None


@dataclass(frozen=True)
class PaymentCheck:
    can_add: bool
    reason: str | None = None


def _amount(value: Any) -> Decimal:
    # Decimal(str()) keeps 0.1 as 0.1 when a float slips through
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def calculate_item_total(item: Any) -> Decimal:
    """quantity * unit_price - discount."""
    return item.quantity * _amount(item.unit_price) - _amount(item.discount)


def calculate_invoice_totals(items: Iterable[Any]) -> InvoiceTotals:
    """Subtotal, discount, tax and total over invoice lines."""
    subtotal = _ZERO
    total_discount = _ZERO
    for item in items:
        subtotal += item.quantity * _amount(item.unit_price)
        total_discount += _amount(item.discount)

    tax = _ZERO
    return InvoiceTotals(
        subtotal=subtotal,
        total_discount=total_discount,
        tax=tax,
        total=subtotal - total_discount + tax,
    )


def calculate_total_paid(payments: Iterable[Any]) -> Decimal:
    return sum((_amount(p.amount) for p in payments), _ZERO)


def calculate_balance(total: Decimal, total_paid: Decimal) -> Decimal:
    """Outstanding amount. Negative when overpaid."""
    return _amount(total) - _amount(total_paid)


def determine_payment_status(total: Decimal, total_paid: Decimal) -> InvoiceStatus:
    """
    Status implied by how much has been paid.

    PAID once payments reach the total (overpayment included), PARTIAL for
    any positive amount short of it, PENDING otherwise.
    """
    if _amount(total_paid) >= _amount(total):
        return InvoiceStatus.PAID
    if _amount(total_paid) > 0:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING


def can_delete_invoice(status: Any, has_payments: bool) -> DeleteCheck:
    """Paid invoices and invoices with payments are kept for the books."""
    if getattr(status, "value", status) == InvoiceStatus.PAID.value:
        return DeleteCheck(False, "cannot delete a paid invoice")
    if has_payments:
        return DeleteCheck(False, "cannot delete an invoice with recorded payments")
    return DeleteCheck(True)


def can_add_payment(status: Any) -> PaymentCheck:
    """Only cancelled invoices refuse payments; PAID accepts adjustments."""
    if getattr(status, "value", status) == InvoiceStatus.CANCELLED.value:
        return PaymentCheck(False, "cannot pay a cancelled invoice")
    return PaymentCheck(True)


def generate_invoice_number(previous: str | None) -> str:
    """
    Next number in the INV-NNNNNN sequence.

    Missing or malformed previous numbers restart at INV-000001.
    Past 999999 the number keeps its natural width.
    """
    match = _INVOICE_NUMBER.fullmatch(previous) if previous else None
    if match is None:
        return "INV-000001"
    return f"INV-{int(match.group(1)) + 1:06d}"
