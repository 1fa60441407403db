"""FIFO allocation of receipts against invoices"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence

from recovery_engine.domain.exceptions import ValidationError
from recovery_engine.domain.models import (
    Allocation,
    AllocationResult,
    Invoice,
    InvoiceBalance,
    Receipt,
    UnappliedCredit,
)
from recovery_engine.utils.money import ZERO, to_decimal


def _checked_amount(record_type: str, record_id: str, field: str, value, allow_zero: bool = False) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError as e:
        raise ValidationError(str(e), record_type, record_id) from e
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number, got {value!r}", record_type, record_id)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field} must be positive, got {amount}", record_type, record_id)
    return amount


def validate_invoices(invoices: Iterable[Invoice]) -> Dict[str, Decimal]:
    """Check every invoice before any calculation; returns invoice id -> amount"""
    amounts: Dict[str, Decimal] = {}
    for invoice in invoices:
        if invoice.id in amounts:
            raise ValidationError("duplicate invoice id", "invoice", invoice.id)
        if not isinstance(invoice.invoice_date, date):
            raise ValidationError("invoice_date is required", "invoice", invoice.id)
        amounts[invoice.id] = _checked_amount("invoice", invoice.id, "amount", invoice.amount)
        if invoice.payment_terms_days is not None and invoice.payment_terms_days < 0:
            raise ValidationError(
                f"payment_terms_days must not be negative, got {invoice.payment_terms_days}",
                "invoice",
                invoice.id,
            )
        if invoice.interest_rate is not None:
            _checked_amount("invoice", invoice.id, "interest_rate", invoice.interest_rate, allow_zero=True)
    return amounts


def validate_receipts(receipts: Iterable[Receipt]) -> Dict[str, Decimal]:
    """Check every receipt before any calculation; returns receipt id -> amount"""
    amounts: Dict[str, Decimal] = {}
    for receipt in receipts:
        if receipt.id in amounts:
            raise ValidationError("duplicate receipt id", "receipt", receipt.id)
        if not isinstance(receipt.receipt_date, date):
            raise ValidationError("receipt_date is required", "receipt", receipt.id)
        amounts[receipt.id] = _checked_amount("receipt", receipt.id, "amount", receipt.amount)
    return amounts


def fifo_invoice_order(invoices: Iterable[Invoice]) -> List[Invoice]:
    """Oldest first; invoice number then id break ties deterministically"""
    return sorted(invoices, key=lambda i: (i.invoice_date, i.invoice_number, i.id))


def fifo_receipt_order(receipts: Iterable[Receipt]) -> List[Receipt]:
    return sorted(receipts, key=lambda r: (r.receipt_date, r.voucher_number, r.id))


def receipts_as_of(receipts: Iterable[Receipt], as_of: date) -> List[Receipt]:
    """Receipts already received on the evaluation date; later ones have not happened yet"""
    return [r for r in receipts if r.receipt_date <= as_of]


def allocate(invoices: Sequence[Invoice], receipts: Sequence[Receipt]) -> AllocationResult:
    """
    Match receipts to invoices in strict chronological (FIFO) order.

    Each receipt, oldest first, pays down the oldest invoice that still has a
    balance, moving to the next invoice once the current one is settled.
    Receipts only ever pay invoices of the same customer. A receipt dated
    before the invoice it ends up paying is allowed: allocation follows
    amount order, not causality.

    Any receipt amount left once every invoice is settled is reported as an
    UnappliedCredit.

    Raises:
        ValidationError: any malformed record rejects the whole batch before
            anything is allocated
    """
    invoice_amounts = validate_invoices(invoices)
    receipt_amounts = validate_receipts(receipts)

    invoices_by_customer: Dict[str, List[Invoice]] = defaultdict(list)
    for invoice in invoices:
        invoices_by_customer[invoice.customer_id].append(invoice)
    receipts_by_customer: Dict[str, List[Receipt]] = defaultdict(list)
    for receipt in receipts:
        receipts_by_customer[receipt.customer_id].append(receipt)

    allocations: List[Allocation] = []
    balances: List[InvoiceBalance] = []
    unapplied: List[UnappliedCredit] = []

    for customer_id in sorted(set(invoices_by_customer) | set(receipts_by_customer)):
        ordered_invoices = fifo_invoice_order(invoices_by_customer.get(customer_id, []))
        ordered_receipts = fifo_receipt_order(receipts_by_customer.get(customer_id, []))

        remaining = {inv.id: invoice_amounts[inv.id] for inv in ordered_invoices}
        settled_on: Dict[str, date] = {}
        last_paid_on: Dict[str, date] = {}
        cursor = 0

        for receipt in ordered_receipts:
            receipt_left = receipt_amounts[receipt.id]

            while receipt_left > ZERO and cursor < len(ordered_invoices):
                invoice = ordered_invoices[cursor]
                applied = min(remaining[invoice.id], receipt_left)
                allocations.append(
                    Allocation(
                        invoice_id=invoice.id,
                        receipt_id=receipt.id,
                        allocated_amount=applied,
                        allocation_date=receipt.receipt_date,
                        invoice_number=invoice.invoice_number,
                        voucher_number=receipt.voucher_number,
                    )
                )
                remaining[invoice.id] -= applied
                receipt_left -= applied
                last_paid_on[invoice.id] = receipt.receipt_date
                if remaining[invoice.id] == ZERO:
                    settled_on[invoice.id] = receipt.receipt_date
                    cursor += 1

            if receipt_left > ZERO:
                unapplied.append(
                    UnappliedCredit(
                        receipt_id=receipt.id,
                        customer_id=customer_id,
                        voucher_number=receipt.voucher_number,
                        receipt_date=receipt.receipt_date,
                        amount=receipt_left,
                    )
                )

        for invoice in ordered_invoices:
            amount = invoice_amounts[invoice.id]
            balances.append(
                InvoiceBalance(
                    invoice_id=invoice.id,
                    amount=amount,
                    paid_amount=amount - remaining[invoice.id],
                    outstanding_amount=remaining[invoice.id],
                    fully_paid_on=settled_on.get(invoice.id),
                    last_payment_date=last_paid_on.get(invoice.id),
                )
            )

    return AllocationResult(
        allocations=tuple(allocations),
        balances=tuple(balances),
        unapplied_credits=tuple(unapplied),
    )
