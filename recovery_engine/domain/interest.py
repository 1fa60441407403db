"""Period-segmented simple interest on overdue invoice balances"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from recovery_engine.config import EngineConfig, load_engine_config
from recovery_engine.domain.exceptions import IncompleteDataError, ValidationError
from recovery_engine.domain.models import (
    Allocation,
    InterestApplicableFrom,
    InterestBreakdown,
    InterestPeriod,
    Invoice,
)
from recovery_engine.utils.date_utils import add_days, days_between
from recovery_engine.utils.money import DAYS_IN_YEAR, HUNDRED, ZERO, quantize_money, to_decimal


def period_interest(balance: Decimal, annual_rate_percent: Decimal, days: int) -> Decimal:
    """
    Simple daily interest: balance * rate * days / (100 * 365).

    No compounding and no 360-day basis. The result is exact (not rounded).
    """
    return balance * annual_rate_percent * Decimal(days) / (HUNDRED * DAYS_IN_YEAR)


def resolve_anchor_date(invoice: Invoice, config: EngineConfig) -> date:
    """
    Date from which interest accrues.

    An explicit interest_applicable_from on the invoice wins; otherwise the
    configured policy picks the due date, the invoice date, or the due date
    pushed out by the grace period.

    Raises:
        IncompleteDataError: payment terms are missing, so there is no due date
    """
    due_date = invoice.due_date
    if due_date is None:
        raise IncompleteDataError("payment_terms_days is missing, due date unknown", "invoice", invoice.id)

    if invoice.interest_applicable_from is not None:
        return invoice.interest_applicable_from
    if config.interest_applicable_from == InterestApplicableFrom.INVOICE_DATE:
        return invoice.invoice_date
    if config.interest_applicable_from == InterestApplicableFrom.GRACE_ADJUSTED:
        return add_days(due_date, config.grace_period_days)
    return due_date


def _build_period(start: date, end: date, balance: Decimal, rate: Decimal, invoice_id: str) -> InterestPeriod:
    days = days_between(start, end)
    if days < 0:
        raise ValidationError(f"negative interest period {start} -> {end}", "invoice", invoice_id)
    return InterestPeriod(
        start_date=start,
        end_date=end,
        balance_during_period=balance,
        days_in_period=days,
        interest_for_period=period_interest(balance, rate, days),
    )


def _paid_by_date(allocations: Sequence[Allocation]) -> Dict[date, Decimal]:
    paid: Dict[date, Decimal] = {}
    for allocation in sorted(allocations, key=lambda a: a.allocation_date):
        paid[allocation.allocation_date] = paid.get(allocation.allocation_date, ZERO) + to_decimal(
            allocation.allocated_amount
        )
    return paid


def _mark_due_date_boundary(periods: List[InterestPeriod], due_date: date) -> List[InterestPeriod]:
    """Flag the first period that starts at or runs past the due date"""
    for index, period in enumerate(periods):
        if period.end_date > due_date:
            periods[index] = replace(period, is_due_date_boundary=True)
            break
    return periods


def compute_interest(
    invoice: Invoice,
    allocations: Sequence[Allocation],
    as_of: date,
    config: Optional[EngineConfig] = None,
) -> InterestBreakdown:
    """
    Partition an invoice's overdue life into constant-balance periods and
    compute simple daily interest for each.

    Payments on or before the anchor date reduce the opening balance; each
    later payment closes one period and opens the next. If the invoice is
    still not fully paid, a final open period runs to ``as_of``. Payments
    dated after ``as_of`` have not happened yet and are ignored.

    Only ``total_interest`` is rounded (2 places); period amounts stay exact.

    Raises:
        IncompleteDataError: missing payment terms or interest rate
        ValidationError: allocations for another invoice, allocations that
            over-pay the invoice, or a negative period length
    """
    config = config or load_engine_config()

    if invoice.interest_rate is None:
        raise IncompleteDataError("interest_rate is missing", "invoice", invoice.id)
    anchor = resolve_anchor_date(invoice, config)
    due_date = invoice.due_date
    amount = to_decimal(invoice.amount)
    rate = to_decimal(invoice.interest_rate)

    for allocation in allocations:
        if allocation.invoice_id != invoice.id:
            raise ValidationError(
                f"allocation from receipt {allocation.receipt_id} belongs to invoice {allocation.invoice_id}",
                "invoice",
                invoice.id,
            )
    if sum((to_decimal(a.allocated_amount) for a in allocations), ZERO) > amount:
        raise ValidationError("allocations exceed the invoice amount", "invoice", invoice.id)

    effective = sorted(
        (a for a in allocations if a.allocation_date <= as_of),
        key=lambda a: (a.allocation_date, a.voucher_number, a.receipt_id),
    )
    paid_by_date = _paid_by_date(effective)

    fully_paid_on = None
    running = ZERO
    for paid_on, paid in paid_by_date.items():
        running += paid
        if running >= amount:
            fully_paid_on = paid_on
            break

    paid = sum((p for d, p in paid_by_date.items() if d <= anchor), ZERO)
    start = anchor
    periods: List[InterestPeriod] = []

    if paid < amount:
        for event_date, event_paid in paid_by_date.items():
            if event_date <= anchor:
                continue
            periods.append(_build_period(start, event_date, amount - paid, rate, invoice.id))
            paid += event_paid
            start = event_date
            if paid >= amount:
                break
        if paid < amount and as_of > start:
            periods.append(_build_period(start, as_of, amount - paid, rate, invoice.id))

    periods = _mark_due_date_boundary(periods, due_date)
    exact_total = sum((p.interest_for_period for p in periods), ZERO)
    total_paid = sum(paid_by_date.values(), ZERO)

    gross_profit = final_gross_profit = final_gross_profit_percentage = None
    if invoice.gross_profit is not None:
        exact_gp = to_decimal(invoice.gross_profit)
        exact_final = exact_gp - exact_total
        gross_profit = quantize_money(exact_gp)
        final_gross_profit = quantize_money(exact_final)
        final_gross_profit_percentage = quantize_money(exact_final * HUNDRED / amount)

    return InterestBreakdown(
        invoice_id=invoice.id,
        customer_id=invoice.customer_id,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        due_date=due_date,
        anchor_date=anchor,
        invoice_amount=amount,
        interest_rate=rate,
        paid_amount=total_paid,
        outstanding_amount=amount - total_paid,
        fully_paid_on=fully_paid_on,
        as_of=as_of,
        allocations=tuple(effective),
        periods=tuple(periods),
        total_interest=quantize_money(exact_total),
        base_gross_profit=gross_profit,
        final_gross_profit=final_gross_profit,
        final_gross_profit_percentage=final_gross_profit_percentage,
    )
