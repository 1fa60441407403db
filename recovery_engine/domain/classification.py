"""Customer category engine - payment track record to risk category"""

from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from recovery_engine.config import EngineConfig, load_engine_config
from recovery_engine.domain.allocation import fifo_invoice_order
from recovery_engine.domain.exceptions import ValidationError
from recovery_engine.domain.models import (
    AllocationResult,
    CategoryChange,
    CategoryRecommendation,
    CustomerCategory,
    Invoice,
    InvoiceDetail,
    InvoiceOutcome,
    MonthlyTrend,
    PaymentStatus,
    RecommendationSummary,
)
from recovery_engine.domain.overrides import TrackRecord, apply_overrides
from recovery_engine.utils.date_utils import days_between, month_key, month_name
from recovery_engine.utils.money import ZERO, percentage, quantize_money


def build_invoice_outcomes(invoices: Iterable[Invoice], allocation: AllocationResult) -> List[InvoiceOutcome]:
    """Pair each invoice with its derived balance, oldest invoice first"""
    balances = {b.invoice_id: b for b in allocation.balances}
    outcomes = []
    for invoice in fifo_invoice_order(invoices):
        balance = balances.get(invoice.id)
        if balance is None:
            raise ValidationError("invoice is missing from the allocation result", "invoice", invoice.id)
        outcomes.append(InvoiceOutcome(invoice=invoice, balance=balance))
    return outcomes


def _invoice_detail(outcome: InvoiceOutcome, as_of: date, config: EngineConfig) -> InvoiceDetail:
    invoice, balance = outcome.invoice, outcome.balance
    due_date = invoice.due_date

    if balance.outstanding_amount == ZERO:
        status, payment_date = PaymentStatus.PAID, balance.fully_paid_on
    elif (
        balance.last_payment_date is not None
        and balance.outstanding_amount < config.partial_payment_threshold_amount
    ):
        # Small remainder after a payment: treated as settled on the last payment
        status, payment_date = PaymentStatus.EFFECTIVELY_PAID, balance.last_payment_date
    else:
        status, payment_date = PaymentStatus.UNPAID, None

    if payment_date is not None:
        delay_days = days_between(due_date, payment_date)
    else:
        delay_days = max(0, days_between(due_date, as_of))

    adjusted_delay = max(0, delay_days - config.grace_period_days)
    return InvoiceDetail(
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        due_date=due_date,
        payment_date=payment_date,
        delay_days=delay_days,
        adjusted_delay=adjusted_delay,
        category=config.delay_bands.category_for(adjusted_delay),
        status=status,
        amount=balance.amount,
        outstanding_amount=balance.outstanding_amount,
    )


def _payment_bucket(detail: InvoiceDetail, grace_period_days: int) -> CustomerCategory:
    """
    Breakdown bucket of a paid invoice: Alpha only when on time, so the
    Alpha bucket always equals the on-time count; a late payment inside the
    Alpha delay band counts as Beta.
    """
    if detail.delay_days <= grace_period_days:
        return CustomerCategory.ALPHA
    return CustomerCategory.worst(CustomerCategory.BETA, detail.category)


def _monthly_trend(details: Sequence[InvoiceDetail], grace_period_days: int) -> List[MonthlyTrend]:
    buckets: Dict[str, Dict] = OrderedDict()
    for detail in sorted(details, key=lambda d: d.invoice_date):
        key = month_key(detail.invoice_date)
        bucket = buckets.setdefault(
            key,
            {"month_name": month_name(detail.invoice_date), "on_time": 0, "late": 0, "unpaid": 0, "total": 0},
        )
        bucket["total"] += 1
        if detail.status == PaymentStatus.UNPAID:
            bucket["unpaid"] += 1
        elif detail.delay_days <= grace_period_days:
            bucket["on_time"] += 1
        else:
            bucket["late"] += 1

    return [MonthlyTrend(month=key, **values) for key, values in buckets.items()]


def _new_customer(customer_id: str, current_category: CustomerCategory) -> CategoryRecommendation:
    return CategoryRecommendation(
        customer_id=customer_id,
        current_category=current_category,
        recommended_category=CustomerCategory.NEW,
        base_category=CustomerCategory.NEW,
        on_time_percentage=quantize_money(ZERO),
        override_applied=False,
        override_reason=None,
        change_reason="No invoice history",
        payment_breakdown={c: 0 for c in CustomerCategory.ranked()},
    )


def classify(
    customer_id: str,
    outcomes: Sequence[InvoiceOutcome],
    as_of: date,
    config: Optional[EngineConfig] = None,
    current_category: CustomerCategory = CustomerCategory.NEW,
) -> CategoryRecommendation:
    """
    Recommend a category from the customer's payment track record.

    Steps:
    - Paid invoices (including ones whose remainder is under the partial
      payment threshold) are on time when delay <= grace period days
    - On-time percentage = on_time / paid * 100, rounded to 2 places
    - Percentage maps to a base category through the configured bands;
      with no paid invoices there is no qualifying history and the base is New
    - Override rules run in order and can only make the category worse

    Invoices without payment terms have no due date; they are skipped and
    listed in ``skipped_invoice_ids``. The current category is never changed
    here, applying a recommendation is a separate operation.
    """
    config = config or load_engine_config()

    if not outcomes:
        return _new_customer(customer_id, current_category)

    usable = [o for o in outcomes if o.invoice.due_date is not None]
    skipped = tuple(o.invoice.id for o in outcomes if o.invoice.due_date is None)
    details = [_invoice_detail(o, as_of, config) for o in usable]

    grace = config.grace_period_days
    paid = [d for d in details if d.status != PaymentStatus.UNPAID]
    unpaid = [d for d in details if d.status == PaymentStatus.UNPAID]
    on_time = [d for d in paid if d.delay_days <= grace]
    late = [d for d in paid if d.delay_days > grace]
    very_late = [d for d in late if _payment_bucket(d, grace) in (CustomerCategory.GAMMA, CustomerCategory.DELTA)]

    on_time_percentage = percentage(len(on_time), len(paid))
    if paid:
        base = config.category_for_percentage(on_time_percentage)
    else:
        base = CustomerCategory.NEW

    record = TrackRecord(
        details=tuple(details),
        unpaid_overdue_days=tuple(d.delay_days for d in unpaid),
    )
    override = apply_overrides(base, record, config.rule_table())

    if paid:
        change_reason = f"Track record: {on_time_percentage}% on-time payments"
    else:
        change_reason = "No paid invoices yet"
    if override.applied:
        change_reason = f"{change_reason} ({override.reason})"

    breakdown = {c: 0 for c in CustomerCategory.ranked()}
    for detail in paid:
        breakdown[_payment_bucket(detail, grace)] += 1

    return CategoryRecommendation(
        customer_id=customer_id,
        current_category=current_category,
        recommended_category=override.category,
        base_category=base,
        on_time_percentage=on_time_percentage,
        override_applied=override.applied,
        override_reason=override.reason,
        change_reason=change_reason,
        invoice_details=tuple(details),
        eligible_overrides=override.eligible,
        total_invoices=len(details),
        paid_invoices=len(paid),
        unpaid_invoices=len(unpaid),
        on_time_count=len(on_time),
        late_count=len(late) - len(very_late),
        very_late_count=len(very_late),
        total_invoice_amount=sum((d.amount for d in details), ZERO),
        total_paid_amount=sum((d.amount - d.outstanding_amount for d in details), ZERO),
        total_pending_amount=sum((d.outstanding_amount for d in details), ZERO),
        max_overdue_days=record.max_overdue_days,
        payment_breakdown=breakdown,
        monthly_trend=tuple(_monthly_trend(details, grace)),
        skipped_invoice_ids=skipped,
    )


def summarize_recommendations(recommendations: Sequence[CategoryRecommendation]) -> RecommendationSummary:
    """Population counts by recommended and current category"""
    by_recommended = {c: 0 for c in CustomerCategory}
    by_current = {c: 0 for c in CustomerCategory}
    for rec in recommendations:
        by_recommended[rec.recommended_category] += 1
        by_current[rec.current_category] += 1

    rated = [rec for rec in recommendations if rec.paid_invoices > 0]
    if rated:
        average = quantize_money(sum((r.on_time_percentage for r in rated), ZERO) / Decimal(len(rated)))
    else:
        average = quantize_money(ZERO)

    new_customers = by_recommended[CustomerCategory.NEW]
    return RecommendationSummary(
        total_customers=len(recommendations),
        active_customers=len(recommendations) - new_customers,
        new_customers=new_customers,
        by_recommended_category=by_recommended,
        by_current_category=by_current,
        will_change=sum(1 for rec in recommendations if rec.will_change),
        average_on_time_percentage=average,
    )


def select_bulk_changes(recommendations: Iterable[CategoryRecommendation]) -> List[CategoryChange]:
    """
    Changes for a "select all" apply: every recommendation that differs from
    the current category, except customers still recommended New.
    """
    return [
        CategoryChange(
            customer_id=rec.customer_id,
            new_category=rec.recommended_category,
            reason=rec.change_reason,
            days_overdue=rec.max_overdue_days,
        )
        for rec in recommendations
        if rec.eligible_for_bulk_apply
    ]
