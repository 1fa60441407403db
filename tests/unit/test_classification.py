"""Unit tests for the customer category engine"""

from datetime import date, timedelta
from decimal import Decimal
from recovery_engine.config import load_engine_config
from recovery_engine.domain.allocation import allocate
from recovery_engine.domain.classification import (
    build_invoice_outcomes,
    classify,
    select_bulk_changes,
    summarize_recommendations,
)
from recovery_engine.domain.models import CustomerCategory, PaymentStatus
from recovery_engine.engine import RecoveryEngine


AS_OF = date(2025, 6, 30)


def _classify(invoices, receipts, as_of=AS_OF, config=None, customer_id="CUST-1", current=CustomerCategory.NEW):
    outcomes = build_invoice_outcomes(invoices, allocate(invoices, receipts))
    return classify(customer_id, outcomes, as_of, config, current_category=current)


def test_ninety_percent_on_time_is_alpha(history_factory):
    """9 of 10 paid invoices on time (one 10 days late) lands on the Alpha boundary"""
    invoices, receipts = history_factory([0] * 9 + [10])

    rec = _classify(invoices, receipts)

    assert rec.on_time_percentage == Decimal("90.00")
    assert rec.base_category == CustomerCategory.ALPHA
    assert rec.recommended_category == CustomerCategory.ALPHA
    assert rec.override_applied is False
    assert rec.change_reason == "Track record: 90.00% on-time payments"
    assert rec.paid_invoices == 10
    assert rec.on_time_count == 9


def test_one_invoice_overdue_beyond_ninety_days_forces_gamma(history_factory):
    """Same 90% record, but one payment 95 days late: override escalates Alpha to Gamma"""
    invoices, receipts = history_factory([0] * 9 + [95])

    rec = _classify(invoices, receipts)

    assert rec.base_category == CustomerCategory.ALPHA
    assert rec.recommended_category == CustomerCategory.GAMMA
    assert rec.override_applied is True
    assert rec.override_reason == "Invoice overdue more than 90 days"
    assert rec.max_overdue_days == 95
    assert "Invoice overdue more than 90 days" in rec.change_reason


def test_no_invoices_is_new():
    rec = classify("CUST-1", [], AS_OF)

    assert rec.recommended_category == CustomerCategory.NEW
    assert rec.base_category == CustomerCategory.NEW
    assert rec.change_reason == "No invoice history"
    assert rec.total_invoices == 0
    assert rec.will_change is False


def test_new_recommendation_never_bulk_applied():
    """A rated customer with no history is recommended New but excluded from bulk apply"""
    rec = classify("CUST-1", [], AS_OF, current_category=CustomerCategory.ALPHA)

    assert rec.will_change is True
    assert rec.eligible_for_bulk_apply is False
    assert select_bulk_changes([rec]) == []


def test_percentage_bands(history_factory):
    """Bands: [90,100] Alpha, [75,90) Beta, [50,75) Gamma, [0,50) Delta"""
    cases = [
        ([0] * 8 + [10] * 2, CustomerCategory.BETA),
        ([0] * 6 + [10] * 4, CustomerCategory.GAMMA),
        ([0] * 4 + [10] * 6, CustomerCategory.DELTA),
        ([0] * 10, CustomerCategory.ALPHA),
    ]
    for delays, expected in cases:
        invoices, receipts = history_factory(delays)
        assert _classify(invoices, receipts).recommended_category == expected


def test_grace_period_counts_slightly_late_as_on_time(history_factory):
    invoices, receipts = history_factory([0, 0, 0, 5])

    strict = _classify(invoices, receipts)
    lenient = _classify(invoices, receipts, config=load_engine_config({"grace_period_days": 5}))

    assert strict.on_time_percentage == Decimal("75.00")
    assert strict.recommended_category == CustomerCategory.BETA
    assert lenient.on_time_percentage == Decimal("100.00")
    assert lenient.recommended_category == CustomerCategory.ALPHA


def test_unpaid_invoices_excluded_from_denominator(history_factory):
    """Unpaid invoices do not dilute the on-time percentage"""
    invoices, receipts = history_factory([0, 0, 0, None, None])
    as_of = invoices[-1].due_date + timedelta(days=3)

    rec = _classify(invoices, receipts, as_of=as_of)

    assert rec.paid_invoices == 3
    assert rec.unpaid_invoices == 2
    assert rec.on_time_percentage == Decimal("100.00")
    assert rec.recommended_category == CustomerCategory.ALPHA
    assert rec.total_pending_amount == Decimal("2000")


def test_no_paid_invoices_with_long_overdue_is_delta(history_factory):
    """Both default rules fire; the harsher one decides and the reason says several were eligible"""
    invoices, receipts = history_factory([None])
    as_of = invoices[0].due_date + timedelta(days=120)

    rec = _classify(invoices, receipts, as_of=as_of)

    assert rec.base_category == CustomerCategory.NEW
    assert rec.recommended_category == CustomerCategory.DELTA
    assert rec.override_applied is True
    assert rec.override_reason.startswith("No paid invoices and an unpaid invoice overdue more than 90 days")
    assert "multiple override rules eligible: 2" in rec.override_reason
    assert len(rec.eligible_overrides) == 2
    assert rec.change_reason.startswith("No paid invoices yet")


def test_no_paid_invoices_recently_due_stays_new(history_factory):
    invoices, receipts = history_factory([None])

    rec = _classify(invoices, receipts, as_of=invoices[0].due_date + timedelta(days=10))

    assert rec.recommended_category == CustomerCategory.NEW
    assert rec.override_applied is False
    assert rec.change_reason == "No paid invoices yet"
    assert rec.invoice_details[0].delay_days == 10


def test_overrides_never_improve_the_category(history_factory):
    """Every invoice 95 days late: Delta by percentage, the Gamma rule must not lift it"""
    invoices, receipts = history_factory([95, 95])

    rec = _classify(invoices, receipts)

    assert rec.base_category == CustomerCategory.DELTA
    assert rec.recommended_category == CustomerCategory.DELTA
    assert rec.override_applied is False
    assert rec.eligible_overrides == ("Invoice overdue more than 90 days",)


def test_partial_payment_threshold(invoice_factory, receipt_factory):
    """A small remainder after payment counts as effectively paid once under the threshold"""
    invoice = invoice_factory(amount="1000", invoice_date=date(2025, 1, 1))
    receipt = receipt_factory(amount="995", receipt_date=invoice.due_date)

    without = _classify([invoice], [receipt])
    with_threshold = _classify(
        [invoice], [receipt], config=load_engine_config({"partial_payment_threshold_amount": "10"})
    )

    assert without.invoice_details[0].status == PaymentStatus.UNPAID
    assert without.paid_invoices == 0
    detail = with_threshold.invoice_details[0]
    assert detail.status == PaymentStatus.EFFECTIVELY_PAID
    assert detail.payment_date == invoice.due_date
    assert with_threshold.on_time_count == 1
    assert with_threshold.recommended_category == CustomerCategory.ALPHA


def test_delay_bands_split_late_and_very_late(history_factory):
    """Per-invoice bands stack their widths: 0-5 Alpha, 6-25 Beta, 26-65 Gamma, beyond Delta"""
    invoices, receipts = history_factory([0, 10, 30, 70])

    rec = _classify(invoices, receipts)

    assert [d.category for d in rec.invoice_details] == [
        CustomerCategory.ALPHA,
        CustomerCategory.BETA,
        CustomerCategory.GAMMA,
        CustomerCategory.DELTA,
    ]
    assert rec.on_time_count == 1
    assert rec.late_count == 1
    assert rec.very_late_count == 2
    assert rec.payment_breakdown == {
        CustomerCategory.ALPHA: 1,
        CustomerCategory.BETA: 1,
        CustomerCategory.GAMMA: 1,
        CustomerCategory.DELTA: 1,
    }


def test_delay_band_edges(history_factory):
    invoices, receipts = history_factory([5, 6, 22, 25, 26, 65, 66])

    rec = _classify(invoices, receipts)

    assert [d.category for d in rec.invoice_details] == [
        CustomerCategory.ALPHA,
        CustomerCategory.BETA,
        CustomerCategory.BETA,
        CustomerCategory.BETA,
        CustomerCategory.GAMMA,
        CustomerCategory.GAMMA,
        CustomerCategory.DELTA,
    ]


def test_late_payment_in_alpha_band_counted_as_late(history_factory):
    """A few days late is still late: it never lands in the on-time Alpha bucket"""
    invoices, receipts = history_factory([0, 3])

    rec = _classify(invoices, receipts)

    assert rec.invoice_details[1].category == CustomerCategory.ALPHA
    assert rec.on_time_count == 1
    assert rec.late_count == 1
    assert rec.very_late_count == 0
    assert rec.payment_breakdown[CustomerCategory.ALPHA] == rec.on_time_count
    assert rec.payment_breakdown[CustomerCategory.BETA] == 1


def test_monthly_trend_buckets_by_invoice_month(history_factory):
    invoices, receipts = history_factory([0, 10, None])

    rec = _classify(invoices, receipts, as_of=invoices[-1].due_date)

    assert [t.month for t in rec.monthly_trend] == ["2024-01", "2024-03"]
    totals = {t.month: (t.on_time, t.late, t.unpaid, t.total) for t in rec.monthly_trend}
    assert totals["2024-01"] == (1, 1, 0, 2)
    assert totals["2024-03"] == (0, 0, 1, 1)
    assert rec.monthly_trend[0].month_name == "Jan 2024"


def test_invoice_without_terms_is_skipped(history_factory, invoice_factory):
    invoices, receipts = history_factory([0, 0])
    no_terms = invoice_factory(id="NO-TERMS", invoice_date=date(2024, 6, 1), payment_terms_days=None)

    rec = _classify(invoices + [no_terms], receipts)

    assert rec.skipped_invoice_ids == ("NO-TERMS",)
    assert rec.total_invoices == 2


def test_current_category_is_untouched(history_factory):
    invoices, receipts = history_factory([0] * 4)

    rec = _classify(invoices, receipts, current=CustomerCategory.ALPHA)

    assert rec.current_category == CustomerCategory.ALPHA
    assert rec.will_change is False
    assert select_bulk_changes([rec]) == []


def test_select_bulk_changes(history_factory):
    invoices, receipts = history_factory([0] * 9 + [95])
    rec = _classify(invoices, receipts, current=CustomerCategory.ALPHA)

    changes = select_bulk_changes([rec])

    assert len(changes) == 1
    change = changes[0]
    assert change.customer_id == "CUST-1"
    assert change.new_category == CustomerCategory.GAMMA
    assert change.reason == rec.change_reason
    assert change.days_overdue == 95


def test_summarize_recommendations(history_factory):
    alpha_invoices, alpha_receipts = history_factory([0] * 4, customer_id="A")
    beta_invoices, beta_receipts = history_factory([0, 0, 0, 10], customer_id="B")
    recs = [
        _classify(alpha_invoices, alpha_receipts, customer_id="A", current=CustomerCategory.ALPHA),
        _classify(beta_invoices, beta_receipts, customer_id="B", current=CustomerCategory.ALPHA),
        classify("C", [], AS_OF),
    ]

    summary = summarize_recommendations(recs)

    assert summary.total_customers == 3
    assert summary.new_customers == 1
    assert summary.active_customers == 2
    assert summary.by_recommended_category[CustomerCategory.ALPHA] == 1
    assert summary.by_recommended_category[CustomerCategory.BETA] == 1
    assert summary.by_current_category[CustomerCategory.ALPHA] == 2
    assert summary.will_change == 1
    assert summary.average_on_time_percentage == Decimal("87.50")


def test_engine_ignores_receipts_after_as_of(invoice_factory, receipt_factory):
    """A receipt dated after the evaluation date has not been received yet"""
    engine = RecoveryEngine()
    receipt = receipt_factory(amount="100000", receipt_date=date(2025, 7, 15))

    rec = engine.classify("CUST-1", [invoice_factory()], [receipt], AS_OF)

    detail = rec.invoice_details[0]
    assert detail.status == PaymentStatus.UNPAID
    assert detail.delay_days == 61
    assert rec.paid_invoices == 0
    assert rec.total_pending_amount == Decimal("100000")
