"""Prometheus metrics for monitoring allocation, classification and category changes"""

from decimal import Decimal

from prometheus_client import Counter, Histogram

# Allocation metrics
allocation_runs_counter = Counter(
    "recovery_allocation_runs_total",
    "Customer allocation runs completed",
)

unapplied_credit_counter = Counter(
    "recovery_unapplied_credits_total",
    "Receipts left with an unapplied remainder",
)

# Interest metrics
interest_breakdowns_counter = Counter(
    "recovery_interest_breakdowns_total",
    "Invoice interest breakdowns computed",
    ["accruing"],  # yes | no
)

# Classification metrics
recommendation_counter = Counter(
    "recovery_category_recommendation_total",
    "Category recommendations computed",
    ["category"],  # New | Alpha | Beta | Gamma | Delta
)

override_counter = Counter(
    "recovery_category_override_total",
    "Recommendations escalated by an override rule",
)

record_error_counter = Counter(
    "recovery_record_errors_total",
    "Records skipped and reported during a run",
    ["kind"],  # incomplete_data | conflict | storage
)

# Apply metrics
category_change_counter = Counter(
    "recovery_category_changes_applied_total",
    "Category changes written through the apply path",
    ["to_category"],
)

recalculation_duration_histogram = Histogram(
    "recovery_recalculation_duration_seconds",
    "Bulk recalculation wall time",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


def record_recommendation(category: str, override_applied: bool) -> None:
    """Record classification metrics for monitoring the category distribution"""
    recommendation_counter.labels(category=category).inc()
    if override_applied:
        override_counter.inc()


def record_interest(total_interest: Decimal) -> None:
    interest_breakdowns_counter.labels(accruing="yes" if total_interest > 0 else "no").inc()
