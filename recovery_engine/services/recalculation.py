"""Per-customer recovery pipeline and bulk "recalculate all customers" runs"""

import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from recovery_engine.config import EngineConfig, load_engine_config, settings
from recovery_engine.domain.allocation import allocate, receipts_as_of, validate_invoices, validate_receipts
from recovery_engine.domain.classification import build_invoice_outcomes, classify, summarize_recommendations
from recovery_engine.domain.exceptions import IncompleteDataError, ValidationError
from recovery_engine.domain.interest import compute_interest
from recovery_engine.domain.models import (
    AllocationResult,
    CategoryRecommendation,
    CustomerCategory,
    InterestBreakdown,
    Invoice,
    Receipt,
    RecommendationSummary,
    RecordError,
)
from recovery_engine.infrastructure.observability.logging import (
    log_recalculation,
    log_recommendation,
    log_record_error,
)
from recovery_engine.infrastructure.observability.metrics import (
    allocation_runs_counter,
    recalculation_duration_histogram,
    record_error_counter,
    record_interest,
    record_recommendation,
    unapplied_credit_counter,
)


@dataclass(frozen=True)
class CustomerSnapshot:
    """Consistent read of one customer's invoices and receipts"""

    customer_id: str
    invoices: Tuple[Invoice, ...]
    receipts: Tuple[Receipt, ...]
    current_category: CustomerCategory = CustomerCategory.NEW


@dataclass(frozen=True)
class CustomerResult:
    customer_id: str
    allocation: AllocationResult
    interest: Tuple[InterestBreakdown, ...]
    recommendation: CategoryRecommendation
    errors: Tuple[RecordError, ...]


@dataclass(frozen=True)
class RecalculationRun:
    run_id: str
    as_of: date
    results: Tuple[CustomerResult, ...]
    errors: Tuple[RecordError, ...]
    summary: RecommendationSummary

    @property
    def recommendations(self) -> List[CategoryRecommendation]:
        return [r.recommendation for r in self.results]


def validate_snapshots(snapshots: Sequence[CustomerSnapshot]) -> None:
    """
    Reject the whole run on any malformed input, before computing anything.

    Raises:
        ValidationError: duplicate customers, records filed under the wrong
            customer, or invalid invoice/receipt values
    """
    seen = set()
    for snapshot in snapshots:
        if snapshot.customer_id in seen:
            raise ValidationError("duplicate customer snapshot", "customer", snapshot.customer_id)
        seen.add(snapshot.customer_id)

        for invoice in snapshot.invoices:
            if invoice.customer_id != snapshot.customer_id:
                raise ValidationError(
                    f"belongs to customer {invoice.customer_id}, not {snapshot.customer_id}", "invoice", invoice.id
                )
        for receipt in snapshot.receipts:
            if receipt.customer_id != snapshot.customer_id:
                raise ValidationError(
                    f"belongs to customer {receipt.customer_id}, not {snapshot.customer_id}", "receipt", receipt.id
                )
        validate_invoices(snapshot.invoices)
        validate_receipts(snapshot.receipts)


def _incomplete(error: IncompleteDataError, customer_id: str) -> RecordError:
    return RecordError(
        record_type=error.record_type,
        record_id=error.record_id,
        customer_id=customer_id,
        kind="incomplete_data",
        message=str(error),
    )


def run_customer_pipeline(snapshot: CustomerSnapshot, config: EngineConfig, as_of: date) -> CustomerResult:
    """
    allocate -> interest per invoice -> classify, for one customer.

    Pure: reads only the snapshot and returns new values. Receipts dated
    after ``as_of`` are left out so interest and classification see the same
    balances. Invoices with incomplete data are skipped and reported in
    ``errors``.
    """
    allocation = allocate(snapshot.invoices, receipts_as_of(snapshot.receipts, as_of))
    outcomes = build_invoice_outcomes(snapshot.invoices, allocation)

    breakdowns = []
    errors = []
    for outcome in outcomes:
        invoice = outcome.invoice
        try:
            breakdowns.append(compute_interest(invoice, allocation.allocations_for(invoice.id), as_of, config))
        except IncompleteDataError as e:
            # Missing payment terms also keep the invoice out of classification
            errors.append(_incomplete(e, snapshot.customer_id))

    recommendation = classify(
        snapshot.customer_id,
        outcomes,
        as_of,
        config,
        current_category=snapshot.current_category,
    )

    return CustomerResult(
        customer_id=snapshot.customer_id,
        allocation=allocation,
        interest=tuple(breakdowns),
        recommendation=recommendation,
        errors=tuple(errors),
    )


def _record_observations(run_id: str, result: CustomerResult) -> None:
    allocation_runs_counter.inc()
    if result.allocation.unapplied_credits:
        unapplied_credit_counter.inc(len(result.allocation.unapplied_credits))
    for breakdown in result.interest:
        record_interest(breakdown.total_interest)

    rec = result.recommendation
    record_recommendation(rec.recommended_category.value, rec.override_applied)
    log_recommendation(
        run_id,
        rec.customer_id,
        rec.current_category.value,
        rec.recommended_category.value,
        str(rec.on_time_percentage),
        rec.override_applied,
    )
    for error in result.errors:
        record_error_counter.labels(kind=error.kind).inc()
        log_record_error(run_id, error.record_type, error.record_id, error.kind, error.message)


def recalculate_customers(
    snapshots: Sequence[CustomerSnapshot],
    as_of: date,
    config: EngineConfig | Mapping[str, Any] | None = None,
    max_workers: Optional[int] = None,
) -> RecalculationRun:
    """
    Recalculate every customer's allocation, interest and recommendation.

    Customers are independent and run concurrently; the output is ordered by
    customer id so identical inputs always give identical runs. Configuration
    and validation errors abort the run before any customer is processed;
    record-level problems are collected into ``errors``.

    Raises:
        ConfigurationError: invalid engine configuration
        ValidationError: malformed snapshot data
    """
    config = load_engine_config(config)
    validate_snapshots(snapshots)

    run_id = str(uuid.uuid4())
    start_time = time.time()

    workers = max_workers or settings.recalculation_max_workers
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda s: run_customer_pipeline(s, config, as_of), snapshots))
    results.sort(key=lambda r: r.customer_id)

    for result in results:
        _record_observations(run_id, result)
    errors = tuple(error for result in results for error in result.errors)

    duration = time.time() - start_time
    recalculation_duration_histogram.observe(duration)
    log_recalculation(run_id, len(results), len(errors), duration * 1000)

    return RecalculationRun(
        run_id=run_id,
        as_of=as_of,
        results=tuple(results),
        errors=errors,
        summary=summarize_recommendations([r.recommendation for r in results]),
    )
