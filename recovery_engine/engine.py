"""Recovery engine factory"""

from datetime import date, datetime
from typing import Any, Callable, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from recovery_engine.config import EngineConfig, load_engine_config, settings
from recovery_engine.domain.allocation import allocate, receipts_as_of, validate_receipts
from recovery_engine.domain.classification import build_invoice_outcomes, classify
from recovery_engine.domain.interest import compute_interest
from recovery_engine.domain.models import (
    Allocation,
    AllocationResult,
    CategoryRecommendation,
    CustomerCategory,
    InterestBreakdown,
    Invoice,
    Receipt,
)
from recovery_engine.infrastructure.database.session import SessionLocal
from recovery_engine.infrastructure.observability.logging import setup_logging
from recovery_engine.schemas import CategoryRulesSchema
from recovery_engine.services.category_changes import ApplyResult, CategoryChangeService, ChangeInput
from recovery_engine.services.recalculation import CustomerSnapshot, RecalculationRun, recalculate_customers


class RecoveryEngine:
    """Configured entry point for allocation, interest, classification and apply"""

    def __init__(
        self,
        config: EngineConfig | Mapping[str, Any] | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = load_engine_config(config)
        self.category_changes = CategoryChangeService(session_factory, clock=clock)

    def allocate(self, invoices: Sequence[Invoice], receipts: Sequence[Receipt]) -> AllocationResult:
        return allocate(invoices, receipts)

    def compute_interest(self, invoice: Invoice, allocations: Sequence[Allocation], as_of: date) -> InterestBreakdown:
        return compute_interest(invoice, allocations, as_of, self.config)

    def classify(
        self,
        customer_id: str,
        invoices: Sequence[Invoice],
        receipts: Sequence[Receipt],
        as_of: date,
        current_category: CustomerCategory = CustomerCategory.NEW,
    ) -> CategoryRecommendation:
        """Allocate the receipts received by ``as_of``, then classify from the outcomes"""
        validate_receipts(receipts)
        allocation = allocate(invoices, receipts_as_of(receipts, as_of))
        outcomes = build_invoice_outcomes(invoices, allocation)
        return classify(customer_id, outcomes, as_of, self.config, current_category=current_category)

    def recalculate(
        self,
        snapshots: Sequence[CustomerSnapshot],
        as_of: date,
        max_workers: Optional[int] = None,
    ) -> RecalculationRun:
        return recalculate_customers(snapshots, as_of, self.config, max_workers=max_workers)

    def apply_category_changes(self, changes: Sequence[ChangeInput]) -> ApplyResult:
        return self.category_changes.apply(changes)

    def rules(self) -> CategoryRulesSchema:
        return CategoryRulesSchema.from_config(self.config)


def create_recovery_engine(
    config: EngineConfig | Mapping[str, Any] | None = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> RecoveryEngine:
    """Create and configure the engine with structured logging"""
    setup_logging(settings.log_level)
    return RecoveryEngine(config, session_factory=session_factory)
