"""Pydantic schemas for the shapes exchanged with the dashboard and storage collaborators.

Monetary values are rounded to 2 places here and nowhere earlier.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from recovery_engine.config import EngineConfig
from recovery_engine.domain.models import (
    Allocation,
    AllocationResult,
    CategoryAuditEntry,
    CategoryRecommendation,
    CustomerCategory,
    InterestBreakdown,
    RecommendationSummary,
)
from recovery_engine.utils.money import quantize_money


class Schema(BaseModel):
    """camelCase on the wire, snake_case in Python"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def _category_counts(counts: Dict[CustomerCategory, int]) -> Dict[str, int]:
    return {category.value.lower(): count for category, count in counts.items()}


# Input


class CategoryChangeRequest(Schema):
    """Single entry of an apply-category-changes request"""

    customer_id: str = Field(..., min_length=1, description="Customer identifier")
    new_category: CustomerCategory
    reason: str = Field(..., min_length=1, description="Why the category changes")
    days_overdue: int = Field(0, ge=0, description="Worst overdue days at the time of change")


# Allocation


class AllocationRowSchema(Schema):
    invoice_id: str
    receipt_id: str
    invoice_number: str
    voucher_number: str
    allocation_date: date
    allocated_amount: Decimal

    @classmethod
    def from_domain(cls, allocation: Allocation) -> "AllocationRowSchema":
        return cls(
            invoice_id=allocation.invoice_id,
            receipt_id=allocation.receipt_id,
            invoice_number=allocation.invoice_number,
            voucher_number=allocation.voucher_number,
            allocation_date=allocation.allocation_date,
            allocated_amount=quantize_money(allocation.allocated_amount),
        )


class InvoiceBalanceSchema(Schema):
    invoice_id: str
    amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    fully_paid_on: Optional[date] = None


class UnappliedCreditSchema(Schema):
    receipt_id: str
    voucher_number: str
    receipt_date: date
    amount: Decimal


class AllocationResultSchema(Schema):
    allocations: List[AllocationRowSchema]
    balances: List[InvoiceBalanceSchema]
    unapplied_credits: List[UnappliedCreditSchema]
    total_allocated: Decimal
    total_unapplied: Decimal

    @classmethod
    def from_domain(cls, result: AllocationResult) -> "AllocationResultSchema":
        return cls(
            allocations=[AllocationRowSchema.from_domain(a) for a in result.allocations],
            balances=[
                InvoiceBalanceSchema(
                    invoice_id=b.invoice_id,
                    amount=quantize_money(b.amount),
                    paid_amount=quantize_money(b.paid_amount),
                    outstanding_amount=quantize_money(b.outstanding_amount),
                    fully_paid_on=b.fully_paid_on,
                )
                for b in result.balances
            ],
            unapplied_credits=[
                UnappliedCreditSchema(
                    receipt_id=c.receipt_id,
                    voucher_number=c.voucher_number,
                    receipt_date=c.receipt_date,
                    amount=quantize_money(c.amount),
                )
                for c in result.unapplied_credits
            ],
            total_allocated=quantize_money(result.total_allocated),
            total_unapplied=quantize_money(result.total_unapplied),
        )


# Interest


class InvoiceFactsSchema(Schema):
    id: str
    invoice_number: str
    invoice_date: date
    due_date: date
    interest_applicable_from: date
    invoice_amount: Decimal
    interest_rate: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    fully_paid_on: Optional[date] = None


class InterestRowSchema(Schema):
    label: str  # "PERIOD" or "DUE DATE"
    start_date: date
    end_date: date
    balance: Decimal
    days: int
    interest: Decimal


class InterestCalculationSchema(Schema):
    as_of: date
    total_interest: Decimal
    base_gross_profit: Optional[Decimal] = None
    final_gross_profit: Optional[Decimal] = None
    final_gross_profit_percentage: Optional[Decimal] = None


class InterestBreakdownSchema(Schema):
    invoice: InvoiceFactsSchema
    allocations: List[AllocationRowSchema]
    periods: List[InterestRowSchema]
    calculation: InterestCalculationSchema

    @classmethod
    def from_domain(cls, breakdown: InterestBreakdown) -> "InterestBreakdownSchema":
        return cls(
            invoice=InvoiceFactsSchema(
                id=breakdown.invoice_id,
                invoice_number=breakdown.invoice_number,
                invoice_date=breakdown.invoice_date,
                due_date=breakdown.due_date,
                interest_applicable_from=breakdown.anchor_date,
                invoice_amount=quantize_money(breakdown.invoice_amount),
                interest_rate=breakdown.interest_rate,
                paid_amount=quantize_money(breakdown.paid_amount),
                outstanding_amount=quantize_money(breakdown.outstanding_amount),
                fully_paid_on=breakdown.fully_paid_on,
            ),
            allocations=[AllocationRowSchema.from_domain(a) for a in breakdown.allocations],
            periods=[
                InterestRowSchema(
                    label=row.label,
                    start_date=row.start_date,
                    end_date=row.end_date,
                    balance=quantize_money(row.balance),
                    days=row.days,
                    interest=quantize_money(row.interest),
                )
                for row in breakdown.display_rows()
            ],
            calculation=InterestCalculationSchema(
                as_of=breakdown.as_of,
                total_interest=breakdown.total_interest,
                base_gross_profit=breakdown.base_gross_profit,
                final_gross_profit=breakdown.final_gross_profit,
                final_gross_profit_percentage=breakdown.final_gross_profit_percentage,
            ),
        )


# Classification


class InvoiceDetailSchema(Schema):
    invoice_number: str
    invoice_date: date
    due_date: date
    payment_date: Optional[date] = None
    delay_days: int
    adjusted_delay: int
    category: str
    status: str
    amount: Decimal


class MonthlyTrendSchema(Schema):
    month: str
    month_name: str
    on_time: int
    late: int
    unpaid: int
    total: int


class CategoryRecommendationSchema(Schema):
    id: str
    current_category: str
    recommended_category: str
    base_category: str
    on_time_percentage: Decimal
    override_applied: bool
    override_reason: Optional[str] = None
    change_reason: str
    will_change: bool
    eligible_for_bulk_apply: bool
    total_invoices: int
    paid_invoices: int
    unpaid_invoices: int
    on_time_count: int
    late_count: int
    very_late_count: int
    total_invoice_amount: Decimal
    total_paid_amount: Decimal
    total_pending_amount: Decimal
    max_overdue_days: int
    payment_breakdown: Dict[str, int]
    monthly_trend: List[MonthlyTrendSchema]
    invoices: List[InvoiceDetailSchema]

    @classmethod
    def from_domain(cls, rec: CategoryRecommendation) -> "CategoryRecommendationSchema":
        return cls(
            id=rec.customer_id,
            current_category=rec.current_category.value,
            recommended_category=rec.recommended_category.value,
            base_category=rec.base_category.value,
            on_time_percentage=rec.on_time_percentage,
            override_applied=rec.override_applied,
            override_reason=rec.override_reason,
            change_reason=rec.change_reason,
            will_change=rec.will_change,
            eligible_for_bulk_apply=rec.eligible_for_bulk_apply,
            total_invoices=rec.total_invoices,
            paid_invoices=rec.paid_invoices,
            unpaid_invoices=rec.unpaid_invoices,
            on_time_count=rec.on_time_count,
            late_count=rec.late_count,
            very_late_count=rec.very_late_count,
            total_invoice_amount=quantize_money(rec.total_invoice_amount),
            total_paid_amount=quantize_money(rec.total_paid_amount),
            total_pending_amount=quantize_money(rec.total_pending_amount),
            max_overdue_days=rec.max_overdue_days,
            payment_breakdown=_category_counts(rec.payment_breakdown),
            monthly_trend=[
                MonthlyTrendSchema(
                    month=t.month,
                    month_name=t.month_name,
                    on_time=t.on_time,
                    late=t.late,
                    unpaid=t.unpaid,
                    total=t.total,
                )
                for t in rec.monthly_trend
            ],
            invoices=[
                InvoiceDetailSchema(
                    invoice_number=d.invoice_number,
                    invoice_date=d.invoice_date,
                    due_date=d.due_date,
                    payment_date=d.payment_date,
                    delay_days=d.delay_days,
                    adjusted_delay=d.adjusted_delay,
                    category=d.category.value,
                    status=d.status.value,
                    amount=quantize_money(d.amount),
                )
                for d in rec.invoice_details
            ],
        )


class RecommendationSummarySchema(Schema):
    total_customers: int
    active_customers: int
    new_customers: int
    by_recommended_category: Dict[str, int]
    by_current_category: Dict[str, int]
    will_change: int
    average_on_time_percentage: Decimal

    @classmethod
    def from_domain(cls, summary: RecommendationSummary) -> "RecommendationSummarySchema":
        return cls(
            total_customers=summary.total_customers,
            active_customers=summary.active_customers,
            new_customers=summary.new_customers,
            by_recommended_category=_category_counts(summary.by_recommended_category),
            by_current_category=_category_counts(summary.by_current_category),
            will_change=summary.will_change,
            average_on_time_percentage=summary.average_on_time_percentage,
        )


class CategoryRulesSchema(Schema):
    """Active rules as displayed next to the recommendation table"""

    grace_period: int
    category_thresholds: Dict[str, str]
    override_rules: List[str]

    @classmethod
    def from_config(cls, config: EngineConfig) -> "CategoryRulesSchema":
        return cls(
            grace_period=config.grace_period_days,
            category_thresholds=config.describe_thresholds(),
            override_rules=[rule.description for rule in config.override_rules],
        )


# Apply


class CategoryAuditEntrySchema(Schema):
    customer_id: str
    from_category: str
    to_category: str
    reason: str
    days_overdue: int
    timestamp: datetime

    @classmethod
    def from_domain(cls, entry: CategoryAuditEntry) -> "CategoryAuditEntrySchema":
        return cls(
            customer_id=entry.customer_id,
            from_category=entry.from_category.value,
            to_category=entry.to_category.value,
            reason=entry.reason,
            days_overdue=entry.days_overdue,
            timestamp=entry.timestamp,
        )
