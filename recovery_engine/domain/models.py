"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple

from recovery_engine.utils.date_utils import add_days


class CustomerCategory(str, Enum):
    """Customer risk category; New is the sentinel for no qualifying history"""

    NEW = "New"
    ALPHA = "Alpha"
    BETA = "Beta"
    GAMMA = "Gamma"
    DELTA = "Delta"

    @property
    def severity(self) -> int:
        """Higher is worse: New < Alpha < Beta < Gamma < Delta"""
        return _SEVERITY[self]

    def is_worse_than(self, other: "CustomerCategory") -> bool:
        return self.severity > other.severity

    @classmethod
    def worst(cls, *categories: "CustomerCategory") -> "CustomerCategory":
        return max(categories, key=lambda c: c.severity)

    @classmethod
    def ranked(cls) -> List["CustomerCategory"]:
        """Rated categories ordered best to worst (excludes New)"""
        return [cls.ALPHA, cls.BETA, cls.GAMMA, cls.DELTA]


_SEVERITY = {
    CustomerCategory.NEW: 0,
    CustomerCategory.ALPHA: 1,
    CustomerCategory.BETA: 2,
    CustomerCategory.GAMMA: 3,
    CustomerCategory.DELTA: 4,
}


class InterestApplicableFrom(str, Enum):
    """Policy for the interest anchor when an invoice has no explicit date"""

    DUE_DATE = "due_date"
    INVOICE_DATE = "invoice_date"
    GRACE_ADJUSTED = "grace_adjusted"


class PaymentStatus(str, Enum):
    PAID = "Paid"
    EFFECTIVELY_PAID = "Effectively Paid"
    UNPAID = "Unpaid"


@dataclass(frozen=True)
class Invoice:
    """Invoice issued by the billing system"""

    id: str
    customer_id: str
    invoice_number: str
    invoice_date: date
    amount: Decimal
    payment_terms_days: Optional[int]
    interest_rate: Optional[Decimal] = None  # percent per annum
    interest_applicable_from: Optional[date] = None
    gross_profit: Optional[Decimal] = None

    @property
    def due_date(self) -> Optional[date]:
        if self.payment_terms_days is None:
            return None
        return add_days(self.invoice_date, self.payment_terms_days)


@dataclass(frozen=True)
class Receipt:
    """Payment received from a customer"""

    id: str
    customer_id: str
    voucher_number: str
    receipt_date: date
    amount: Decimal


@dataclass(frozen=True)
class Allocation:
    """Portion of one receipt applied to one invoice"""

    invoice_id: str
    receipt_id: str
    allocated_amount: Decimal
    allocation_date: date
    invoice_number: str = ""
    voucher_number: str = ""


@dataclass(frozen=True)
class InvoiceBalance:
    """Derived paid/outstanding split for an invoice after allocation"""

    invoice_id: str
    amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    fully_paid_on: Optional[date]
    last_payment_date: Optional[date]

    @property
    def is_fully_paid(self) -> bool:
        return self.fully_paid_on is not None


@dataclass(frozen=True)
class UnappliedCredit:
    """Receipt remainder left over once every invoice is settled"""

    receipt_id: str
    customer_id: str
    voucher_number: str
    receipt_date: date
    amount: Decimal


@dataclass(frozen=True)
class AllocationResult:
    """Output of a FIFO allocation run"""

    allocations: Tuple[Allocation, ...]
    balances: Tuple[InvoiceBalance, ...]
    unapplied_credits: Tuple[UnappliedCredit, ...]

    def allocations_for(self, invoice_id: str) -> List[Allocation]:
        return [a for a in self.allocations if a.invoice_id == invoice_id]

    def balance_for(self, invoice_id: str) -> Optional[InvoiceBalance]:
        for balance in self.balances:
            if balance.invoice_id == invoice_id:
                return balance
        return None

    @property
    def total_allocated(self) -> Decimal:
        return sum((a.allocated_amount for a in self.allocations), Decimal("0"))

    @property
    def total_unapplied(self) -> Decimal:
        return sum((c.amount for c in self.unapplied_credits), Decimal("0"))


@dataclass(frozen=True)
class InterestPeriod:
    """Contiguous span [start_date, end_date) at a constant outstanding balance"""

    start_date: date
    end_date: date
    balance_during_period: Decimal
    days_in_period: int
    interest_for_period: Decimal  # exact, rounded only at the output boundary
    is_due_date_boundary: bool = False


@dataclass(frozen=True)
class InterestRow:
    """Display row: an accrual period or the DUE DATE marker"""

    label: str
    start_date: date
    end_date: date
    balance: Decimal
    days: int
    interest: Decimal


@dataclass(frozen=True)
class InterestBreakdown:
    """Per-invoice interest calculation with its audit trail"""

    invoice_id: str
    customer_id: str
    invoice_number: str
    invoice_date: date
    due_date: date
    anchor_date: date
    invoice_amount: Decimal
    interest_rate: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    fully_paid_on: Optional[date]
    as_of: date
    allocations: Tuple[Allocation, ...]
    periods: Tuple[InterestPeriod, ...]
    total_interest: Decimal
    base_gross_profit: Optional[Decimal] = None
    final_gross_profit: Optional[Decimal] = None
    final_gross_profit_percentage: Optional[Decimal] = None

    def display_rows(self) -> List[InterestRow]:
        """Period table with a zero-interest DUE DATE marker ahead of the boundary period"""
        rows = []
        for period in self.periods:
            if period.is_due_date_boundary:
                rows.append(
                    InterestRow(
                        label="DUE DATE",
                        start_date=self.due_date,
                        end_date=self.due_date,
                        balance=period.balance_during_period,
                        days=0,
                        interest=Decimal("0"),
                    )
                )
            rows.append(
                InterestRow(
                    label="PERIOD",
                    start_date=period.start_date,
                    end_date=period.end_date,
                    balance=period.balance_during_period,
                    days=period.days_in_period,
                    interest=period.interest_for_period,
                )
            )
        return rows


@dataclass(frozen=True)
class InvoiceOutcome:
    """Invoice paired with its allocation outcome, input to classification"""

    invoice: Invoice
    balance: InvoiceBalance


@dataclass(frozen=True)
class InvoiceDetail:
    """Per-invoice facts used in a category computation"""

    invoice_id: str
    invoice_number: str
    invoice_date: date
    due_date: date
    payment_date: Optional[date]
    delay_days: int
    adjusted_delay: int
    category: CustomerCategory
    status: PaymentStatus
    amount: Decimal
    outstanding_amount: Decimal


@dataclass(frozen=True)
class MonthlyTrend:
    month: str
    month_name: str
    on_time: int
    late: int
    unpaid: int
    total: int


@dataclass(frozen=True)
class CategoryRecommendation:
    """Recommended category for a customer; computed on demand, never stored"""

    customer_id: str
    current_category: CustomerCategory
    recommended_category: CustomerCategory
    base_category: CustomerCategory
    on_time_percentage: Decimal
    override_applied: bool
    override_reason: Optional[str]
    change_reason: str
    invoice_details: Tuple[InvoiceDetail, ...] = ()
    eligible_overrides: Tuple[str, ...] = ()
    total_invoices: int = 0
    paid_invoices: int = 0
    unpaid_invoices: int = 0
    on_time_count: int = 0
    late_count: int = 0
    very_late_count: int = 0
    total_invoice_amount: Decimal = Decimal("0")
    total_paid_amount: Decimal = Decimal("0")
    total_pending_amount: Decimal = Decimal("0")
    max_overdue_days: int = 0
    payment_breakdown: Dict[CustomerCategory, int] = field(default_factory=dict)
    monthly_trend: Tuple[MonthlyTrend, ...] = ()
    skipped_invoice_ids: Tuple[str, ...] = ()  # no payment terms, left out of the computation

    @property
    def will_change(self) -> bool:
        return self.recommended_category != self.current_category

    @property
    def eligible_for_bulk_apply(self) -> bool:
        return self.will_change and self.recommended_category != CustomerCategory.NEW


@dataclass(frozen=True)
class RecommendationSummary:
    """Population-level counts shown above the recommendation table"""

    total_customers: int
    active_customers: int
    new_customers: int
    by_recommended_category: Dict[CustomerCategory, int]
    by_current_category: Dict[CustomerCategory, int]
    will_change: int
    average_on_time_percentage: Decimal


@dataclass(frozen=True)
class CategoryChange:
    """Authorized request to move a customer to a new category"""

    customer_id: str
    new_category: CustomerCategory
    reason: str
    days_overdue: int = 0


@dataclass(frozen=True)
class CategoryAuditEntry:
    """Append-only record of an applied category transition"""

    customer_id: str
    from_category: CustomerCategory
    to_category: CustomerCategory
    reason: str
    days_overdue: int
    timestamp: datetime


@dataclass(frozen=True)
class RecordError:
    """Record-level failure collected during a run instead of being raised"""

    record_type: str  # "invoice" or "customer"
    record_id: str
    customer_id: str
    kind: str  # "incomplete_data", "conflict" or "storage"
    message: str
