"""Pytest fixtures for testing"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Generator, List, Optional, Sequence, Tuple
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from recovery_engine.infrastructure.database.models import Base
from recovery_engine.domain.models import Invoice, Receipt


def make_invoice(
    id: str = "INV-1",
    customer_id: str = "CUST-1",
    invoice_number: Optional[str] = None,
    invoice_date: date = date(2025, 3, 31),
    amount: str = "100000",
    payment_terms_days: Optional[int] = 30,
    interest_rate: Optional[str] = "18",
    interest_applicable_from: Optional[date] = None,
    gross_profit: Optional[str] = None,
) -> Invoice:
    """Invoice builder; defaults give a 100,000 invoice due 30-Apr-2025 at 18% p.a."""
    return Invoice(
        id=id,
        customer_id=customer_id,
        invoice_number=invoice_number or id,
        invoice_date=invoice_date,
        amount=Decimal(amount),
        payment_terms_days=payment_terms_days,
        interest_rate=Decimal(interest_rate) if interest_rate is not None else None,
        interest_applicable_from=interest_applicable_from,
        gross_profit=Decimal(gross_profit) if gross_profit is not None else None,
    )


def make_receipt(
    id: str = "RCT-1",
    customer_id: str = "CUST-1",
    voucher_number: Optional[str] = None,
    receipt_date: date = date(2025, 5, 15),
    amount: str = "10000",
) -> Receipt:
    return Receipt(
        id=id,
        customer_id=customer_id,
        voucher_number=voucher_number or id,
        receipt_date=receipt_date,
        amount=Decimal(amount),
    )


def payment_history(
    delays: Sequence[Optional[int]],
    customer_id: str = "CUST-1",
    start: date = date(2024, 1, 1),
    amount: str = "1000",
) -> Tuple[List[Invoice], List[Receipt]]:
    """
    Monthly 30-day-terms invoices, each paid in full `delay` days after its
    due date (None = never paid). Receipts are dated in invoice order so
    FIFO pays invoice i with receipt i.
    """
    invoices, receipts = [], []
    for i, delay in enumerate(delays):
        invoice = make_invoice(
            id=f"{customer_id}-INV-{i:03d}",
            customer_id=customer_id,
            invoice_date=start + timedelta(days=30 * i),
            amount=amount,
        )
        invoices.append(invoice)
        if delay is not None:
            receipts.append(
                make_receipt(
                    id=f"{customer_id}-RCT-{i:03d}",
                    customer_id=customer_id,
                    receipt_date=invoice.due_date + timedelta(days=delay),
                    amount=amount,
                )
            )
    return invoices, receipts


@pytest.fixture
def invoice_factory() -> Callable[..., Invoice]:
    return make_invoice


@pytest.fixture
def receipt_factory() -> Callable[..., Receipt]:
    return make_receipt


@pytest.fixture
def history_factory() -> Callable[..., Tuple[List[Invoice], List[Receipt]]]:
    return payment_history


@pytest.fixture
def session_factory(tmp_path) -> Generator[Callable[[], Session], None, None]:
    """Create test database and a session factory bound to it"""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
