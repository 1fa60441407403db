"""Integration tests for applying category changes against the storage layer"""

import itertools
import threading
import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch
from sqlalchemy.exc import OperationalError
from recovery_engine.domain.classification import select_bulk_changes
from recovery_engine.domain.exceptions import ValidationError
from recovery_engine.domain.models import CategoryChange, CustomerCategory
from recovery_engine.engine import RecoveryEngine
from recovery_engine.infrastructure.database.repositories import CategoryRepository
from recovery_engine.schemas import CategoryAuditEntrySchema
from recovery_engine.services.category_changes import CategoryChangeService, CustomerLockRegistry


def _clock():
    """Strictly increasing timestamps so audit order is unambiguous"""
    counter = itertools.count()
    start = datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc)
    return lambda: start + timedelta(seconds=next(counter))


def _stored(session_factory, customer_id):
    db = session_factory()
    try:
        repo = CategoryRepository(db)
        return repo.get_category(customer_id), repo.get_audit_log(customer_id)
    finally:
        db.close()


def test_apply_writes_category_and_audit_row(session_factory):
    service = CategoryChangeService(session_factory, clock=_clock())

    result = service.apply([CategoryChange("CUST-1", CustomerCategory.GAMMA, "Invoice overdue more than 90 days", 95)])

    assert result.errors == ()
    assert len(result.applied) == 1
    entry = result.applied[0]
    assert entry.from_category == CustomerCategory.NEW
    assert entry.to_category == CustomerCategory.GAMMA

    category, audit = _stored(session_factory, "CUST-1")
    assert category == CustomerCategory.GAMMA
    assert len(audit) == 1
    assert audit[0].reason == "Invoice overdue more than 90 days"
    assert audit[0].days_overdue == 95


def test_apply_starts_from_stored_category(session_factory):
    db = session_factory()
    CategoryRepository(db).set_category("CUST-1", CustomerCategory.ALPHA)
    db.commit()
    db.close()
    service = CategoryChangeService(session_factory, clock=_clock())

    result = service.apply([{"customerId": "CUST-1", "newCategory": "Beta", "reason": "Track record: 80.00%"}])

    assert result.applied[0].from_category == CustomerCategory.ALPHA
    assert _stored(session_factory, "CUST-1")[0] == CustomerCategory.BETA


def test_successive_changes_form_a_chain(session_factory):
    service = CategoryChangeService(session_factory, clock=_clock())

    service.apply(
        [
            CategoryChange("CUST-1", CustomerCategory.ALPHA, "first"),
            CategoryChange("CUST-1", CustomerCategory.DELTA, "second"),
            CategoryChange("CUST-1", CustomerCategory.BETA, "third"),
        ]
    )

    _, audit = _stored(session_factory, "CUST-1")
    transitions = [(e.from_category, e.to_category) for e in reversed(audit)]
    assert transitions == [
        (CustomerCategory.NEW, CustomerCategory.ALPHA),
        (CustomerCategory.ALPHA, CustomerCategory.DELTA),
        (CustomerCategory.DELTA, CustomerCategory.BETA),
    ]


def test_invalid_request_writes_nothing(session_factory):
    """One malformed entry rejects the whole request before any write"""
    service = CategoryChangeService(session_factory, clock=_clock())

    with pytest.raises(ValidationError) as exc:
        service.apply(
            [
                {"customer_id": "CUST-1", "new_category": "Alpha", "reason": "ok"},
                {"customer_id": "CUST-2", "new_category": "Omega", "reason": "bad"},
            ]
        )

    assert "change #2" in str(exc.value)
    assert _stored(session_factory, "CUST-1") == (None, [])


def test_lock_conflict_reported_per_customer(session_factory):
    locks = CustomerLockRegistry()
    service = CategoryChangeService(session_factory, locks=locks, clock=_clock(), lock_timeout=0.01)

    with locks.hold("CUST-1", timeout=1):
        result = service.apply(
            [
                CategoryChange("CUST-1", CustomerCategory.GAMMA, "blocked"),
                CategoryChange("CUST-2", CustomerCategory.BETA, "free"),
            ]
        )

    assert [(e.record_id, e.kind) for e in result.errors] == [("CUST-1", "conflict")]
    assert [e.customer_id for e in result.applied] == ["CUST-2"]
    assert _stored(session_factory, "CUST-1") == (None, [])


def test_lock_registry_drops_released_locks(session_factory):
    locks = CustomerLockRegistry()
    service = CategoryChangeService(session_factory, locks=locks, clock=_clock())

    with locks.hold("CUST-1", timeout=1):
        assert len(locks) == 1
    assert len(locks) == 0

    service.apply([CategoryChange(f"CUST-{i}", CustomerCategory.BETA, "bulk") for i in range(20)])
    assert len(locks) == 0


def test_storage_failure_reported_and_rolled_back(session_factory):
    service = CategoryChangeService(session_factory, clock=_clock())

    with patch.object(CategoryRepository, "record_change", side_effect=OperationalError("INSERT", {}, Exception("disk full"))):
        result = service.apply([CategoryChange("CUST-1", CustomerCategory.GAMMA, "x")])

    assert result.applied == ()
    assert result.errors[0].kind == "storage"
    assert _stored(session_factory, "CUST-1") == (None, [])


def test_concurrent_applies_for_one_customer_serialize(session_factory):
    """Parallel applies on the same customer never lose a transition"""
    service = CategoryChangeService(session_factory, clock=_clock())
    targets = [CustomerCategory.ALPHA, CustomerCategory.BETA, CustomerCategory.GAMMA, CustomerCategory.DELTA] * 3

    threads = [
        threading.Thread(target=service.apply, args=([CategoryChange("CUST-1", category, f"change {i}")],))
        for i, category in enumerate(targets)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    category, audit = _stored(session_factory, "CUST-1")
    ordered = list(reversed(audit))
    assert len(ordered) == len(targets)
    assert ordered[0].from_category == CustomerCategory.NEW
    for previous, current in zip(ordered, ordered[1:]):
        assert current.from_category == previous.to_category
    assert category == ordered[-1].to_category


def test_engine_recommend_then_apply(session_factory, history_factory):
    """End to end: recommendation feeds a bulk apply, audit entry serializes for the dashboard"""
    engine = RecoveryEngine(session_factory=session_factory, clock=_clock())
    invoices, receipts = history_factory([0] * 9 + [95])
    rec = engine.classify("CUST-1", invoices, receipts, date(2025, 6, 30), current_category=CustomerCategory.ALPHA)

    result = engine.apply_category_changes(select_bulk_changes([rec]))

    assert result.errors == ()
    wire = CategoryAuditEntrySchema.from_domain(result.applied[0]).to_wire()
    assert wire["fromCategory"] == "New"
    assert wire["toCategory"] == "Gamma"
    assert wire["daysOverdue"] == 95
    assert wire["reason"] == rec.change_reason
