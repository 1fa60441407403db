"""Apply authorized category changes through the storage collaborator"""

import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import asdict, dataclass, is_dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import pydantic
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recovery_engine.config import settings
from recovery_engine.domain.exceptions import ApplyConflictError, ValidationError
from recovery_engine.domain.models import CategoryAuditEntry, CategoryChange, CustomerCategory, RecordError
from recovery_engine.infrastructure.database.repositories import CategoryRepository
from recovery_engine.infrastructure.database.session import SessionLocal
from recovery_engine.infrastructure.observability.logging import log_category_change, log_record_error
from recovery_engine.infrastructure.observability.metrics import category_change_counter, record_error_counter
from recovery_engine.schemas import CategoryChangeRequest


class CustomerLockRegistry:
    """
    One lock per customer so at most one apply per customer is in flight.

    Locks are held weakly: an entry lives only while some caller holds or
    waits on it, so the registry does not grow with every customer ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, customer_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(customer_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[customer_id] = lock
            return lock

    @contextmanager
    def hold(self, customer_id: str, timeout: float) -> Iterator[None]:
        """
        Raises:
            ApplyConflictError: another apply for the customer did not finish within timeout
        """
        lock = self.lock_for(customer_id)
        if not lock.acquire(timeout=timeout):
            raise ApplyConflictError(f"apply for customer {customer_id} still in flight after {timeout}s")
        try:
            yield
        finally:
            lock.release()


@dataclass(frozen=True)
class ApplyResult:
    applied: Tuple[CategoryAuditEntry, ...]
    errors: Tuple[RecordError, ...]


ChangeInput = Union[CategoryChange, Mapping[str, Any]]


def parse_changes(changes: Sequence[ChangeInput]) -> List[CategoryChange]:
    """
    Validate a whole apply request before anything is written.

    Accepts CategoryChange records or mappings in either snake_case or the
    dashboard's camelCase ({customerId, newCategory, reason, daysOverdue}).

    Raises:
        ValidationError: any entry is malformed
    """
    parsed = []
    for position, change in enumerate(changes):
        data = asdict(change) if is_dataclass(change) else dict(change)
        try:
            request = CategoryChangeRequest.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(f"change #{position + 1} is invalid: {e}") from e
        parsed.append(
            CategoryChange(
                customer_id=request.customer_id,
                new_category=request.new_category,
                reason=request.reason,
                days_overdue=request.days_overdue,
            )
        )
    return parsed


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CategoryChangeService:
    """
    Writes category transitions: one audit row plus the stored category
    update per change, committed per customer.

    The classifier only recommends; this is the only path that changes a
    customer's stored category.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        locks: Optional[CustomerLockRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lock_timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.locks = locks or CustomerLockRegistry()
        self.clock = clock or _utcnow
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.apply_lock_timeout_seconds

    def apply(self, changes: Sequence[ChangeInput]) -> ApplyResult:
        """
        Apply changes in order. Input errors reject the request up front;
        storage failures and lock conflicts only affect their own customer
        and are returned in ``errors``.
        """
        applied = []
        errors = []
        for change in parse_changes(changes):
            try:
                with self.locks.hold(change.customer_id, self.lock_timeout):
                    applied.append(self._write(change))
            except ApplyConflictError as e:
                errors.append(self._error(change, "conflict", str(e)))
            except SQLAlchemyError as e:
                logging.error(f"Category apply failed: {e}", extra={"customer_id": change.customer_id})
                errors.append(self._error(change, "storage", str(e)))
        return ApplyResult(applied=tuple(applied), errors=tuple(errors))

    def _write(self, change: CategoryChange) -> CategoryAuditEntry:
        db = self.session_factory()
        try:
            repo = CategoryRepository(db)
            current = repo.get_category(change.customer_id) or CustomerCategory.NEW
            entry = CategoryAuditEntry(
                customer_id=change.customer_id,
                from_category=current,
                to_category=change.new_category,
                reason=change.reason,
                days_overdue=change.days_overdue,
                timestamp=self.clock(),
            )
            repo.record_change(entry)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

        category_change_counter.labels(to_category=entry.to_category.value).inc()
        log_category_change(
            entry.customer_id,
            entry.from_category.value,
            entry.to_category.value,
            entry.reason,
            entry.days_overdue,
        )
        return entry

    def _error(self, change: CategoryChange, kind: str, message: str) -> RecordError:
        record_error_counter.labels(kind=kind).inc()
        log_record_error("apply", "customer", change.customer_id, kind, message)
        return RecordError(
            record_type="customer",
            record_id=change.customer_id,
            customer_id=change.customer_id,
            kind=kind,
            message=message,
        )
