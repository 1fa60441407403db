"""Data access layer for stored customer categories"""

from typing import List, Optional
from sqlalchemy.orm import Session
from recovery_engine.infrastructure.database.models import CategoryAuditLog, CustomerCategoryRecord
from recovery_engine.domain.models import CategoryAuditEntry, CustomerCategory


class CategoryRepository:
    """Repository for customer categories and their audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def get_category(self, customer_id: str) -> Optional[CustomerCategory]:
        """Stored category, or None if the customer has never been categorized"""
        record = self.db.get(CustomerCategoryRecord, customer_id)
        return CustomerCategory(record.category) if record else None

    def set_category(self, customer_id: str, category: CustomerCategory) -> CustomerCategoryRecord:
        """Seed or overwrite a stored category without an audit row (imports, fixtures)"""
        record = self.db.get(CustomerCategoryRecord, customer_id)
        if record is None:
            record = CustomerCategoryRecord(customer_id=customer_id, category=category.value)
            self.db.add(record)
        else:
            record.category = category.value
        self.db.flush()
        return record

    def record_change(self, entry: CategoryAuditEntry) -> CategoryAuditLog:
        """Update the stored category and append the audit row in the same unit of work"""
        record = self.db.get(CustomerCategoryRecord, entry.customer_id)
        if record is None:
            record = CustomerCategoryRecord(customer_id=entry.customer_id)
            self.db.add(record)
        record.category = entry.to_category.value
        record.updated_at = entry.timestamp

        db_entry = CategoryAuditLog(
            customer_id=entry.customer_id,
            from_category=entry.from_category.value,
            to_category=entry.to_category.value,
            reason=entry.reason,
            days_overdue=entry.days_overdue,
            created_at=entry.timestamp,
        )
        self.db.add(db_entry)
        self.db.flush()  # Get ID without committing
        return db_entry

    def get_audit_log(self, customer_id: str, limit: int = 50) -> List[CategoryAuditEntry]:
        """Most recent transitions first"""
        rows = (
            self.db.query(CategoryAuditLog)
            .filter(CategoryAuditLog.customer_id == customer_id)
            .order_by(CategoryAuditLog.created_at.desc())
            .limit(limit)
            .all()
        )
        return [
            CategoryAuditEntry(
                customer_id=row.customer_id,
                from_category=CustomerCategory(row.from_category),
                to_category=CustomerCategory(row.to_category),
                reason=row.reason,
                days_overdue=row.days_overdue,
                timestamp=row.created_at,
            )
            for row in rows
        ]
