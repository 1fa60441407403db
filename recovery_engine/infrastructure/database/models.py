"""SQLAlchemy ORM models for stored categories and the category audit trail"""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class CustomerCategoryRecord(Base):
    """Current category per customer"""

    __tablename__ = "customer_category"

    customer_id = Column(Text, primary_key=True)
    category = Column(Text, nullable=False, default="New")
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    audit_entries = relationship("CategoryAuditLog", back_populates="customer", cascade="all, delete-orphan")


class CategoryAuditLog(Base):
    """Append-only log of applied category transitions"""

    __tablename__ = "category_audit_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(
        Text, ForeignKey("customer_category.customer_id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_category = Column(Text, nullable=False)
    to_category = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    days_overdue = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)

    customer = relationship("CustomerCategoryRecord", back_populates="audit_entries")
