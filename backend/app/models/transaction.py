"""
Transaction database model.
"""

import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Date, Float, Numeric, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from app.database import Base


class CategorisationSource(str, enum.Enum):
    """Where a transaction's current category came from."""
    exact_rule = "exact-rule"
    pattern_rule = "pattern-rule"
    similarity = "similarity"
    ai_assisted = "ai-assisted"
    none = "none"
    manual = "manual"  # Set once the user overrides the category


class Transaction(Base):
    """Transaction model."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)  # Negative = expense, positive = income
    raw_description = Column(Text, nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    # Stored verbatim as the categorisation engine reported it
    categorisation_source = Column(String(20), nullable=True)
    categorisation_confidence = Column(Float, nullable=True)
    import_session_id = Column(String(36), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    category = relationship("Category", back_populates="transactions")

    # Indexes for common queries
    __table_args__ = (
        Index("idx_transaction_category", "category_id"),
    )
