"""
Categorisation rule database model.
"""

import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime, Enum, Float, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base


class MatchType(str, enum.Enum):
    """How a rule pattern is compared with a transaction description."""
    exact = "exact"
    contains = "contains"
    regex = "regex"


class CategoryRule(Base):
    """Pattern-to-category mapping consumed by the categorisation engine."""

    __tablename__ = "category_rules"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    pattern = Column(Text, nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False, index=True)
    match_type = Column(Enum(MatchType), default=MatchType.exact, nullable=False, index=True)
    confidence = Column(Float, default=0.85, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)
    # Set when the rule exists but its evidence corrections could not be linked yet
    provenance_pending = Column(Boolean, default=False, nullable=False, index=True)
    pending_correction_ids = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    category = relationship("Category", back_populates="rules")
