"""
Category correction database model.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from app.database import Base


class CategoryCorrection(Base):
    """
    A user overriding an automatically assigned category.

    Rows are append-only. The only column that changes after insert is
    created_rule_id, which is set once when a rule is created from them.
    """

    __tablename__ = "category_corrections"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    description = Column(Text, nullable=False)
    original_category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    corrected_category_id = Column(String(36), ForeignKey("categories.id"), nullable=False)
    original_source = Column(String(20), nullable=True)
    import_session_id = Column(String(36), nullable=True)
    created_rule_id = Column(String(36), nullable=True)  # Rule created from this correction; kept after the rule is deleted
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    corrected_category = relationship(
        "Category",
        back_populates="corrections",
        foreign_keys=[corrected_category_id],
    )
    original_category = relationship("Category", foreign_keys=[original_category_id])

    __table_args__ = (
        Index("idx_correction_category", "corrected_category_id"),
        Index("idx_correction_created_at", "created_at"),
        Index("idx_correction_rule", "created_rule_id"),
    )

    @property
    def corrected_category_name(self):
        return self.corrected_category.name if self.corrected_category else None
