"""
Database models package.
"""

from app.models.category import Category
from app.models.transaction import Transaction, CategorisationSource
from app.models.category_rule import CategoryRule, MatchType
from app.models.correction import CategoryCorrection

__all__ = [
    "Category",
    "Transaction",
    "CategorisationSource",
    "CategoryRule",
    "MatchType",
    "CategoryCorrection",
]
