"""
Transaction schemas.
"""

from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime
from decimal import Decimal


class TransactionUpdate(BaseModel):
    category_id: Optional[str] = None
    notes: Optional[str] = None


class TransactionResponse(BaseModel):
    id: str
    date: date
    amount: Decimal
    raw_description: str
    category_id: Optional[str]
    categorisation_source: Optional[str]
    categorisation_confidence: Optional[float]
    import_session_id: Optional[str]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
