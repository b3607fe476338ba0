"""
Categorisation rule schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import Optional, List, Dict

from app.models.category_rule import MatchType


class RuleBase(BaseModel):
    pattern: str = Field(..., min_length=1, max_length=500)
    category_id: str = Field(..., min_length=1)
    match_type: MatchType = MatchType.exact
    confidence: float = Field(0.85, ge=0, le=1)
    notes: Optional[str] = Field(None, max_length=1000)


class RuleCreate(RuleBase):
    pass


class RuleUpdate(BaseModel):
    pattern: Optional[str] = Field(None, min_length=1, max_length=500)
    category_id: Optional[str] = None
    match_type: Optional[MatchType] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)
    notes: Optional[str] = Field(None, max_length=1000)


class RuleResponse(RuleBase):
    id: str
    is_system: bool
    provenance_pending: bool
    created_at: datetime

    class Config:
        from_attributes = True


class RuleList(BaseModel):
    rules: List[RuleResponse]


class AcceptedRuleResponse(BaseModel):
    rule: RuleResponse
    provenance_pending: bool = False


class RuleCheckRequest(BaseModel):
    pattern: str
    match_type: MatchType


class RuleCheckResponse(BaseModel):
    exists: bool
    rule: Optional[RuleResponse] = None


class RuleTestRequest(BaseModel):
    pattern: str = Field(..., min_length=1, max_length=500)
    match_type: MatchType
    category_id: str
    limit: int = Field(50, ge=1, le=100)


class MatchedTransaction(BaseModel):
    id: str
    date: date
    description: str
    amount: float
    current_category_id: Optional[str] = None
    current_category_name: Optional[str] = None


class RuleTestResult(BaseModel):
    total_matched: int
    transactions: List[MatchedTransaction]
    would_change: int


class RuleStats(BaseModel):
    total: int
    by_match_type: Dict[str, int]
    system_rules: int
    user_rules: int
    recently_created: int
    provenance_pending: int


class ReconcileResult(BaseModel):
    reconciled: int
