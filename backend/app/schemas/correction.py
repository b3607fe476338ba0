"""
Correction and rule-suggestion schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List

from app.models.category_rule import MatchType


class CorrectionCreate(BaseModel):
    """A user override as sent by the UI or the override path."""
    id: Optional[str] = Field(None, min_length=1, max_length=36)  # Client-generated for idempotent retries
    description: str = Field(..., min_length=1)
    original_category_id: Optional[str] = None
    corrected_category_id: str = Field(..., min_length=1)
    original_source: Optional[str] = Field(None, max_length=20)
    import_session_id: Optional[str] = None


class CorrectionBatchCreate(BaseModel):
    corrections: List[CorrectionCreate]


class CorrectionRecorded(BaseModel):
    id: str


class CorrectionBatchResult(BaseModel):
    recorded: int
    failed: int


class CorrectionResponse(BaseModel):
    id: str
    description: str
    original_category_id: Optional[str] = None
    corrected_category_id: str
    corrected_category_name: Optional[str] = None
    original_source: Optional[str] = None
    import_session_id: Optional[str] = None
    created_rule_id: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CorrectionList(BaseModel):
    corrections: List[CorrectionResponse]


class PatternSuggestion(BaseModel):
    """A derived, unpersisted recommendation to create a rule."""
    pattern: str
    match_type: MatchType
    category_id: str
    category_name: str
    correction_count: int
    sample_descriptions: List[str] = []
    confidence: float = Field(..., ge=0, le=1)
    correction_ids: List[str] = []

    @property
    def key(self):
        return (self.pattern, self.category_id)


class AnalysisResult(BaseModel):
    suggestions: List[PatternSuggestion] = []
    total_corrections: int = 0
    recent_corrections: List[CorrectionResponse] = []


class SuggestionCheck(BaseModel):
    has_suggestions: bool
    count: int


class SuggestionAccept(BaseModel):
    """Payload for turning a suggestion into a rule."""
    pattern: str = Field(..., min_length=1)
    match_type: MatchType
    category_id: str = Field(..., min_length=1)
    category_name: str
    correction_count: int
    confidence: float = Field(..., ge=0, le=1)
    correction_ids: List[str] = []
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("match_type")
    @classmethod
    def only_learned_match_types(cls, v):
        if v == MatchType.regex:
            raise ValueError("suggestions are only learned as exact or contains rules")
        return v

    @classmethod
    def from_suggestion(cls, suggestion: PatternSuggestion, notes: Optional[str] = None) -> "SuggestionAccept":
        return cls(
            pattern=suggestion.pattern,
            match_type=suggestion.match_type,
            category_id=suggestion.category_id,
            category_name=suggestion.category_name,
            correction_count=suggestion.correction_count,
            confidence=suggestion.confidence,
            correction_ids=suggestion.correction_ids,
            notes=notes,
        )
