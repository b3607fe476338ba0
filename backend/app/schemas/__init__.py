"""
Pydantic schemas package.
"""

from app.schemas.correction import (
    CorrectionCreate,
    CorrectionBatchCreate,
    CorrectionRecorded,
    CorrectionBatchResult,
    CorrectionResponse,
    CorrectionList,
    PatternSuggestion,
    AnalysisResult,
    SuggestionCheck,
    SuggestionAccept,
)
from app.schemas.rule import (
    RuleCreate,
    RuleUpdate,
    RuleResponse,
    RuleList,
    AcceptedRuleResponse,
    RuleCheckRequest,
    RuleCheckResponse,
    RuleTestRequest,
    RuleTestResult,
    RuleStats,
    ReconcileResult,
)
from app.schemas.transaction import (
    TransactionUpdate,
    TransactionResponse,
)

__all__ = [
    "CorrectionCreate",
    "CorrectionBatchCreate",
    "CorrectionRecorded",
    "CorrectionBatchResult",
    "CorrectionResponse",
    "CorrectionList",
    "PatternSuggestion",
    "AnalysisResult",
    "SuggestionCheck",
    "SuggestionAccept",
    "RuleCreate",
    "RuleUpdate",
    "RuleResponse",
    "RuleList",
    "AcceptedRuleResponse",
    "RuleCheckRequest",
    "RuleCheckResponse",
    "RuleTestRequest",
    "RuleTestResult",
    "RuleStats",
    "ReconcileResult",
    "TransactionUpdate",
    "TransactionResponse",
]
