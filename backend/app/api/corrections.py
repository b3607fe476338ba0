"""
Category correction and rule-suggestion endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.database import get_db
from app.schemas.correction import (
    CorrectionBatchCreate,
    CorrectionBatchResult,
    CorrectionCreate,
    CorrectionList,
    CorrectionRecorded,
    CorrectionResponse,
    SuggestionAccept,
)
from app.schemas.rule import AcceptedRuleResponse, ReconcileResult, RuleResponse
from app.services import learning_service, rules_service

router = APIRouter(prefix="/categories/corrections", tags=["corrections"])


@router.get("")
def get_corrections(
    action: Optional[str] = Query(None, pattern="^(suggestions|check)$"),
    description: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Analyse corrections for rule suggestions.

    ?action=check returns only whether suggestions exist;
    ?description=... returns unresolved corrections for that description.
    """
    if action == "check":
        return learning_service.check_for_suggestions(db)

    if description and action is None:
        corrections = learning_service.get_corrections_for_description(db, description)
        return CorrectionList(
            corrections=[CorrectionResponse.model_validate(c) for c in corrections]
        )

    return learning_service.analyse_corrections(db)


@router.post("", response_model=CorrectionRecorded, status_code=201)
def record_correction(
    correction: CorrectionCreate,
    db: Session = Depends(get_db)
):
    """Record a single correction. Safe to retry with the same id."""
    correction_id = learning_service.record_correction(db, correction)
    if not correction_id:
        raise HTTPException(status_code=500, detail="Failed to record correction")
    return CorrectionRecorded(id=correction_id)


@router.post("/batch", response_model=CorrectionBatchResult, status_code=201)
def record_corrections_batch(
    batch: CorrectionBatchCreate,
    db: Session = Depends(get_db)
):
    """Record several corrections at once."""
    return learning_service.record_corrections_batch(db, batch.corrections)


@router.post("/accept", response_model=AcceptedRuleResponse, status_code=201)
def accept_suggestion(
    suggestion: SuggestionAccept,
    db: Session = Depends(get_db)
):
    """
    Create a rule from a suggestion and link its corrections.

    Not idempotent: each call creates a new rule.
    """
    try:
        rule, provenance_pending = rules_service.create_rule_from_suggestion(db, suggestion)
    except rules_service.RuleCreationError:
        raise HTTPException(status_code=500, detail="Failed to create rule")

    return AcceptedRuleResponse(
        rule=RuleResponse.model_validate(rule),
        provenance_pending=provenance_pending,
    )


@router.post("/reconcile", response_model=ReconcileResult)
def reconcile_rules(db: Session = Depends(get_db)):
    """Retry linking corrections for rules whose provenance is pending."""
    return ReconcileResult(reconciled=rules_service.reconcile_pending_rules(db))
