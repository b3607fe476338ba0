"""
Categorisation rule endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional

from app.database import get_db
from app.schemas.rule import (
    RuleCreate,
    RuleUpdate,
    RuleResponse,
    RuleList,
    RuleCheckRequest,
    RuleCheckResponse,
    RuleTestRequest,
    RuleTestResult,
)
from app.services import rules_service

router = APIRouter(prefix="/categories/rules", tags=["rules"])


@router.get("")
def list_rules(
    category_id: Optional[str] = None,
    is_system: Optional[bool] = None,
    stats: bool = Query(False),
    db: Session = Depends(get_db)
):
    """List rules, or rule statistics with ?stats=true."""
    if stats:
        return rules_service.get_rule_stats(db)

    rules = rules_service.get_rules(db, category_id=category_id, is_system=is_system)
    return RuleList(rules=[RuleResponse.model_validate(r) for r in rules])


@router.post("", response_model=RuleResponse, status_code=201)
def create_rule(
    rule: RuleCreate,
    db: Session = Depends(get_db)
):
    """Create a rule unless the same pattern already exists for its match type."""
    existing = rules_service.check_pattern_exists(db, rule.pattern, rule.match_type)
    if existing:
        return JSONResponse(
            status_code=409,
            content={
                "detail": "Pattern already exists",
                "existing_rule": RuleResponse.model_validate(existing).model_dump(mode="json"),
            },
        )

    try:
        return rules_service.create_rule(db, rule)
    except rules_service.RuleCreationError:
        raise HTTPException(status_code=500, detail="Failed to create rule")


@router.post("/test", response_model=RuleTestResult)
def dry_run_rule(
    request: RuleTestRequest,
    db: Session = Depends(get_db)
):
    """Show which transactions a pattern would match and how many would change category."""
    return rules_service.dry_run_rule(
        db,
        request.pattern,
        request.match_type,
        request.category_id,
        limit=request.limit
    )


@router.post("/check", response_model=RuleCheckResponse)
def check_rule(
    request: RuleCheckRequest,
    db: Session = Depends(get_db)
):
    """Check whether a pattern already exists as a rule."""
    existing = rules_service.check_pattern_exists(db, request.pattern, request.match_type)
    return RuleCheckResponse(
        exists=existing is not None,
        rule=RuleResponse.model_validate(existing) if existing else None
    )


@router.get("/{rule_id}", response_model=RuleResponse)
def get_rule(
    rule_id: str,
    db: Session = Depends(get_db)
):
    rule = rules_service.get_rule(db, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.patch("/{rule_id}", response_model=RuleResponse)
def update_rule(
    rule_id: str,
    update: RuleUpdate,
    db: Session = Depends(get_db)
):
    rule = rules_service.get_rule(db, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rules_service.update_rule(db, rule, update)


@router.delete("/{rule_id}", status_code=204)
def delete_rule(
    rule_id: str,
    db: Session = Depends(get_db)
):
    """Delete a user rule. System rules cannot be deleted."""
    rule = rules_service.get_rule(db, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")

    try:
        rules_service.delete_rule(db, rule)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return None
