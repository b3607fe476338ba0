"""Service for categorisation rule management and rule creation from suggestions."""

import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.category_rule import CategoryRule, MatchType
from app.models.transaction import Transaction
from app.schemas.correction import SuggestionAccept
from app.schemas.rule import (
    RuleCreate,
    RuleUpdate,
    RuleTestResult,
    MatchedTransaction,
    RuleStats,
)
from app.services.learning_service import mark_corrections_as_processed

logger = logging.getLogger(__name__)

RULE_TEST_SAMPLE_SIZE = 1000


class RuleCreationError(Exception):
    """Raised when a rule could not be written to the rule store."""


def get_rules(
    db: Session,
    category_id: Optional[str] = None,
    is_system: Optional[bool] = None
) -> List[CategoryRule]:
    """Get rules, newest first."""
    query = db.query(CategoryRule)

    if category_id:
        query = query.filter(CategoryRule.category_id == category_id)
    if is_system is not None:
        query = query.filter(CategoryRule.is_system == is_system)

    return query.order_by(CategoryRule.created_at.desc()).all()


def get_rule(db: Session, rule_id: str) -> Optional[CategoryRule]:
    return db.query(CategoryRule).filter(CategoryRule.id == rule_id).first()


def create_rule(db: Session, data: RuleCreate, is_system: bool = False) -> CategoryRule:
    """
    Create a rule.

    Not idempotent: submitting the same data twice creates two rules.
    """
    rule = CategoryRule(
        pattern=data.pattern,
        category_id=data.category_id,
        match_type=data.match_type,
        confidence=data.confidence,
        is_system=is_system,
        notes=data.notes,
    )
    try:
        db.add(rule)
        db.commit()
        db.refresh(rule)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create rule: {e}")
        raise RuleCreationError(str(e)) from e

    return rule


def create_rule_from_suggestion(
    db: Session,
    suggestion: SuggestionAccept,
    notes: Optional[str] = None
) -> Tuple[CategoryRule, bool]:
    """
    Create a rule from an accepted suggestion and link its evidence.

    The rule and the correction links are written separately. If linking
    fails the rule is kept and flagged provenance_pending so that
    reconcile_pending_rules() can finish the job later.

    Returns the rule and whether its provenance is still pending.
    """
    rule = create_rule(db, RuleCreate(
        pattern=suggestion.pattern,
        category_id=suggestion.category_id,
        match_type=suggestion.match_type,
        confidence=suggestion.confidence,
        notes=notes or suggestion.notes or f"Created from {suggestion.correction_count} user corrections",
    ))

    if mark_corrections_as_processed(db, suggestion.correction_ids, rule.id):
        return rule, False

    logger.warning(
        f"Rule {rule.id} created but {len(suggestion.correction_ids)} corrections could not be linked"
    )
    try:
        rule.provenance_pending = True
        rule.pending_correction_ids = list(suggestion.correction_ids)
        db.commit()
        db.refresh(rule)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to flag rule {rule.id} as pending provenance: {e}")

    return rule, True


def reconcile_pending_rules(db: Session) -> int:
    """Retry linking corrections for rules flagged provenance_pending. Returns how many were fixed."""
    pending = db.query(CategoryRule).filter(CategoryRule.provenance_pending == True).all()

    reconciled = 0
    for rule in pending:
        if not mark_corrections_as_processed(db, rule.pending_correction_ids or [], rule.id):
            continue
        rule.provenance_pending = False
        rule.pending_correction_ids = None
        db.commit()
        reconciled += 1

    if pending:
        logger.info(f"Reconciled {reconciled} of {len(pending)} rules with pending provenance")
    return reconciled


def update_rule(db: Session, rule: CategoryRule, update: RuleUpdate) -> CategoryRule:
    update_data = update.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in update_data.items():
        setattr(rule, field, value)

    db.commit()
    db.refresh(rule)
    return rule


def delete_rule(db: Session, rule: CategoryRule) -> None:
    """Delete a user rule. System rules are protected."""
    if rule.is_system:
        raise ValueError("Cannot delete system rule")

    db.delete(rule)
    db.commit()


def check_pattern_exists(db: Session, pattern: str, match_type: MatchType) -> Optional[CategoryRule]:
    """Find a rule with the same pattern (ignoring case) and match type."""
    normalized = pattern.lower().strip()

    rules = db.query(CategoryRule).filter(CategoryRule.match_type == match_type).all()
    for rule in rules:
        if rule.pattern.lower().strip() == normalized:
            return rule
    return None


def rule_matches(pattern: str, match_type: MatchType, description: str) -> bool:
    """Whether a description matches a rule pattern."""
    if match_type == MatchType.exact:
        return description.lower().strip() == pattern.lower().strip()
    elif match_type == MatchType.contains:
        return pattern.lower().strip() in description.lower()
    elif match_type == MatchType.regex:
        try:
            return re.search(pattern, description, re.IGNORECASE) is not None
        except re.error:
            logger.warning(f"Invalid regex pattern: {pattern}")
            return False
    return False


def dry_run_rule(
    db: Session,
    pattern: str,
    match_type: MatchType,
    category_id: str,
    limit: int = 50
) -> RuleTestResult:
    """
    Dry-run a pattern against recent transactions.
    Reports how many would match and how many would change category.
    """
    transactions = db.query(Transaction).order_by(
        Transaction.date.desc()
    ).limit(RULE_TEST_SAMPLE_SIZE).all()

    matched = []
    would_change = 0
    for txn in transactions:
        if not rule_matches(pattern, match_type, txn.raw_description or ""):
            continue

        matched.append(MatchedTransaction(
            id=txn.id,
            date=txn.date,
            description=txn.raw_description,
            amount=float(txn.amount),
            current_category_id=txn.category_id,
            current_category_name=txn.category.name if txn.category else None,
        ))
        if txn.category_id != category_id:
            would_change += 1

    return RuleTestResult(
        total_matched=len(matched),
        transactions=matched[:limit],
        would_change=would_change,
    )


def get_rule_stats(db: Session) -> RuleStats:
    rules = get_rules(db)
    cutoff = datetime.utcnow() - timedelta(days=30)

    by_match_type = {}
    system_rules = 0
    recently_created = 0
    pending = 0
    for rule in rules:
        key = rule.match_type.value
        by_match_type[key] = by_match_type.get(key, 0) + 1
        if rule.is_system:
            system_rules += 1
        if rule.created_at > cutoff:
            recently_created += 1
        if rule.provenance_pending:
            pending += 1

    return RuleStats(
        total=len(rules),
        by_match_type=by_match_type,
        system_rules=system_rules,
        user_rules=len(rules) - system_rules,
        recently_created=recently_created,
        provenance_pending=pending,
    )
