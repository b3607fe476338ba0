"""
Service for learning categorisation rules from user corrections.

Flow:
1. Transactions are categorised automatically.
2. The user overrides some categories -> record_correction().
3. analyse_corrections() mines unresolved corrections for repeatable patterns.
4. The user accepts a suggestion -> rules_service.create_rule_from_suggestion(),
   which links the evidence back via mark_corrections_as_processed().
"""

import logging
import math
import re
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.config import settings
from app.models.category_rule import MatchType
from app.models.correction import CategoryCorrection
from app.schemas.correction import (
    AnalysisResult,
    CorrectionBatchResult,
    CorrectionCreate,
    CorrectionResponse,
    PatternSuggestion,
    SuggestionCheck,
)

logger = logging.getLogger(__name__)

EXACT_BASE_CONFIDENCE = 0.85
EXACT_MAX_CONFIDENCE = 0.95
CONTAINS_BASE_CONFIDENCE = EXACT_BASE_CONFIDENCE - 0.05
CONTAINS_MAX_CONFIDENCE = 0.90
CONFIDENCE_STEP = 0.02

STOP_WORDS = frozenset([
    "the", "and", "for", "ref",
    "gbp", "usd", "eur",
    "payment", "card", "debit", "credit",
])

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9\s]")


def _build_correction(correction: CorrectionCreate, correction_id: str) -> CategoryCorrection:
    return CategoryCorrection(
        id=correction_id,
        description=correction.description,
        original_category_id=correction.original_category_id,
        corrected_category_id=correction.corrected_category_id,
        original_source=correction.original_source,
        import_session_id=correction.import_session_id or None,
    )


def record_correction(db: Session, correction: CorrectionCreate) -> Optional[str]:
    """
    Record a user correction to an auto-categorisation.

    Returns the correction id, or None if it could not be stored. Failures
    never propagate so the override that triggered them is not blocked.
    Re-sending a correction with an id that already exists is a no-op.
    """
    correction_id = correction.id or str(uuid.uuid4())

    try:
        existing = db.query(CategoryCorrection.id).filter(
            CategoryCorrection.id == correction_id
        ).first()
        if existing:
            return correction_id

        db.add(_build_correction(correction, correction_id))
        db.commit()
        return correction_id
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to record correction: {e}")
        return None


def record_corrections_batch(db: Session, corrections: List[CorrectionCreate]) -> CorrectionBatchResult:
    """Record several corrections in one commit."""
    if not corrections:
        return CorrectionBatchResult(recorded=0, failed=0)

    ids = [c.id or str(uuid.uuid4()) for c in corrections]

    try:
        already_stored = {
            row.id for row in db.query(CategoryCorrection.id).filter(
                CategoryCorrection.id.in_(ids)
            ).all()
        }

        recorded = 0
        pending = set()
        repeats = 0
        for correction, correction_id in zip(corrections, ids):
            if correction_id in already_stored:
                recorded += 1
                continue
            if correction_id in pending:
                # Repeated id within the batch; stored once with its first occurrence
                repeats += 1
                continue
            db.add(_build_correction(correction, correction_id))
            pending.add(correction_id)

        db.commit()
        recorded += len(pending) + repeats
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to record corrections batch: {e}")
        return CorrectionBatchResult(recorded=0, failed=len(corrections))

    return CorrectionBatchResult(recorded=recorded, failed=len(corrections) - recorded)


def _normalize_description(description: str) -> str:
    return description.lower().strip()


def _category_name(correction: CategoryCorrection) -> str:
    return correction.corrected_category_name or "Unknown"


def exact_confidence(count: int) -> float:
    """Confidence for an exact-match suggestion backed by `count` corrections."""
    return round(min(EXACT_MAX_CONFIDENCE, EXACT_BASE_CONFIDENCE + CONFIDENCE_STEP * (count - 3)), 4)


def contains_confidence(count: int) -> float:
    """Confidence for a contains suggestion; capped and based lower than exact matches."""
    return round(min(CONTAINS_MAX_CONFIDENCE, CONTAINS_BASE_CONFIDENCE + CONFIDENCE_STEP * (count - 3)), 4)


def tokenize_description(description: str) -> List[str]:
    """Split a description into significant lower-case words."""
    cleaned = _NON_ALPHANUMERIC.sub(" ", description.lower())
    return [w for w in cleaned.split() if len(w) >= 3 and w not in STOP_WORDS]


def find_common_substrings(
    corrections: List[CategoryCorrection],
    min_corrections: Optional[int] = None,
    max_samples: Optional[int] = None,
    coverage_ratio: Optional[float] = None,
) -> List[Dict]:
    """
    Find words and two-word phrases shared by the descriptions of one category.

    Each candidate is counted at most once per description. A candidate is
    kept when it appears in at least min_corrections descriptions and in at
    least coverage_ratio of the group.
    """
    min_corrections = min_corrections or settings.learning_min_corrections
    max_samples = max_samples or settings.learning_max_samples
    if coverage_ratio is None:
        coverage_ratio = settings.learning_coverage_ratio

    if len(corrections) < min_corrections:
        return []

    tallies: Dict[str, Dict] = OrderedDict()

    for correction in corrections:
        words = tokenize_description(correction.description)
        candidates = words + [f"{a} {b}" for a, b in zip(words, words[1:])]

        seen = set()
        for candidate in candidates:
            if candidate in seen:
                continue
            seen.add(candidate)

            tally = tallies.setdefault(candidate, {"count": 0, "samples": [], "correction_ids": []})
            tally["count"] += 1
            tally["correction_ids"].append(correction.id)
            if len(tally["samples"]) < max_samples:
                tally["samples"].append(correction.description)

    required = max(min_corrections, math.ceil(coverage_ratio * len(corrections)))

    results = [
        {"pattern": pattern, **tally}
        for pattern, tally in tallies.items()
        if tally["count"] >= required
    ]

    # Most frequent first, longer phrases before the words they contain
    results.sort(key=lambda r: (-r["count"], -len(r["pattern"])))
    return results


def find_patterns(
    corrections: Iterable[CategoryCorrection],
    min_corrections: Optional[int] = None,
    max_samples: Optional[int] = None,
    coverage_ratio: Optional[float] = None,
) -> List[PatternSuggestion]:
    """
    Turn corrections into ranked rule suggestions.

    Strategy 1 suggests exact rules for descriptions corrected to the same
    category at least min_corrections times. Strategy 2 suggests contains
    rules for words or phrases shared by most of a category's corrections,
    skipping any already covered by an exact suggestion for that category.
    """
    min_corrections = min_corrections or settings.learning_min_corrections
    max_samples = max_samples or settings.learning_max_samples

    by_category: Dict[str, List[CategoryCorrection]] = OrderedDict()
    for correction in corrections:
        by_category.setdefault(correction.corrected_category_id, []).append(correction)

    suggestions: List[PatternSuggestion] = []

    # Strategy 1: exact matches
    for category_id, category_corrections in by_category.items():
        by_description: Dict[str, List[CategoryCorrection]] = OrderedDict()
        for correction in category_corrections:
            by_description.setdefault(_normalize_description(correction.description), []).append(correction)

        for matches in by_description.values():
            if len(matches) < min_corrections:
                continue
            suggestions.append(PatternSuggestion(
                pattern=matches[0].description,  # Keep original casing for display
                match_type=MatchType.exact,
                category_id=category_id,
                category_name=_category_name(matches[0]),
                correction_count=len(matches),
                sample_descriptions=[m.description for m in matches[:max_samples]],
                confidence=exact_confidence(len(matches)),
                correction_ids=[m.id for m in matches],
            ))

    # Strategy 2: common substrings
    for category_id, category_corrections in by_category.items():
        if len(category_corrections) < min_corrections:
            continue

        exact_patterns = [
            s.pattern.lower() for s in suggestions
            if s.category_id == category_id and s.match_type == MatchType.exact
        ]

        common = find_common_substrings(
            category_corrections,
            min_corrections=min_corrections,
            max_samples=max_samples,
            coverage_ratio=coverage_ratio,
        )
        for info in common:
            if any(info["pattern"] in pattern for pattern in exact_patterns):
                continue
            suggestions.append(PatternSuggestion(
                pattern=info["pattern"],
                match_type=MatchType.contains,
                category_id=category_id,
                category_name=_category_name(category_corrections[0]),
                correction_count=info["count"],
                sample_descriptions=info["samples"][:max_samples],
                confidence=contains_confidence(info["count"]),
                correction_ids=info["correction_ids"],
            ))

    # Most evidence first
    suggestions.sort(key=lambda s: s.correction_count, reverse=True)
    return suggestions


def get_unresolved_corrections(
    db: Session,
    now: Optional[datetime] = None,
    lookback_days: Optional[int] = None,
) -> List[CategoryCorrection]:
    """Corrections inside the lookback window that have not produced a rule, newest first."""
    now = now or datetime.utcnow()
    lookback_days = lookback_days or settings.learning_lookback_days
    cutoff = now - timedelta(days=lookback_days)

    return db.query(CategoryCorrection).options(
        joinedload(CategoryCorrection.corrected_category)
    ).filter(
        CategoryCorrection.created_at >= cutoff,
        CategoryCorrection.created_rule_id.is_(None)
    ).order_by(CategoryCorrection.created_at.desc()).all()


def analyse_corrections(db: Session, now: Optional[datetime] = None) -> AnalysisResult:
    """
    Analyse recent corrections and suggest rules.

    Read failures are logged and reported as "nothing to suggest".
    """
    try:
        corrections = get_unresolved_corrections(db, now=now)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to fetch corrections: {e}")
        return AnalysisResult()

    suggestions = find_patterns(corrections)
    logger.debug(f"Analysed {len(corrections)} corrections, {len(suggestions)} suggestions")

    return AnalysisResult(
        suggestions=suggestions,
        total_corrections=len(corrections),
        recent_corrections=[
            CorrectionResponse.model_validate(c)
            for c in corrections[:settings.learning_recent_limit]
        ],
    )


def check_for_suggestions(db: Session) -> SuggestionCheck:
    """Lightweight check used to decide whether to prompt the user."""
    analysis = analyse_corrections(db)
    return SuggestionCheck(
        has_suggestions=len(analysis.suggestions) > 0,
        count=len(analysis.suggestions),
    )


def get_corrections_for_description(db: Session, description: str) -> List[CategoryCorrection]:
    """Unresolved corrections whose description matches, ignoring case and padding."""
    normalized = _normalize_description(description)

    try:
        corrections = db.query(CategoryCorrection).filter(
            CategoryCorrection.created_rule_id.is_(None)
        ).order_by(CategoryCorrection.created_at.desc()).all()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to fetch corrections for description: {e}")
        return []

    return [c for c in corrections if _normalize_description(c.description) == normalized]


def mark_corrections_as_processed(db: Session, correction_ids: List[str], rule_id: str) -> bool:
    """
    Link corrections to the rule created from them.

    Only rows that are still unlinked are updated, so repeating the call is
    a no-op and a row is never moved to a second rule.
    """
    if not correction_ids:
        return True

    try:
        db.query(CategoryCorrection).filter(
            CategoryCorrection.id.in_(correction_ids),
            CategoryCorrection.created_rule_id.is_(None)
        ).update(
            {CategoryCorrection.created_rule_id: rule_id},
            synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to mark corrections as processed: {e}")
        return False

    return True
