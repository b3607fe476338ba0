"""
Transaction API endpoints.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.transaction import Transaction, CategorisationSource
from app.schemas.correction import CorrectionCreate
from app.schemas.transaction import TransactionResponse, TransactionUpdate
from app.services import learning_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: str,
    db: Session = Depends(get_db)
):
    """Get a single transaction"""
    transaction = db.query(Transaction).filter(Transaction.id == transaction_id).first()
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return TransactionResponse.model_validate(transaction)


@router.patch("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: str,
    update: TransactionUpdate,
    db: Session = Depends(get_db)
):
    """Update a transaction and record category overrides for rule learning"""
    transaction = db.query(Transaction).filter(Transaction.id == transaction_id).first()
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")

    is_override = bool(update.category_id) and update.category_id != transaction.category_id
    previous = {
        "description": transaction.raw_description,
        "original_category_id": transaction.category_id,
        "original_source": transaction.categorisation_source,
        "import_session_id": transaction.import_session_id,
    }

    update_data = update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(transaction, field, value)

    if is_override:
        transaction.categorisation_source = CategorisationSource.manual.value
        transaction.categorisation_confidence = None

    db.commit()
    db.refresh(transaction)

    if is_override:
        _record_override(db, transaction_id, previous, update.category_id)

    return TransactionResponse.model_validate(transaction)


def _record_override(db: Session, transaction_id: str, previous: dict, corrected_category_id: str) -> None:
    """Best effort: a lost correction must not fail the override itself."""
    try:
        correction = CorrectionCreate(corrected_category_id=corrected_category_id, **previous)
    except ValidationError as e:
        logger.warning(f"Skipping correction for transaction {transaction_id}: {e}")
        return

    if not learning_service.record_correction(db, correction):
        logger.warning(f"Correction for transaction {transaction_id} was not recorded")
