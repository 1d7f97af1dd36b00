"""Transaction endpoints: conversational extraction, direct entry, recent list."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session

from bizledger.core.auth import CurrentUser, get_current_user
from bizledger.core.config import get_settings
from bizledger.core.dependencies import get_db
from bizledger.models.ledger import Asset
from bizledger.schemas.finance import (
    ExtractionItemOut,
    ExtractRequest,
    ExtractResponse,
    LedgerRecordOut,
    TransactionCreate,
    TransactionKind,
    TransactionListResponse,
)
from bizledger.services.ai.transaction_extract.contracts import TransactionCandidate
from bizledger.services.ai.transaction_extract.service import TransactionClassifier
from bizledger.services.business_service import require_business
from bizledger.services.extraction_orchestrator import (
    Classifier,
    ExtractionInputError,
    ExtractionOrchestrator,
)
from bizledger.services.ledger_normalizer import NormalizationFailure, normalize_candidate
from bizledger.services.ledger_store import (
    MODEL_BY_KIND,
    LedgerInsertError,
    LedgerUnavailableError,
    SqlLedgerStore,
)
from bizledger.services.response_composer import compose_message
from bizledger.utils.rate_limit import rate_limiter

router = APIRouter()
logger = logging.getLogger(__name__)

KIND_BY_MODEL = {model: kind for kind, model in MODEL_BY_KIND.items()}


def _ensure_extract_enabled() -> None:
    if not get_settings().enable_ai_transaction_extract:
        raise HTTPException(404, "Not found")


def _enforce_extract_rate_limit(user_id: str) -> None:
    settings = get_settings()
    if not settings.rate_limit_extract_enabled:
        return
    allowed, _ = rate_limiter.allow(f"extract:user:{user_id}", settings.rate_limit_extract_per_min, 60)
    if not allowed:
        raise HTTPException(429, "Too Many Requests")


def get_transaction_classifier(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Classifier:
    return TransactionClassifier.from_settings(db=db, actor_id=current_user.id)


def record_to_out(row: Any) -> LedgerRecordOut:
    kind = KIND_BY_MODEL[type(row)]
    common = {
        "id": str(row.id),
        "kind": kind,
        "business_id": str(row.business_id),
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }
    if kind is TransactionKind.ASSET:
        return LedgerRecordOut(
            **common,
            amount=float(row.current_value),
            date=row.purchase_date,
            category=row.type,
            description=row.description,
            name=row.name,
            current_value=float(row.current_value),
            purchase_value=float(row.purchase_value),
            depreciation_rate=float(row.depreciation_rate) if row.depreciation_rate is not None else None,
            location=row.location,
            documents=list(row.documents or []),
        )

    out = LedgerRecordOut(
        **common,
        amount=float(row.amount),
        date=row.date,
        category=row.category,
        description=row.description,
        notes=row.notes,
        payment_method=row.payment_method,
        recurrence=row.recurrence,
    )
    if kind is TransactionKind.EXPENSE:
        out.vendor = row.vendor
        out.tax_deductible = row.tax_deductible
    else:
        out.client = row.client
        out.tax_withheld = float(row.tax_withheld) if row.tax_withheld is not None else None
    return out


@router.post("/transactions/extract", response_model=ExtractResponse)
async def extract_transactions(
    payload: ExtractRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    classifier: Classifier = Depends(get_transaction_classifier),
):
    """Turn a chat message into saved ledger records plus a reply."""
    _ensure_extract_enabled()
    _enforce_extract_rate_limit(current_user.id)

    business = require_business(db, current_user.id)
    orchestrator = ExtractionOrchestrator(
        classifier,
        SqlLedgerStore(db, actor_id=current_user.id),
        currency=business.currency,
    )

    try:
        outcome = await orchestrator.extract(
            payload.utterance,
            business.id,
            history=[turn.model_dump() for turn in payload.conversation_history],
        )
    except ExtractionInputError as exc:
        raise HTTPException(400, str(exc)) from exc
    except LedgerUnavailableError as exc:
        logger.error("Ledger store unavailable during extraction: %s", exc)
        raise HTTPException(500, "Internal server error") from exc

    return ExtractResponse(
        message=compose_message(outcome),
        persisted_count=outcome.persisted_count,
        persisted_records=[record_to_out(row) for row in outcome.persisted_records],
        items=[
            ExtractionItemOut(
                position=item.position,
                kind=item.kind.value if item.kind else None,
                status=item.status,
                record_id=str(item.record.id) if item.record is not None else None,
                reason=item.reason,
            )
            for item in outcome.items
        ],
        follow_up_questions=outcome.follow_up_questions,
        missing_info=outcome.missing_info,
        confidence=outcome.confidence,
        advisory_note=outcome.advisory_note,
    )


@router.post("/transactions", response_model=LedgerRecordOut, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Direct entry; goes through the same normalizer and store as extraction."""
    business = require_business(db, current_user.id)

    candidate = TransactionCandidate.model_validate(
        {
            "kind": payload.kind.value,
            "amount": payload.amount,
            "occurred_on": payload.date,
            "category": payload.category,
            "description": payload.description,
            "counterpart": payload.counterpart,
            "payment_method": payload.payment_method,
            "notes": payload.notes,
            "recurrence": payload.recurrence.value if payload.recurrence else None,
            "tax_deductible": payload.tax_deductible.value if payload.tax_deductible else None,
        }
    )
    today = datetime.now(timezone.utc).date()
    normalized = normalize_candidate(candidate, today)
    if isinstance(normalized, NormalizationFailure):
        raise HTTPException(
            422,
            {"reason": normalized.reason.value, "detail": normalized.detail},
        )

    store = SqlLedgerStore(db, actor_id=current_user.id)
    try:
        row = store.insert(normalized.kind, normalized.values, business_id=business.id)
    except LedgerInsertError as exc:
        logger.warning("Direct entry rejected by store: %s", exc)
        raise HTTPException(422, "Transaction could not be saved") from exc
    except LedgerUnavailableError as exc:
        logger.error("Ledger store unavailable: %s", exc)
        raise HTTPException(500, "Internal server error") from exc

    return record_to_out(row)


@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    limit: int = Query(20, ge=1, le=200),
    kind: Optional[TransactionKind] = Query(None, alias="type"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Most recent records of the caller's business, newest date first."""
    business = require_business(db, current_user.id)

    kinds = [kind] if kind else list(TransactionKind)
    rows: list[Any] = []
    for each in kinds:
        model = MODEL_BY_KIND[each]
        date_col = model.purchase_date if model is Asset else model.date
        rows.extend(
            db.query(model)
            .filter(model.business_id == business.id)
            .order_by(desc(date_col), desc(model.created_at))
            .limit(limit)
            .all()
        )

    def _sort_key(row: Any):
        occurred = row.purchase_date if isinstance(row, Asset) else row.date
        created = row.created_at or datetime.min.replace(tzinfo=timezone.utc)
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return occurred, created

    rows.sort(key=_sort_key, reverse=True)
    return TransactionListResponse(transactions=[record_to_out(row) for row in rows[:limit]])
