import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bizledger.core.auth import CurrentUser, get_current_user
from bizledger.core.dependencies import get_db
from bizledger.models.ledger import TransactionCategory
from bizledger.schemas.finance import (
    CashFlowTrend,
    CategoryCreate,
    CategoryListResponse,
    CategoryOut,
    ExpenseBreakdown,
    FinancialSummary,
    SummaryPeriod,
)
from bizledger.services.audit_service import create_audit_log
from bizledger.services.business_service import require_business
from bizledger.services.finance_summary import (
    DEFAULT_TREND_MONTHS,
    MAX_TREND_MONTHS,
    build_cash_flow_trend,
    build_expense_breakdown,
    build_summary,
)
from bizledger.utils.rate_limit import get_client_ip, get_user_agent

router = APIRouter()
logger = logging.getLogger(__name__)


def _category_to_out(category: TransactionCategory) -> CategoryOut:
    return CategoryOut(
        id=str(category.id),
        name=category.name,
        type=category.type,
        color=category.color,
        description=category.description,
        created_at=category.created_at,
    )


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@router.post("/finance/categories", response_model=CategoryOut, status_code=201)
def create_category(
    payload: CategoryCreate,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    business = require_business(db, current_user.id)

    category = TransactionCategory(
        business_id=business.id,
        name=payload.name.strip(),
        type=payload.type.value,
        color=payload.color,
        description=payload.description,
    )
    db.add(category)
    try:
        db.flush()
        create_audit_log(
            db,
            entity_type="transaction_category",
            entity_id=str(category.id),
            action="TRANSACTION_CATEGORY_CREATED",
            old_value=None,
            new_value={"name": category.name, "type": category.type, "color": category.color},
            actor_type="USER",
            actor_id=current_user.id,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(409, "Category already exists") from exc

    db.refresh(category)
    return _category_to_out(category)


@router.get("/finance/categories", response_model=CategoryListResponse)
def list_categories(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    business = require_business(db, current_user.id)
    rows = (
        db.query(TransactionCategory)
        .filter(TransactionCategory.business_id == business.id)
        .order_by(TransactionCategory.type, TransactionCategory.name)
        .all()
    )
    return CategoryListResponse(items=[_category_to_out(row) for row in rows])


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


@router.get("/finance/summary", response_model=FinancialSummary)
def finance_summary(
    period: SummaryPeriod = Query(SummaryPeriod.CURRENT_MONTH),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    business = require_business(db, current_user.id)
    today = datetime.now(timezone.utc).date()
    return build_summary(db, business, period, today)


@router.get("/finance/cash-flow", response_model=CashFlowTrend)
def cash_flow_trend(
    months: int = Query(DEFAULT_TREND_MONTHS, ge=1, le=MAX_TREND_MONTHS),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    business = require_business(db, current_user.id)
    today = datetime.now(timezone.utc).date()
    return build_cash_flow_trend(db, business, today, months)


@router.get("/finance/expense-breakdown", response_model=ExpenseBreakdown)
def expense_breakdown(
    period: SummaryPeriod = Query(SummaryPeriod.CURRENT_MONTH),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    business = require_business(db, current_user.id)
    today = datetime.now(timezone.utc).date()
    return build_expense_breakdown(db, business, period, today)
