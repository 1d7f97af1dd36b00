from datetime import date, datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field


class TransactionKind(StrEnum):
    EXPENSE = "expense"
    INCOME = "income"
    ASSET = "asset"


class Recurrence(StrEnum):
    ONCE = "once"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class TaxDeductible(StrEnum):
    YES = "yes"
    NO = "no"
    PARTIAL = "partial"


class CategoryType(StrEnum):
    EXPENSE = "expense"
    INCOME = "income"


class SummaryPeriod(StrEnum):
    CURRENT_MONTH = "current_month"
    LAST_MONTH = "last_month"
    CURRENT_QUARTER = "current_quarter"
    LAST_QUARTER = "last_quarter"
    CURRENT_YEAR = "current_year"
    LAST_YEAR = "last_year"


# --- Extraction ---


class ConversationTurn(BaseModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str = Field(..., max_length=4000)


class ExtractRequest(BaseModel):
    utterance: str = Field(..., max_length=4000)
    conversation_history: list[ConversationTurn] = Field(default_factory=list, max_length=20)


class LedgerRecordOut(BaseModel):
    """Flattened view of a persisted expense, income or asset row."""

    id: str
    kind: TransactionKind
    business_id: str
    amount: float
    date: date
    category: str
    description: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[str] = None
    vendor: Optional[str] = None
    client: Optional[str] = None
    recurrence: Optional[str] = None
    tax_deductible: Optional[str] = None
    tax_withheld: Optional[float] = None
    name: Optional[str] = None
    current_value: Optional[float] = None
    purchase_value: Optional[float] = None
    depreciation_rate: Optional[float] = None
    location: Optional[str] = None
    documents: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExtractionItemOut(BaseModel):
    position: int
    kind: Optional[str] = None
    status: str  # persisted | rejected | failed
    record_id: Optional[str] = None
    reason: Optional[str] = None


class ExtractResponse(BaseModel):
    success: bool = True
    message: str
    persisted_count: int
    persisted_records: list[LedgerRecordOut]
    items: list[ExtractionItemOut]
    follow_up_questions: list[str]
    missing_info: list[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
    advisory_note: Optional[str] = None


# --- Direct entry / listing ---


class TransactionCreate(BaseModel):
    """Direct-entry payload; validated by the same normalizer as AI candidates."""

    kind: TransactionKind
    amount: Any
    date: Optional[str] = None
    category: str = ""
    description: str = ""
    counterpart: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    tax_deductible: Optional[TaxDeductible] = None


class TransactionListResponse(BaseModel):
    transactions: list[LedgerRecordOut]


# --- Categories ---


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    type: CategoryType
    color: str = Field(default="#22c55e", pattern="^#[0-9a-fA-F]{6}$")
    description: Optional[str] = Field(default=None, max_length=512)


class CategoryOut(BaseModel):
    id: str
    name: str
    type: CategoryType
    color: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class CategoryListResponse(BaseModel):
    items: list[CategoryOut]


# --- Summary ---


class FinancialSummary(BaseModel):
    period: SummaryPeriod
    period_start: date
    period_end: date
    currency: str
    total_income: float
    total_expenses: float
    net_cash_flow: float
    total_assets: float
    net_worth: float


class MonthlyCashFlow(BaseModel):
    month: str  # YYYY-MM
    income: float
    expenses: float
    net_cash_flow: float


class CashFlowTrend(BaseModel):
    start: date
    end: date
    months: int
    currency: str
    items: list[MonthlyCashFlow]


class CategoryShare(BaseModel):
    category: str
    amount: float
    count: int
    percentage: float


class ExpenseBreakdown(BaseModel):
    period: SummaryPeriod
    period_start: date
    period_end: date
    currency: str
    total_expenses: float
    items: list[CategoryShare]
