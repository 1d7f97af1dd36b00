"""Transaction normalizer: candidate in, insertable ledger values out.

``normalize_candidate`` never raises for bad input. It returns either a
``NormalizedRecord`` (the ledger variant plus column values ready for the
store) or a ``NormalizationFailure`` carrying a discriminated reason.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, Union

from bizledger.schemas.finance import Recurrence, TaxDeductible, TransactionKind
from bizledger.services.ai.transaction_extract.contracts import TransactionCandidate

UNKNOWN_COUNTERPART = "Unknown"
DEFAULT_PAYMENT_METHOD = "unspecified"

CENT = Decimal("0.01")
# Numeric(12, 2) upper bound.
MAX_AMOUNT = Decimal("9999999999.99")
# Smallest value that rounds above MAX_AMOUNT.
_OVER_MAX = MAX_AMOUNT + Decimal("0.005")

_AMOUNT_NOISE_RE = re.compile(r"[\s,$€£]")
_ISO_DATE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[T ].*)?$")


class FailureReason(StrEnum):
    UNKNOWN_KIND = "unknown_kind"
    BAD_AMOUNT = "bad_amount"
    NEGATIVE_AMOUNT = "negative_amount"
    MISSING_FIELD = "missing_field"


@dataclass(frozen=True)
class NormalizedRecord:
    kind: TransactionKind
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NormalizationFailure:
    reason: FailureReason
    detail: str = ""


NormalizationResult = Union[NormalizedRecord, NormalizationFailure]


def parse_kind(raw: Any) -> TransactionKind | None:
    if not isinstance(raw, str):
        return None
    try:
        return TransactionKind(raw.strip().lower())
    except ValueError:
        return None


def parse_amount(raw: Any) -> Decimal | None:
    """Coerce loose numeric input ("$1,200.5", 50, "50") to a Decimal.

    Returns ``None`` when the value is not a finite number. Sign is kept so
    the caller can reject negatives explicitly.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, float):
        if not math.isfinite(raw):
            return None
        raw = repr(raw)
    if isinstance(raw, int):
        return Decimal(raw)
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if not isinstance(raw, str):
        return None

    cleaned = _AMOUNT_NOISE_RE.sub("", raw)
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def quantize_amount(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_date(raw: Any, today: date) -> date:
    """Return the calendar date in *raw*, or *today* when absent/unparsable."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return today
    match = _ISO_DATE_RE.match(raw.strip())
    if not match:
        return today
    try:
        return date.fromisoformat(match.group(1))
    except ValueError:
        return today


def _text(raw: Any) -> str:
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, (int, float, Decimal)):
        return str(raw)
    if not isinstance(raw, str):
        return ""
    return raw.strip()


def _optional_text(raw: Any) -> str | None:
    return _text(raw) or None


def _recurrence(raw: Any) -> str:
    try:
        return Recurrence(_text(raw).lower()).value
    except ValueError:
        return Recurrence.ONCE.value


def _tax_deductible(raw: Any) -> str:
    try:
        return TaxDeductible(_text(raw).lower()).value
    except ValueError:
        return TaxDeductible.YES.value


def _counterpart(candidate: TransactionCandidate, kind: TransactionKind) -> str:
    """Vendor for expenses, client for income; the other name is a fallback."""
    if kind is TransactionKind.EXPENSE:
        ordered = (candidate.vendor, candidate.counterpart, candidate.client)
    else:
        ordered = (candidate.client, candidate.counterpart, candidate.vendor)
    for raw in ordered:
        name = _text(raw)
        if name:
            return name
    return UNKNOWN_COUNTERPART


def normalize_candidate(candidate: TransactionCandidate, today: date) -> NormalizationResult:
    kind = parse_kind(candidate.kind)
    if kind is None:
        return NormalizationFailure(FailureReason.UNKNOWN_KIND, f"kind={candidate.kind!r}")

    amount = parse_amount(candidate.amount)
    if amount is None:
        return NormalizationFailure(FailureReason.BAD_AMOUNT, f"amount={candidate.amount!r}")
    if amount < 0:
        return NormalizationFailure(FailureReason.NEGATIVE_AMOUNT, f"amount={amount}")
    # Rounds past the column limit; checked before quantize, which fails on huge exponents.
    if amount >= _OVER_MAX:
        return NormalizationFailure(FailureReason.BAD_AMOUNT, f"amount={amount} exceeds {MAX_AMOUNT}")
    # copy_abs drops the sign of "-0".
    amount = quantize_amount(amount).copy_abs()

    category = _text(candidate.category)
    if not category:
        return NormalizationFailure(FailureReason.MISSING_FIELD, "category")
    description = _text(candidate.description)
    if not description:
        return NormalizationFailure(FailureReason.MISSING_FIELD, "description")

    occurred_on = parse_date(candidate.occurred_on, today)
    notes = _optional_text(candidate.notes)

    if kind is TransactionKind.ASSET:
        return NormalizedRecord(
            kind,
            {
                "name": description,
                "type": category,
                "current_value": amount,
                "purchase_value": amount,
                "purchase_date": occurred_on,
                "description": notes,
                "documents": [],
            },
        )

    values: dict[str, Any] = {
        "amount": amount,
        "date": occurred_on,
        "category": category,
        "description": description,
        "notes": notes,
        "payment_method": _text(candidate.payment_method) or DEFAULT_PAYMENT_METHOD,
        "recurrence": _recurrence(candidate.recurrence),
    }
    counterpart = _counterpart(candidate, kind)

    if kind is TransactionKind.EXPENSE:
        values["vendor"] = counterpart
        values["tax_deductible"] = _tax_deductible(candidate.tax_deductible)
    else:
        values["client"] = counterpart
        values["tax_withheld"] = Decimal("0.00")

    return NormalizedRecord(kind, values)
