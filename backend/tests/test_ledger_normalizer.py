from datetime import date
from decimal import Decimal

import pytest

from bizledger.schemas.finance import TransactionKind
from bizledger.services.ai.transaction_extract.contracts import TransactionCandidate
from bizledger.services.ledger_normalizer import (
    FailureReason,
    NormalizationFailure,
    NormalizedRecord,
    normalize_candidate,
    parse_amount,
    parse_date,
)

TODAY = date(2026, 3, 15)


def _candidate(**fields) -> TransactionCandidate:
    base = {"type": "expense", "amount": 50, "category": "Office Supplies", "description": "Printer paper"}
    base.update(fields)
    return TransactionCandidate.from_raw(base)


def _normalize(**fields):
    return normalize_candidate(_candidate(**fields), TODAY)


def test_expense_defaults():
    result = _normalize()
    assert isinstance(result, NormalizedRecord)
    assert result.kind is TransactionKind.EXPENSE
    assert result.values == {
        "amount": Decimal("50.00"),
        "date": TODAY,
        "category": "Office Supplies",
        "description": "Printer paper",
        "notes": None,
        "payment_method": "unspecified",
        "recurrence": "once",
        "vendor": "Unknown",
        "tax_deductible": "yes",
    }


def test_income_mapping():
    result = _normalize(type="income", amount="1000", client="Acme Co", isRecurring="Monthly", category="Services")
    assert result.kind is TransactionKind.INCOME
    assert result.values["client"] == "Acme Co"
    assert result.values["recurrence"] == "monthly"
    assert result.values["tax_withheld"] == Decimal("0.00")
    assert "vendor" not in result.values
    assert "tax_deductible" not in result.values


def test_asset_uses_description_as_name():
    result = _normalize(type="asset", amount=200, category="Equipment", description="Monitor", notes="27 inch")
    assert result.kind is TransactionKind.ASSET
    assert result.values == {
        "name": "Monitor",
        "type": "Equipment",
        "current_value": Decimal("200.00"),
        "purchase_value": Decimal("200.00"),
        "purchase_date": TODAY,
        "description": "27 inch",
        "documents": [],
    }


def test_kind_is_case_insensitive():
    assert _normalize(type=" Income ").kind is TransactionKind.INCOME


@pytest.mark.parametrize("kind", ["transfer", "", None, 3, "expenses"])
def test_unknown_kind(kind):
    result = _normalize(type=kind)
    assert isinstance(result, NormalizationFailure)
    assert result.reason is FailureReason.UNKNOWN_KIND


@pytest.mark.parametrize(
    "raw, expected",
    [
        (50, Decimal("50.00")),
        (19.999, Decimal("20.00")),
        (0.005, Decimal("0.01")),
        ("$1,234.565", Decimal("1234.57")),
        (" 12.3 ", Decimal("12.30")),
        ("€ 8", Decimal("8.00")),
        (0, Decimal("0.00")),
    ],
)
def test_amount_rounds_to_cents(raw, expected):
    result = _normalize(amount=raw)
    assert isinstance(result, NormalizedRecord)
    assert result.values["amount"] == expected
    assert result.values["amount"].as_tuple().exponent == -2


@pytest.mark.parametrize("raw", ["fifty", "", None, True, float("nan"), float("inf"), "1e999999", [50], "12.3.4"])
def test_bad_amount(raw):
    result = _normalize(amount=raw)
    assert isinstance(result, NormalizationFailure)
    assert result.reason is FailureReason.BAD_AMOUNT


@pytest.mark.parametrize("raw", [-5, "-0.50", "$-20"])
def test_negative_amount_is_rejected_not_negated(raw):
    result = _normalize(amount=raw)
    assert isinstance(result, NormalizationFailure)
    assert result.reason is FailureReason.NEGATIVE_AMOUNT


def test_negative_zero_is_stored_unsigned():
    result = _normalize(amount="-0")
    assert result.values["amount"] == Decimal("0.00")
    assert not result.values["amount"].is_signed()


def test_amount_over_column_limit():
    result = _normalize(amount="10000000000")
    assert result.reason is FailureReason.BAD_AMOUNT


@pytest.mark.parametrize("field", ["category", "description"])
@pytest.mark.parametrize("value", [None, "", "   "])
def test_missing_required_field(field, value):
    result = _normalize(**{field: value})
    assert isinstance(result, NormalizationFailure)
    assert result.reason is FailureReason.MISSING_FIELD
    assert result.detail == field


def test_invalid_enums_fall_back_to_defaults():
    result = _normalize(isRecurring="weekly", taxDeductible="maybe")
    assert result.values["recurrence"] == "once"
    assert result.values["tax_deductible"] == "yes"


def test_blank_counterpart_defaults_to_unknown():
    assert _normalize(vendor="  ").values["vendor"] == "Unknown"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2026-01-31", date(2026, 1, 31)),
        ("2026-01-31T10:20:00Z", date(2026, 1, 31)),
        ("2026-02-30", TODAY),
        ("yesterday", TODAY),
        ("", TODAY),
        (None, TODAY),
        (20260131, TODAY),
    ],
)
def test_parse_date(raw, expected):
    assert parse_date(raw, TODAY) == expected


def test_occurred_on_used_when_valid():
    assert _normalize(date="2025-12-01").values["date"] == date(2025, 12, 1)


def test_parse_amount_keeps_sign():
    assert parse_amount("-3.10") == Decimal("-3.10")


def test_income_client_named_beside_null_vendor():
    candidate = TransactionCandidate.from_raw(
        {
            "type": "income",
            "amount": 1000,
            "category": "Consulting",
            "description": "Consulting payment",
            "vendor": None,
            "client": "Acme",
        }
    )
    assert normalize_candidate(candidate, TODAY).values["client"] == "Acme"


def test_expense_prefers_vendor_over_client():
    assert _normalize(vendor="Staples", client="Acme").values["vendor"] == "Staples"


def test_expense_falls_back_to_client_name():
    assert _normalize(vendor="", client="Acme").values["vendor"] == "Acme"


def test_direct_entry_counterpart_used_for_income():
    result = _normalize(type="income", counterpart="Globex")
    assert result.values["client"] == "Globex"


def test_amount_rounding_to_column_limit_is_accepted():
    assert _normalize(amount="9999999999.994").values["amount"] == Decimal("9999999999.99")


def test_amount_rounding_past_column_limit_is_rejected():
    assert _normalize(amount="9999999999.995").reason is FailureReason.BAD_AMOUNT
