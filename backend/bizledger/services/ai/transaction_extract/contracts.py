"""Transaction extract scope contracts: untrusted classifier output."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

FALLBACK_QUESTION = "I had trouble understanding that. Could you rephrase your transaction?"


class TransactionCandidate(BaseModel):
    """One transaction guess exactly as the model emitted it.

    Fields are typed ``Any``: values
    may be missing, mistyped or nonsensical. ``ledger_normalizer`` is the
    only place that turns a candidate into something insertable.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    kind: Any = Field(default=None, validation_alias=AliasChoices("kind", "type"))
    amount: Any = None
    occurred_on: Any = Field(
        default=None,
        validation_alias=AliasChoices("occurredOn", "occurred_on", "date"),
    )
    category: Any = None
    description: Any = None
    # Direct entry passes one counterpart; the model names vendor and client
    # separately, often with the other set to null.
    counterpart: Any = None
    vendor: Any = None
    client: Any = None
    payment_method: Any = Field(
        default=None,
        validation_alias=AliasChoices("paymentMethod", "payment_method"),
    )
    notes: Any = None
    recurrence: Any = Field(
        default=None,
        validation_alias=AliasChoices("recurrence", "isRecurring", "is_recurring"),
    )
    tax_deductible: Any = Field(
        default=None,
        validation_alias=AliasChoices("taxDeductible", "tax_deductible"),
    )

    @classmethod
    def from_raw(cls, raw: Any) -> "TransactionCandidate":
        """Wrap an arbitrary JSON value; non-objects become an empty candidate."""
        if not isinstance(raw, Mapping):
            return cls()
        return cls.model_validate(dict(raw))


def _clean_strings(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        conf = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if math.isnan(conf):
        return 0.0
    return round(min(max(conf, 0.0), 1.0), 4)


class ClassifierOutput(BaseModel):
    """Structured classifier reply, always well-formed."""

    candidates: list[TransactionCandidate] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)
    missing_info: list[str] = Field(default_factory=list)
    confidence: float = 0.0
    model_version: str = ""
    failed: bool = False

    @field_validator("confidence")
    @classmethod
    def confidence_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            msg = f"Confidence must be 0.0-1.0, got {v}"
            raise ValueError(msg)
        return v

    @classmethod
    def fallback(cls, model_version: str = "fallback") -> "ClassifierOutput":
        return cls(
            follow_up_questions=[FALLBACK_QUESTION],
            confidence=0.0,
            model_version=model_version,
            failed=True,
        )

    @classmethod
    def from_parsed(cls, parsed: Mapping[str, Any], model_version: str = "") -> "ClassifierOutput":
        """Build from a decoded JSON reply, tolerating wrong shapes field by field."""
        raw_transactions = parsed.get("transactions")
        if isinstance(raw_transactions, Mapping):
            raw_transactions = [raw_transactions]
        if not isinstance(raw_transactions, list):
            raw_transactions = []

        follow_ups = parsed.get("followUpQuestions", parsed.get("follow_up_questions"))
        missing = parsed.get("missingInfo", parsed.get("missing_info"))

        return cls(
            candidates=[TransactionCandidate.from_raw(item) for item in raw_transactions],
            follow_up_questions=_clean_strings(follow_ups),
            missing_info=_clean_strings(missing),
            confidence=_coerce_confidence(parsed.get("confidence")),
            model_version=model_version,
        )
