"""Extraction orchestrator: one utterance in, one ``ExtractionOutcome`` out.

Flow: classify the utterance, normalize every candidate, insert every valid
candidate on its own. A candidate that fails normalization or persistence is
recorded and skipped; later candidates are still attempted. Nothing is
retried.

The only request-level failures are:

- ``ExtractionInputError``: empty utterance or business id, raised before the
  classifier is called.
- ``LedgerUnavailableError``: every attempted insert failed because the store
  could not be reached.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, Protocol

from bizledger.schemas.finance import TransactionKind
from bizledger.services.ai.transaction_extract.contracts import (
    ClassifierOutput,
    TransactionCandidate,
)
from bizledger.services.ledger_normalizer import NormalizationFailure, normalize_candidate
from bizledger.services.ledger_store import (
    LedgerInsertError,
    LedgerUnavailableError,
)

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 0.7

ADVISORY_NOTE = (
    "I wasn't completely confident about this categorization. "
    "You can edit or verify these transactions in your dashboard."
)

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


class ExtractionInputError(ValueError):
    """The request cannot be processed as given."""


class Classifier(Protocol):
    async def classify(
        self,
        utterance: str,
        *,
        business_id: str,
        today: date,
        history: Sequence[dict[str, str]] | None = None,
    ) -> ClassifierOutput: ...


class LedgerStore(Protocol):
    def insert(self, kind: TransactionKind, values: dict[str, Any], *, business_id: Any) -> Any: ...


ITEM_PERSISTED = "persisted"
ITEM_REJECTED = "rejected"
ITEM_FAILED = "failed"


@dataclass
class ExtractionItem:
    """Result for one candidate, in classifier emission order."""

    position: int
    candidate: TransactionCandidate
    status: str
    kind: Optional[TransactionKind] = None
    record: Any = None
    reason: Optional[str] = None
    summary: Optional[str] = None


@dataclass
class ExtractionOutcome:
    items: list[ExtractionItem] = field(default_factory=list)
    follow_up_questions: list[str] = field(default_factory=list)
    missing_info: list[str] = field(default_factory=list)
    confidence: float = 0.0
    advisory_note: Optional[str] = None
    classifier_failed: bool = False

    @property
    def persisted_items(self) -> list[ExtractionItem]:
        return [item for item in self.items if item.status == ITEM_PERSISTED]

    @property
    def persisted_records(self) -> list[Any]:
        return [item.record for item in self.persisted_items]

    @property
    def persisted_count(self) -> int:
        return len(self.persisted_items)

    @property
    def summary_lines(self) -> list[str]:
        return [item.summary for item in self.persisted_items if item.summary]

    @property
    def needs_more_detail(self) -> bool:
        return self.persisted_count == 0


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def format_amount(amount: Decimal, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    if symbol:
        return f"{symbol}{amount:,.2f}"
    return f"{amount:,.2f} {currency.upper()}"


def summarize(kind: TransactionKind, values: dict[str, Any], currency: str) -> str:
    """One human-readable line for a persisted record."""
    if kind is TransactionKind.ASSET:
        amount = format_amount(values["purchase_value"], currency)
        return f"Asset: {amount} - {values['name']} ({values['type']})"
    amount = format_amount(values["amount"], currency)
    label = "Expense" if kind is TransactionKind.EXPENSE else "Income"
    return f"{label}: {amount} - {values['description']} ({values['category']})"


class ExtractionOrchestrator:
    """Drives one extraction request against an injected classifier and store."""

    def __init__(
        self,
        classifier: Classifier,
        store: LedgerStore,
        *,
        currency: str = "USD",
        clock: Callable[[], date] = _utc_today,
    ) -> None:
        self._classifier = classifier
        self._store = store
        self._currency = currency
        self._clock = clock

    async def extract(
        self,
        utterance: str,
        business_id: Any,
        *,
        history: Sequence[dict[str, str]] | None = None,
    ) -> ExtractionOutcome:
        if not isinstance(utterance, str) or not utterance.strip():
            raise ExtractionInputError("utterance must not be empty")
        if not business_id or not str(business_id).strip():
            raise ExtractionInputError("business id is required")

        today = self._clock()
        output = await self._classifier.classify(
            utterance.strip(),
            business_id=str(business_id),
            today=today,
            history=history,
        )

        outcome = ExtractionOutcome(
            follow_up_questions=list(output.follow_up_questions),
            missing_info=list(output.missing_info),
            confidence=output.confidence,
            classifier_failed=output.failed,
        )

        unavailable = 0
        attempted = 0
        for position, candidate in enumerate(output.candidates):
            normalized = normalize_candidate(candidate, today)
            if isinstance(normalized, NormalizationFailure):
                logger.info(
                    "Candidate %d rejected: %s (%s)",
                    position,
                    normalized.reason.value,
                    normalized.detail,
                )
                outcome.items.append(
                    ExtractionItem(
                        position=position,
                        candidate=candidate,
                        status=ITEM_REJECTED,
                        reason=normalized.reason.value,
                    )
                )
                continue

            attempted += 1
            try:
                record = self._store.insert(
                    normalized.kind,
                    normalized.values,
                    business_id=business_id,
                )
            except (LedgerInsertError, LedgerUnavailableError) as exc:
                if isinstance(exc, LedgerUnavailableError):
                    unavailable += 1
                logger.warning(
                    "Candidate %d (%s) not persisted for business %s: %s",
                    position,
                    normalized.kind.value,
                    business_id,
                    exc,
                )
                outcome.items.append(
                    ExtractionItem(
                        position=position,
                        candidate=candidate,
                        status=ITEM_FAILED,
                        kind=normalized.kind,
                        reason=type(exc).__name__,
                    )
                )
                continue

            outcome.items.append(
                ExtractionItem(
                    position=position,
                    candidate=candidate,
                    status=ITEM_PERSISTED,
                    kind=normalized.kind,
                    record=record,
                    summary=summarize(normalized.kind, normalized.values, self._currency),
                )
            )

        if attempted and unavailable == attempted:
            raise LedgerUnavailableError(f"ledger store unreachable ({attempted} insert(s) failed)")

        if outcome.confidence < LOW_CONFIDENCE_THRESHOLD:
            outcome.advisory_note = ADVISORY_NOTE

        logger.info(
            "Extraction for business %s: %d candidate(s), %d persisted, confidence=%.2f",
            business_id,
            len(output.candidates),
            outcome.persisted_count,
            outcome.confidence,
        )
        return outcome
