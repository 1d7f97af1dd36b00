"""Transaction classifier adapter: free text to candidate transactions.

The adapter is fail-soft: a provider error, a timeout or an unparsable reply
never escapes ``classify``. The caller always receives a ``ClassifierOutput``;
on failure it carries no candidates, zero confidence and one generic
"please rephrase" question.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bizledger.services.ai.common.audit import log_ai_run
from bizledger.services.ai.common.json_tools import extract_json
from bizledger.services.ai.common.router import ResolvedConfig, resolve
from bizledger.services.ai.transaction_extract.contracts import ClassifierOutput

logger = logging.getLogger(__name__)

SCOPE = "transaction_extract"

TRANSACTION_EXTRACT_SYSTEM_PROMPT = """You are a financial assistant for a small business (business id: {business_id}).
Today's date is {today}.

Read the user's message and extract every financial transaction it mentions.
Classify each one as:
- "expense": money the business spent (rent, supplies, software, fees)
- "income": money the business received (client payments, sales, refunds)
- "asset": something of lasting value the business bought (equipment, computers, vehicles)

Return ONLY a JSON object of this shape:
{{
  "transactions": [
    {{
      "type": "expense" | "income" | "asset",
      "amount": 123.45,
      "date": "YYYY-MM-DD",
      "category": "a short title-case category, e.g. Office Supplies",
      "description": "what the transaction was for",
      "vendor": "who was paid (expenses only)",
      "client": "who paid (income only)",
      "paymentMethod": "cash, card, bank transfer, ...",
      "notes": "anything else worth keeping",
      "isRecurring": "once" | "monthly" | "quarterly" | "yearly",
      "taxDeductible": "yes" | "no" | "partial"
    }}
  ],
  "followUpQuestions": ["questions to ask when details are missing or ambiguous"],
  "missingInfo": ["names of fields you could not determine"],
  "confidence": 0.0
}}

Rules:
- amount is a positive number without currency symbols.
- Use today's date when the message does not say when it happened.
- Omit fields you cannot determine instead of guessing.
- If the message contains no transaction, return an empty "transactions" list
  and ask what the user would like to record.
- confidence is a number from 0.0 to 1.0 describing how sure you are."""


def build_system_prompt(business_id: str, today: date) -> str:
    return TRANSACTION_EXTRACT_SYSTEM_PROMPT.format(
        business_id=business_id,
        today=today.isoformat(),
    )


class TransactionClassifier:
    """Language model classifier bound to one resolved provider config.

    Pass ``db`` to record an ``AI_TRANSACTION_EXTRACT`` audit entry per call.
    The entry is committed on its own so that a later ledger rollback does
    not discard it.
    """

    def __init__(
        self,
        config: ResolvedConfig,
        *,
        db: Session | None = None,
        actor_id: str | None = None,
    ) -> None:
        self._config = config
        self._db = db
        self._actor_id = actor_id

    @classmethod
    def from_settings(
        cls,
        *,
        db: Session | None = None,
        actor_id: str | None = None,
        override_provider: str | None = None,
        override_model: str | None = None,
    ) -> "TransactionClassifier":
        config = resolve(
            SCOPE,
            override_provider=override_provider,
            override_model=override_model,
        )
        return cls(config, db=db, actor_id=actor_id)

    @property
    def provider_name(self) -> str:
        return self._config.provider.name

    async def classify(
        self,
        utterance: str,
        *,
        business_id: str,
        today: date,
        history: Sequence[dict[str, str]] | None = None,
    ) -> ClassifierOutput:
        config = self._config
        system_prompt = build_system_prompt(business_id, today)
        prompt = f"<message>\n{utterance}\n</message>"

        try:
            result = await config.provider.generate(
                prompt,
                system_prompt=system_prompt,
                history=history,
                json_mode=True,
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout_seconds=config.timeout_seconds,
            )
        except Exception:
            logger.exception("AI transaction extraction failed (provider=%s)", config.provider.name)
            return ClassifierOutput.fallback(f"{config.provider.name}:error")

        model_version = f"{result.provider}:{result.model}"
        parsed = extract_json(result.raw_text)

        if not isinstance(parsed, dict):
            logger.warning("AI returned non-dict response: %s", result.raw_text[:200])
            output = ClassifierOutput.fallback(model_version)
        else:
            try:
                output = ClassifierOutput.from_parsed(parsed, model_version)
            except Exception:
                logger.exception("AI reply could not be mapped to a classifier output")
                output = ClassifierOutput.fallback(model_version)

        if self._db is not None:
            log_ai_run(
                self._db,
                scope=SCOPE,
                provider_result=result,
                prompt_text=f"{system_prompt}\n\n{prompt}",
                parsed_output=parsed if isinstance(parsed, dict) else None,
                actor_id=self._actor_id,
                extra_meta={
                    "business_id": business_id,
                    "candidates": len(output.candidates),
                    "confidence": output.confidence,
                },
            )
            try:
                self._db.commit()
            except SQLAlchemyError:
                self._db.rollback()
                logger.warning("Could not store AI audit entry", exc_info=True)

        return output
