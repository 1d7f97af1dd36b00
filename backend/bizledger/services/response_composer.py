"""Turns an ``ExtractionOutcome`` into the chat reply shown to the user."""

from __future__ import annotations

from bizledger.services.extraction_orchestrator import ExtractionOutcome

NOTHING_SAVED_MESSAGE = (
    "I wasn't able to save any transactions. Could you provide more details about "
    "the transaction, such as the amount and what it was for?"
)


def compose_message(outcome: ExtractionOutcome) -> str:
    if outcome.needs_more_detail:
        parts = [NOTHING_SAVED_MESSAGE]
        parts.extend(outcome.follow_up_questions)
        return "\n\n".join(parts)

    count = outcome.persisted_count
    noun = "transaction" if count == 1 else "transactions"
    lines = [f"I've successfully saved {count} {noun} to your business records:", ""]
    lines.extend(f"- {line}" for line in outcome.summary_lines)

    skipped = len(outcome.items) - count
    if skipped:
        lines.append("")
        lines.append(f"{skipped} other item(s) could not be saved.")

    if outcome.advisory_note:
        lines.append("")
        lines.append(outcome.advisory_note)

    if outcome.follow_up_questions:
        lines.append("")
        lines.extend(outcome.follow_up_questions)

    return "\n".join(lines)
