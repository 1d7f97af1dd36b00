"""Audit trail for AI provider calls.

Prompts and replies are stored as SHA-256 digests only; raw text is added
when ``AI_DEBUG_STORE_RAW=true``.
"""

from __future__ import annotations

import hashlib
import uuid
from typing import Any

from sqlalchemy.orm import Session

from bizledger.core.config import get_settings
from bizledger.services.audit_service import create_audit_log

from .providers.base import ProviderResult

AI_RUN = "AI_RUN"
SCOPE_ACTIONS: dict[str, str] = {
    "transaction_extract": "AI_TRANSACTION_EXTRACT",
}


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


def build_run_metadata(scope: str, result: ProviderResult, prompt_text: str) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "scope": scope,
        "provider": result.provider,
        "model": result.model,
        "prompt_tokens": result.prompt_tokens,
        "completion_tokens": result.completion_tokens,
        "latency_ms": result.latency_ms,
        "prompt_hash": _digest(prompt_text),
        "response_hash": _digest(result.raw_text),
    }
    if get_settings().ai_debug_store_raw:
        meta["prompt_raw"] = prompt_text
        meta["response_raw"] = result.raw_text
    return meta


def log_ai_run(
    db: Session,
    *,
    scope: str,
    provider_result: ProviderResult,
    prompt_text: str,
    parsed_output: dict[str, Any] | None,
    actor_id: str | None = None,
    entity_id: str | None = None,
    extra_meta: dict[str, Any] | None = None,
) -> None:
    """Stage one ``audit_logs`` row for a provider call. The caller commits."""
    metadata = build_run_metadata(scope, provider_result, prompt_text)
    metadata.update(extra_meta or {})
    create_audit_log(
        db,
        entity_type="ai",
        entity_id=entity_id or str(uuid.uuid4()),
        action=SCOPE_ACTIONS.get(scope, AI_RUN),
        old_value=None,
        new_value=parsed_output,
        actor_type="SYSTEM",
        actor_id=actor_id,
        metadata=metadata,
    )
