"""Per-scope provider/model resolution for AI calls.

Each scope (e.g. ``transaction_extract``) reads ``AI_<SCOPE>_PROVIDER``,
``AI_<SCOPE>_MODEL`` and ``AI_<SCOPE>_TIMEOUT_SECONDS``. A runtime override
wins when ``ENABLE_AI_OVERRIDES`` is on; an unset provider means ``mock``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bizledger.core.config import Settings, get_settings

from .providers import BaseProvider, get_provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedConfig:
    provider: BaseProvider
    model: str
    temperature: float
    max_tokens: int
    timeout_seconds: float


def _first_filled(*values: str | None) -> str:
    for value in values:
        if value and value.strip():
            return value.strip()
    return ""


def _pick_model(settings: Settings, provider_name: str, requested: str) -> str:
    allowed = settings.ai_allowed_models.get(provider_name, [])
    if not allowed:
        return requested
    if requested and requested not in allowed:
        logger.warning("Model %r not allowed for %r, using %r", requested, provider_name, allowed[0])
        return allowed[0]
    return requested or allowed[0]


def resolve(
    scope: str,
    *,
    override_provider: str | None = None,
    override_model: str | None = None,
) -> ResolvedConfig:
    settings = get_settings()
    overrides_on = settings.enable_ai_overrides

    provider_name = _first_filled(
        override_provider if overrides_on else None,
        getattr(settings, f"ai_{scope}_provider", None),
        "mock",
    ).lower()
    requested_model = _first_filled(
        override_model if overrides_on else None,
        getattr(settings, f"ai_{scope}_model", None),
    )

    return ResolvedConfig(
        provider=get_provider(provider_name),
        model=_pick_model(settings, provider_name, requested_model),
        temperature=settings.ai_temperature,
        max_tokens=settings.ai_max_tokens,
        timeout_seconds=getattr(settings, f"ai_{scope}_timeout_seconds", None) or settings.ai_timeout_seconds,
    )
