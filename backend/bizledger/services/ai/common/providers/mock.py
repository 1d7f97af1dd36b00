"""Mock provider: deterministic responses for tests and fallback."""

from __future__ import annotations

import json
import time
from collections.abc import Sequence

from .base import BaseProvider, ProviderResult

MOCK_RESPONSE = {
    "transactions": [],
    "followUpQuestions": ["Could you tell me the amount and what the transaction was for?"],
    "missingInfo": ["amount", "description"],
    "confidence": 0.0,
}


class MockProvider(BaseProvider):
    name = "mock"

    def __init__(self, response_text: str | None = None) -> None:
        self._response_text = response_text

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        history: Sequence[dict[str, str]] | None = None,
        json_mode: bool = False,
        model: str = "",
        temperature: float = 0.3,
        max_tokens: int = 1024,
        timeout_seconds: float = 8.0,
    ) -> ProviderResult:
        t0 = time.monotonic()
        text = self._response_text if self._response_text is not None else json.dumps(MOCK_RESPONSE)
        elapsed = (time.monotonic() - t0) * 1000
        return ProviderResult(
            raw_text=text,
            model=model or "mock-v1",
            provider=self.name,
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(text.split()),
            latency_ms=round(elapsed, 2),
        )
