"""Shared HTTP plumbing for hosted chat-model providers."""

from __future__ import annotations

import abc
import time
from collections.abc import Sequence
from typing import Any

import httpx

from .base import BaseProvider, ProviderResult, build_chat_messages


class HttpChatProvider(BaseProvider):
    """One POST per ``generate`` call; subclasses shape the body and reply."""

    endpoint: str = ""
    default_model: str = ""

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    @abc.abstractmethod
    def build_body(
        self,
        prompt: str,
        *,
        system_prompt: str | None,
        history: Sequence[dict[str, str]] | None,
        json_mode: bool,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> dict[str, Any]:
        """Request JSON for one call."""

    @abc.abstractmethod
    def parse_reply(self, data: dict[str, Any]) -> tuple[str, int, int]:
        """Return ``(text, prompt_tokens, completion_tokens)``."""

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
        model = model or self.default_model
        body = self.build_body(
            prompt,
            system_prompt=system_prompt,
            history=history,
            json_mode=json_mode,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        started = time.monotonic()
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            resp = await client.post(self.endpoint, headers=self.headers(), json=body)
            resp.raise_for_status()
            data = resp.json()
        latency_ms = (time.monotonic() - started) * 1000

        text, prompt_tokens, completion_tokens = self.parse_reply(data)
        return ProviderResult(
            raw_text=text,
            model=model,
            provider=self.name,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=round(latency_ms, 2),
        )


class ChatCompletionsProvider(HttpChatProvider):
    """Any endpoint speaking the OpenAI ``/chat/completions`` dialect."""

    def build_body(
        self,
        prompt,
        *,
        system_prompt,
        history,
        json_mode,
        model,
        temperature,
        max_tokens,
    ):
        body: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": build_chat_messages(prompt, system_prompt=system_prompt, history=history),
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        return body

    def parse_reply(self, data):
        text = data["choices"][0]["message"]["content"] or ""
        usage = data.get("usage") or {}
        return text, usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0)
