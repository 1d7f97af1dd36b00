"""Anthropic / Claude provider."""

from __future__ import annotations

from typing import Any

from .base import build_chat_messages
from .http import HttpChatProvider


class ClaudeProvider(HttpChatProvider):
    name = "claude"
    endpoint = "https://api.anthropic.com/v1/messages"
    default_model = "claude-3-5-haiku-20241022"

    def headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

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
        # Messages API: system prompt is top-level, no JSON response_format.
        body: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": build_chat_messages(prompt, history=history),
        }
        if system_prompt:
            body["system"] = system_prompt
        return body

    def parse_reply(self, data):
        text = "".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text")
        usage = data.get("usage") or {}
        return text, usage.get("input_tokens", 0), usage.get("output_tokens", 0)
