"""Groq provider (OpenAI-compatible endpoint)."""

from .http import ChatCompletionsProvider


class GroqProvider(ChatCompletionsProvider):
    name = "groq"
    endpoint = "https://api.groq.com/openai/v1/chat/completions"
    default_model = "llama-3.3-70b-versatile"
