"""OpenAI provider."""

from .http import ChatCompletionsProvider


class OpenAIProvider(ChatCompletionsProvider):
    name = "openai"
    endpoint = "https://api.openai.com/v1/chat/completions"
    default_model = "gpt-4o-mini-2024-07-18"
