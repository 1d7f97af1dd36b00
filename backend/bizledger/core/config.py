from functools import lru_cache
import json
import os
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_KNOWN_PROVIDERS = ("mock", "openai", "claude", "groq")


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        except ValueError:
            pass
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )
    database_url: str = ""

    auth_jwt_secret: str = ""
    auth_jwt_audience: str = ""

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)
    expose_error_details: bool = False

    security_headers_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("SECURITY_HEADERS_ENABLED", "SECURE_HEADERS_ENABLED"),
    )

    pii_redaction_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("PII_REDACTION_ENABLED"),
    )
    pii_redaction_fields: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "phone",
            "email",
            "address",
            "ssn",
            "tax_id",
        ],
        validation_alias=AliasChoices("PII_REDACTION_FIELDS"),
    )

    rate_limit_extract_enabled: bool = True
    rate_limit_extract_per_min: int = 30

    # --- AI: transaction extraction ---
    enable_ai_transaction_extract: bool = True
    enable_ai_overrides: bool = False
    ai_debug_store_raw: bool = False

    ai_transaction_extract_provider: str = "mock"
    ai_transaction_extract_model: str = ""
    ai_transaction_extract_timeout_seconds: float = 15.0

    ai_allowed_providers_raw: str = Field(
        default="mock",
        validation_alias=AliasChoices("AI_ALLOWED_PROVIDERS"),
    )
    ai_temperature: float = 0.1
    ai_max_tokens: int = 1024
    ai_timeout_seconds: float = 8.0

    openai_api_key: str = ""
    anthropic_api_key: str = ""
    groq_api_key: str = ""

    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=list)
    cors_allow_methods: Annotated[list[str], NoDecode] = Field(default_factory=lambda: [
        "GET",
        "POST",
        "PATCH",
        "OPTIONS",
    ])
    cors_allow_headers: Annotated[list[str], NoDecode] = Field(default_factory=lambda: [
        "Authorization",
        "Content-Type",
        "Accept",
    ])

    @field_validator(
        "cors_allow_origins",
        "cors_allow_methods",
        "cors_allow_headers",
        "pii_redaction_fields",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @property
    def ai_allowed_providers(self) -> list[str]:
        """Allow-listed provider names. ``mock`` is always present."""
        providers = [p.lower() for p in _parse_list_value(self.ai_allowed_providers_raw)]
        if "mock" not in providers:
            providers.append("mock")
        return providers

    @property
    def ai_allowed_models(self) -> dict[str, list[str]]:
        """Per-provider model allow-lists read from ``AI_ALLOWED_MODELS_<PROVIDER>``."""
        return {
            name: _parse_list_value(os.getenv(f"AI_ALLOWED_MODELS_{name.upper()}", ""))
            for name in _KNOWN_PROVIDERS
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()
