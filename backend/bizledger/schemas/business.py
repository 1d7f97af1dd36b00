from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _upper_currency(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip().upper()


class BusinessCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    fiscal_start_date: date
    currency: str = Field(default="USD", min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def currency_upper(cls, v: str) -> str:
        return _upper_currency(v)


class BusinessUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    fiscal_start_date: Optional[date] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def currency_upper(cls, v: Optional[str]) -> Optional[str]:
        return _upper_currency(v)


class BusinessOut(BaseModel):
    id: str
    name: str
    fiscal_start_date: date
    currency: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BusinessEnvelope(BaseModel):
    business: Optional[BusinessOut] = None
