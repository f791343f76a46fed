from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from currency_calculator.catalog import normalize_currency
from currency_calculator.services.rate_manager import RateSnapshot, RateState
from currency_calculator.services.session import ThemeMode


class CurrencyOut(BaseModel):
    code: str
    name: str
    label: str


class CurrencyListResponse(BaseModel):
    currencies: list[CurrencyOut]


class RatesResponse(BaseModel):
    anchor: str | None
    state: RateState
    rates: dict[str, float] = Field(default_factory=dict)
    last_updated: datetime | None = None
    version: int = 0

    @classmethod
    def from_snapshot(cls, snapshot: RateSnapshot) -> RatesResponse:
        return cls(
            anchor=snapshot.anchor,
            state=snapshot.state,
            rates=snapshot.table.to_jsonable(),
            last_updated=snapshot.last_updated,
            version=snapshot.version,
        )


class RefreshRequest(BaseModel):
    base: str | None = None

    @field_validator("base")
    @classmethod
    def _validate_base(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_currency(value).value


class RefreshResponse(BaseModel):
    refreshed: bool
    rates: RatesResponse


class CurrencySelection(BaseModel):
    code: str

    @field_validator("code")
    @classmethod
    def _validate_code(cls, value: str) -> str:
        return normalize_currency(value).value


class AmountUpdate(BaseModel):
    amount: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    text: str | None = None

    @model_validator(mode="after")
    def _require_one(self) -> AmountUpdate:
        if self.amount is None and self.text is None:
            raise ValueError("either amount or text is required")
        return self


class ConversionResponse(BaseModel):
    amount: float
    from_currency: str
    to_currency: str
    converted_amount: float
    formatted: str
    rate_line: str
    anchor: str | None
    needs_refresh: bool


class SessionResponse(BaseModel):
    from_currency: str
    to_currency: str
    amount: float
    theme: ThemeMode
    converted_amount: float
    formatted_result: str
    rate_line: str
    anchor: str | None
    rate_state: RateState
