from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any


class RateServiceError(RuntimeError):
    """Base error for rate acquisition and caching."""


class FetchFailed(RateServiceError):
    """Raised when the rate provider cannot be reached or returns unusable data."""


class CacheCorrupt(RateServiceError):
    """Raised when persisted rates or their timestamp cannot be decoded."""


class UnsupportedCurrency(ValueError):
    """Raised for currency codes outside the supported catalog."""


class RateTable(Mapping[str, float]):
    """Read-only mapping of currency code to rate, relative to ``anchor``.

    An empty table has no anchor. A non-empty table always carries the anchor's
    own entry as exactly 1.0 and is never mutated after construction, so a
    reference to it is a consistent snapshot.
    """

    __slots__ = ("_anchor", "_rates")

    def __init__(self, anchor: str | None = None, rates: Mapping[str, float] | None = None) -> None:
        ordered: dict[str, float] = {}
        if anchor is not None:
            anchor = anchor.upper()
            ordered[anchor] = 1.0
        for code, rate in (rates or {}).items():
            key = code.upper()
            if key == anchor:
                continue
            ordered[key] = float(rate)
        if anchor is None and ordered:
            raise ValueError("A non-empty rate table needs an anchor currency")
        self._anchor = anchor
        self._rates = MappingProxyType(ordered)

    @classmethod
    def empty(cls) -> RateTable:
        return cls()

    @property
    def anchor(self) -> str | None:
        return self._anchor

    def __getitem__(self, code: str) -> float:
        return self._rates[code]

    def __iter__(self) -> Iterator[str]:
        return iter(self._rates)

    def __len__(self) -> int:
        return len(self._rates)

    def __repr__(self) -> str:
        return f"RateTable(anchor={self._anchor!r}, rates={dict(self._rates)!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RateTable):
            return self._anchor == other._anchor and dict(self._rates) == dict(other._rates)
        return super().__eq__(other)

    __hash__ = None  # type: ignore[assignment]

    def to_jsonable(self) -> dict[str, float]:
        return dict(self._rates)

    @classmethod
    def from_jsonable(cls, payload: Any) -> RateTable:
        """Rebuild a table whose first key is the anchor.

        Raises ``CacheCorrupt`` for any shape that could not have been written
        by ``to_jsonable``.
        """
        if not isinstance(payload, dict) or not payload:
            raise CacheCorrupt("Rate payload must be a non-empty JSON object")
        rates: dict[str, float] = {}
        for code, value in payload.items():
            if not isinstance(code, str) or not code:
                raise CacheCorrupt(f"Invalid currency key {code!r}")
            if (
                isinstance(value, bool)
                or not isinstance(value, int | float)
                or not math.isfinite(value)
                or value <= 0
            ):
                raise CacheCorrupt(f"Invalid rate {value!r} for {code}")
            rates[code.upper()] = float(value)
        anchor = next(iter(rates))
        if rates[anchor] != 1.0:
            raise CacheCorrupt(f"Anchor {anchor} must have rate 1.0, got {rates[anchor]!r}")
        return cls(anchor, rates)


@dataclass(frozen=True, slots=True)
class CacheRecord:
    table: RateTable
    fetched_at: datetime
