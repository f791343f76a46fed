from __future__ import annotations

import logging
import math
import time
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx

from currency_calculator.rates.base import FetchFailed, RateTable

logger = logging.getLogger(__name__)

DEFAULT_RATE_API_BASE_URL = "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1"


class FetchStatus(StrEnum):
    success = "success"
    http_error = "http_error"
    network_error = "network_error"
    invalid_payload = "invalid_payload"


@dataclass(slots=True)
class RateFetchResult:
    base: str
    status: FetchStatus
    latency_ms: int
    table: RateTable | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.success and self.table is not None


class RateFetcher:
    def __init__(
        self,
        base_url: str = DEFAULT_RATE_API_BASE_URL,
        timeout_seconds: int = 10,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    def url_for(self, base: str) -> str:
        return f"{self._base_url}/currencies/{base.lower()}.json"

    async def fetch_rates(self, base: str, targets: Iterable[str]) -> RateFetchResult:
        anchor = base.upper()
        started = time.perf_counter()
        url = self.url_for(anchor)
        logger.debug("Fetching exchange rates base=%s url=%s", anchor, url)

        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            return self._failure(anchor, FetchStatus.network_error, started, exc)

        logger.debug("Rate provider responded base=%s status=%s", anchor, response.status_code)
        if response.status_code != 200:
            error = FetchFailed(f"Rate provider returned HTTP {response.status_code}")
            return self._failure(anchor, FetchStatus.http_error, started, error)

        try:
            table = parse_rates(anchor, response.json(), targets)
        except (FetchFailed, ValueError) as exc:
            return self._failure(anchor, FetchStatus.invalid_payload, started, exc)

        latency_ms = _elapsed_ms(started)
        logger.info(
            "Fetched exchange rates base=%s currencies=%s latency_ms=%s",
            anchor,
            len(table),
            latency_ms,
        )
        return RateFetchResult(
            base=anchor,
            status=FetchStatus.success,
            latency_ms=latency_ms,
            table=table,
        )

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _failure(
        base: str, status: FetchStatus, started: float, exc: Exception
    ) -> RateFetchResult:
        message = _format_exception_message(exc)
        logger.warning("Exchange rate fetch failed base=%s status=%s: %s", base, status, message)
        return RateFetchResult(
            base=base,
            status=status,
            latency_ms=_elapsed_ms(started),
            error_message=message,
        )


def parse_rates(base: str, payload: Any, targets: Iterable[str]) -> RateTable:
    """Build a table anchored at ``base`` from ``{"<base>": {"<code>": rate}}``.

    Targets missing from the response, or carrying a non-numeric or non-positive
    value, are left out of the table.
    """
    anchor = base.upper()
    if not isinstance(payload, dict):
        raise FetchFailed(f"Expected a JSON object, got {type(payload).__name__}")
    rates = payload.get(anchor.lower())
    if not isinstance(rates, dict):
        raise FetchFailed(f"Response has no rate object for {anchor.lower()!r}")

    collected: dict[str, float] = {}
    for target in targets:
        code = target.upper()
        if code == anchor:
            continue
        value = rates.get(code.lower())
        if isinstance(value, bool) or not isinstance(value, int | float):
            if value is not None:
                logger.debug("Ignoring non-numeric rate for %s: %r", code, value)
            continue
        rate = float(value)
        if not math.isfinite(rate) or rate <= 0:
            logger.debug("Ignoring unusable rate for %s: %r", code, value)
            continue
        collected[code] = rate

    return RateTable(anchor, collected)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _format_exception_message(exc: Exception) -> str:
    message = str(exc).strip()
    if message:
        return f"{type(exc).__name__}: {message}"
    return f"{type(exc).__name__}: no details provided"
