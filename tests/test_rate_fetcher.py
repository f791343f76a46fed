from __future__ import annotations

import httpx
import pytest

from currency_calculator.rates.base import FetchFailed
from currency_calculator.rates.fetcher import FetchStatus, RateFetcher, parse_rates


def _fetcher(handler) -> RateFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RateFetcher(base_url="https://rates.example/v1/", client=client)


@pytest.mark.asyncio
async def test_fetch_rates_builds_table_anchored_at_base() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(
            200,
            json={
                "date": "2026-03-20",
                "usd": {"jpy": 150, "eur": 0.92, "usd": 1.0000000002, "xau": 0.0004},
            },
        )

    fetcher = _fetcher(handler)
    result = await fetcher.fetch_rates("USD", ["EUR", "JPY", "GBP"])
    await fetcher.close()

    assert seen == ["https://rates.example/v1/currencies/usd.json"]
    assert result.ok
    assert result.status == FetchStatus.success
    assert result.table is not None
    assert result.table.anchor == "USD"
    assert dict(result.table) == {"USD": 1.0, "EUR": 0.92, "JPY": 150.0}
    assert isinstance(result.table["JPY"], float)
    assert list(result.table)[0] == "USD"


@pytest.mark.asyncio
async def test_fetch_rates_forces_anchor_when_response_omits_it() -> None:
    fetcher = _fetcher(lambda request: httpx.Response(200, json={"eur": {"jpy": 162.4}}))
    result = await fetcher.fetch_rates("eur", ["JPY"])
    assert result.table is not None
    assert result.table["EUR"] == 1.0
    assert result.base == "EUR"


@pytest.mark.asyncio
async def test_fetch_rates_non_200_is_http_error() -> None:
    fetcher = _fetcher(lambda request: httpx.Response(503, text="maintenance"))
    result = await fetcher.fetch_rates("USD", ["JPY"])
    assert not result.ok
    assert result.status == FetchStatus.http_error
    assert result.table is None
    assert result.error_message == "FetchFailed: Rate provider returned HTTP 503"


@pytest.mark.asyncio
async def test_fetch_rates_network_exception_is_reported_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _fetcher(handler).fetch_rates("USD", ["JPY"])
    assert result.status == FetchStatus.network_error
    assert result.error_message == "ConnectError: connection refused"


@pytest.mark.asyncio
async def test_fetch_rates_wrong_shape_is_invalid_payload() -> None:
    fetcher = _fetcher(lambda request: httpx.Response(200, json={"eur": {"jpy": 162.4}}))
    result = await fetcher.fetch_rates("USD", ["JPY"])
    assert result.status == FetchStatus.invalid_payload
    assert "usd" in (result.error_message or "")


@pytest.mark.asyncio
async def test_fetch_rates_non_json_body_is_invalid_payload() -> None:
    fetcher = _fetcher(lambda request: httpx.Response(200, text="<html>oops</html>"))
    result = await fetcher.fetch_rates("USD", ["JPY"])
    assert result.status == FetchStatus.invalid_payload
    assert result.table is None


def test_parse_rates_skips_missing_and_unusable_values() -> None:
    payload = {"usd": {"jpy": "150", "eur": True, "gbp": -1, "aud": 1.52, "cad": None}}
    table = parse_rates("USD", payload, ["JPY", "EUR", "GBP", "AUD", "CAD", "CHF"])
    assert dict(table) == {"USD": 1.0, "AUD": 1.52}


def test_parse_rates_rejects_non_object_payload() -> None:
    with pytest.raises(FetchFailed):
        parse_rates("USD", ["usd"], ["JPY"])
