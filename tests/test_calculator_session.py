from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from currency_calculator.catalog import CurrencyCode
from currency_calculator.rates.base import CacheRecord, RateTable
from currency_calculator.rates.fetcher import FetchStatus, RateFetchResult
from currency_calculator.services.rate_manager import RateManager
from currency_calculator.services.session import CalculatorSession, ThemeMode, parse_amount

_NOW = datetime(2026, 3, 20, 9, 0, tzinfo=UTC)


class _FreshStore:
    def __init__(self, table: RateTable | None = None) -> None:
        self._record = CacheRecord(table=table, fetched_at=_NOW) if table else None

    async def load(self) -> CacheRecord | None:
        return self._record

    async def save(self, table: RateTable, fetched_at: datetime) -> None:
        self._record = CacheRecord(table=table, fetched_at=fetched_at)


class _CountingFetcher:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.bases: list[str] = []

    async def fetch_rates(self, base: str, targets) -> RateFetchResult:
        self.bases.append(base)
        if self.fail:
            return RateFetchResult(base=base, status=FetchStatus.network_error, latency_ms=0)
        rates = {"JPY": 0.0067} if base != "JPY" else {"USD": 0.0067, "EUR": 0.0061}
        return RateFetchResult(
            base=base,
            status=FetchStatus.success,
            latency_ms=0,
            table=RateTable(base, rates),
        )


async def _ready_session(
    fetcher: _CountingFetcher | None = None, **session_kwargs
) -> tuple[CalculatorSession, RateManager, _CountingFetcher]:
    fetcher = fetcher or _CountingFetcher()
    store = _FreshStore(RateTable("USD", {"JPY": 150.0, "EUR": 0.92}))
    manager = RateManager(
        store=store,
        fetcher=fetcher,
        clock=lambda: _NOW + timedelta(minutes=5),
    )
    await manager.initialize()
    return CalculatorSession(manager, **session_kwargs), manager, fetcher


@pytest.mark.asyncio
async def test_session_defaults() -> None:
    session, _, fetcher = await _ready_session()

    assert session.from_currency is CurrencyCode.USD
    assert session.to_currency is CurrencyCode.JPY
    assert session.amount == 0.0
    assert session.theme == ThemeMode.system
    assert session.converted_amount == 0.0
    assert fetcher.bases == []


@pytest.mark.asyncio
async def test_session_converts_with_ready_rates() -> None:
    session, _, _ = await _ready_session()

    session.set_amount(10)

    assert session.converted_amount == 1500.0
    assert session.formatted_result == "1,500.00 JPY"
    assert session.rate_line == "1 USD = 150.00 JPY"


@pytest.mark.asyncio
async def test_changing_from_currency_requests_refresh() -> None:
    session, manager, fetcher = await _ready_session()

    session.set_from_currency("jpy")
    await manager.shutdown()

    assert session.from_currency is CurrencyCode.JPY
    assert fetcher.bases == ["JPY"]
    assert manager.current_anchor() == "JPY"


@pytest.mark.asyncio
async def test_changing_to_currency_does_not_refresh() -> None:
    session, manager, fetcher = await _ready_session()

    session.set_to_currency("EUR")
    session.set_amount(100)
    await manager.shutdown()

    assert fetcher.bases == []
    assert session.converted_amount == pytest.approx(92.0)


@pytest.mark.asyncio
async def test_swap_exchanges_currencies_and_refreshes_new_base() -> None:
    session, manager, fetcher = await _ready_session()
    session.set_amount(1500)

    session.swap()
    pending = session.converted_amount
    await manager.shutdown()

    assert session.from_currency is CurrencyCode.JPY
    assert session.to_currency is CurrencyCode.USD
    assert pending == 1500
    assert fetcher.bases == ["JPY"]
    assert session.converted_amount == pytest.approx(10.05)


@pytest.mark.asyncio
async def test_stale_pair_reads_request_a_single_refresh() -> None:
    fetcher = _CountingFetcher(fail=True)
    session, manager, _ = await _ready_session(fetcher, from_currency="EUR", amount=3)

    for _ in range(3):
        assert session.converted_amount == 3
        assert session.rate_line == "1 EUR = 1.00 JPY"
    await manager.shutdown()
    for _ in range(3):
        session.result()
    await manager.shutdown()

    assert fetcher.bases == ["EUR"]
    assert manager.current_anchor() == "USD"


@pytest.mark.asyncio
async def test_amount_text_parsing() -> None:
    session, _, _ = await _ready_session()

    session.set_amount_text("1,234.5")
    assert session.amount == 1234.5
    session.set_amount_text("abc")
    assert session.amount == 0.0
    session.set_amount_text("-4")
    assert session.amount == 0.0


@pytest.mark.asyncio
async def test_negative_amount_is_rejected() -> None:
    session, _, _ = await _ready_session()

    with pytest.raises(ValueError):
        session.set_amount(-1)


@pytest.mark.asyncio
async def test_toggle_theme() -> None:
    session, _, _ = await _ready_session()

    assert session.toggle_theme() == ThemeMode.dark
    assert session.toggle_theme() == ThemeMode.light
    assert session.toggle_theme() == ThemeMode.dark


def test_parse_amount() -> None:
    assert parse_amount("  12.75 ") == 12.75
    assert parse_amount("") == 0.0
    assert parse_amount(None) == 0.0
    assert parse_amount("nan") == 0.0
