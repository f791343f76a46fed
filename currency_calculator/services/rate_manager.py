from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from currency_calculator.catalog import SUPPORTED_CURRENCIES
from currency_calculator.rates.base import CacheRecord, RateTable
from currency_calculator.rates.fetcher import RateFetcher, RateFetchResult
from currency_calculator.rates.store import RateCacheStore

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RateState(StrEnum):
    uninitialized = "uninitialized"
    loading = "loading"
    ready = "ready"
    refreshing = "refreshing"


@dataclass(frozen=True, slots=True)
class RateSnapshot:
    table: RateTable
    state: RateState
    last_updated: datetime | None
    version: int

    @property
    def anchor(self) -> str | None:
        return self.table.anchor


RateListener = Callable[[RateSnapshot], None]


class RateManager:
    """Owns the in-memory rate table and keeps it in sync with cache and provider.

    The table and its anchor live in one immutable ``RateTable`` that is only
    replaced on a successful commit, so readers never see a half-updated pair.
    At most one fetch per base currency is in flight; results for a base that is
    no longer selected are dropped instead of committed.
    """

    def __init__(
        self,
        *,
        store: RateCacheStore,
        fetcher: RateFetcher,
        base_currency: str = "USD",
        currencies: Iterable[str] = SUPPORTED_CURRENCIES,
        ttl: timedelta = DEFAULT_CACHE_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._currencies = tuple(str(code).upper() for code in currencies)
        self._selected_base = base_currency.upper()
        self._ttl = ttl
        self._clock = clock

        self._table = RateTable.empty()
        self._last_updated: datetime | None = None
        self._version = 0
        self._state = RateState.uninitialized

        self._cache_checked = asyncio.Event()
        self._in_flight: dict[str, asyncio.Task[bool]] = {}
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[RateListener] = []

    @property
    def state(self) -> RateState:
        return self._state

    @property
    def selected_base(self) -> str:
        return self._selected_base

    @property
    def version(self) -> int:
        return self._version

    def current_table(self) -> RateTable:
        return self._table

    def current_anchor(self) -> str | None:
        return self._table.anchor

    def snapshot(self) -> RateSnapshot:
        return RateSnapshot(
            table=self._table,
            state=self._state,
            last_updated=self._last_updated,
            version=self._version,
        )

    def is_fresh(self, record: CacheRecord) -> bool:
        return self._clock() - record.fetched_at < self._ttl

    def is_refreshing(self, base: str | None = None) -> bool:
        if base is None:
            return bool(self._in_flight)
        return base.upper() in self._in_flight

    def subscribe(self, listener: RateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def launch(self) -> asyncio.Task[None]:
        return self._track(asyncio.create_task(self.initialize()))

    async def initialize(self) -> None:
        if self._state is not RateState.uninitialized or self._cache_checked.is_set():
            logger.debug("Rate manager already initialized state=%s", self._state)
            return

        self._state = RateState.loading
        try:
            record = await self._store.load()
        except Exception:
            logger.exception("Unexpected error while loading cached exchange rates")
            record = None
        self._cache_checked.set()

        if record is not None and self.is_fresh(record):
            self._commit(record.table, record.fetched_at)
            logger.info(
                "Loaded exchange rates from cache anchor=%s fetched_at=%s",
                record.table.anchor,
                record.fetched_at.isoformat(),
            )
            return

        if record is not None:
            logger.info(
                "Cached exchange rates are stale anchor=%s fetched_at=%s",
                record.table.anchor,
                record.fetched_at.isoformat(),
            )
        self._state = RateState.uninitialized
        await self.refresh(self._selected_base)

    async def refresh(self, base: str) -> bool:
        """Fetch and commit rates for ``base``; returns whether a table was committed.

        Overlapping calls for the same base share one fetch.
        """
        anchor = base.upper()
        self._selected_base = anchor
        return await self._join(anchor)

    def request_refresh(self, base: str) -> asyncio.Task[bool]:
        anchor = base.upper()
        self._selected_base = anchor
        return self._track(asyncio.create_task(self._join(anchor)))

    async def shutdown(self) -> None:
        pending = [*self._tasks, *self._in_flight.values()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _join(self, anchor: str) -> bool:
        if self._state is RateState.loading:
            await self._cache_checked.wait()
        if anchor != self._selected_base:
            logger.debug(
                "Skipping refresh for base=%s superseded by %s", anchor, self._selected_base
            )
            return False

        task = self._in_flight.get(anchor)
        if task is None:
            task = asyncio.create_task(self._refresh(anchor))
            self._in_flight[anchor] = task
            task.add_done_callback(functools.partial(self._forget, anchor))
        else:
            logger.debug("Joining in-flight refresh base=%s", anchor)
        return await asyncio.shield(task)

    async def _refresh(self, base: str) -> bool:
        self._state = RateState.refreshing
        targets = [code for code in self._currencies if code != base]
        result: RateFetchResult | None
        try:
            result = await self._fetcher.fetch_rates(base, targets)
        except Exception:
            logger.exception("Unexpected error while fetching exchange rates base=%s", base)
            result = None

        if result is None or not result.ok:
            logger.warning(
                "Keeping previous exchange rates anchor=%s after failed refresh base=%s: %s",
                self._table.anchor,
                base,
                result.error_message if result else "unexpected error",
            )
            self._settle(base)
            return False

        if base != self._selected_base:
            logger.info(
                "Discarding superseded exchange rates base=%s selected=%s",
                base,
                self._selected_base,
            )
            self._settle(base)
            return False

        fetched_at = self._clock()
        self._commit(result.table, fetched_at, finishing=base)
        try:
            await self._store.save(result.table, fetched_at)
        except Exception:
            logger.exception("Failed to persist exchange rates base=%s", base)
        return True

    def _commit(self, table: RateTable, fetched_at: datetime, finishing: str | None = None) -> None:
        self._table = table
        self._last_updated = fetched_at
        self._version += 1
        self._settle(finishing)
        self._notify()

    def _settle(self, finishing: str | None) -> None:
        if any(base != finishing for base in self._in_flight):
            self._state = RateState.refreshing
        elif self._table:
            self._state = RateState.ready
        else:
            self._state = RateState.uninitialized

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Rate listener failed")

    def _forget(self, base: str, task: asyncio.Task[bool]) -> None:
        if self._in_flight.get(base) is task:
            del self._in_flight[base]

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
