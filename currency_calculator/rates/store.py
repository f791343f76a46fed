from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from currency_calculator.models import PreferenceEntry
from currency_calculator.rates.base import CacheCorrupt, CacheRecord, RateTable

logger = logging.getLogger(__name__)

RATES_KEY = "exchangeRates"
LAST_UPDATE_KEY = "lastUpdate"


def encode_record(table: RateTable, fetched_at: datetime) -> dict[str, str]:
    return {
        RATES_KEY: json.dumps(table.to_jsonable(), separators=(",", ":")),
        LAST_UPDATE_KEY: _as_utc(fetched_at).isoformat(),
    }


def decode_record(raw_rates: str | None, raw_timestamp: str | None) -> CacheRecord:
    if raw_rates is None or raw_timestamp is None:
        raise CacheCorrupt("Cached rates are incomplete")
    try:
        payload = json.loads(raw_rates)
    except json.JSONDecodeError as exc:
        raise CacheCorrupt(f"Cached rates are not valid JSON: {exc}") from exc
    try:
        fetched_at = datetime.fromisoformat(raw_timestamp)
    except ValueError as exc:
        raise CacheCorrupt(f"Invalid {LAST_UPDATE_KEY} value {raw_timestamp!r}") from exc
    return CacheRecord(table=RateTable.from_jsonable(payload), fetched_at=_as_utc(fetched_at))


class RateCacheStore(ABC):
    name: str

    async def load(self) -> CacheRecord | None:
        """Return the persisted record, or ``None`` on any miss or decode failure."""
        try:
            raw = await self._read()
        except (SQLAlchemyError, RedisError, OSError) as exc:
            logger.warning("Rate cache read failed store=%s: %s", self.name, exc)
            return None
        if raw is None:
            return None
        raw_rates, raw_timestamp = raw
        if raw_rates is None and raw_timestamp is None:
            logger.info("Rate cache is empty store=%s", self.name)
            return None
        try:
            return decode_record(raw_rates, raw_timestamp)
        except CacheCorrupt as exc:
            logger.warning("Discarding corrupt rate cache store=%s: %s", self.name, exc)
            return None

    @abstractmethod
    async def _read(self) -> tuple[str | None, str | None] | None:
        raise NotImplementedError

    @abstractmethod
    async def save(self, table: RateTable, fetched_at: datetime) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class SqlRateCacheStore(RateCacheStore):
    name = "sqlite"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _read(self) -> tuple[str | None, str | None]:
        async with self._session_factory() as session:
            stmt = select(PreferenceEntry).where(
                PreferenceEntry.key.in_([RATES_KEY, LAST_UPDATE_KEY])
            )
            entries = {row.key: row.value for row in (await session.execute(stmt)).scalars()}
        return entries.get(RATES_KEY), entries.get(LAST_UPDATE_KEY)

    async def save(self, table: RateTable, fetched_at: datetime) -> None:
        values = encode_record(table, fetched_at)
        async with self._session_factory() as session:
            async with session.begin():
                for key, value in values.items():
                    await session.merge(PreferenceEntry(key=key, value=value))
        logger.debug("Rates saved to local storage store=%s anchor=%s", self.name, table.anchor)


class RedisRateCacheStore(RateCacheStore):
    name = "redis"

    def __init__(self, redis_url: str | None) -> None:
        self._redis_url = redis_url
        self._redis: Redis | None = None

    async def connect(self) -> None:
        if not self._redis_url:
            return
        client = Redis.from_url(self._redis_url, decode_responses=True)
        try:
            await client.ping()
            self._redis = client
            logger.info("Redis rate cache connected")
        except (RedisError, OSError) as exc:
            logger.warning("Redis unavailable; continuing without rate cache: %s", exc)
            await client.aclose()
            self._redis = None

    async def _read(self) -> tuple[str | None, str | None] | None:
        if not self._redis:
            return None
        raw_rates, raw_timestamp = await self._redis.mget(RATES_KEY, LAST_UPDATE_KEY)
        return raw_rates, raw_timestamp

    async def save(self, table: RateTable, fetched_at: datetime) -> None:
        if not self._redis:
            return
        values = encode_record(table, fetched_at)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.mset(values)
            await pipe.execute()

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None


async def build_cache_store(
    settings: Any, session_factory: async_sessionmaker[AsyncSession]
) -> RateCacheStore:
    if settings.cache_backend == "redis":
        store = RedisRateCacheStore(settings.redis_url)
        await store.connect()
        return store
    return SqlRateCacheStore(session_factory)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
