from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from currency_calculator.api.routes import router
from currency_calculator.config import get_settings
from currency_calculator.db import build_engine, build_session_factory, create_schema
from currency_calculator.logging import configure_logging
from currency_calculator.rates.fetcher import RateFetcher
from currency_calculator.rates.store import build_cache_store
from currency_calculator.services.rate_manager import RateManager
from currency_calculator.services.session import CalculatorSession

configure_logging()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = build_engine(settings.database_url)
    await create_schema(engine)
    store = await build_cache_store(settings, build_session_factory(engine))
    fetcher = RateFetcher(
        base_url=settings.rate_api_base_url,
        timeout_seconds=settings.request_timeout_seconds,
    )
    manager = RateManager(
        store=store,
        fetcher=fetcher,
        base_currency=settings.default_from_currency,
        ttl=timedelta(seconds=settings.rate_cache_ttl_seconds),
    )
    app.state.rate_manager = manager
    app.state.calculator_session = CalculatorSession(
        manager,
        from_currency=settings.default_from_currency,
        to_currency=settings.default_to_currency,
    )
    manager.launch()

    yield

    await manager.shutdown()
    await fetcher.close()
    await store.close()
    await engine.dispose()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.include_router(router, prefix=settings.api_prefix)
