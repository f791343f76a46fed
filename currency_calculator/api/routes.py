from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from currency_calculator.catalog import (
    CURRENCY_NAMES,
    SUPPORTED_CURRENCIES,
    currency_label,
    normalize_currency,
)
from currency_calculator.rates.base import UnsupportedCurrency
from currency_calculator.schemas import (
    AmountUpdate,
    ConversionResponse,
    CurrencyListResponse,
    CurrencyOut,
    CurrencySelection,
    RatesResponse,
    RefreshRequest,
    RefreshResponse,
    SessionResponse,
)
from currency_calculator.services.converter import convert, format_amount, rate_line
from currency_calculator.services.rate_manager import RateManager
from currency_calculator.services.session import CalculatorSession

router = APIRouter()


def get_rate_manager(request: Request) -> RateManager:
    return request.app.state.rate_manager


def get_calculator_session(request: Request) -> CalculatorSession:
    return request.app.state.calculator_session


def _session_to_out(session: CalculatorSession, manager: RateManager) -> SessionResponse:
    return SessionResponse(
        from_currency=session.from_currency.value,
        to_currency=session.to_currency.value,
        amount=session.amount,
        theme=session.theme,
        converted_amount=session.converted_amount,
        formatted_result=session.formatted_result,
        rate_line=session.rate_line,
        anchor=manager.current_anchor(),
        rate_state=manager.state,
    )


def _currency_or_422(value: str) -> str:
    try:
        return normalize_currency(value).value
    except UnsupportedCurrency as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/currencies", response_model=CurrencyListResponse)
async def list_currencies() -> CurrencyListResponse:
    return CurrencyListResponse(
        currencies=[
            CurrencyOut(code=code.value, name=CURRENCY_NAMES[code], label=currency_label(code))
            for code in SUPPORTED_CURRENCIES
        ]
    )


@router.get("/rates", response_model=RatesResponse)
async def get_rates(manager: RateManager = Depends(get_rate_manager)) -> RatesResponse:
    return RatesResponse.from_snapshot(manager.snapshot())


@router.post("/rates/refresh", response_model=RefreshResponse)
async def refresh_rates(
    payload: RefreshRequest,
    manager: RateManager = Depends(get_rate_manager),
    session: CalculatorSession = Depends(get_calculator_session),
) -> RefreshResponse:
    base = payload.base or session.from_currency
    refreshed = await manager.refresh(base)
    return RefreshResponse(
        refreshed=refreshed,
        rates=RatesResponse.from_snapshot(manager.snapshot()),
    )


@router.get("/convert", response_model=ConversionResponse)
async def convert_amount(
    amount: float = Query(..., ge=0, allow_inf_nan=False),
    from_currency: str = Query(..., alias="from"),
    to_currency: str = Query(..., alias="to"),
    manager: RateManager = Depends(get_rate_manager),
) -> ConversionResponse:
    source = _currency_or_422(from_currency)
    target = _currency_or_422(to_currency)
    table = manager.current_table()
    # Read-only: the selected base belongs to the session.
    conversion = convert(amount, source, target, table, table.anchor)
    return ConversionResponse(
        amount=amount,
        from_currency=source,
        to_currency=target,
        converted_amount=conversion.amount,
        formatted=f"{format_amount(conversion.amount)} {target}",
        rate_line=rate_line(source, target, table, table.anchor),
        anchor=table.anchor,
        needs_refresh=conversion.needs_refresh,
    )


@router.get("/session", response_model=SessionResponse)
async def get_session_state(
    manager: RateManager = Depends(get_rate_manager),
    session: CalculatorSession = Depends(get_calculator_session),
) -> SessionResponse:
    return _session_to_out(session, manager)


@router.put("/session/from", response_model=SessionResponse)
async def set_from_currency(
    payload: CurrencySelection,
    manager: RateManager = Depends(get_rate_manager),
    session: CalculatorSession = Depends(get_calculator_session),
) -> SessionResponse:
    session.set_from_currency(payload.code)
    return _session_to_out(session, manager)


@router.put("/session/to", response_model=SessionResponse)
async def set_to_currency(
    payload: CurrencySelection,
    manager: RateManager = Depends(get_rate_manager),
    session: CalculatorSession = Depends(get_calculator_session),
) -> SessionResponse:
    session.set_to_currency(payload.code)
    return _session_to_out(session, manager)


@router.put("/session/amount", response_model=SessionResponse)
async def set_amount(
    payload: AmountUpdate,
    manager: RateManager = Depends(get_rate_manager),
    session: CalculatorSession = Depends(get_calculator_session),
) -> SessionResponse:
    if payload.amount is not None:
        session.set_amount(payload.amount)
    else:
        session.set_amount_text(payload.text)
    return _session_to_out(session, manager)


@router.post("/session/swap", response_model=SessionResponse)
async def swap_currencies(
    manager: RateManager = Depends(get_rate_manager),
    session: CalculatorSession = Depends(get_calculator_session),
) -> SessionResponse:
    session.swap()
    return _session_to_out(session, manager)


@router.post("/session/theme/toggle", response_model=SessionResponse)
async def toggle_theme(
    manager: RateManager = Depends(get_rate_manager),
    session: CalculatorSession = Depends(get_calculator_session),
) -> SessionResponse:
    session.toggle_theme()
    return _session_to_out(session, manager)
