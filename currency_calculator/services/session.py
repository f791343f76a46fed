from __future__ import annotations

import logging
import math
from enum import StrEnum

from currency_calculator.catalog import CurrencyCode, normalize_currency
from currency_calculator.services.converter import Conversion, convert, format_amount
from currency_calculator.services.rate_manager import RateManager

logger = logging.getLogger(__name__)


class ThemeMode(StrEnum):
    system = "system"
    light = "light"
    dark = "dark"


def parse_amount(text: str | None) -> float:
    """Lenient parse of user input; anything unusable becomes 0.0."""
    try:
        value = float((text or "").strip().replace(",", ""))
    except ValueError:
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value


class CalculatorSession:
    """User selections plus the derived conversion result.

    Changing the "from" currency or swapping requests rates anchored at the new
    base. Reading the result requests at most one refresh per base and committed
    table, however often it is re-read.
    """

    def __init__(
        self,
        manager: RateManager,
        *,
        from_currency: str = CurrencyCode.USD,
        to_currency: str = CurrencyCode.JPY,
        amount: float = 0.0,
        theme: ThemeMode = ThemeMode.system,
    ) -> None:
        self._manager = manager
        self._from = normalize_currency(from_currency)
        self._to = normalize_currency(to_currency)
        self._amount = 0.0
        self.set_amount(amount)
        self._theme = theme
        self._pending_pair_refresh: tuple[str, int] | None = None

    @property
    def from_currency(self) -> CurrencyCode:
        return self._from

    @property
    def to_currency(self) -> CurrencyCode:
        return self._to

    @property
    def amount(self) -> float:
        return self._amount

    @property
    def theme(self) -> ThemeMode:
        return self._theme

    def set_from_currency(self, code: str) -> None:
        self._from = normalize_currency(code)
        self._refresh_selected_base()

    def set_to_currency(self, code: str) -> None:
        self._to = normalize_currency(code)

    def swap(self) -> None:
        self._from, self._to = self._to, self._from
        self._refresh_selected_base()

    def set_amount(self, value: float) -> None:
        amount = float(value)
        if not math.isfinite(amount) or amount < 0:
            raise ValueError(f"Amount must be a non-negative number, got {value!r}")
        self._amount = amount

    def set_amount_text(self, text: str | None) -> None:
        self.set_amount(max(parse_amount(text), 0.0))

    def toggle_theme(self) -> ThemeMode:
        self._theme = ThemeMode.light if self._theme == ThemeMode.dark else ThemeMode.dark
        return self._theme

    def result(self, amount: float | None = None) -> Conversion:
        table = self._manager.current_table()
        conversion = convert(
            self._amount if amount is None else amount,
            self._from,
            self._to,
            table,
            table.anchor,
        )
        if conversion.refresh_base is not None:
            self._request_pair_refresh(conversion.refresh_base)
        return conversion

    @property
    def converted_amount(self) -> float:
        return self.result().amount

    @property
    def formatted_result(self) -> str:
        return f"{format_amount(self.converted_amount)} {self._to}"

    @property
    def rate_line(self) -> str:
        unit = self.result(1.0)
        return f"1 {self._from} = {format_amount(unit.amount)} {self._to}"

    def _refresh_selected_base(self) -> None:
        self._pending_pair_refresh = (self._from, self._manager.version)
        self._manager.request_refresh(self._from)

    def _request_pair_refresh(self, base: str) -> None:
        key = (base, self._manager.version)
        if self._pending_pair_refresh == key or self._manager.is_refreshing(base):
            return
        self._pending_pair_refresh = key
        logger.info(
            "Rates anchored at %s cannot convert from %s; requesting refresh",
            self._manager.current_anchor(),
            base,
        )
        self._manager.request_refresh(base)
