from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Conversion:
    amount: float
    # Set when the table is anchored elsewhere and rates for this base are needed.
    refresh_base: str | None = None

    @property
    def needs_refresh(self) -> bool:
        return self.refresh_base is not None


def convert(
    amount: float,
    from_currency: str,
    to_currency: str,
    table: Mapping[str, float],
    anchor: str | None,
) -> Conversion:
    """Convert ``amount`` using a table whose rates are relative to ``anchor``.

    An empty table passes the amount through unchanged. A table anchored to a
    different currency than ``from_currency`` cannot answer the query: the amount
    is returned unchanged and ``refresh_base`` names the base to fetch. Targets
    missing from the table are treated as 1:1 with the anchor.
    """
    if not table:
        return Conversion(amount=amount)

    source = from_currency.upper()
    if anchor is None or source != anchor.upper():
        return Conversion(amount=amount, refresh_base=source)

    rate = table.get(to_currency.upper(), 1.0)
    return Conversion(amount=amount * rate)


def format_amount(value: float) -> str:
    return f"{value:,.2f}"


def rate_line(
    from_currency: str,
    to_currency: str,
    table: Mapping[str, float],
    anchor: str | None,
) -> str:
    unit = convert(1.0, from_currency, to_currency, table, anchor)
    return f"1 {from_currency.upper()} = {format_amount(unit.amount)} {to_currency.upper()}"
