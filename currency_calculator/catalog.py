from __future__ import annotations

from enum import StrEnum

from currency_calculator.rates.base import UnsupportedCurrency


class CurrencyCode(StrEnum):
    USD = "USD"
    EUR = "EUR"
    JPY = "JPY"
    GBP = "GBP"
    AUD = "AUD"
    CAD = "CAD"
    CHF = "CHF"
    CNY = "CNY"
    HKD = "HKD"
    NZD = "NZD"
    TWD = "TWD"
    KRW = "KRW"
    SGD = "SGD"


CURRENCY_NAMES: dict[CurrencyCode, str] = {
    CurrencyCode.USD: "アメリカドル",
    CurrencyCode.EUR: "ユーロ",
    CurrencyCode.JPY: "日本円",
    CurrencyCode.GBP: "イギリスポンド",
    CurrencyCode.AUD: "オーストラリアドル",
    CurrencyCode.CAD: "カナダドル",
    CurrencyCode.CHF: "スイスフラン",
    CurrencyCode.CNY: "中国人民元",
    CurrencyCode.HKD: "香港ドル",
    CurrencyCode.NZD: "ニュージーランドドル",
    CurrencyCode.TWD: "台湾ドル",
    CurrencyCode.KRW: "韓国ウォン",
    CurrencyCode.SGD: "シンガポールドル",
}

SUPPORTED_CURRENCIES: tuple[CurrencyCode, ...] = tuple(CurrencyCode)


def normalize_currency(value: str) -> CurrencyCode:
    code = (value or "").strip().upper()
    try:
        return CurrencyCode(code)
    except ValueError:
        raise UnsupportedCurrency(f"Unsupported currency code: {value!r}") from None


def currency_label(code: str) -> str:
    currency = normalize_currency(code)
    return f"{currency.value} ({CURRENCY_NAMES[currency]})"
