"""Locale-aware number, currency, percent, date and time formatting.

Table-driven and hand-rolled: avoids the process-wide ``locale`` module state
and platform-specific strftime flags, so output is identical on every host.
Unknown locales fall back to the default locale instead of failing.
"""
import logging
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Literal

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en-US"
MAX_DECIMAL_PLACES = 15


class LocaleConventions(BaseModel):
    model_config = ConfigDict(frozen=True)

    decimal: str
    thousands: str
    symbol_position: Literal["before", "after"]
    date_order: Literal["MDY", "DMY", "YMD"]
    date_separator: str
    hour_clock: Literal[12, 24]
    direction: Literal["ltr", "rtl"] = "ltr"


def _conventions(decimal, thousands, position, order, separator, clock, direction="ltr"):
    return LocaleConventions(
        decimal=decimal, thousands=thousands, symbol_position=position,
        date_order=order, date_separator=separator, hour_clock=clock, direction=direction,
    )


LOCALES: dict[str, LocaleConventions] = {
    "en-US": _conventions(".", ",", "before", "MDY", "/", 12),
    "en-GB": _conventions(".", ",", "before", "DMY", "/", 24),
    "de-DE": _conventions(",", ".", "after", "DMY", ".", 24),
    "fr-FR": _conventions(",", " ", "after", "DMY", "/", 24),
    "es-ES": _conventions(",", ".", "after", "DMY", "/", 24),
    "ja-JP": _conventions(".", ",", "before", "YMD", "/", 24),
    "zh-CN": _conventions(".", ",", "before", "YMD", "/", 24),
    "ar-SA": _conventions(".", ",", "after", "DMY", "/", 24, "rtl"),
    "he-IL": _conventions(".", ",", "before", "DMY", ".", 24, "rtl"),
}

# code -> (symbol, decimal places)
CURRENCIES: dict[str, tuple[str, int]] = {
    "USD": ("$", 2),
    "EUR": ("€", 2),
    "GBP": ("£", 2),
    "JPY": ("¥", 0),
    "CNY": ("¥", 2),
    "CHF": ("CHF", 2),
    "CAD": ("CA$", 2),
    "AUD": ("A$", 2),
    "MXN": ("MX$", 2),
    "BRL": ("R$", 2),
    "SAR": ("SAR", 2),
    "ILS": ("₪", 2),
}


def supported_locales() -> list[str]:
    return sorted(LOCALES)


def supported_currencies() -> list[str]:
    return sorted(CURRENCIES)


def resolve_locale(locale: str | None) -> str:
    """Canonical locale code: exact match, then language match, then the default."""
    if locale:
        code = locale.replace("_", "-")
        for known in LOCALES:
            if known.lower() == code.lower():
                return known
        language = code.split("-")[0].lower()
        for known in LOCALES:
            if known.split("-")[0] == language:
                return known
    logger.debug("Unknown locale %r, falling back to %s", locale, DEFAULT_LOCALE)
    return DEFAULT_LOCALE


def conventions(locale: str | None) -> LocaleConventions:
    return LOCALES[resolve_locale(locale)]


def locale_direction(locale: str | None) -> Literal["ltr", "rtl"]:
    return conventions(locale).direction


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

def _to_decimal(value) -> Decimal:
    if isinstance(value, bool):
        raise TypeError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}") from None
    raise TypeError(f"Not a number: {value!r}")


def _clamp_places(decimal_places: int) -> int:
    return max(0, min(MAX_DECIMAL_PLACES, int(decimal_places)))


def _group(digits: str, separator: str) -> str:
    groups = []
    while len(digits) > 3:
        groups.insert(0, digits[-3:])
        digits = digits[:-3]
    groups.insert(0, digits)
    return separator.join(groups)


def format_number(value, locale: str | None = DEFAULT_LOCALE, decimal_places: int = 2) -> str:
    """Format a number with the locale's separators, rounding half-up.

    >>> format_number(1234.56, "de-DE")
    '1.234,56'
    """
    number = _to_decimal(value)
    if not number.is_finite():
        return str(value)
    conv = conventions(locale)
    places = _clamp_places(decimal_places)
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus the requested places
        ctx.prec = max(ctx.prec, number.adjusted() + places + 2)
        rounded = number.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
        sign = "-" if rounded < 0 else ""
        text = f"{abs(rounded):.{places}f}"
    whole, _, fraction = text.partition(".")
    formatted = _group(whole, conv.thousands)
    if places:
        formatted += conv.decimal + fraction
    return sign + formatted


def format_currency(
    amount,
    currency: str = "USD",
    locale: str | None = DEFAULT_LOCALE,
    decimal_places: int | None = None,
) -> str:
    """Format a money amount: ``$1,234.56`` (en-US) or ``1.234,56 €`` (de-DE).

    Unknown currency codes use the code itself as the symbol and 2 decimals.
    """
    code = currency.upper()
    symbol, default_places = CURRENCIES.get(code, (code, 2))
    places = default_places if decimal_places is None else decimal_places
    text = format_number(amount, locale, places)
    sign = ""
    if text.startswith("-"):
        sign, text = "-", text[1:]
    if conventions(locale).symbol_position == "before":
        return f"{sign}{symbol}{text}"
    return f"{sign}{text} {symbol}"


def format_percent(value, locale: str | None = DEFAULT_LOCALE, decimal_places: int = 1) -> str:
    """0.125 -> '12.5%' (en-US) / '12,5%' (de-DE)."""
    return format_number(_to_decimal(value) * 100, locale, decimal_places) + "%"


# ---------------------------------------------------------------------------
# Dates and times
# ---------------------------------------------------------------------------

def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip()).date()
    raise TypeError(f"Not a date: {value!r}")


def _as_time(value) -> time:
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        text = value.strip()
        if "T" in text or len(text) > 8 and "-" in text[:10]:
            return datetime.fromisoformat(text).time()
        return time.fromisoformat(text)
    raise TypeError(f"Not a time: {value!r}")


def format_date(value, locale: str | None = DEFAULT_LOCALE) -> str:
    """2025-01-15 -> '01/15/2025' (en-US), '15.01.2025' (de-DE), '2025/01/15' (ja-JP)."""
    d = _as_date(value)
    conv = conventions(locale)
    day, month, year = f"{d.day:02d}", f"{d.month:02d}", f"{d.year:04d}"
    parts = {
        "MDY": (month, day, year),
        "DMY": (day, month, year),
        "YMD": (year, month, day),
    }[conv.date_order]
    return conv.date_separator.join(parts)


def format_time(value, locale: str | None = DEFAULT_LOCALE) -> str:
    """14:30 -> '2:30 PM' on 12-hour locales, '14:30' on 24-hour ones."""
    t = _as_time(value)
    if conventions(locale).hour_clock == 12:
        hour = t.hour % 12 or 12
        suffix = "AM" if t.hour < 12 else "PM"
        return f"{hour}:{t.minute:02d} {suffix}"
    return f"{t.hour:02d}:{t.minute:02d}"


def format_datetime(value, locale: str | None = DEFAULT_LOCALE) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    if not isinstance(value, datetime):
        raise TypeError(f"Not a datetime: {value!r}")
    return f"{format_date(value, locale)} {format_time(value, locale)}"
