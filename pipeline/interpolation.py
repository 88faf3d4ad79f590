"""Placeholder interpolation and field-value formatting.

Text may contain ``[path]`` placeholders where ``path`` is a dot-separated key
sequence (``[order.customer.name]``).  A placeholder whose path cannot be
resolved is kept verbatim, brackets included, so missing data stays visible
in the rendered document.

Null handling: a present-but-None terminal value is *found* and renders as
empty text; a None (or missing) intermediate level means *not found* and the
placeholder is preserved.
"""
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from utils import i18n

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\[([^\[\]]+)\]")

Escaper = Callable[[str], str]


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def has_placeholders(text: str) -> bool:
    return PLACEHOLDER_RE.search(text) is not None


def placeholders(text: str) -> list[str]:
    """Paths referenced by text, in order of appearance."""
    return PLACEHOLDER_RE.findall(text)


# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------

def _step(current: Any, key: str) -> Any:
    if isinstance(current, Mapping):
        if key in current:
            return current[key]
        for candidate in current:
            if str(candidate) == key:
                return current[candidate]
        return MISSING
    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        if key.lstrip("-").isdigit():
            index = int(key)
            if -len(current) <= index < len(current):
                return current[index]
        return MISSING
    if not key.startswith("_") and hasattr(current, key):
        value = getattr(current, key)
        return MISSING if callable(value) else value
    return MISSING


def resolve_path(data: Any, path: str | Sequence[str]) -> Any:
    """Walk data along path; returns MISSING when any level cannot be resolved."""
    keys = path.split(".") if isinstance(path, str) else [str(k) for k in path]
    current = data
    for depth, key in enumerate(keys):
        if current is None:
            return MISSING
        current = _step(current, key.strip())
        if current is MISSING:
            logger.debug("Path %r not found (stopped at %r)", ".".join(keys), ".".join(keys[: depth + 1]))
            return MISSING
    return current


# ---------------------------------------------------------------------------
# Value -> text
# ---------------------------------------------------------------------------

def to_text(value: Any, locale: str | None = i18n.DEFAULT_LOCALE) -> str:
    """Default textual form of a found value.

    Integers print as-is (years, IDs); floats and decimals get the locale's
    separators with two places.  Grouped integers need a ``number`` field.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (float, Decimal)):
        try:
            return i18n.format_number(value, locale, 2)
        except (TypeError, ValueError):
            return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def format_field(
    value: Any,
    format: str | None = None,
    decimal_places: int | None = None,
    locale: str | None = i18n.DEFAULT_LOCALE,
    currency: str = "USD",
) -> str:
    """Format a field value; values that do not fit the format pass through as text."""
    if value is None:
        return ""
    if format is None:
        if decimal_places is not None and isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return i18n.format_number(value, locale, decimal_places)
        return to_text(value, locale)
    try:
        if format == "number":
            return i18n.format_number(value, locale, 2 if decimal_places is None else decimal_places)
        if format == "currency":
            return i18n.format_currency(value, currency, locale, decimal_places)
        if format == "percent":
            return i18n.format_percent(value, locale, 1 if decimal_places is None else decimal_places)
        if format == "date":
            return i18n.format_date(value, locale)
        if format == "time":
            return i18n.format_time(value, locale)
        if format == "datetime":
            return i18n.format_datetime(value, locale)
        if format == "boolean":
            return "Yes" if value else "No"
    except (TypeError, ValueError) as exc:
        logger.warning("Cannot format %r as %s (%s); using it as-is", value, format, exc)
        return str(value)
    logger.warning("Unknown field format %r; using the value as-is", format)
    return to_text(value, locale)


# ---------------------------------------------------------------------------
# Interpolation
# ---------------------------------------------------------------------------

def interpolate(
    text: str,
    data: Any,
    locale: str | None = i18n.DEFAULT_LOCALE,
    escape: Escaper | None = None,
) -> str:
    """Replace ``[path]`` placeholders with values from data.

    With ``escape`` every literal fragment and every substituted value is
    passed through it (HTML backend); without it the result is raw text.

    >>> interpolate("Hello [missing]!", {})
    'Hello [missing]!'
    """
    esc = escape or (lambda s: s)
    parts: list[str] = []
    last = 0
    for match in PLACEHOLDER_RE.finditer(text):
        parts.append(esc(text[last:match.start()]))
        value = resolve_path(data, match.group(1)) if data is not None else MISSING
        parts.append(esc(match.group(0) if value is MISSING else to_text(value, locale)))
        last = match.end()
    parts.append(esc(text[last:]))
    return "".join(parts)


def field_text(field: Any, data: Any, locale: str | None, currency: str = "USD") -> str:
    """Resolve and format a FieldContent; a missing source keeps ``[a.b]`` visible."""
    value = resolve_path(data, field.source) if data is not None else MISSING
    if value is MISSING:
        return "[" + ".".join(field.source) + "]"
    return format_field(value, field.format, field.decimal_places, locale, field.currency or currency)


def field_value(field: Any, data: Any) -> Any:
    """Raw (unformatted) value of a field, or None when its source is missing."""
    value = resolve_path(data, field.source) if data is not None else MISSING
    return None if value is MISSING else value
