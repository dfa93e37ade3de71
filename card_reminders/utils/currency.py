"""Locale-aware currency formatting"""

import logging
from babel.core import UnknownLocaleError
from babel.numbers import format_currency

logger = logging.getLogger(__name__)


def format_amount(amount: float | None, currency_code: str | None, locale: str = "en") -> str:
    """
    Format an amount in the user's currency and the template's locale.

    Falls back to "1,234.00 XYZ" when babel cannot format the pair.

    Example:
        format_amount(4500, "INR", "en") -> "₹4,500.00"
    """
    value = amount or 0.0
    code = (currency_code or "").strip().upper()
    if not code:
        return f"{value:,.2f}"

    try:
        return format_currency(value, code, locale=locale)
    except (UnknownLocaleError, ValueError, TypeError) as e:
        logger.warning(
            "Currency formatting failed, using fallback",
            extra={"currency": code, "locale": locale, "error": str(e)},
        )
        return f"{value:,.2f} {code}"
