"""Money helpers: exact decimal coercion and CLP display formatting."""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from babel.dates import format_date
from babel.numbers import format_currency
from bson.decimal128 import Decimal128

from app.core.config import settings

ZERO = Decimal("0")


def to_decimal(value: Any) -> Any:
    """
    Coerce stored or user supplied amounts to Decimal.

    Floats go through str() so 0.1 stays 0.1. Unknown types are returned
    untouched for the caller's validator to reject.
    """
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, (int, str)):
        try:
            return Decimal(value)
        except InvalidOperation:
            return value
    return value


def to_bson(value: Any) -> Any:
    """Recursively replace Decimal with Decimal128 so pymongo can encode it."""
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, dict):
        return {k: to_bson(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_bson(v) for v in value]
    return value


def format_pesos(amount: Decimal | int, locale: str | None = None) -> str:
    """Format an amount as Chilean pesos, e.g. $1.234.567."""
    return format_currency(
        amount,
        settings.CURRENCY,
        locale=locale or settings.LOCALE,
    )


def format_period(period_start: date | datetime, locale: str = "es") -> str:
    """Billing period label, e.g. 'enero 2025'."""
    return format_date(period_start, "MMMM yyyy", locale=locale)
