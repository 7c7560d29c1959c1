"""Free-text message parsing."""

from bookkeeper.parsing.parser import (
    CURRENCY_UNITS,
    PAYMENT_METHOD_TERMS,
    InputParser,
    find_payment_method,
    strip_currency_unit,
)

__all__ = [
    "CURRENCY_UNITS",
    "InputParser",
    "PAYMENT_METHOD_TERMS",
    "find_payment_method",
    "strip_currency_unit",
]
