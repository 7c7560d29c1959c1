"""
Input Parser

Turns one free-form chat message into subject, amount and an optional
payment-method candidate:

    "lunch 250 cash"  ->  subject="lunch", amount=250, payment="cash"

DESIGN DECISION: The parser knows nothing about categories or ledgers.
It only finds the amount and splits the text around it. Whether the
subject means anything is the resolver's job, and whether the payment
method is acceptable is the ledger store's job.
"""

import re
from decimal import Decimal
from typing import Optional

import structlog

from bookkeeper.errors import (
    EmptyMessageError,
    FormatNotRecognizedError,
    MissingSubjectError,
)
from bookkeeper.models.transaction import ParsedInput, PartialData


logger = structlog.get_logger(__name__)


# Scanned in order; longer terms come before the terms they contain.
PAYMENT_METHOD_TERMS: tuple[tuple[str, str], ...] = (
    ("credit card", "card"),
    ("card", "card"),
    ("cash", "cash"),
    ("transfer", "transfer"),
    ("mobile pay", "mobile pay"),
    ("信用卡", "card"),
    ("刷卡", "card"),
    ("現金", "cash"),
    ("轉帳", "transfer"),
    ("行動支付", "mobile pay"),
)

# Units written after an amount, e.g. "250元" or "250 usd".
# Latin units must end the word so "250 nth" is not read as "nt".
CURRENCY_UNITS = r"(?:元|塊|圓|(?:ntd|nt|usd|dollars?)(?![a-z]))"

# A minus only counts when it starts a token, so "A-100" stays positive.
_AMOUNT_PATTERN = re.compile(r"(?:(?<!\S)-)?\d+")
_LEADING_CURRENCY = re.compile(rf"^\s*{CURRENCY_UNITS}", re.IGNORECASE)


def strip_currency_unit(text: str) -> str:
    """Drop a currency unit at the start of the text following an amount."""
    return _LEADING_CURRENCY.sub("", text, count=1)


def find_payment_method(text: str) -> Optional[str]:
    """
    Scan trailing text for a known payment-method term.

    A currency unit directly after the amount is not a payment method and
    is skipped. Returns the canonical term for the first vocabulary hit,
    the trailing text itself when nothing matches, or None when there is
    no text.
    """
    trailing = strip_currency_unit(text).strip()
    if not trailing:
        return None

    lowered = trailing.lower()
    for term, canonical in PAYMENT_METHOD_TERMS:
        if term in lowered:
            return canonical

    return trailing


class InputParser:
    """Tokenizes raw message text into a ParsedInput."""

    def parse(self, text: str) -> ParsedInput:
        """
        Parse a message.

        Args:
            text: The message exactly as the user sent it

        Returns:
            ParsedInput with the sign of the amount preserved

        Raises:
            EmptyMessageError: text is empty or whitespace
            FormatNotRecognizedError: no digit run anywhere in the text
            MissingSubjectError: nothing but whitespace before the amount
        """
        if text is None or not text.strip():
            raise EmptyMessageError("Message is empty")

        match = self._longest_amount(text)
        if match is None:
            raise FormatNotRecognizedError(
                "No amount found in message",
                PartialData(remark=text.strip()),
            )

        raw_amount = match.group(0)
        amount = Decimal(raw_amount)
        subject = text[:match.start()].strip()
        payment_method = find_payment_method(text[match.end():])

        if not subject:
            raise MissingSubjectError(
                "Nothing precedes the amount",
                PartialData(
                    amount=amount,
                    raw_amount=raw_amount,
                    payment_method=payment_method,
                ),
            )

        logger.debug(
            "message_parsed",
            subject=subject,
            raw_amount=raw_amount,
            payment_method=payment_method,
        )

        return ParsedInput(
            subject_text=subject,
            amount=amount,
            raw_amount_text=raw_amount,
            payment_method_text=payment_method,
            original_text=text,
        )

    @staticmethod
    def _longest_amount(text: str) -> Optional[re.Match]:
        """Longest digit run wins; the first one wins a tie."""
        best = None
        best_digits = 0
        for match in _AMOUNT_PATTERN.finditer(text):
            digits = len(match.group(0).lstrip("-"))
            if digits > best_digits:
                best, best_digits = match, digits
        return best
