"""
Transaction Drafter

Combines a parsed message and a resolved category into a TransactionDraft.

DESIGN DECISION: The income/expense decision belongs to the category, not
to the amount. A major code starting with "8" is income, everything else
is an expense. The sign of the amount never flips the action: negative
and zero amounts are rejected outright as InvalidAmount so that the ledger
never receives an entry whose direction is ambiguous.

Payment methods are only defaulted here for income-side majors (8xx/9xx)
when the user gave none. Anything else is passed through as typed; the
ledger store owns the whitelist.
"""

import re
from typing import Optional

import structlog

from bookkeeper.audit import create_process_id
from bookkeeper.config import AppSettings, get_settings
from bookkeeper.errors import InvalidAmountError, UnknownSubjectError
from bookkeeper.models.transaction import (
    INCOME_MAJOR_PREFIX,
    ParsedInput,
    PartialData,
    RawMessage,
    ResolutionResult,
    TransactionAction,
    TransactionDraft,
    UserClassification,
)
from bookkeeper.parsing import CURRENCY_UNITS, PAYMENT_METHOD_TERMS


logger = structlog.get_logger(__name__)


DEFAULT_PAYMENT_METHOD = "cash"
CASH_DEFAULT_MAJOR_PREFIXES = ("8", "9")


def decide_action(major_code: str) -> TransactionAction:
    """Income for major codes starting with 8, expense otherwise."""
    if major_code.startswith(INCOME_MAJOR_PREFIX):
        return TransactionAction.INCOME
    return TransactionAction.EXPENSE


def classify_user(user_id: str, settings: AppSettings) -> UserClassification:
    if user_id in settings.manager_ids_list:
        return UserClassification.MANAGER
    if settings.system_user_prefix and user_id.startswith(settings.system_user_prefix):
        return UserClassification.SYSTEM
    return UserClassification.JUNIOR


def _remove_once(text: str, pattern: str) -> Optional[str]:
    """Remove a pattern that occurs exactly once; None if absent or repeated."""
    regex = re.compile(pattern, re.IGNORECASE)
    if len(regex.findall(text)) != 1:
        return None
    return regex.sub(" ", text, count=1)


def _payment_token_pattern(text: str, payment_method: str) -> str:
    """Pattern for the surface form of the payment method in the message."""
    lowered = text.lower()
    for term, canonical in PAYMENT_METHOD_TERMS:
        if canonical == payment_method and term in lowered:
            return re.escape(term)
    return re.escape(payment_method)


def extract_remark(
    original_text: str,
    raw_amount_text: str,
    payment_method_text: Optional[str] = None,
) -> str:
    """
    Original message with the amount (and payment token) removed.

    When either cannot be located unambiguously, the original text is
    returned unmodified. Never raises.
    """
    amount_pattern = (
        rf"(?<!\d){re.escape(raw_amount_text)}(?!\d)(?:\s*{CURRENCY_UNITS})?"
    )
    remark = _remove_once(original_text, amount_pattern)
    if remark is None:
        return original_text

    if payment_method_text:
        remark = _remove_once(
            remark,
            _payment_token_pattern(remark, payment_method_text),
        )
        if remark is None:
            return original_text

    return " ".join(remark.split())


class TransactionDrafter:
    """Builds validated drafts from parser and resolver output."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def draft(
        self,
        parsed: ParsedInput,
        resolution: Optional[ResolutionResult],
        raw: RawMessage,
        ledger_id: str,
        process_id: Optional[str] = None,
    ) -> TransactionDraft:
        """
        Build a draft for one attempt.

        Args:
            parsed: Parser output
            resolution: Resolver output, None when no tier matched
            raw: The message being processed (user, time, correlation)
            ledger_id: Ledger the entry belongs to
            process_id: Attempt id; a fresh one is generated if omitted

        Raises:
            UnknownSubjectError: resolution is None
            InvalidAmountError: amount is zero or negative
        """
        classification = classify_user(raw.user_id, self._settings)
        partial = PartialData(
            subject=parsed.subject_text,
            amount=parsed.amount,
            raw_amount=parsed.raw_amount_text,
            payment_method=parsed.payment_method_text,
            timestamp=raw.received_at,
            user_classification=classification,
        )

        if resolution is None:
            raise UnknownSubjectError(
                f'No category matches "{parsed.subject_text}"',
                partial,
            )

        action = decide_action(resolution.major_code)
        partial = partial.merge(
            action=action,
            category_code=resolution.category_code,
        )

        if parsed.amount <= 0:
            raise InvalidAmountError(
                f"Amount must be positive, got {parsed.raw_amount_text}",
                partial,
            )

        payment_method = parsed.payment_method_text
        if payment_method is None and resolution.major_code.startswith(
            CASH_DEFAULT_MAJOR_PREFIXES
        ):
            payment_method = DEFAULT_PAYMENT_METHOD

        remark = extract_remark(
            parsed.original_text,
            parsed.raw_amount_text,
            parsed.payment_method_text,
        )

        entry = resolution.entry
        draft = TransactionDraft(
            subject_text=entry.sub_name,
            original_subject_text=parsed.subject_text,
            category_code=entry.code,
            category_name=entry.sub_name,
            major_code=entry.major_code,
            major_name=entry.major_name,
            sub_code=entry.sub_code,
            amount=parsed.amount,
            raw_amount_text=parsed.raw_amount_text,
            action=action,
            payment_method=payment_method,
            remark_text=remark,
            process_id=process_id or create_process_id(),
            user_id=raw.user_id,
            ledger_id=ledger_id,
            user_classification=classification,
            recorded_at=raw.received_at,
            correlation_token=raw.correlation_token,
            match_method=resolution.match_method,
            confidence=resolution.confidence,
        )

        logger.debug(
            "draft_created",
            process_id=draft.process_id,
            category_code=draft.category_code,
            action=draft.action.value,
        )
        return draft
