"""
Response Formatter

Turns any DispatchOutcome, success or failure at any stage, into one
ReplyMessage for the messenger.

DESIGN DECISION: Success and failure replies show the same fields
(amount, action, payment method, time, subject, remark, user type) so the
chat side never has to branch to find them. Each field is taken from the
committed draft first, then from the partial data, then from a fallback
literal.

The formatter is the last step before the reply leaves the core, so it
never raises. Any internal error is replaced by a fixed fallback message.
"""

from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

import structlog

from bookkeeper.config import get_settings
from bookkeeper.models.transaction import (
    DispatchOutcome,
    ErrorKind,
    ReplyMessage,
)


logger = structlog.get_logger(__name__)


UNKNOWN_SUBJECT_TEXT = "unknown subject"
UNKNOWN_AMOUNT_TEXT = "0"
UNKNOWN_PAYMENT_TEXT = "unspecified payment method"
NO_REMARK_TEXT = "none"
UNKNOWN_TEXT = "unknown"

FALLBACK_MESSAGE = (
    "Sorry, something went wrong while preparing the reply. "
    "Please check your ledger before sending the entry again."
)

SUCCESS_TEMPLATE = (
    "Recorded {action}\n"
    "Subject: {subject}\n"
    "Amount: {amount}\n"
    "Payment: {payment_method}\n"
    "Time: {timestamp}\n"
    "Remark: {remark}\n"
    "User type: {user_type}"
)

FAILURE_TEMPLATE = (
    "Could not record {action}\n"
    "Reason: {reason}\n"
    "Subject: {subject}\n"
    "Amount: {amount}\n"
    "Payment: {payment_method}\n"
    "Time: {timestamp}\n"
    "Remark: {remark}\n"
    "User type: {user_type}"
)

# Business-readable reasons shown to the user
ERROR_REASONS = {
    ErrorKind.EMPTY_MESSAGE: "the message is empty",
    ErrorKind.FORMAT_NOT_RECOGNIZED: 'no amount found, try "lunch 250 cash"',
    ErrorKind.MISSING_SUBJECT: 'no subject before the amount, try "lunch 250"',
    ErrorKind.UNKNOWN_SUBJECT: "the subject does not match any category",
    ErrorKind.INVALID_AMOUNT: "the amount must be a positive number",
    ErrorKind.LOOKUP_FAILED: "your categories could not be loaded",
    ErrorKind.COMMIT_FAILED: "the ledger is temporarily unavailable",
    ErrorKind.COMMIT_REJECTED: "the ledger rejected the entry",
    ErrorKind.MAX_RETRIES_EXCEEDED: "the ledger stayed unavailable after several tries",
    ErrorKind.UNSUPPORTED_MESSAGE: "this kind of message is not supported",
    ErrorKind.INTERNAL_ERROR: "an internal error occurred",
    ErrorKind.FORMAT_ERROR: "the reply could not be prepared",
}


def _first(*values: Any) -> Optional[Any]:
    """First value that is not None or blank."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


class ResponseFormatter:
    """
    Builds unified replies.

    Usage:
        reply = ResponseFormatter().format(outcome, module_tag="bookkeeping")
    """

    def __init__(self, timezone: Optional[str] = None):
        self._timezone = timezone or get_settings().app.timezone

    def format(self, outcome: DispatchOutcome, module_tag: str) -> ReplyMessage:
        """
        Format an outcome. Never raises.

        A response_message already on the outcome is passed through
        unchanged.
        """
        try:
            if outcome.response_message:
                message = outcome.response_message
            else:
                message = self._render(outcome)

            return ReplyMessage(
                success=outcome.success,
                response_message=message,
                module_tag=module_tag,
                process_id=outcome.process_id,
                error_kind=outcome.error_kind,
                error=outcome.error_message,
                partial_data=outcome.partial_data,
            )
        except Exception as e:
            logger.error(
                "reply_format_failed",
                error=str(e),
                module_tag=module_tag,
                exc_info=True,
            )
            return ReplyMessage(
                success=False,
                response_message=FALLBACK_MESSAGE,
                module_tag=module_tag,
                error_kind=ErrorKind.FORMAT_ERROR,
                error=str(e),
            )

    def display_fields(self, outcome: DispatchOutcome) -> dict[str, str]:
        """The shared field set, resolved draft -> partial data -> fallback."""
        draft = outcome.draft
        partial = outcome.partial_data

        subject = _first(
            draft.category_name if draft else None,
            partial.subject,
        )
        amount = _first(
            draft.amount if draft else None,
            partial.amount,
            partial.raw_amount,
        )
        action = _first(
            draft.action if draft else None,
            partial.action,
        )
        payment_method = _first(
            draft.payment_method if draft else None,
            partial.payment_method,
        )
        timestamp = _first(
            draft.recorded_at if draft else None,
            partial.timestamp,
        )
        remark = _first(
            draft.remark_text if draft else None,
            partial.remark,
        )
        user_type = _first(
            draft.user_classification if draft else None,
            partial.user_classification,
        )

        return {
            "subject": subject if subject is not None else UNKNOWN_SUBJECT_TEXT,
            "amount": str(amount) if amount is not None else UNKNOWN_AMOUNT_TEXT,
            "action": action.value if action is not None else "entry",
            "payment_method": payment_method or UNKNOWN_PAYMENT_TEXT,
            "timestamp": self._format_time(timestamp),
            "remark": remark if remark is not None else NO_REMARK_TEXT,
            "user_type": user_type.value if user_type is not None else UNKNOWN_TEXT,
        }

    def _render(self, outcome: DispatchOutcome) -> str:
        fields = self.display_fields(outcome)

        if outcome.success:
            message = SUCCESS_TEMPLATE.format(**fields)
            if outcome.entry_id:
                message += f"\nEntry: {outcome.entry_id}"
            return message

        reason = ERROR_REASONS.get(outcome.error_kind, ERROR_REASONS[ErrorKind.INTERNAL_ERROR])
        if outcome.error_message:
            reason = f"{reason} ({outcome.error_message})"
        return FAILURE_TEMPLATE.format(reason=reason, **fields)

    def _format_time(self, value: Optional[datetime]) -> str:
        if value is None:
            return UNKNOWN_TEXT
        return value.astimezone(ZoneInfo(self._timezone)).strftime("%Y/%m/%d %H:%M")
