"""Tests for the response formatter."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from bookkeeper.drafting import TransactionDrafter
from bookkeeper.models.transaction import (
    DispatchOutcome,
    DispatchState,
    ErrorKind,
    MatchMethod,
    PartialData,
    ResolutionResult,
    UserClassification,
)
from bookkeeper.parsing import InputParser
from bookkeeper.replies import FALLBACK_MESSAGE, ResponseFormatter

from conftest import LEDGER_ID


@pytest.fixture
def formatter():
    return ResponseFormatter(timezone="Asia/Taipei")


@pytest.fixture
def lunch_draft(category_entries, app_settings, make_raw):
    resolution = ResolutionResult(
        entry=category_entries[0],
        match_method=MatchMethod.EXACT,
        confidence=1.0,
    )
    raw = make_raw("lunch 250 cash")
    return TransactionDrafter(app_settings).draft(
        InputParser().parse(raw.text), resolution, raw, LEDGER_ID,
    )


def failed(kind, partial=None, **kwargs):
    return DispatchOutcome(
        success=False,
        state=DispatchState.FAILED_TERMINAL,
        error_kind=kind,
        partial_data=partial or PartialData(),
        **kwargs,
    )


class TestResponseFormatter:
    """Tests for success and failure replies."""

    def test_success_reply(self, formatter, lunch_draft):
        """Test that a success reply shows the committed entry."""
        outcome = DispatchOutcome(
            success=True,
            state=DispatchState.SUCCEEDED,
            draft=lunch_draft,
            entry_id="20240301-00001",
            process_id=lunch_draft.process_id,
        )
        reply = formatter.format(outcome, "bookkeeping")

        assert reply.success is True
        assert reply.module_tag == "bookkeeping"
        assert reply.process_id == lunch_draft.process_id
        assert reply.error_kind is None
        assert "Recorded expense" in reply.response_message
        assert "Subject: lunch" in reply.response_message
        assert "Amount: 250" in reply.response_message
        assert "Payment: cash" in reply.response_message
        assert "Time: 2024/03/01 12:30" in reply.response_message
        assert "User type: J" in reply.response_message
        assert "Entry: 20240301-00001" in reply.response_message

    def test_failure_reply_uses_partial_data(self, formatter):
        """Test that a failure echoes back what was understood."""
        outcome = failed(
            ErrorKind.MISSING_SUBJECT,
            PartialData(amount=Decimal("25000"), raw_amount="25000"),
            error_message="Nothing precedes the amount",
        )
        reply = formatter.format(outcome, "bookkeeping")

        assert reply.success is False
        assert reply.error_kind == ErrorKind.MISSING_SUBJECT
        assert reply.error == "Nothing precedes the amount"
        assert reply.partial_data.amount == Decimal("25000")
        assert "Could not record" in reply.response_message
        assert "Reason: no subject before the amount" in reply.response_message
        assert "Subject: unknown subject" in reply.response_message
        assert "Amount: 25000" in reply.response_message
        assert "Payment: unspecified payment method" in reply.response_message

    def test_failure_fallback_literals(self, formatter):
        """Test the fallback literals when nothing is known."""
        reply = formatter.format(failed(ErrorKind.EMPTY_MESSAGE), "bookkeeping")
        assert "Amount: 0" in reply.response_message
        assert "Subject: unknown subject" in reply.response_message
        assert "Remark: none" in reply.response_message

    def test_draft_fields_take_priority(self, formatter, lunch_draft):
        """Test that draft fields win over partial data."""
        outcome = DispatchOutcome(
            success=True,
            state=DispatchState.SUCCEEDED,
            draft=lunch_draft,
            partial_data=PartialData(subject="something else", amount=Decimal("1")),
        )
        fields = formatter.display_fields(outcome)
        assert fields["subject"] == "lunch"
        assert fields["amount"] == "250"

    def test_success_and_failure_share_fields(self, formatter, lunch_draft):
        """Test that both kinds of reply expose the same field set."""
        success = DispatchOutcome(
            success=True, state=DispatchState.SUCCEEDED, draft=lunch_draft,
        )
        failure = failed(ErrorKind.UNKNOWN_SUBJECT, PartialData(subject="xyzzy"))
        assert formatter.display_fields(success).keys() == formatter.display_fields(failure).keys()

    def test_user_type_from_partial_data(self, formatter):
        outcome = failed(
            ErrorKind.UNKNOWN_SUBJECT,
            PartialData(subject="xyzzy", user_classification=UserClassification.MANAGER),
        )
        assert "User type: M" in formatter.format(outcome, "bookkeeping").response_message

    def test_timestamp_in_display_timezone(self, formatter):
        outcome = failed(
            ErrorKind.UNKNOWN_SUBJECT,
            PartialData(timestamp=datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)),
        )
        assert "Time: 2024/01/01 08:00" in formatter.format(outcome, "bookkeeping").response_message

    def test_existing_message_passes_through(self, formatter):
        """Test that a fully formed message is not re-templated."""
        outcome = failed(ErrorKind.UNSUPPORTED_MESSAGE, response_message="Already formatted")
        reply = formatter.format(outcome, "unrouted")
        assert reply.response_message == "Already formatted"

    def test_formatting_is_idempotent(self, formatter):
        """Test that formatting a formatted message changes nothing."""
        outcome = failed(ErrorKind.EMPTY_MESSAGE)
        first = formatter.format(outcome, "bookkeeping")
        again = formatter.format(
            outcome.model_copy(update={"response_message": first.response_message}),
            "bookkeeping",
        )
        assert again.response_message == first.response_message

    def test_max_retries_reason(self, formatter):
        reply = formatter.format(failed(ErrorKind.MAX_RETRIES_EXCEEDED), "bookkeeping")
        assert "after several tries" in reply.response_message

    def test_never_raises(self):
        """Test that an internal error becomes the fallback message."""
        class BrokenFormatter(ResponseFormatter):
            def _render(self, outcome):
                raise RuntimeError("template exploded")

        reply = BrokenFormatter(timezone="Asia/Taipei").format(
            failed(ErrorKind.EMPTY_MESSAGE), "bookkeeping"
        )
        assert reply.success is False
        assert reply.response_message == FALLBACK_MESSAGE
        assert reply.error_kind == ErrorKind.FORMAT_ERROR
        assert "template exploded" in reply.error
