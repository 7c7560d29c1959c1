"""
Tests for Chat Bookkeeper models.

Test strategy:
1. Unit tests for the pydantic schemas and their invariants
2. No storage or network involved
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from bookkeeper.models.transaction import (
    CategoryEntry,
    CommitResult,
    DispatchOutcome,
    DispatchState,
    ErrorKind,
    ParsedInput,
    PartialData,
    PreferenceRecord,
    RawMessage,
    TransactionAction,
    TransactionDraft,
    split_category_code,
)
from bookkeeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

from conftest import make_draft


class TestPipelineModels:
    """Tests for message, dictionary and draft models."""

    def test_raw_message_received_at(self):
        """Test that epoch millis convert to an aware UTC datetime."""
        raw = RawMessage(text="lunch 250", user_id="U1", timestamp_millis=0)
        assert raw.received_at == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert len(raw.correlation_token) == 32

    def test_raw_message_requires_user(self):
        with pytest.raises(ValidationError):
            RawMessage(text="lunch 250", user_id="", timestamp_millis=0)

    def test_parsed_input_is_frozen(self):
        parsed = ParsedInput(
            subject_text="lunch",
            amount=Decimal("250"),
            raw_amount_text="250",
            original_text="lunch 250",
        )
        with pytest.raises(ValidationError):
            parsed.amount = Decimal("1")

    def test_parsed_input_rejects_non_digit_raw_amount(self):
        with pytest.raises(ValidationError):
            ParsedInput(
                subject_text="lunch",
                amount=Decimal("250"),
                raw_amount_text="2.50",
                original_text="lunch 2.50",
            )

    def test_category_entry_synonyms_from_string(self):
        """Test that comma-separated synonyms are split and de-duplicated."""
        entry = CategoryEntry(
            major_code="402", sub_code="02", sub_name="taxi",
            synonyms="taxi fare, Cab, cab, ",
        )
        assert entry.synonyms == ["taxi fare", "Cab"]
        assert entry.code == "402-02"
        assert entry.has_synonym("CAB")

    def test_category_entry_is_income(self):
        assert CategoryEntry(major_code="801", sub_code="01", sub_name="salary").is_income
        assert not CategoryEntry(major_code="301", sub_code="01", sub_name="lunch").is_income

    def test_preference_record_normalizes_term(self):
        record = PreferenceRecord(user_id="U1", input_term="  Team LUNCH ", category_code="301-01")
        assert record.input_term == "team lunch"
        assert record.use_count == 1

    def test_preference_record_rejects_bad_code(self):
        with pytest.raises(ValidationError):
            PreferenceRecord(user_id="U1", input_term="x", category_code="30101")

    def test_split_category_code(self):
        assert split_category_code("301-01") == ("301", "01")
        with pytest.raises(ValueError):
            split_category_code("301-")

    def test_draft_action_follows_major_code(self):
        assert make_draft(major_code="801").action == TransactionAction.INCOME
        assert make_draft(major_code="301").action == TransactionAction.EXPENSE

    def test_draft_rejects_mismatched_action(self):
        """Test that an income action on an expense major is invalid."""
        data = make_draft().model_dump()
        data["action"] = TransactionAction.INCOME
        with pytest.raises(ValidationError):
            TransactionDraft(**data)

    def test_draft_rejects_zero_amount(self):
        with pytest.raises(ValidationError):
            make_draft(amount="0")


class TestOutcomeModels:
    """Tests for commit results, outcomes and partial data."""

    def test_partial_data_merge_ignores_none(self):
        partial = PartialData(subject="lunch").merge(subject=None, amount=Decimal("5"))
        assert partial.subject == "lunch"
        assert partial.amount == Decimal("5")

    def test_commit_result_cannot_succeed_and_retry(self):
        with pytest.raises(ValidationError):
            CommitResult(success=True, retryable=True)

    def test_outcome_success_matches_state(self):
        with pytest.raises(ValidationError):
            DispatchOutcome(success=True, state=DispatchState.FAILED_TERMINAL)

    def test_successful_outcome_has_no_error(self):
        with pytest.raises(ValidationError):
            DispatchOutcome(
                success=True,
                state=DispatchState.SUCCEEDED,
                error_kind=ErrorKind.COMMIT_FAILED,
            )

    def test_only_retryable_state_is_retryable(self):
        with pytest.raises(ValidationError):
            DispatchOutcome(
                success=False,
                state=DispatchState.FAILED_TERMINAL,
                retryable=True,
            )
        outcome = DispatchOutcome(
            success=False,
            state=DispatchState.FAILED_RETRYABLE,
            error_kind=ErrorKind.COMMIT_FAILED,
            retryable=True,
        )
        assert outcome.attempts == 1


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.MESSAGE_RECEIVED,
            description="Message received",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.ENTRY_COMMITTED,
            description="Entry committed",
            correlation_id="corr-1",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "entry_committed"
        assert log_dict["correlation_id"] == "corr-1"

    def test_audit_event_to_sheets_row(self):
        event = AuditEventBuilder.entry_committed(
            user_id="U1",
            entry_id="20240301-00001",
            category_code="301-01",
            amount=Decimal("250"),
            action="expense",
            correlation_id="corr-1",
            process_id="p1",
        )
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[5] == "20240301-00001"
        assert json.loads(row[9])["amount"] == "250"

    def test_commit_failed_severity(self):
        retryable = AuditEventBuilder.commit_failed("U1", "conflict", True, "c", "p")
        terminal = AuditEventBuilder.commit_failed("U1", "rejected", False, "c", "p")
        assert retryable.severity == AuditSeverity.WARNING
        assert terminal.severity == AuditSeverity.ERROR

    def test_long_subject_is_truncated_in_description(self):
        event = AuditEventBuilder.subject_unresolved("U1", "x" * 600, "c", "p")
        assert len(event.description) <= 500
        assert event.details["subject"] == "x" * 600
