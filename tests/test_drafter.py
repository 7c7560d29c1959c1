"""Tests for the transaction drafter."""

from decimal import Decimal

import pytest

from bookkeeper.drafting import (
    TransactionDrafter,
    classify_user,
    decide_action,
    extract_remark,
)
from bookkeeper.errors import InvalidAmountError, UnknownSubjectError
from bookkeeper.models.transaction import (
    MatchMethod,
    ResolutionResult,
    TransactionAction,
    UserClassification,
)
from bookkeeper.parsing import InputParser

from conftest import LEDGER_ID


@pytest.fixture
def drafter(app_settings):
    return TransactionDrafter(app_settings)


@pytest.fixture
def resolve_to(category_entries):
    """Build a ResolutionResult for one of the fixture categories."""
    by_code = {entry.code: entry for entry in category_entries}

    def _resolve(code, method=MatchMethod.EXACT, confidence=1.0):
        return ResolutionResult(
            entry=by_code[code],
            match_method=method,
            confidence=confidence,
        )
    return _resolve


def draft_text(drafter, make_raw, resolution, text, **kwargs):
    parsed = InputParser().parse(text)
    return drafter.draft(parsed, resolution, make_raw(text, **kwargs), LEDGER_ID)


class TestTransactionDrafter:
    """Tests for building drafts from parsed input and resolutions."""

    def test_lunch_draft(self, drafter, make_raw, resolve_to):
        """Test the 'lunch 250 cash' example end to end."""
        draft = draft_text(drafter, make_raw, resolve_to("301-01"), "lunch 250 cash")
        assert draft.amount == Decimal("250")
        assert draft.action == TransactionAction.EXPENSE
        assert draft.payment_method == "cash"
        assert draft.category_code == "301-01"
        assert draft.category_name == "lunch"
        assert draft.remark_text == "lunch"
        assert draft.expense == Decimal("250")
        assert draft.income is None

    def test_income_major_code(self, drafter, make_raw, resolve_to):
        """Test that a major code starting with 8 is income."""
        draft = draft_text(drafter, make_raw, resolve_to("801-01"), "salary 50000 transfer")
        assert draft.action == TransactionAction.INCOME
        assert draft.income == Decimal("50000")
        assert draft.expense is None

    def test_income_defaults_to_cash(self, drafter, make_raw, resolve_to):
        """Test that 8xx majors without a payment method get cash."""
        draft = draft_text(drafter, make_raw, resolve_to("801-01"), "salary 50000")
        assert draft.payment_method == "cash"

    def test_nine_major_defaults_to_cash_but_is_expense(self, drafter, make_raw, resolve_to):
        """Test that 9xx majors default to cash without becoming income."""
        draft = draft_text(drafter, make_raw, resolve_to("901-01"), "interest 30")
        assert draft.payment_method == "cash"
        assert draft.action == TransactionAction.EXPENSE

    def test_expense_payment_left_for_ledger(self, drafter, make_raw, resolve_to):
        """Test that expenses without a payment method stay unset."""
        draft = draft_text(drafter, make_raw, resolve_to("301-02"), "dinner 300")
        assert draft.payment_method is None

    def test_unknown_payment_passes_through(self, drafter, make_raw, resolve_to):
        """Test that the drafter does not enforce the whitelist."""
        draft = draft_text(drafter, make_raw, resolve_to("301-02"), "dinner 300 bitcoin")
        assert draft.payment_method == "bitcoin"

    def test_unknown_subject(self, drafter, make_raw):
        """Test that a missing resolution is an UnknownSubject error."""
        with pytest.raises(UnknownSubjectError) as exc_info:
            draft_text(drafter, make_raw, None, "xyzzy 100 card")
        partial = exc_info.value.partial_data
        assert partial.subject == "xyzzy"
        assert partial.amount == Decimal("100")
        assert partial.payment_method == "card"

    @pytest.mark.parametrize("text", ["lunch -50", "lunch 0"])
    def test_non_positive_amount_rejected(self, drafter, make_raw, resolve_to, text):
        """Test that negative and zero amounts are InvalidAmount errors."""
        with pytest.raises(InvalidAmountError) as exc_info:
            draft_text(drafter, make_raw, resolve_to("301-01"), text)
        assert exc_info.value.partial_data.category_code == "301-01"

    def test_process_id_is_fresh(self, drafter, make_raw, resolve_to):
        """Test that each draft gets its own process id."""
        first = draft_text(drafter, make_raw, resolve_to("301-01"), "lunch 250")
        second = draft_text(drafter, make_raw, resolve_to("301-01"), "lunch 250")
        assert first.process_id != second.process_id

    def test_explicit_process_id(self, drafter, make_raw, resolve_to):
        parsed = InputParser().parse("lunch 250")
        draft = drafter.draft(
            parsed, resolve_to("301-01"), make_raw("lunch 250"), LEDGER_ID,
            process_id="abc12345",
        )
        assert draft.process_id == "abc12345"

    def test_traceability_fields(self, drafter, make_raw, resolve_to):
        """Test that the draft carries user, ledger and match details."""
        resolution = resolve_to("402-02", MatchMethod.SYNONYM)
        raw = make_raw("taxi fare 180", correlation_token="corr-1")
        draft = drafter.draft(InputParser().parse(raw.text), resolution, raw, LEDGER_ID)
        assert draft.original_subject_text == "taxi fare"
        assert draft.subject_text == "taxi"
        assert draft.ledger_id == LEDGER_ID
        assert draft.correlation_token == "corr-1"
        assert draft.match_method == MatchMethod.SYNONYM
        assert draft.recorded_at == raw.received_at

    def test_manager_classification(self, drafter, make_raw, resolve_to):
        draft = draft_text(
            drafter, make_raw, resolve_to("301-01"), "lunch 250", user_id="BOSS1"
        )
        assert draft.user_classification == UserClassification.MANAGER


class TestDraftHelpers:
    """Tests for the action rule, user classification and remarks."""

    def test_decide_action(self):
        assert decide_action("801") == TransactionAction.INCOME
        assert decide_action("301") == TransactionAction.EXPENSE
        assert decide_action("901") == TransactionAction.EXPENSE

    def test_classify_user(self, app_settings):
        assert classify_user("BOSS2", app_settings) == UserClassification.MANAGER
        assert classify_user("SYSTEM_cron", app_settings) == UserClassification.SYSTEM
        assert classify_user("U123", app_settings) == UserClassification.JUNIOR

    def test_remark_removes_amount_and_payment(self):
        assert extract_remark("lunch 250 cash", "250", "cash") == "lunch"

    def test_remark_removes_currency_suffix(self):
        assert extract_remark("lunch 250元 with team", "250", None) == "lunch with team"

    def test_remark_removes_spaced_currency_unit_and_payment(self):
        assert extract_remark("lunch 250 元 cash", "250", "cash") == "lunch"

    def test_remark_removes_surface_payment_term(self):
        """Test that 'credit card' is removed when the method is 'card'."""
        assert extract_remark("dinner 300 credit card", "300", "card") == "dinner"

    def test_remark_ambiguous_amount_keeps_original(self):
        """Test that a repeated amount leaves the text untouched."""
        text = "250 lunch 250"
        assert extract_remark(text, "250", None) == text

    def test_remark_amount_inside_longer_number_is_ignored(self):
        assert extract_remark("room 12 rent 3000", "3000", None) == "room 12 rent"

    def test_remark_ambiguous_payment_keeps_original(self):
        text = "cash advance 500 cash"
        assert extract_remark(text, "500", "cash") == text
