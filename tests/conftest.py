"""
Shared fixtures for Chat Bookkeeper tests.

Test strategy:
1. Unit tests for individual stages (parser, resolver, drafter, formatter)
2. Pipeline tests through the orchestrator with in-memory collaborators
3. No real API calls in tests (Google Sheets is mocked)
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from bookkeeper.audit import AuditLogger
from bookkeeper.config import AppSettings, DispatchSettings, ResolverSettings
from bookkeeper.models.transaction import (
    CategoryEntry,
    CommitResult,
    MatchMethod,
    MessageSource,
    RawMessage,
    TransactionAction,
    TransactionDraft,
)
from bookkeeper.orchestrator import DispatchOrchestrator, PipelineContext
from bookkeeper.services.storage import (
    CategoryDictionaryInterface,
    InMemoryAuditStorage,
    InMemoryCategoryDictionary,
    InMemoryLedgerStore,
    InMemoryPreferenceStore,
    LedgerStoreInterface,
    StorageError,
)


USER_ID = "U123"
LEDGER_ID = "user_U123"

# 2024-03-01 04:30 UTC, 12:30 in Taipei
SENT_AT_MILLIS = int(datetime(2024, 3, 1, 4, 30, tzinfo=timezone.utc).timestamp() * 1000)


def make_draft(major_code="301", payment_method="cash", amount="250"):
    """A valid draft for storage and model tests."""
    action = TransactionAction.INCOME if major_code.startswith("8") else TransactionAction.EXPENSE
    return TransactionDraft(
        subject_text="lunch",
        original_subject_text="team lunch",
        category_code=f"{major_code}-01",
        category_name="lunch",
        major_code=major_code,
        sub_code="01",
        amount=Decimal(amount),
        raw_amount_text=amount,
        action=action,
        payment_method=payment_method,
        remark_text="team lunch",
        process_id="p1234567",
        user_id=USER_ID,
        ledger_id=LEDGER_ID,
        recorded_at=datetime(2024, 3, 1, 4, 30, tzinfo=timezone.utc),
        correlation_token="corr-1",
        match_method=MatchMethod.COMPOUND,
        confidence=0.5,
    )


class ScriptedLedgerStore(LedgerStoreInterface):
    """
    Ledger store that replays a script of results (or exceptions) and
    succeeds once the script runs out.
    """

    def __init__(self, script=None):
        self.script = list(script or [])
        self.calls = []

    async def commit(self, draft):
        self.calls.append(draft)
        if self.script:
            step = self.script.pop(0)
        else:
            step = CommitResult(success=True, entry_id=f"20240301-{len(self.calls):05d}")
        if isinstance(step, Exception):
            raise step
        return step


class FailingDictionary(CategoryDictionaryInterface):
    """Dictionary whose backend is down."""

    async def list_active_entries(self, ledger_id):
        raise StorageError("dictionary unavailable")

    async def append_synonym(self, ledger_id, category_code, term):
        raise StorageError("dictionary unavailable")


class FailingPreferenceStore(InMemoryPreferenceStore):
    """Preference store that reads fine but cannot write."""

    async def upsert(self, user_id, term, category_code):
        raise StorageError("preference store is read-only")


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every delay."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def category_entries():
    return [
        CategoryEntry(
            major_code="301", major_name="Food",
            sub_code="01", sub_name="lunch", synonyms=["midday meal"],
        ),
        CategoryEntry(
            major_code="301", major_name="Food",
            sub_code="02", sub_name="dinner",
        ),
        CategoryEntry(
            major_code="402", major_name="Transport",
            sub_code="02", sub_name="taxi", synonyms="taxi fare, cab",
        ),
        CategoryEntry(
            major_code="801", major_name="Income",
            sub_code="01", sub_name="salary", synonyms=["paycheck"],
        ),
        CategoryEntry(
            major_code="901", major_name="Other",
            sub_code="01", sub_name="interest",
        ),
    ]


@pytest.fixture
def dictionary(category_entries):
    return InMemoryCategoryDictionary(entries={LEDGER_ID: category_entries})


@pytest.fixture
def preferences():
    return InMemoryPreferenceStore()


@pytest.fixture
def ledger_store():
    return InMemoryLedgerStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def resolver_settings():
    return ResolverSettings()


@pytest.fixture
def dispatch_settings():
    return DispatchSettings(max_attempts=3, base_delay_seconds=1.0)


@pytest.fixture
def app_settings():
    return AppSettings(
        timezone="Asia/Taipei",
        ledger_id_template="user_{user_id}",
        manager_user_ids="BOSS1,BOSS2",
        system_user_prefix="SYSTEM_",
    )


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_raw():
    """Build a RawMessage with sensible defaults."""
    def _make(text, user_id=USER_ID, source=MessageSource.CHAT, **kwargs):
        return RawMessage(
            text=text,
            user_id=user_id,
            timestamp_millis=SENT_AT_MILLIS,
            source=source,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_context(
    dictionary,
    preferences,
    ledger_store,
    audit_storage,
    resolver_settings,
    dispatch_settings,
    app_settings,
):
    """Build a PipelineContext, overriding any collaborator."""
    def _make(**overrides):
        params = {
            "dictionary": dictionary,
            "preferences": preferences,
            "ledger_store": ledger_store,
            "audit_logger": AuditLogger(audit_storage),
            "resolver_settings": resolver_settings,
            "dispatch_settings": dispatch_settings,
            "app_settings": app_settings,
        }
        params.update(overrides)
        return PipelineContext(**params)
    return _make


@pytest.fixture
def make_orchestrator(make_context, recording_sleep):
    def _make(**overrides):
        return DispatchOrchestrator(make_context(**overrides), sleep=recording_sleep)
    return _make
