"""
In-Memory Storage Implementations

Used for tests and local development. Each class honours the same contract
as its Google Sheets / production counterpart, including returning copies
so callers can never mutate stored state by accident.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from bookkeeper.models.audit import AuditEvent
from bookkeeper.models.transaction import (
    CategoryEntry,
    CommitResult,
    PreferenceRecord,
    TransactionDraft,
    normalize_term,
)
from bookkeeper.services.storage.interface import (
    AuditStorageInterface,
    CategoryDictionaryInterface,
    LedgerStoreInterface,
    NotFoundError,
    PreferenceStoreInterface,
    UnsupportedPaymentMethodError,
    normalize_payment_method,
)


class InMemoryLedgerStore(LedgerStoreInterface):
    """
    Ledger store keeping committed drafts in a dict.

    Entry ids are YYYYMMDD-NNNNN, sequential per day.
    """

    def __init__(self):
        self.entries: dict[str, TransactionDraft] = {}
        self._sequence: dict[str, int] = defaultdict(int)

    def _next_entry_id(self, draft: TransactionDraft) -> str:
        day = draft.recorded_at.strftime("%Y%m%d")
        self._sequence[day] += 1
        return f"{day}-{self._sequence[day]:05d}"

    async def commit(self, draft: TransactionDraft) -> CommitResult:
        try:
            payment_method = normalize_payment_method(
                draft.payment_method,
                draft.major_code,
            )
        except UnsupportedPaymentMethodError as e:
            return CommitResult(success=False, error=str(e), retryable=False)

        entry_id = self._next_entry_id(draft)
        self.entries[entry_id] = draft.model_copy(
            update={"payment_method": payment_method}
        )
        return CommitResult(
            success=True,
            entry_id=entry_id,
            payment_method=payment_method,
        )


class InMemoryCategoryDictionary(CategoryDictionaryInterface):
    """
    Category dictionary keyed by ledger id.

    Ledgers without their own entries fall back to the template entries,
    mirroring how new ledgers are seeded from a shared structure.
    """

    def __init__(
        self,
        entries: Optional[dict[str, list[CategoryEntry]]] = None,
        template: Optional[list[CategoryEntry]] = None,
    ):
        self._entries: dict[str, list[CategoryEntry]] = {
            ledger_id: list(ledger_entries)
            for ledger_id, ledger_entries in (entries or {}).items()
        }
        self._template = list(template or [])

    def add_entries(self, ledger_id: str, entries: list[CategoryEntry]) -> None:
        """Add entries to a ledger, rejecting duplicate codes."""
        ledger = self._entries.setdefault(ledger_id, list(self._template))
        known = {entry.code for entry in ledger}
        for entry in entries:
            if entry.code in known:
                raise ValueError(f"Duplicate category code {entry.code} in {ledger_id}")
            known.add(entry.code)
            ledger.append(entry)

    async def list_active_entries(self, ledger_id: str) -> list[CategoryEntry]:
        ledger = self._entries.get(ledger_id, self._template)
        return [entry.model_copy(deep=True) for entry in ledger]

    async def append_synonym(
        self,
        ledger_id: str,
        category_code: str,
        term: str,
    ) -> bool:
        ledger = self._entries.setdefault(ledger_id, list(self._template))
        for idx, entry in enumerate(ledger):
            if entry.code != category_code:
                continue
            if entry.has_synonym(term):
                return True
            ledger[idx] = entry.model_copy(
                update={"synonyms": [*entry.synonyms, term.strip()]}
            )
            return True

        raise NotFoundError(f"Category {category_code} not found in {ledger_id}")


class InMemoryPreferenceStore(PreferenceStoreInterface):
    """Preference records keyed by (user_id, term, category_code)."""

    def __init__(self):
        self._records: dict[tuple[str, str, str], PreferenceRecord] = {}

    async def lookup(self, user_id: str, term: str) -> Optional[PreferenceRecord]:
        key = normalize_term(term)
        candidates = [
            record for (uid, t, _), record in self._records.items()
            if uid == user_id and t == key
        ]
        if not candidates:
            return None
        best = max(candidates, key=lambda r: (r.use_count, r.last_used_at))
        return best.model_copy()

    async def upsert(
        self,
        user_id: str,
        term: str,
        category_code: str,
    ) -> PreferenceRecord:
        key = (user_id, normalize_term(term), category_code)
        existing = self._records.get(key)
        now = datetime.now(timezone.utc)

        if existing:
            record = existing.model_copy(
                update={"use_count": existing.use_count + 1, "last_used_at": now}
            )
        else:
            record = PreferenceRecord(
                user_id=user_id,
                input_term=term,
                category_code=category_code,
                last_used_at=now,
            )

        self._records[key] = record
        return record.model_copy()


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: str,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)
