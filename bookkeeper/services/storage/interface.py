"""
Abstract Storage Interfaces

DESIGN DECISION: The resolver core never talks to a database directly.
It consumes four collaborators through these interfaces:
1. Ledger store - commits drafts, classifies its own failures
2. Category dictionary - lists a ledger's categories, learns synonyms
3. Preference store - remembers what each user typed before
4. Audit storage - append-only event log

This allows us to:
1. Use in-memory storage for testing
2. Swap Google Sheets for Firestore/PostgreSQL without touching the pipeline
3. Keep per-user serialization a storage concern, not a pipeline concern
"""

from abc import ABC, abstractmethod
from typing import Optional

from bookkeeper.models.audit import AuditEvent
from bookkeeper.models.transaction import (
    CategoryEntry,
    CommitResult,
    PreferenceRecord,
    TransactionDraft,
)


# Payment methods a ledger accepts. Drafts may carry anything; stores decide.
SUPPORTED_PAYMENT_METHODS = ("cash", "card", "transfer", "mobile pay")

_PAYMENT_METHOD_ALIASES = {
    "現金": "cash",
    "刷卡": "card",
    "信用卡": "card",
    "credit card": "card",
    "轉帳": "transfer",
    "行動支付": "mobile pay",
}


class LedgerStoreInterface(ABC):
    """
    Abstract interface for committing ledger entries.

    Implementations must:
    - create at most one entry per accepted commit
    - classify their own failures via CommitResult.retryable
    """

    @abstractmethod
    async def commit(self, draft: TransactionDraft) -> CommitResult:
        """
        Persist a transaction draft.

        Args:
            draft: The validated draft to store

        Returns:
            CommitResult with the new entry id, or the error and whether
            retrying could help

        Raises:
            TransientStorageError: backend temporarily unavailable (retryable)
            StorageError: any other storage failure (terminal)
        """
        pass


class CategoryDictionaryInterface(ABC):
    """
    Abstract interface for a ledger's category dictionary.
    """

    @abstractmethod
    async def list_active_entries(self, ledger_id: str) -> list[CategoryEntry]:
        """
        List all active category entries of a ledger.

        Args:
            ledger_id: The ledger to read

        Returns:
            Entries in a stable order (may be empty)
        """
        pass

    @abstractmethod
    async def append_synonym(
        self,
        ledger_id: str,
        category_code: str,
        term: str,
    ) -> bool:
        """
        Add a synonym to a category entry.

        Args:
            ledger_id: The ledger owning the entry
            category_code: "major-sub" code of the entry
            term: Synonym to add

        Returns:
            True if the synonym is present afterwards (added or already known)

        Raises:
            NotFoundError: If no entry has this code
        """
        pass


class PreferenceStoreInterface(ABC):
    """
    Abstract interface for learned user preferences.
    """

    @abstractmethod
    async def lookup(self, user_id: str, term: str) -> Optional[PreferenceRecord]:
        """
        Find the preferred category for a term.

        Args:
            user_id: The user who typed the term
            term: The term (normalized by the store)

        Returns:
            The most used record for this term, or None
        """
        pass

    @abstractmethod
    async def upsert(
        self,
        user_id: str,
        term: str,
        category_code: str,
    ) -> PreferenceRecord:
        """
        Create a preference record or bump its use count.

        Returns:
            The record after the update
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation token (one message, all attempts).

        Returns:
            List of related events in chronological order
        """
        pass


def normalize_payment_method(method: Optional[str], major_code: str) -> str:
    """
    Map a draft's payment method onto the supported list.

    An absent method defaults to cash for major codes starting with 8 or 9,
    and to card otherwise.

    Raises:
        UnsupportedPaymentMethodError: If the method isn't recognized
    """
    if method is None or not method.strip():
        return "cash" if major_code[:1] in ("8", "9") else "card"

    key = method.strip().lower()
    key = _PAYMENT_METHOD_ALIASES.get(key, key)
    if key in SUPPORTED_PAYMENT_METHODS:
        return key

    raise UnsupportedPaymentMethodError(
        f'Unsupported payment method "{method}". '
        f"Supported: {', '.join(SUPPORTED_PAYMENT_METHODS)}"
    )


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class TransientStorageError(StorageError):
    """Backend temporarily unavailable; the operation may succeed later."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class UnsupportedPaymentMethodError(StorageError):
    """Payment method is not on the ledger's whitelist."""
    pass
