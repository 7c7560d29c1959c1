"""Services package."""

from bookkeeper.services.storage import (
    AuditStorageInterface,
    CategoryDictionaryInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryAuditStorage,
    InMemoryCategoryDictionary,
    InMemoryLedgerStore,
    InMemoryPreferenceStore,
    LedgerStoreInterface,
    NotFoundError,
    PreferenceStoreInterface,
    StorageError,
    TransientStorageError,
)

__all__ = [
    "AuditStorageInterface",
    "CategoryDictionaryInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
    "InMemoryAuditStorage",
    "InMemoryCategoryDictionary",
    "InMemoryLedgerStore",
    "InMemoryPreferenceStore",
    "LedgerStoreInterface",
    "NotFoundError",
    "PreferenceStoreInterface",
    "StorageError",
    "TransientStorageError",
]
