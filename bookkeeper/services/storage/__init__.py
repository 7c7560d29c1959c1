"""
Storage Services Package

Provides abstract interfaces for the pipeline's collaborators and concrete
implementations: in-memory (tests, local use) and Google Sheets (ledger and
audit log).
"""

from bookkeeper.services.storage.interface import (
    SUPPORTED_PAYMENT_METHODS,
    AuditStorageInterface,
    CategoryDictionaryInterface,
    LedgerStoreInterface,
    NotFoundError,
    PreferenceStoreInterface,
    StorageError,
    TransientStorageError,
    UnsupportedPaymentMethodError,
    normalize_payment_method,
)
from bookkeeper.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryCategoryDictionary,
    InMemoryLedgerStore,
    InMemoryPreferenceStore,
)
from bookkeeper.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CategoryDictionaryInterface",
    "LedgerStoreInterface",
    "PreferenceStoreInterface",
    "SUPPORTED_PAYMENT_METHODS",
    "normalize_payment_method",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "TransientStorageError",
    "UnsupportedPaymentMethodError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryCategoryDictionary",
    "InMemoryLedgerStore",
    "InMemoryPreferenceStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
]
