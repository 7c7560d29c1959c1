"""
Data Models Package

This package contains all Pydantic models used in the Chat Bookkeeper system.
All data flowing through the pipeline must conform to these schemas.
"""

from bookkeeper.models.transaction import (
    CategoryEntry,
    CommitResult,
    Destination,
    DispatchOutcome,
    DispatchState,
    ErrorKind,
    MatchMethod,
    MessageSource,
    ParsedInput,
    PartialData,
    PreferenceRecord,
    RawMessage,
    ReplyMessage,
    ResolutionResult,
    TransactionAction,
    TransactionDraft,
    UserClassification,
    normalize_term,
    split_category_code,
)
from bookkeeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Pipeline models
    "CategoryEntry",
    "CommitResult",
    "Destination",
    "DispatchOutcome",
    "DispatchState",
    "ErrorKind",
    "MatchMethod",
    "MessageSource",
    "ParsedInput",
    "PartialData",
    "PreferenceRecord",
    "RawMessage",
    "ReplyMessage",
    "ResolutionResult",
    "TransactionAction",
    "TransactionDraft",
    "UserClassification",
    "normalize_term",
    "split_category_code",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
