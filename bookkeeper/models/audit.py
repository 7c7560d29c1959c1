"""
Audit Models for Chat Bookkeeper

Every stage of message processing is logged for audit purposes.
This provides:
1. Traceability of each message across retries
2. Debugging information when a subject fails to resolve
3. A record of what the assistant learned (preferences, synonyms)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the message pipeline has its own event type.
    """
    # Intake
    MESSAGE_RECEIVED = "message_received"
    MESSAGE_UNROUTED = "message_unrouted"

    # Parsing & resolution
    PARSE_FAILED = "parse_failed"
    SUBJECT_RESOLVED = "subject_resolved"
    SUBJECT_UNRESOLVED = "subject_unresolved"
    DRAFT_REJECTED = "draft_rejected"

    # Persistence
    ENTRY_COMMITTED = "entry_committed"
    COMMIT_FAILED = "commit_failed"
    RETRY_SCHEDULED = "retry_scheduled"
    RETRIES_EXHAUSTED = "retries_exhausted"

    # Learning
    PREFERENCE_LEARNED = "preference_learned"
    SYNONYM_LEARNED = "synonym_learned"

    # System events
    SYSTEM_ERROR = "system_error"
    REPLY_FORMAT_FAILED = "reply_format_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - who and which attempt
    user_id: Optional[str] = Field(
        default=None,
        description="Messenger user the event relates to"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Ledger entry id, category code or similar"
    )
    correlation_id: Optional[str] = Field(
        default=None,
        description="Correlation token of the message being processed"
    )
    process_id: Optional[str] = Field(
        default=None,
        description="Per-attempt process id"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_id": self.entity_id,
            "correlation_id": self.correlation_id,
            "process_id": self.process_id,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_id,
         correlation_id, process_id, description, details_json, error_code,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_id or "",
            self.correlation_id or "",
            self.process_id or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.message_received(user_id, text, correlation_id)
        event = AuditEventBuilder.entry_committed(entry_id, ..., correlation_id)
    """

    @staticmethod
    def message_received(
        user_id: str,
        text: str,
        source: str,
        correlation_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_RECEIVED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Message received from {source}",
            details={
                "text": text[:200],
                "source": source,
            },
        )

    @staticmethod
    def message_unrouted(
        user_id: str,
        source: str,
        correlation_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_UNROUTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"No handler for messages from {source}",
            details={"source": source},
        )

    @staticmethod
    def parse_failed(
        user_id: str,
        error_kind: str,
        error_message: str,
        correlation_id: str,
        process_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARSE_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            process_id=process_id,
            description=f"Message could not be parsed: {error_kind}",
            error_code=error_kind,
            error_message=error_message,
        )

    @staticmethod
    def subject_resolved(
        user_id: str,
        subject: str,
        category_code: str,
        match_method: str,
        confidence: float,
        correlation_id: str,
        process_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBJECT_RESOLVED,
            user_id=user_id,
            entity_id=category_code,
            correlation_id=correlation_id,
            process_id=process_id,
            description=f"'{subject[:100]}' resolved to {category_code} via {match_method}",
            details={
                "subject": subject,
                "match_method": match_method,
                "confidence": round(confidence, 4),
            },
        )

    @staticmethod
    def subject_unresolved(
        user_id: str,
        subject: str,
        correlation_id: str,
        process_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBJECT_UNRESOLVED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            process_id=process_id,
            description=f"No category matches '{subject[:100]}'",
            details={"subject": subject},
        )

    @staticmethod
    def draft_rejected(
        user_id: str,
        error_kind: str,
        error_message: str,
        correlation_id: str,
        process_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            process_id=process_id,
            description=f"Draft rejected: {error_kind}",
            error_code=error_kind,
            error_message=error_message,
        )

    @staticmethod
    def entry_committed(
        user_id: str,
        entry_id: str,
        category_code: str,
        amount: Decimal,
        action: str,
        correlation_id: str,
        process_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_COMMITTED,
            user_id=user_id,
            entity_id=entry_id,
            correlation_id=correlation_id,
            process_id=process_id,
            description=f"Entry {entry_id} committed: {action} {amount} ({category_code})",
            details={
                "category_code": category_code,
                "amount": str(amount),
                "action": action,
            },
        )

    @staticmethod
    def commit_failed(
        user_id: str,
        error_message: str,
        retryable: bool,
        correlation_id: str,
        process_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMIT_FAILED,
            severity=AuditSeverity.WARNING if retryable else AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            process_id=process_id,
            description="Ledger store rejected the entry",
            details={"retryable": retryable},
            error_message=error_message,
        )

    @staticmethod
    def retry_scheduled(
        user_id: str,
        attempt: int,
        max_attempts: int,
        delay_seconds: float,
        correlation_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RETRY_SCHEDULED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Retrying ({attempt}/{max_attempts}) after {delay_seconds:.1f}s",
            details={
                "attempt": attempt,
                "max_attempts": max_attempts,
                "delay_seconds": delay_seconds,
            },
        )

    @staticmethod
    def retries_exhausted(
        user_id: str,
        attempts: int,
        last_error: Optional[str],
        correlation_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RETRIES_EXHAUSTED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Giving up after {attempts} attempts",
            details={"attempts": attempts},
            error_message=last_error,
        )

    @staticmethod
    def preference_learned(
        user_id: str,
        term: str,
        category_code: str,
        correlation_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PREFERENCE_LEARNED,
            user_id=user_id,
            entity_id=category_code,
            correlation_id=correlation_id,
            description=f"Learned preference '{term[:100]}' -> {category_code}",
            details={"term": term},
        )

    @staticmethod
    def synonym_learned(
        user_id: str,
        term: str,
        category_code: str,
        correlation_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNONYM_LEARNED,
            user_id=user_id,
            entity_id=category_code,
            correlation_id=correlation_id,
            description=f"Learned synonym '{term[:100]}' for {category_code}",
            details={"term": term},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_code=error_type,
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def reply_format_failed(
        error_message: str,
        correlation_id: Optional[str] = None,
        process_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPLY_FORMAT_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            process_id=process_id,
            description="Reply could not be formatted; fallback message sent",
            error_code="FormatError",
            error_message=error_message,
        )
