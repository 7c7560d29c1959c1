"""
Audit Logger

DESIGN DECISION: Every stage a message passes through is logged.
This provides:
1. Traceability of one message across all of its attempts
2. Debugging capability when a subject fails to resolve
3. A record of what the assistant learned from each user

The audit logger:
- Is async so storage writes fit the pipeline's flow
- Gracefully handles failures (a broken audit sheet never fails a message)
- Tags every event with the message's correlation token
"""

from decimal import Decimal
from typing import Optional
from uuid import uuid4

import structlog

from bookkeeper.models.audit import AuditEvent, AuditEventBuilder
from bookkeeper.services.storage import AuditStorageInterface, StorageError


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (Google Sheets in production), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("bookkeeper.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except StorageError as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_message_received(
        self,
        user_id: str,
        text: str,
        source: str,
        correlation_id: str,
    ) -> None:
        """Log an incoming message."""
        await self.log(AuditEventBuilder.message_received(
            user_id=user_id,
            text=text,
            source=source,
            correlation_id=correlation_id,
        ))

    async def log_subject_resolved(
        self,
        user_id: str,
        subject: str,
        category_code: str,
        match_method: str,
        confidence: float,
        correlation_id: str,
        process_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.subject_resolved(
            user_id=user_id,
            subject=subject,
            category_code=category_code,
            match_method=match_method,
            confidence=confidence,
            correlation_id=correlation_id,
            process_id=process_id,
        ))

    async def log_entry_committed(
        self,
        user_id: str,
        entry_id: str,
        category_code: str,
        amount: Decimal,
        action: str,
        correlation_id: str,
        process_id: str,
    ) -> None:
        """Log a successful ledger write."""
        await self.log(AuditEventBuilder.entry_committed(
            user_id=user_id,
            entry_id=entry_id,
            category_code=category_code,
            amount=amount,
            action=action,
            correlation_id=correlation_id,
            process_id=process_id,
        ))

    async def log_commit_failed(
        self,
        user_id: str,
        error_message: str,
        retryable: bool,
        correlation_id: str,
        process_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.commit_failed(
            user_id=user_id,
            error_message=error_message,
            retryable=retryable,
            correlation_id=correlation_id,
            process_id=process_id,
        ))

    async def log_retry_scheduled(
        self,
        user_id: str,
        attempt: int,
        max_attempts: int,
        delay_seconds: float,
        correlation_id: str,
    ) -> None:
        """Log that another attempt will follow after a back-off."""
        await self.log(AuditEventBuilder.retry_scheduled(
            user_id=user_id,
            attempt=attempt,
            max_attempts=max_attempts,
            delay_seconds=delay_seconds,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_token() -> str:
    """
    Create a new correlation token for tracking related events.

    One token per incoming message; every attempt and every audit event
    for that message carries it.
    """
    return uuid4().hex


def create_process_id() -> str:
    """Short id identifying a single processing attempt."""
    return uuid4().hex[:8]
