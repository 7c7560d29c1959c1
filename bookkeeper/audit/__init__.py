"""Audit logging package."""

from bookkeeper.audit.logger import (
    AuditLogger,
    create_correlation_token,
    create_process_id,
)

__all__ = ["AuditLogger", "create_correlation_token", "create_process_id"]
