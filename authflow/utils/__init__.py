"""Shared utilities: audit logging, bounded waits, background tasks."""

from authflow.utils.audit import AuditEvent, log_audit_event
from authflow.utils.retry import backoff_delays, with_timeout
from authflow.utils.tasks import TaskRunner

__all__ = [
    "AuditEvent",
    "TaskRunner",
    "backoff_delays",
    "log_audit_event",
    "with_timeout",
]
