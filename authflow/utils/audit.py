"""
Structured Audit Logging Utility.

Every state change that matters after the fact (profile created, race
resolved, onboarding redirect, profile completed) is logged as a
structured JSON object.  Provides a Pydantic-validated model and a single
function for consistent audit trail entries.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from authflow.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event"]

# Scalar values only; nested structures should be modelled explicitly.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry.

    Every audit event is validated against this model before it is
    serialised to JSON and handed to the logger, so malformed payloads
    fail at the point of origin.
    """

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
) -> AuditEvent:
    """Log a structured JSON audit event and return it.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"PROFILE_CREATE"``,
            ``"PROFILE_RACE_RESOLVED"``, ``"ONBOARDING_REDIRECT"``).
        entity_type: Type of entity affected (e.g. ``"Profile"``,
            ``"Session"``).
        entity_id: Primary key of the affected entity.
        user_id: Identity id of the user the change belongs to.
        details: Optional additional context.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info(
        "AUDIT: %s",
        json.dumps(event.model_dump(), default=str),
        extra={"event": action},
    )
    return event
