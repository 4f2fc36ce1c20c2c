"""Audit logging for list, share and credit operations.

Every authorization decision and every state-changing operation on a
verification list, share grant or credit balance is recorded here.
"""

import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi import Request

log = logging.getLogger("audit")


@dataclass
class AuditEvent:
    """Structured audit event."""

    action: str  # e.g., "list.start", "share.grant"
    principal: str = "anonymous"  # acting identity
    resource: str | None = None  # e.g., "list:<id>", "grant:<id>"
    status: str = "success"  # "success", "denied", "error"
    details: dict[str, Any] | None = None
    request_id: str | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class AuditLogger:
    """Audit logger for verification operations.

    Logs events as structured JSON via Python's logging module and keeps
    an in-memory ring buffer of recent events.
    """

    MAX_BUFFER_SIZE = 1000

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._buffer: deque[dict] = deque(maxlen=self.MAX_BUFFER_SIZE)

    def log(
        self,
        event: AuditEvent | None = None,
        *,
        action: str | None = None,
        principal: str | None = None,
        resource: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        status: str = "success",
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> None:
        """Write an audit event to the log.

        Accepts either an AuditEvent object or keyword arguments.
        ``resource_type`` and ``resource_id`` combine into ``type:id``.
        """
        if not self.enabled:
            return

        if event is None:
            combined_resource = resource
            if resource_type and resource_id:
                combined_resource = f"{resource_type}:{resource_id}"
            elif resource_type:
                combined_resource = resource_type

            event = AuditEvent(
                action=action or "unknown",
                principal=principal or "anonymous",
                resource=combined_resource,
                status=status,
                details=details,
                request_id=request_id,
            )

        self._buffer.append(asdict(event))

        extra = {
            "type": "audit",
            "principal": event.principal,
            "action": event.action,
            "status": event.status,
        }
        if event.resource:
            extra["resource"] = event.resource
        if event.request_id:
            extra["request_id"] = event.request_id
        if event.details:
            extra["details"] = event.details

        if event.status in ("denied", "error"):
            log.warning(f"audit: {event.action} {event.status}", extra=extra)
        else:
            log.info(f"audit: {event.action} {event.status}", extra=extra)

    def get_recent_events(
        self,
        limit: int = 100,
        action_filter: str | None = None,
        status_filter: str | None = None,
        principal_filter: str | None = None,
    ) -> list[dict]:
        """Get recent audit events, newest first.

        Args:
            limit: Max events to return
            action_filter: Filter by action prefix (e.g., "list.")
            status_filter: Filter by status (e.g., "denied")
            principal_filter: Only events by this acting identity
        """
        events = list(self._buffer)
        events.reverse()

        if principal_filter:
            events = [e for e in events if e["principal"] == principal_filter]
        if action_filter:
            events = [e for e in events if e["action"].startswith(action_filter)]
        if status_filter:
            events = [e for e in events if e["status"] == status_filter]

        return events[:limit]

    def get_buffer_stats(self) -> dict:
        return {
            "buffer_size": len(self._buffer),
            "max_buffer_size": self.MAX_BUFFER_SIZE,
        }

    def log_access(
        self,
        action: str,
        principal_id: str,
        resource: str | None = None,
        status: str = "success",
        details: dict[str, Any] | None = None,
        request: Request | None = None,
    ) -> None:
        """Log a resource access event.

        Args:
            action: Action name (e.g., "list.delete", "share.revoke")
            principal_id: The acting identity
            resource: Resource identifier
            status: "success", "denied", or "error"
            details: Additional context
            request: Optional request for correlation ID
        """
        self.log(
            AuditEvent(
                action=action,
                principal=principal_id,
                resource=resource,
                status=status,
                details=details,
                request_id=_get_request_id(request),
            )
        )


def _get_request_id(request: Request | None) -> str | None:
    """Extract request ID from request headers if available."""
    if request is None:
        return None

    for header in ("X-Request-ID", "X-Correlation-ID", "Request-Id"):
        if header in request.headers:
            return request.headers[header]

    return None


# Global logger instance
_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    """Get the global audit logger instance."""
    global _audit_logger

    if _audit_logger is None:
        from bulkverify.config import AUDIT_ENABLED

        _audit_logger = AuditLogger(enabled=AUDIT_ENABLED)

    return _audit_logger


def reset_audit_logger() -> None:
    """Reset the global logger (for testing)."""
    global _audit_logger
    _audit_logger = None
