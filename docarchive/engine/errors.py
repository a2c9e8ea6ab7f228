"""
docarchive Error Hierarchy — Structured exceptions for the archive explorer.

Every error carries a JSON-serializable context so it can be written to the
structured event logs and surfaced verbatim to administrators.

Hierarchy:
    ArchiveError
    ├── ArchiveSecurityError       — Caller not entitled to the operation
    ├── ArchiveValidationError     — Input validation failed
    ├── ArchiveHierarchyError      — Malformed category hierarchy (strict mode only)
    ├── ArchiveStoreError          — Backing store answered with an error status
    │   └── ArchiveMutationRejected — Store refused an admin mutation
    ├── ArchiveNetworkError        — Transport failure, retries exhausted
    └── ArchiveConfigError         — Invalid docarchive.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ArchiveError(Exception):
    """
    Base error for all docarchive failures.
    Structured for logging — all context serializable to JSON.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.object_ref: Optional[str] = context.get("object_ref")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "object_ref": self.object_ref,
            "retryable": self.retryable,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k != "object_ref"
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.object_ref:
            parts.append(f"object_ref={self.object_ref}")
        return " | ".join(parts)


class ArchiveSecurityError(ArchiveError):
    """
    Caller is not entitled to the requested operation.
    Includes the caller role and the operation that was refused.
    """

    def __init__(self, message: str, **context: Any):
        self.role: Optional[str] = context.get("role")
        self.required_role: Optional[str] = context.get("required_role")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["role"] = self.role
        d["required_role"] = self.required_role
        return d


class ArchiveValidationError(ArchiveError):
    """
    Input validation failed (unknown visibility tag, sort key, upload limits).
    Includes field-level error details.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[list] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class ArchiveHierarchyError(ArchiveError):
    """Category hierarchy has orphans, self references or cycles."""

    def __init__(self, message: str, **context: Any):
        self.report: Optional[Dict[str, Any]] = context.get("report")
        super().__init__(message, **context)


class ArchiveStoreError(ArchiveError):
    """Backing store answered with a non-2xx status."""

    def __init__(self, message: str, **context: Any):
        self.status_code: Optional[int] = context.get("status_code")
        self.response_body: Optional[Any] = context.get("response_body")
        self.path: Optional[str] = context.get("path")
        super().__init__(message, **context)

    @property
    def retryable(self) -> bool:
        return self.status_code is not None and self.status_code >= 500

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["status_code"] = self.status_code
        d["path"] = self.path
        return d


class ArchiveMutationRejected(ArchiveStoreError):
    """
    Store refused an admin mutation (e.g. deleting a category that still has
    children or documents). The message is the store's own wording.
    """

    def __init__(self, message: str, **context: Any):
        self.operation: Optional[str] = context.get("operation")
        self.record_id: Optional[int] = context.get("record_id")
        super().__init__(message, **context)

    @property
    def retryable(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["operation"] = self.operation
        d["record_id"] = self.record_id
        return d


class ArchiveNetworkError(ArchiveError):
    """Transport failure talking to the store (timeout, refused, reset)."""

    def __init__(self, message: str, **context: Any):
        self.attempts: Optional[int] = context.get("attempts")
        super().__init__(message, **context)

    @property
    def retryable(self) -> bool:
        return True


class ArchiveConfigError(ArchiveError):
    """Configuration error — invalid docarchive.yaml."""
    pass


# ---------------------------------------------------------------------------
# Store error message extraction
# ---------------------------------------------------------------------------

_STATUS_MESSAGES = {
    401: "Please log in again. Your session may have expired.",
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
}


def extract_error_message(
    status_code: Optional[int],
    body: Any,
    default: str = "An error occurred",
) -> str:
    """
    Turn a store error response into the message shown to the user.

    Order: plain string body, ``detail``, ``message``, ``error``, field
    errors, then a status-specific fallback.
    """
    if isinstance(body, str) and body.strip():
        return body.strip()

    if isinstance(body, dict):
        for key in ("detail", "message", "error"):
            value = body.get(key)
            if value:
                return str(value)

        if body:
            field_errors = []
            for field, value in body.items():
                if isinstance(value, list):
                    field_errors.append(f"{field}: {', '.join(str(v) for v in value)}")
                else:
                    field_errors.append(f"{field}: {value}")
            return f"Validation errors: {'; '.join(field_errors)}"

    if status_code in _STATUS_MESSAGES:
        return _STATUS_MESSAGES[status_code]
    if status_code is not None and status_code >= 500:
        return "A server error occurred. Please try again later."
    return default
