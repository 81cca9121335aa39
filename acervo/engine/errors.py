"""
Acervo Error Hierarchy — Structured exceptions for the catalog and upload flow.

Every error carries a human-readable message plus arbitrary keyword context,
serializable to JSON for the structured event log and API error bodies.

Hierarchy:
    AcervoError
    ├── AcervoValidationError      — Request is missing/invalid data (caller must fix)
    ├── AcervoNotFoundError        — Lookup miss (valid query outcome)
    ├── AcervoConfigError          — Incomplete or invalid configuration
    ├── AcervoWorkflowError        — Illegal upload state transition
    ├── AcervoStorageWriteError    — Metadata document could not be written
    ├── AcervoStorageAuthError     — Storage backend rejected the credentials
    └── AcervoStorageRequestError  — Storage backend unreachable or rejected a call
        └── AcervoStorageTimeoutError
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class AcervoError(Exception):
    """
    Base error for all Acervo failures.
    All context is serializable to JSON.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.file_path: Optional[str] = context.get("file_path")
        self.record_id: Optional[str] = context.get("record_id")
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "file_path": self.file_path,
            "record_id": self.record_id,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("file_path", "record_id")
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.record_id:
            parts.append(f"record_id={self.record_id}")
        if self.file_path:
            parts.append(f"file_path={self.file_path}")
        return " | ".join(parts)


class AcervoValidationError(AcervoError):
    """
    Input validation failed (missing area/theme, empty filename, size limit).
    Includes field-level error details.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: List[str] = context.get("validation_errors") or []
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class AcervoNotFoundError(AcervoError):
    """Record (or storage object) not found."""
    pass


class AcervoConfigError(AcervoError):
    """Configuration error — invalid acervo.yaml or missing storage credentials."""
    pass


class AcervoWorkflowError(AcervoError):
    """Upload attempt asked to move between states that are not connected."""

    def __init__(self, message: str, **context: Any):
        self.from_state: Optional[str] = context.get("from_state")
        self.to_state: Optional[str] = context.get("to_state")
        super().__init__(message, **context)


class AcervoStorageWriteError(AcervoError):
    """The metadata document could not be durably written. Previous state is intact."""

    def __init__(self, message: str, **context: Any):
        self.db_file: Optional[str] = context.get("db_file")
        super().__init__(message, **context)


class AcervoStorageAuthError(AcervoError):
    """Storage backend refused the account credentials."""

    def __init__(self, message: str, **context: Any):
        self.status_code: Optional[int] = context.get("status_code")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["status_code"] = self.status_code
        return d


class AcervoStorageRequestError(AcervoError):
    """Storage backend call failed (network error or non-2xx response)."""

    def __init__(self, message: str, **context: Any):
        self.operation: Optional[str] = context.get("operation")
        self.status_code: Optional[int] = context.get("status_code")
        self.response_body: Optional[str] = context.get("response_body")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["operation"] = self.operation
        d["status_code"] = self.status_code
        return d


class AcervoStorageTimeoutError(AcervoStorageRequestError):
    """Storage backend call exceeded its timeout."""

    def __init__(self, message: str, **context: Any):
        self.timeout_seconds: Optional[float] = context.get("timeout_seconds")
        super().__init__(message, **context)
