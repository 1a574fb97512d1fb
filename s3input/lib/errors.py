"""Structured exception hierarchy for S3 ingestion.

Provides specific exception types for the failure modes of the
discovery and processing engine, with rich context for debugging
and troubleshooting.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "IngestError",
    "ConfigurationError",
    "ObjectStoreError",
    "ObjectFetchError",
    "DecodeError",
    "PostProcessingError",
]


class IngestError(Exception):
    """Base exception for all ingestion errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.bucket = bucket
        self.key = key
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if bucket or key:
            location = f"s3://{bucket or '?'}/{key or ''}"
            parts.insert(0, f"[{location}]")

        if self.details:
            detail_lines = [f"  {k}: {v}" for k, v in self.details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "bucket": self.bucket,
            "key": self.key,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(IngestError):
    """Error in input configuration.

    Raised at startup, before the poll loop begins, when configuration
    is invalid, incomplete or contradictory.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class ObjectStoreError(IngestError):
    """Error talking to the object store.

    Raised for listing, relocation, deletion and bucket management
    failures. These are usually transient; the next poll cycle retries.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.operation = operation
        self.cause = cause

        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Check that the bucket exists, credentials are valid and the "
                "endpoint is reachable."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class ObjectFetchError(ObjectStoreError):
    """Error reading an object's content."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("operation", "read")
        super().__init__(message, **kwargs)


class DecodeError(IngestError):
    """Malformed object content.

    Raised when decompression or the codec fails. Isolated to the
    offending object; the checkpoint is not advanced for it.
    """

    def __init__(
        self,
        message: str,
        *,
        codec: Optional[str] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.codec = codec
        self.cause = cause

        details = kwargs.pop("details", {})
        if codec:
            details["codec"] = codec
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class PostProcessingError(IngestError):
    """Relocation, deletion or local backup failed after delivery."""

    def __init__(
        self,
        message: str,
        *,
        action: Optional[str] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.action = action
        self.cause = cause

        details = kwargs.pop("details", {})
        if action:
            details["action"] = action
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Records were already delivered. The object will be selected "
                "again next cycle, so downstream may see duplicates."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)
