"""Error definitions for the feedcast system."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Categories of errors that can occur in the system."""

    VALIDATION_ERROR = "validation_error"
    TRANSITION_ERROR = "transition_error"
    NOT_FOUND = "not_found"
    RENDERER_ERROR = "renderer_error"
    PROCESSING_ERROR = "processing_error"
    CACHE_ERROR = "cache_error"
    EDGE_CACHE_ERROR = "edge_cache_error"
    CONFIGURATION_ERROR = "configuration_error"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BaseError(Exception):
    """Base error class for all feedcast errors.

    Every error carries a stable ``kind`` string, a human-readable message and
    a ``retryable`` flag telling the caller whether trying again can help.
    """

    kind = "internal_error"
    retryable = False

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        severity: ErrorSeverity,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize base error.

        Args:
            message: Error message
            category: Error category
            severity: Error severity
            error_id: Optional unique error ID
            details: Optional error details
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.error_id = error_id
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Return the user-visible representation of the error."""
        return {
            "error": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, details={self.details})"


class ValidationError(BaseError):
    """Error raised when input to a transition or intake is malformed."""

    kind = "validation_error"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.LOW,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        if field is not None:
            details.setdefault("field", field)
        super().__init__(message, ErrorCategory.VALIDATION_ERROR, severity, error_id, details)
        self.field = field


class InvalidTransitionError(BaseError):
    """Error raised when a submission status change is not permitted."""

    kind = "invalid_transition"

    def __init__(
        self,
        source: str,
        target: str,
        severity: ErrorSeverity = ErrorSeverity.LOW,
        error_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Cannot transition submission from '{source}' to '{target}'",
            ErrorCategory.TRANSITION_ERROR,
            severity,
            error_id,
            {"source": source, "target": target},
        )
        self.source = source
        self.target = target


class NotFoundError(BaseError):
    """Error raised when a submission or episode does not exist."""

    kind = "not_found"

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.LOW,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.NOT_FOUND, severity, error_id, details)


class RendererError(BaseError):
    """Error raised when the feed renderer fails or times out."""

    kind = "renderer_error"
    retryable = True

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.RENDERER_ERROR, severity, error_id, details)


class UpstreamProcessingError(BaseError):
    """Error raised when content extraction or synthesis fails."""

    kind = "upstream_processing_error"
    retryable = True

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.PROCESSING_ERROR, severity, error_id, details)


class CacheWriteRejected(BaseError):
    """Error raised when a rendered document is too large to cache."""

    kind = "cache_write_rejected"

    def __init__(
        self,
        size_bytes: int,
        max_bytes: int,
        severity: ErrorSeverity = ErrorSeverity.LOW,
        error_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Cache entry of {size_bytes} bytes exceeds the {max_bytes} byte limit",
            ErrorCategory.CACHE_ERROR,
            severity,
            error_id,
            {"size_bytes": size_bytes, "max_bytes": max_bytes},
        )
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes


class EdgeCacheError(BaseError):
    """Error raised when an edge cache purge fails."""

    kind = "edge_cache_error"
    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        if status_code is not None:
            details.setdefault("status_code", status_code)
        super().__init__(message, ErrorCategory.EDGE_CACHE_ERROR, severity, error_id, details)
        self.status_code = status_code


class ConfigurationError(BaseError):
    """Error raised when configuration is invalid."""

    kind = "configuration_error"

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.CRITICAL,
        error_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.CONFIGURATION_ERROR, severity, error_id, details)
