"""Error definitions for the feed engine."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Categories of errors that can occur in the engine."""

    RANKING_ERROR = "ranking_error"
    CATALOG_ERROR = "catalog_error"
    STORAGE_ERROR = "storage_error"
    INVARIANT_ERROR = "invariant_error"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BaseError(Exception):
    """Base error class for all feed engine errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        severity: ErrorSeverity,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize base error.

        Args:
            message: Error message
            category: Error category
            severity: Error severity
            details: Optional error details
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Return a log-friendly representation of the error."""
        return {
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class RankingError(BaseError):
    """Error raised when the ranking service fails or answers garbage."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.RANKING_ERROR, severity, details)


class CatalogError(BaseError):
    """Error raised when the content catalog cannot be fetched."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.CATALOG_ERROR, severity, details)


class StorageError(BaseError):
    """Error raised when persisted state cannot be written."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.STORAGE_ERROR, severity, details)


class InvariantViolation(BaseError):
    """Programming error: a state invariant no longer holds.

    Never caught by the engine itself.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message, ErrorCategory.INVARIANT_ERROR, ErrorSeverity.CRITICAL, details
        )


class MalformedRankingError(RankingError):
    """The ranking service answered, but not with a list of ids."""
