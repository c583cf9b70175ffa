"""Tests for the engine error hierarchy."""
import pytest

from feed_engine.core.errors import (
    BaseError,
    CatalogError,
    ErrorCategory,
    ErrorSeverity,
    InvariantViolation,
    RankingError,
    StorageError,
)


@pytest.mark.parametrize(
    "error_class,category,severity",
    [
        (RankingError, ErrorCategory.RANKING_ERROR, ErrorSeverity.MEDIUM),
        (CatalogError, ErrorCategory.CATALOG_ERROR, ErrorSeverity.MEDIUM),
        (StorageError, ErrorCategory.STORAGE_ERROR, ErrorSeverity.HIGH),
        (InvariantViolation, ErrorCategory.INVARIANT_ERROR, ErrorSeverity.CRITICAL),
    ],
)
def test_error_defaults(error_class, category, severity):
    error = error_class("something broke")

    assert isinstance(error, BaseError)
    assert error.category == category
    assert error.severity == severity
    assert str(error) == "something broke"


def test_to_dict_is_log_friendly():
    error = RankingError("quota", severity=ErrorSeverity.LOW, details={"status": 429})

    data = error.to_dict()

    assert data["message"] == "quota"
    assert data["category"] == "ranking_error"
    assert data["severity"] == "low"
    assert data["details"] == {"status": 429}
    assert data["timestamp"]
