"""Tests for exception normalization into shared error details."""

from __future__ import annotations

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import OperationalError

from packages.hearth_shared.errors import ErrorCategory, codes, exception_to_error


class _Sample(BaseModel):
    count: int


def test_value_error_maps_to_validation() -> None:
    """Plain ``ValueError`` becomes a non-retryable validation error."""
    detail = exception_to_error(ValueError("family_id: required"))

    assert detail.category == ErrorCategory.VALIDATION
    assert detail.code == codes.INVALID_ARGUMENT
    assert detail.message == "family_id: required"
    assert detail.retryable is False
    assert detail.metadata["exception_type"] == "ValueError"


def test_pydantic_validation_error_uses_first_field_path() -> None:
    """Pydantic errors are summarized as ``<field>: <message>``."""
    try:
        _Sample.model_validate({"count": "many"})
    except ValidationError as exc:
        detail = exception_to_error(exc)
    else:  # pragma: no cover
        raise AssertionError("expected validation failure")

    assert detail.category == ErrorCategory.VALIDATION
    assert detail.message.startswith("count: ")


def test_store_outage_is_retryable_dependency_error() -> None:
    """Connection-level store failures are retryable dependency errors."""
    exc = OperationalError("SELECT 1", {}, ConnectionRefusedError("refused"))

    detail = exception_to_error(exc)

    assert detail.category == ErrorCategory.DEPENDENCY
    assert detail.code == codes.STORE_UNAVAILABLE
    assert detail.retryable is True


def test_lookup_error_maps_to_not_found() -> None:
    """``KeyError`` messages are unwrapped rather than repr-quoted."""
    detail = exception_to_error(KeyError("no state for family fam_1"))

    assert detail.category == ErrorCategory.NOT_FOUND
    assert detail.message == "no state for family fam_1"


def test_unknown_exception_is_internal() -> None:
    """Anything unrecognized is an internal error."""
    detail = exception_to_error(RuntimeError())

    assert detail.category == ErrorCategory.INTERNAL
    assert detail.message == "unexpected exception"
