"""Map raised exceptions onto ``ErrorDetail`` values."""

from __future__ import annotations

from pydantic import ValidationError
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError

from . import codes
from .factories import (
    dependency_error,
    internal_error,
    not_found_error,
    validation_error,
)
from .types import ErrorDetail


def exception_to_error(exc: Exception) -> ErrorDetail:
    """Normalize one exception for job results and completion logs.

    Store failures are checked before ``ValueError`` because some DBAPI
    drivers raise subclasses of both.
    """
    metadata = {"exception_type": type(exc).__name__}

    if isinstance(exc, OperationalError):
        return dependency_error(
            str(exc.orig) if exc.orig is not None else str(exc),
            code=codes.STORE_UNAVAILABLE,
            metadata=metadata,
        )

    if isinstance(exc, (DBAPIError, SQLAlchemyError)):
        return dependency_error(str(exc), metadata=metadata)

    if isinstance(exc, ValidationError):
        first = exc.errors()[0] if exc.errors() else {"loc": (), "msg": str(exc)}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first['msg']}" if location else str(first["msg"])
        return validation_error(message, metadata=metadata)

    if isinstance(exc, ValueError):
        return validation_error(str(exc), code=codes.INVALID_ARGUMENT, metadata=metadata)

    if isinstance(exc, LookupError):
        message = exc.args[0] if exc.args else str(exc)
        return not_found_error(str(message), metadata=metadata)

    if isinstance(exc, TimeoutError):
        return dependency_error(
            str(exc) or "dependency timeout",
            code=codes.DEPENDENCY_TIMEOUT,
            metadata=metadata,
        )

    if isinstance(exc, ConnectionError):
        return dependency_error(
            str(exc) or "dependency unavailable",
            code=codes.STORE_UNAVAILABLE,
            metadata=metadata,
        )

    return internal_error(
        str(exc) or "unexpected exception",
        code=codes.UNEXPECTED_EXCEPTION,
        metadata=metadata,
    )
