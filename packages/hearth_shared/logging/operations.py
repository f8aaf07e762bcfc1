"""Completion logging for public engine operations.

``operation_logged`` wraps one public method: it binds the component and
operation names plus any requested identifier arguments into the logging
context, times the call, and emits one completion line. Exceptions are logged
with their normalized category and re-raised unchanged.
"""

from __future__ import annotations

import inspect
import logging
from functools import wraps
from time import perf_counter
from typing import Any, Callable, TypeVar

from packages.hearth_shared.errors import exception_to_error

from . import fields
from .context import log_context

F = TypeVar("F", bound=Callable[..., Any])


def operation_logged(
    *,
    logger: logging.Logger,
    component_id: str,
    operation: str | None = None,
    id_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    """Decorate one public operation with structured completion logging."""

    def decorator(func: F) -> F:
        name = operation or func.__name__
        signature = inspect.signature(func)

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            context: dict[str, object] = {
                fields.COMPONENT_ID: component_id,
                fields.OPERATION: name,
            }
            context.update(_identifier_values(signature, args, kwargs, id_fields))
            started = perf_counter()
            with log_context(context):
                try:
                    result = func(*args, **kwargs)
                except Exception as exc:
                    detail = exception_to_error(exc)
                    with log_context(
                        {
                            fields.EVENT: fields.OPERATION_COMPLETION_EVENT,
                            fields.SUCCESS: False,
                            fields.DURATION_MS: _elapsed_ms(started),
                            fields.ERROR_CATEGORY: detail.category.value,
                        }
                    ):
                        logger.warning("Operation failed: %s", detail.message)
                    raise
                with log_context(
                    {
                        fields.EVENT: fields.OPERATION_COMPLETION_EVENT,
                        fields.SUCCESS: True,
                        fields.DURATION_MS: _elapsed_ms(started),
                    }
                ):
                    logger.debug("Operation completed")
                return result

        return wrapper  # type: ignore[return-value]

    return decorator


def _identifier_values(
    signature: inspect.Signature,
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    id_fields: tuple[str, ...],
) -> dict[str, object]:
    """Pull named identifier arguments (or their attributes) from a call."""
    if not id_fields:
        return {}
    try:
        bound = signature.bind_partial(*args, **kwargs)
    except TypeError:
        return {}
    values: dict[str, object] = {}
    for field_name in id_fields:
        if field_name in bound.arguments:
            values[field_name] = bound.arguments[field_name]
            continue
        for argument in bound.arguments.values():
            candidate = getattr(argument, field_name, None)
            if candidate not in (None, ""):
                values[field_name] = candidate
                break
    return values


def _elapsed_ms(started: float) -> float:
    return round((perf_counter() - started) * 1000, 3)
