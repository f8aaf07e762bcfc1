"""Per-operation logging context.

Correlation fields (``family_id``, ``signal_id``, job names) live in a
``contextvars`` mapping and are stamped onto every record by
``ContextFilter``. Values are always stored as strings so the JSON shape of a
log line never depends on the caller's types.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Mapping

from . import fields

_CONTEXT: ContextVar[dict[str, str]] = ContextVar("hearth_log_context", default={})


def get_context() -> dict[str, str]:
    """Return a copy of the fields bound for the current execution context."""
    return dict(_CONTEXT.get())


def _merged(values: Mapping[str, object]) -> dict[str, str]:
    merged = dict(_CONTEXT.get())
    for key, value in values.items():
        if value is None:
            continue
        merged[str(key)] = str(value)
    return merged


def bind_context(**values: object) -> None:
    """Bind fields for the rest of the current context; ``None`` is skipped."""
    if values:
        _CONTEXT.set(_merged(values))


def clear_context(*keys: str) -> None:
    """Drop the named keys, or every bound field when called without keys."""
    if not keys:
        _CONTEXT.set({})
        return
    remaining = dict(_CONTEXT.get())
    for key in keys:
        remaining.pop(key, None)
    _CONTEXT.set(remaining)


@contextmanager
def log_context(values: Mapping[str, object]) -> Iterator[None]:
    """Bind ``values`` for the duration of the block, then restore."""
    token = _CONTEXT.set(_merged(values))
    try:
        yield
    finally:
        _CONTEXT.reset(token)


@contextmanager
def family_context(family_id: str, **extra: object) -> Iterator[None]:
    """Bind ``family_id`` plus any extra correlation fields for one operation."""
    with log_context({fields.FAMILY_ID: family_id, **extra}):
        yield
