"""Public logging API for shared Hearth modules.

This package wraps Python's ``logging`` module with stdout defaults and
structured context propagation.
"""

from . import fields
from .config import configure_logging, get_logger
from .context import bind_context, clear_context, family_context, get_context, log_context
from .operations import operation_logged

__all__ = [
    "bind_context",
    "clear_context",
    "configure_logging",
    "family_context",
    "fields",
    "get_context",
    "get_logger",
    "log_context",
    "operation_logged",
]
