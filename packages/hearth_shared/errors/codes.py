"""Stable machine-readable error codes."""

# Validation
VALIDATION_ERROR = "VALIDATION_ERROR"
INVALID_ARGUMENT = "INVALID_ARGUMENT"

# Lookup
NOT_FOUND = "NOT_FOUND"
FAMILY_NOT_FOUND = "FAMILY_NOT_FOUND"

# Conflict
CONFLICT = "CONFLICT"
DUPLICATE_SIGNAL = "DUPLICATE_SIGNAL"

# Store / external system
STORE_FAILURE = "STORE_FAILURE"
STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
DEPENDENCY_TIMEOUT = "DEPENDENCY_TIMEOUT"

# Internal
INTERNAL_ERROR = "INTERNAL_ERROR"
UNEXPECTED_EXCEPTION = "UNEXPECTED_EXCEPTION"
