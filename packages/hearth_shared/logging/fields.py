"""Canonical logging field names for cross-module consistency.

These constants define a stable key set for structured logs and context
propagation. Keeping names centralized prevents drift between the engine,
its batch jobs, and the stores.
"""

TIMESTAMP = "timestamp"
LEVEL = "level"
LOGGER = "logger"
MESSAGE = "message"
EVENT = "event"

# Operation instrumentation fields.
COMPONENT_ID = "component_id"
OPERATION = "operation"
OPERATION_COMPLETION_EVENT = "operation_completion"
SUCCESS = "success"
DURATION_MS = "duration_ms"
ERROR = "error"
ERROR_CATEGORY = "error_category"

# Orchestrator domain fields.
FAMILY_ID = "family_id"
SIGNAL_ID = "signal_id"
SIGNAL_TYPE = "signal_type"
ZONE = "zone"
JOB = "job"
MITIGATION_TYPE = "mitigation_type"

# Common service-level fields.
SERVICE = "service"
ENVIRONMENT = "environment"
