"""Family orchestrator service package exports."""

from packages.hearth_shared.errors import ErrorCategory, ErrorDetail
from services.action.orchestrator.config import (
    SERVICE_COMPONENT_ID,
    OrchestratorSettings,
    resolve_orchestrator_settings,
)
from services.action.orchestrator.domain import (
    Action,
    ActionType,
    DailyPlan,
    Decision,
    DigestItem,
    MitigationResult,
    OrchestratorState,
    Signal,
    SignalSource,
    SignalType,
    SuppressionReason,
    SweepResult,
    WeeklyBrief,
    Zone,
)
from services.action.orchestrator.implementation import DefaultOrchestratorService
from services.action.orchestrator.interfaces import OrchestratorStore
from services.action.orchestrator.jobs import (
    JobItemResult,
    run_daily_tick,
    run_mitigation_sweep,
    run_weekly_tick,
)
from services.action.orchestrator.memory_store import InMemoryOrchestratorStore
from services.action.orchestrator.mitigation import MitigationController
from services.action.orchestrator.service import (
    OrchestratorService,
    build_orchestrator_service,
)
from services.action.orchestrator.validation import OrchestratorValidationError

__all__ = [
    "Action",
    "ActionType",
    "DailyPlan",
    "Decision",
    "DefaultOrchestratorService",
    "DigestItem",
    "ErrorCategory",
    "ErrorDetail",
    "InMemoryOrchestratorStore",
    "JobItemResult",
    "MitigationController",
    "MitigationResult",
    "OrchestratorService",
    "OrchestratorSettings",
    "OrchestratorState",
    "OrchestratorStore",
    "OrchestratorValidationError",
    "SERVICE_COMPONENT_ID",
    "Signal",
    "SignalSource",
    "SignalType",
    "SuppressionReason",
    "SweepResult",
    "WeeklyBrief",
    "Zone",
    "build_orchestrator_service",
    "resolve_orchestrator_settings",
    "run_daily_tick",
    "run_mitigation_sweep",
    "run_weekly_tick",
]
