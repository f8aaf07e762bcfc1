"""Authoritative in-process Python API for the family orchestrator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Mapping, Sequence

from packages.hearth_shared.config import HearthSettings
from services.action.orchestrator.domain import (
    DailyPlan,
    Decision,
    DigestItem,
    DigestStatus,
    OrchestratorState,
    QueuedAction,
    Signal,
    WeeklyBrief,
)
from services.action.orchestrator.interfaces import OrchestratorStore
from services.action.orchestrator.mitigation import AuditHook, MitigationController


class OrchestratorService(ABC):
    """Public API for signal ingest, planning and the action/digest lifecycle."""

    @abstractmethod
    def ingest(
        self, signal: Signal | Mapping[str, Any], *, now: datetime | None = None
    ) -> Decision:
        """Fold one signal into family state and decide the next action."""

    @abstractmethod
    def run_daily(self, family_id: str, *, now: datetime | None = None) -> DailyPlan:
        """Build and store today's plan for one family."""

    @abstractmethod
    def run_weekly(self, family_id: str, *, now: datetime | None = None) -> WeeklyBrief:
        """Build and store the weekly brief, applying any setpoint tuning."""

    @abstractmethod
    def get_state(self, family_id: str) -> OrchestratorState | None:
        """Return the current state, or ``None`` for an unknown family."""

    @abstractmethod
    def list_actions(self, family_id: str) -> list[QueuedAction]:
        """Return the family's queued, completed and dismissed actions."""

    @abstractmethod
    def complete_action(
        self, family_id: str, action_id: str, *, now: datetime | None = None
    ) -> QueuedAction | None:
        """Complete a queued action; ``None`` unless it was queued."""

    @abstractmethod
    def dismiss_action(
        self, family_id: str, action_id: str, *, now: datetime | None = None
    ) -> QueuedAction | None:
        """Dismiss a queued action; ``None`` unless it was queued."""

    @abstractmethod
    def get_digest(
        self, family_id: str, *, status: DigestStatus | None = None
    ) -> list[DigestItem]:
        """Return digest items, optionally filtered by status."""

    @abstractmethod
    def deliver_digest(
        self, family_id: str, *, now: datetime | None = None
    ) -> list[DigestItem]:
        """Mark every queued digest item delivered and return them."""

    @abstractmethod
    def dismiss_digest_item(
        self, family_id: str, item_id: str, *, now: datetime | None = None
    ) -> DigestItem | None:
        """Dismiss one queued digest item; ``None`` unless it was queued."""

    @abstractmethod
    def mitigation_controller(
        self, *, audit_hooks: Sequence[AuditHook] = ()
    ) -> MitigationController:
        """Controller that shares this service's store and family locks."""


def build_orchestrator_service(
    *,
    settings: HearthSettings,
    store: OrchestratorStore | None = None,
) -> OrchestratorService:
    """Build the default orchestrator from typed settings.

    Without an explicit store the durable SQL store is built from the
    ``database`` settings.
    """
    from services.action.orchestrator.config import resolve_orchestrator_settings
    from services.action.orchestrator.implementation import DefaultOrchestratorService

    if store is None:
        from services.action.orchestrator.data import (
            OrchestratorSqlRuntime,
            SqlOrchestratorStore,
        )

        runtime = OrchestratorSqlRuntime.from_settings(settings)
        store = SqlOrchestratorStore(runtime.session_factory)

    return DefaultOrchestratorService(
        settings=resolve_orchestrator_settings(settings),
        store=store,
    )
