"""Storage protocol the orchestrator engine depends on.

The engine never knows which backend it runs against; tests use
``InMemoryOrchestratorStore`` and deployments use ``SqlOrchestratorStore``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from services.action.orchestrator.domain import (
    Action,
    DailyPlan,
    DigestItem,
    DigestStatus,
    MitigationRecord,
    MitigationType,
    OrchestratorState,
    QueuedAction,
    Signal,
    WeeklyBrief,
)


class OrchestratorStore(Protocol):
    """Per-family state, history, and action/digest lifecycle persistence."""

    def get_state(self, family_id: str) -> OrchestratorState | None:
        """Read the current state, or ``None`` for an unknown family."""

    def get_or_create_state(self, family_id: str, now: datetime) -> OrchestratorState:
        """Read the state, creating the default state exactly once per family."""

    def set_state(self, family_id: str, state: OrchestratorState, now: datetime) -> None:
        """Replace the family state."""

    def append_signal(self, signal: Signal, *, max_history: int = 200) -> Signal:
        """Store one signal and return the stored record.

        Idempotent on the signal ``id`` and on ``(family_id, idempotency_key)``:
        a repeat insert returns the first stored signal unchanged.
        """

    def record_ingest(
        self,
        signal: Signal,
        state: OrchestratorState,
        now: datetime,
        *,
        action: Action | None = None,
        digest_item: DigestItem | None = None,
        max_history: int = 200,
        max_digest_items: int = 200,
    ) -> Signal | None:
        """Store a signal with the state, queued action and digest item it produced.

        All writes happen together or not at all. When the signal duplicates a
        stored one nothing is written and the stored signal is returned;
        otherwise the result is ``None``.
        """

    def get_recent_signals(self, family_id: str, *, limit: int = 200) -> list[Signal]:
        """Return up to ``limit`` most recent signals, oldest first."""

    def find_signal(self, family_id: str, idempotency_key: str) -> Signal | None:
        """Return the signal stored under an idempotency key, if any."""

    def enqueue_action(self, family_id: str, action: Action, now: datetime) -> QueuedAction:
        """Queue one selected action."""

    def list_actions(self, family_id: str) -> list[QueuedAction]:
        """Return every queued, completed and dismissed action in queue order."""

    def complete_action(
        self, family_id: str, action_id: str, now: datetime
    ) -> QueuedAction | None:
        """Mark a queued action completed; ``None`` unless it was queued."""

    def dismiss_action(
        self, family_id: str, action_id: str, now: datetime
    ) -> QueuedAction | None:
        """Mark a queued action dismissed; ``None`` unless it was queued."""

    def append_digest_item(self, item: DigestItem, *, max_items: int = 200) -> None:
        """Append one digest item, dropping the oldest past ``max_items``."""

    def get_digest(
        self, family_id: str, *, status: DigestStatus | None = None
    ) -> list[DigestItem]:
        """Return digest items in insertion order, optionally filtered by status."""

    def mark_digest_delivered(self, family_id: str, now: datetime) -> list[DigestItem]:
        """Mark every queued item delivered and return the items just delivered."""

    def dismiss_digest_item(
        self, family_id: str, item_id: str, now: datetime
    ) -> DigestItem | None:
        """Dismiss one queued item; ``None`` unless it was queued."""

    def append_daily_plan(self, plan: DailyPlan, *, max_plans: int = 30) -> None:
        """Append one plan to the family's bounded history."""

    def get_daily_plans(self, family_id: str) -> list[DailyPlan]:
        """Return plans oldest first."""

    def append_weekly_brief(self, brief: WeeklyBrief, *, max_briefs: int = 12) -> None:
        """Append one brief to the family's bounded history."""

    def get_weekly_briefs(self, family_id: str) -> list[WeeklyBrief]:
        """Return briefs oldest first."""

    def get_mitigation(
        self, family_id: str, mitigation_type: MitigationType
    ) -> MitigationRecord | None:
        """Read the single record for one family and mitigation type."""

    def save_mitigation(self, record: MitigationRecord) -> None:
        """Insert or replace the record for its family and mitigation type."""

    def list_expired_mitigations(self, now: datetime) -> list[MitigationRecord]:
        """Return active records whose ``expires_at`` is at or before ``now``."""
