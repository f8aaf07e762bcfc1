"""In-process orchestrator store backed by bounded per-family lists."""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from datetime import datetime

from services.action.orchestrator.domain import (
    Action,
    ActionStatus,
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
from services.action.orchestrator.interfaces import OrchestratorStore
from services.action.orchestrator.state import create_initial_state


class InMemoryOrchestratorStore(OrchestratorStore):
    """Dictionary-backed store for tests and single-process deployments.

    Signal history is a ring buffer of ``max_history`` entries. The id and
    idempotency indexes keep pointing at the first stored signal even after
    it has rotated out of the buffer, so they grow by one entry per stored
    signal, matching the full signal retention of the SQL store.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._states: dict[str, OrchestratorState] = {}
        self._signals: dict[str, deque[Signal]] = {}
        self._by_id: dict[str, Signal] = {}
        self._idempotency: dict[tuple[str, str], Signal] = {}
        self._actions: defaultdict[str, list[QueuedAction]] = defaultdict(list)
        self._digest: defaultdict[str, list[DigestItem]] = defaultdict(list)
        self._daily_plans: defaultdict[str, list[DailyPlan]] = defaultdict(list)
        self._weekly_briefs: defaultdict[str, list[WeeklyBrief]] = defaultdict(list)
        self._mitigations: dict[tuple[str, MitigationType], MitigationRecord] = {}

    def get_state(self, family_id: str) -> OrchestratorState | None:
        with self._lock:
            return self._states.get(family_id)

    def get_or_create_state(self, family_id: str, now: datetime) -> OrchestratorState:
        with self._lock:
            state = self._states.get(family_id)
            if state is None:
                state = create_initial_state(family_id, now)
                self._states[family_id] = state
            return state

    def set_state(self, family_id: str, state: OrchestratorState, now: datetime) -> None:
        del now
        with self._lock:
            self._states[family_id] = state

    def append_signal(self, signal: Signal, *, max_history: int = 200) -> Signal:
        with self._lock:
            existing = self._stored_duplicate(signal)
            if existing is not None:
                return existing
            self._store_signal(signal, max_history)
            return signal

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
        with self._lock:
            existing = self._stored_duplicate(signal)
            if existing is not None:
                return existing
            self._store_signal(signal, max_history)
            self._states[signal.family_id] = state
            if action is not None:
                self.enqueue_action(signal.family_id, action, now)
            if digest_item is not None:
                self.append_digest_item(digest_item, max_items=max_digest_items)
        return None

    def _stored_duplicate(self, signal: Signal) -> Signal | None:
        existing = self._by_id.get(signal.id)
        if existing is None and signal.idempotency_key is not None:
            existing = self._idempotency.get((signal.family_id, signal.idempotency_key))
        return existing

    def _store_signal(self, signal: Signal, max_history: int) -> None:
        self._by_id[signal.id] = signal
        if signal.idempotency_key is not None:
            self._idempotency[(signal.family_id, signal.idempotency_key)] = signal
        capacity = max(0, max_history)
        history = self._signals.get(signal.family_id)
        if history is None or history.maxlen != capacity:
            history = deque(history or (), maxlen=capacity)
            self._signals[signal.family_id] = history
        history.append(signal)

    def get_recent_signals(self, family_id: str, *, limit: int = 200) -> list[Signal]:
        with self._lock:
            history = list(self._signals.get(family_id, ()))
        return history[-limit:] if limit > 0 else []

    def find_signal(self, family_id: str, idempotency_key: str) -> Signal | None:
        with self._lock:
            return self._idempotency.get((family_id, idempotency_key))

    def enqueue_action(self, family_id: str, action: Action, now: datetime) -> QueuedAction:
        queued = QueuedAction(action=action, status=ActionStatus.QUEUED, queued_at=now)
        with self._lock:
            self._actions[family_id].append(queued)
        return queued

    def list_actions(self, family_id: str) -> list[QueuedAction]:
        with self._lock:
            return list(self._actions.get(family_id, ()))

    def complete_action(
        self, family_id: str, action_id: str, now: datetime
    ) -> QueuedAction | None:
        return self._transition_action(
            family_id, action_id, {"status": ActionStatus.COMPLETED, "completed_at": now}
        )

    def dismiss_action(
        self, family_id: str, action_id: str, now: datetime
    ) -> QueuedAction | None:
        return self._transition_action(
            family_id, action_id, {"status": ActionStatus.DISMISSED, "dismissed_at": now}
        )

    def _transition_action(
        self, family_id: str, action_id: str, update: dict[str, object]
    ) -> QueuedAction | None:
        with self._lock:
            entries = self._actions.get(family_id, [])
            for index, entry in enumerate(entries):
                if entry.action.id != action_id:
                    continue
                if entry.status != ActionStatus.QUEUED:
                    return None
                updated = entry.model_copy(update=update)
                entries[index] = updated
                return updated
        return None

    def append_digest_item(self, item: DigestItem, *, max_items: int = 200) -> None:
        with self._lock:
            items = self._digest[item.family_id]
            items.append(item)
            _keep_latest(items, max_items)

    def get_digest(
        self, family_id: str, *, status: DigestStatus | None = None
    ) -> list[DigestItem]:
        with self._lock:
            items = list(self._digest.get(family_id, ()))
        if status is None:
            return items
        return [item for item in items if item.status == status]

    def mark_digest_delivered(self, family_id: str, now: datetime) -> list[DigestItem]:
        delivered: list[DigestItem] = []
        with self._lock:
            items = self._digest.get(family_id, [])
            for index, item in enumerate(items):
                if item.status != DigestStatus.QUEUED:
                    continue
                items[index] = item.model_copy(
                    update={"status": DigestStatus.DELIVERED, "delivered_at": now}
                )
                delivered.append(items[index])
        return delivered

    def dismiss_digest_item(
        self, family_id: str, item_id: str, now: datetime
    ) -> DigestItem | None:
        with self._lock:
            items = self._digest.get(family_id, [])
            for index, item in enumerate(items):
                if item.id != item_id:
                    continue
                if item.status != DigestStatus.QUEUED:
                    return None
                items[index] = item.model_copy(
                    update={"status": DigestStatus.DISMISSED, "dismissed_at": now}
                )
                return items[index]
        return None

    def append_daily_plan(self, plan: DailyPlan, *, max_plans: int = 30) -> None:
        with self._lock:
            plans = self._daily_plans[plan.family_id]
            plans.append(plan)
            _keep_latest(plans, max_plans)

    def get_daily_plans(self, family_id: str) -> list[DailyPlan]:
        with self._lock:
            return list(self._daily_plans.get(family_id, ()))

    def append_weekly_brief(self, brief: WeeklyBrief, *, max_briefs: int = 12) -> None:
        with self._lock:
            briefs = self._weekly_briefs[brief.family_id]
            briefs.append(brief)
            _keep_latest(briefs, max_briefs)

    def get_weekly_briefs(self, family_id: str) -> list[WeeklyBrief]:
        with self._lock:
            return list(self._weekly_briefs.get(family_id, ()))

    def get_mitigation(
        self, family_id: str, mitigation_type: MitigationType
    ) -> MitigationRecord | None:
        with self._lock:
            return self._mitigations.get((family_id, mitigation_type))

    def save_mitigation(self, record: MitigationRecord) -> None:
        with self._lock:
            self._mitigations[(record.family_id, record.mitigation_type)] = record

    def list_expired_mitigations(self, now: datetime) -> list[MitigationRecord]:
        with self._lock:
            records = list(self._mitigations.values())
        return [
            record
            for record in records
            if record.active and record.expires_at <= now
        ]


def _keep_latest(items: list, cap: int) -> None:
    """Drop the oldest entries beyond ``cap``; a cap of zero or less keeps none."""
    if cap <= 0:
        items.clear()
        return
    del items[:-cap]
