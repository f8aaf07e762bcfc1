"""Behavior tests for the orchestrator engine."""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from packages.hearth_shared.config import DatabaseSettings, HearthSettings
from services.action.orchestrator.config import OrchestratorSettings
from services.action.orchestrator.data import OrchestratorSqlRuntime, SqlOrchestratorStore
from services.action.orchestrator.domain import (
    Action,
    ActionStatus,
    ActionType,
    DigestItem,
    DigestStatus,
    OrchestratorState,
    Signal,
    SignalType,
    SuppressionReason,
    Zone,
)
from services.action.orchestrator.implementation import DefaultOrchestratorService
from services.action.orchestrator.interfaces import OrchestratorStore
from services.action.orchestrator.memory_store import InMemoryOrchestratorStore
from services.action.orchestrator.service import build_orchestrator_service
from services.action.orchestrator.validation import OrchestratorValidationError

_NOW = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)


def _service(store: InMemoryOrchestratorStore | None = None) -> DefaultOrchestratorService:
    return DefaultOrchestratorService(
        settings=OrchestratorSettings(),
        store=store or InMemoryOrchestratorStore(),
    )


def _due_soon(**extra: object) -> Signal:
    return Signal(
        family_id="fam-1",
        source="school",
        type="form_request",
        timestamp=_NOW,
        payload={
            "title": "Field trip form",
            "deadline": (_NOW + timedelta(minutes=30)).isoformat(),
        },
        **extra,
    )


def _queued_action(action_id: str = "act-1") -> Action:
    return Action(
        id=action_id,
        family_id="fam-1",
        created_at=_NOW,
        type=ActionType.CREATE_MICRO_TASK,
        title="Sign the form",
        summary="Two minutes to sign and return the form.",
        kid_benefit=0.4,
        relationship_benefit=0.2,
        school_resolution_benefit=0.7,
        cognitive_cost=0.2,
        emotional_cost=0.1,
        time_cost_min=5,
        parent_burden=0.2,
        teacher_burden=0.1,
    )


def test_ingest_creates_state_and_decides() -> None:
    store = InMemoryOrchestratorStore()
    service = _service(store)

    decision = service.ingest(
        {
            "familyId": "fam-1",
            "source": "school",
            "type": "school_message",
            "timestamp": _NOW.isoformat(),
            "payload": {"title": "Spirit week", "sentiment": 0.4},
        },
        now=_NOW,
    )

    assert decision.state.family_id == "fam-1"
    assert decision.state.updated_at == _NOW
    assert decision.candidates
    assert decision.suppressed_reason is None
    assert store.get_state("fam-1") == decision.state
    assert [signal.type for signal in store.get_recent_signals("fam-1")] == [
        SignalType.SCHOOL_MESSAGE
    ]


def test_repeated_idempotency_key_is_ignored() -> None:
    store = InMemoryOrchestratorStore()
    service = _service(store)

    first = service.ingest(_due_soon(idempotency_key="mail-42"), now=_NOW)
    again = service.ingest(_due_soon(idempotency_key="mail-42"), now=_NOW + timedelta(minutes=1))

    assert again.suppressed_reason == SuppressionReason.DUPLICATE_SIGNAL
    assert again.next_action is None
    assert again.candidates == []
    assert again.state == first.state
    assert len(store.get_recent_signals("fam-1")) == 1


def test_exact_retry_of_a_keyed_signal_is_ignored() -> None:
    store = InMemoryOrchestratorStore()
    service = _service(store)
    signal = _due_soon(idempotency_key="mail-43")

    service.ingest(signal, now=_NOW)
    retry = service.ingest(signal, now=_NOW)

    assert retry.suppressed_reason == SuppressionReason.DUPLICATE_SIGNAL
    assert len(store.get_recent_signals("fam-1")) == 1


def test_invalid_signal_persists_nothing() -> None:
    store = InMemoryOrchestratorStore()
    service = _service(store)

    with pytest.raises(OrchestratorValidationError):
        service.ingest(
            {"familyId": "fam-1", "source": "school", "type": "carrier_pigeon", "payload": {}},
            now=_NOW,
        )

    assert store.get_state("fam-1") is None
    assert store.get_recent_signals("fam-1") == []


def test_notify_during_cooldown_is_routed_to_digest() -> None:
    store = InMemoryOrchestratorStore()
    state = store.get_or_create_state("fam-1", _NOW - timedelta(hours=1))
    store.set_state(
        "fam-1", state.model_copy(update={"cooldown_until": _NOW + timedelta(minutes=30)}), _NOW
    )
    service = _service(store)
    signal = _due_soon()

    decision = service.ingest(signal, now=_NOW)

    assert decision.suppressed_reason == SuppressionReason.COOLDOWN_ACTIVE
    assert decision.next_action is None or decision.next_action.type != ActionType.NOTIFY_NOW
    assert ActionType.NOTIFY_NOW in {action.type for action in decision.candidates}
    queued = service.get_digest("fam-1", status=DigestStatus.QUEUED)
    suppressed = [item for item in queued if item.meta["reason"] == "cooldown_active"]
    assert len(suppressed) == 1
    assert suppressed[0].meta["signal_id"] == signal.id
    assert suppressed[0].meta["action_type"] == "notify_now"
    assert all(
        entry.action.type != ActionType.NOTIFY_NOW for entry in service.list_actions("fam-1")
    )


def test_digest_delivery_and_dismissal() -> None:
    store = InMemoryOrchestratorStore()
    state = store.get_or_create_state("fam-1", _NOW - timedelta(hours=1))
    store.set_state(
        "fam-1", state.model_copy(update={"cooldown_until": _NOW + timedelta(minutes=30)}), _NOW
    )
    service = _service(store)
    service.ingest(_due_soon(), now=_NOW)
    service.ingest(_due_soon(), now=_NOW + timedelta(minutes=1))

    first, second = service.get_digest("fam-1", status=DigestStatus.QUEUED)[:2]
    dismissed = service.dismiss_digest_item("fam-1", first.id, now=_NOW)
    assert dismissed is not None
    assert dismissed.status == DigestStatus.DISMISSED
    assert service.dismiss_digest_item("fam-1", first.id, now=_NOW) is None

    delivered = service.deliver_digest("fam-1", now=_NOW + timedelta(hours=2))
    assert second.id in {item.id for item in delivered}
    assert all(item.status == DigestStatus.DELIVERED for item in delivered)
    assert service.get_digest("fam-1", status=DigestStatus.QUEUED) == []
    assert service.deliver_digest("fam-1", now=_NOW + timedelta(hours=3)) == []


def test_completing_an_action_feeds_back_once() -> None:
    store = InMemoryOrchestratorStore()
    store.get_or_create_state("fam-1", _NOW)
    store.enqueue_action("fam-1", _queued_action(), _NOW)
    service = _service(store)

    completed = service.complete_action("fam-1", "act-1", now=_NOW + timedelta(minutes=10))

    assert completed is not None
    assert completed.status == ActionStatus.COMPLETED
    assert completed.completed_at == _NOW + timedelta(minutes=10)
    feedback = store.find_signal("fam-1", "action_completed:act-1")
    assert feedback is not None
    assert feedback.type == SignalType.ACTION_COMPLETED
    assert feedback.payload.action_id == "act-1"

    assert service.complete_action("fam-1", "act-1", now=_NOW + timedelta(minutes=11)) is None
    completions = [
        signal
        for signal in store.get_recent_signals("fam-1")
        if signal.type == SignalType.ACTION_COMPLETED
    ]
    assert len(completions) == 1


def test_dismissed_action_cannot_be_completed() -> None:
    store = InMemoryOrchestratorStore()
    store.enqueue_action("fam-1", _queued_action(), _NOW)
    service = _service(store)

    dismissed = service.dismiss_action("fam-1", "act-1", now=_NOW)

    assert dismissed is not None
    assert dismissed.status == ActionStatus.DISMISSED
    assert service.complete_action("fam-1", "act-1", now=_NOW) is None
    assert store.get_recent_signals("fam-1") == []


def test_run_daily_stores_plan_and_state() -> None:
    store = InMemoryOrchestratorStore()
    service = _service(store)
    service.ingest(_due_soon(), now=_NOW - timedelta(minutes=5))

    plan = service.run_daily("fam-1", now=_NOW)

    assert store.get_daily_plans("fam-1") == [plan]
    assert plan.attention_budget_min <= 15
    state = service.get_state("fam-1")
    assert state is not None
    assert state.updated_at == _NOW


def test_run_weekly_applies_tuning() -> None:
    store = InMemoryOrchestratorStore()
    state = store.get_or_create_state("fam-1", _NOW - timedelta(days=2))
    store.set_state(
        "fam-1",
        state.model_copy(update={"zone": Zone.RED, "tension": 0.8}),
        _NOW - timedelta(days=2),
    )
    service = _service(store)

    brief = service.run_weekly("fam-1", now=_NOW)

    assert store.get_weekly_briefs("fam-1") == [brief]
    assert brief.setpoint_adjustments is not None
    tuned = service.get_state("fam-1")
    assert tuned is not None
    assert tuned.daily_attention_budget_min == 12
    assert tuned.max_notifications_per_hour == 2


def test_blank_family_id_is_rejected() -> None:
    service = _service()
    with pytest.raises(OrchestratorValidationError) as exc_info:
        service.run_daily("   ", now=_NOW)
    assert exc_info.value.field == "family_id"


def test_unknown_family_has_no_state() -> None:
    service = _service()
    assert service.get_state("fam-404") is None
    assert service.list_actions("fam-404") == []


def test_builder_reads_component_settings() -> None:
    settings = HearthSettings(
        components={"service": {"orchestrator": {"planner": {"plan_size": 2}}}}
    )
    store = InMemoryOrchestratorStore()

    service = build_orchestrator_service(settings=settings, store=store)

    assert isinstance(service, DefaultOrchestratorService)
    assert service.store is store
    plan = service.run_daily("fam-1", now=_NOW)
    assert len(plan.actions) <= 2


class _FlakyMemoryStore(InMemoryOrchestratorStore):
    """Store whose first ingest write fails before anything is kept."""

    def __init__(self) -> None:
        super().__init__()
        self.failures = 1

    def record_ingest(self, signal: Signal, state: OrchestratorState, now: datetime, **kwargs):
        if self.failures:
            self.failures -= 1
            raise ConnectionError("store unavailable")
        return super().record_ingest(signal, state, now, **kwargs)


class _FlakySqlStore(SqlOrchestratorStore):
    """SQL store whose first state write fails after the signal row is inserted."""

    failures = 1

    def _write_state(
        self, session: Session, family_id: str, state: OrchestratorState, now: datetime
    ) -> None:
        if self.failures:
            self.failures -= 1
            raise ConnectionError("store unavailable")
        super()._write_state(session, family_id, state, now)


class _SlowStateStore(InMemoryOrchestratorStore):
    """Widens the read-modify-write window so unserialized ingests would collide."""

    def get_state(self, family_id: str) -> OrchestratorState | None:
        state = super().get_state(family_id)
        time.sleep(0.002)
        return state


@pytest.fixture(params=["memory", "sqlite"])
def flaky_store(request: pytest.FixtureRequest) -> Iterator[OrchestratorStore]:
    if request.param == "memory":
        yield _FlakyMemoryStore()
        return
    runtime = OrchestratorSqlRuntime.from_database_settings(
        DatabaseSettings(url="sqlite+pysqlite:///:memory:", create_schema=True)
    )
    yield _FlakySqlStore(runtime.session_factory)
    runtime.engine.dispose()


def _capacity_update(index: int = 1) -> Signal:
    return Signal(
        family_id="fam-1",
        source="home",
        type="parent_capacity_update",
        timestamp=_NOW,
        payload={"bandwidth": 0.05},
        idempotency_key=f"capacity-{index}",
    )


def test_failed_ingest_write_leaves_nothing_and_retry_applies(
    flaky_store: OrchestratorStore,
) -> None:
    service = DefaultOrchestratorService(settings=OrchestratorSettings(), store=flaky_store)

    with pytest.raises(ConnectionError):
        service.ingest(_capacity_update(), now=_NOW)

    assert flaky_store.find_signal("fam-1", "capacity-1") is None
    assert flaky_store.get_recent_signals("fam-1") == []
    assert flaky_store.get_state("fam-1") is None

    retry = service.ingest(_capacity_update(), now=_NOW + timedelta(seconds=5))

    assert retry.suppressed_reason is None
    assert retry.state.parent_bandwidth == 0.05
    assert len(flaky_store.get_recent_signals("fam-1")) == 1
    stored = flaky_store.get_state("fam-1")
    assert stored is not None
    assert stored.parent_bandwidth == 0.05


def test_resent_signal_id_without_key_is_a_duplicate(
    flaky_store: OrchestratorStore,
) -> None:
    flaky_store.failures = 0
    service = DefaultOrchestratorService(settings=OrchestratorSettings(), store=flaky_store)
    signal = Signal(
        id="sig_fixed",
        family_id="fam-1",
        source="home",
        type="routine_change",
        timestamp=_NOW,
        payload={"title": "New bus time"},
    )

    first = service.ingest(signal, now=_NOW)
    again = service.ingest(signal, now=_NOW + timedelta(minutes=1))

    assert first.suppressed_reason is None
    assert again.suppressed_reason == SuppressionReason.DUPLICATE_SIGNAL
    assert again.state == first.state
    assert [stored.id for stored in flaky_store.get_recent_signals("fam-1")] == ["sig_fixed"]


def test_concurrent_ingests_for_one_family_are_serialized() -> None:
    count = 8
    store = _SlowStateStore()
    service = _service(store)
    barrier = threading.Barrier(count)
    errors: list[Exception] = []

    def worker(index: int) -> None:
        barrier.wait()
        try:
            service.ingest(_capacity_update(index), now=_NOW)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    sequential_store = InMemoryOrchestratorStore()
    sequential = _service(sequential_store)
    for index in range(count):
        sequential.ingest(_capacity_update(index), now=_NOW)

    assert errors == []
    assert len(store.get_recent_signals("fam-1")) == count
    assert store.get_state("fam-1") == sequential_store.get_state("fam-1")


def test_idle_notification_buckets_are_released() -> None:
    service = _service()

    service.ingest(_due_soon(), now=_NOW)
    assert "fam-1" in service._buckets

    service.ingest(
        Signal(
            family_id="fam-1",
            source="home",
            type="routine_change",
            timestamp=_NOW + timedelta(hours=2),
            payload={},
        ),
        now=_NOW + timedelta(hours=2),
    )
    assert "fam-1" not in service._buckets


def test_suppressed_notify_digest_is_written_with_the_signal() -> None:
    store = InMemoryOrchestratorStore()
    state = store.get_or_create_state("fam-1", _NOW - timedelta(hours=1))
    store.set_state(
        "fam-1", state.model_copy(update={"cooldown_until": _NOW + timedelta(minutes=30)}), _NOW
    )
    service = _service(store)

    service.ingest(_due_soon(idempotency_key="mail-7"), now=_NOW)
    service.ingest(_due_soon(idempotency_key="mail-7"), now=_NOW)

    digest: list[DigestItem] = store.get_digest("fam-1")
    assert len([item for item in digest if item.meta["reason"] == "cooldown_active"]) == 1
