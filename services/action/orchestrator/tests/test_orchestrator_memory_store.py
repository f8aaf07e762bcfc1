"""In-memory store ring buffer behavior."""

from __future__ import annotations

from datetime import UTC, datetime

from services.action.orchestrator.domain import Signal
from services.action.orchestrator.memory_store import InMemoryOrchestratorStore

_NOW = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)


def _signal(title: str, key: str | None = None) -> Signal:
    return Signal(
        family_id="fam-1",
        source="school",
        type="school_message",
        timestamp=_NOW,
        payload={"title": title},
        idempotency_key=key,
    )


def test_signal_history_is_a_bounded_ring_buffer() -> None:
    store = InMemoryOrchestratorStore()
    for index in range(5):
        store.append_signal(_signal(f"s{index}"), max_history=3)
    assert [s.payload.title for s in store.get_recent_signals("fam-1")] == ["s2", "s3", "s4"]


def test_idempotency_outlives_ring_buffer_rotation() -> None:
    store = InMemoryOrchestratorStore()
    first = store.append_signal(_signal("first", key="k-1"), max_history=2)
    store.append_signal(_signal("a"), max_history=2)
    store.append_signal(_signal("b"), max_history=2)

    again = store.append_signal(_signal("replay", key="k-1"), max_history=2)
    assert again is first
    assert [s.payload.title for s in store.get_recent_signals("fam-1")] == ["a", "b"]
