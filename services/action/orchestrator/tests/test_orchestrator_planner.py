"""Behavior tests for daily planning."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from services.action.orchestrator.config import OrchestratorSettings, PlannerSettings
from services.action.orchestrator.domain import ActionType, Signal, SignalType, Zone
from services.action.orchestrator.planner import (
    build_daily_plan,
    collect_upcoming_deadlines,
    effective_budget,
)
from services.action.orchestrator.state import create_initial_state

_NOW = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)


def _signal(signal_type: str, deadline: datetime | None, **payload: object) -> Signal:
    if deadline is not None:
        payload["deadline"] = deadline.isoformat()
    return Signal(
        family_id="fam-1",
        source="school",
        type=signal_type,
        timestamp=_NOW - timedelta(hours=2),
        payload=payload,
    )


def test_upcoming_deadlines_are_windowed_sorted_and_capped() -> None:
    window_end = _NOW + timedelta(hours=24)
    later = _signal("assignment_deadline", _NOW + timedelta(hours=20), title="Essay")
    sooner = _signal("form_request", _NOW + timedelta(hours=3), title="Permission slip")
    past = _signal("assignment_deadline", _NOW - timedelta(hours=1))
    far = _signal("assignment_deadline", _NOW + timedelta(days=3))
    undated = _signal("school_message", None)

    found = collect_upcoming_deadlines(
        [later, sooner, past, far, undated, later],
        window_start=_NOW,
        window_end=window_end,
    )

    assert [item.signal_id for item in found] == [sooner.id, later.id]
    assert found[0].title == "Permission slip"
    assert found[0].signal_type == SignalType.FORM_REQUEST

    many = [_signal("assignment_deadline", _NOW + timedelta(hours=h)) for h in range(1, 15)]
    capped = collect_upcoming_deadlines(many, window_start=_NOW, window_end=window_end)
    assert len(capped) == 10
    assert capped[0].signal_id == many[0].id


def test_red_zone_budget_is_halved_with_a_floor() -> None:
    settings = PlannerSettings()
    state = create_initial_state("fam-1", _NOW)
    assert effective_budget(state, settings) == 15
    red = state.model_copy(update={"zone": Zone.RED})
    assert effective_budget(red, settings) == 7
    tight = red.model_copy(update={"daily_attention_budget_min": 8})
    assert effective_budget(tight, settings) == 5


def test_red_zone_plan_drops_notify_now_and_fits_halved_budget() -> None:
    state = create_initial_state("fam-1", _NOW).model_copy(
        update={
            "zone": Zone.RED,
            "zone_since": _NOW,
            "tension": 0.8,
            "daily_attention_budget_min": 15,
        }
    )
    recent = [
        _signal("form_request", _NOW + timedelta(minutes=30), title="Medical form"),
        _signal("assignment_deadline", _NOW + timedelta(hours=2), title="Reading log"),
    ]

    outcome = build_daily_plan(state, recent, now=_NOW, settings=OrchestratorSettings())

    plan = outcome.plan
    assert plan.zone_at_plan_time == Zone.RED
    assert plan.attention_budget_min == 7
    assert plan.window_start == _NOW
    assert plan.window_end == _NOW + timedelta(hours=24)
    assert ActionType.NOTIFY_NOW not in {action.type for action in plan.actions}
    assert sum(action.time_cost_min for action in plan.actions) <= 7
    assert 1 <= len(plan.actions) <= 3
    assert plan.rationale


def test_plan_tick_is_folded_into_state() -> None:
    state = create_initial_state("fam-1", _NOW - timedelta(days=1)).model_copy(
        update={"cooldown_until": _NOW - timedelta(minutes=1)}
    )
    outcome = build_daily_plan(state, [], now=_NOW, settings=OrchestratorSettings())

    assert outcome.tick.type == SignalType.SYSTEM_DAILY_TICK
    assert outcome.tick.payload.window_end == _NOW + timedelta(hours=24)
    assert outcome.state.updated_at == _NOW
    assert outcome.state.cooldown_until is None


def test_green_plan_takes_up_to_three_actions_within_budget() -> None:
    state = create_initial_state("fam-1", _NOW)
    recent = [
        _signal("form_request", _NOW + timedelta(hours=1), title="Form A"),
        _signal("form_request", _NOW + timedelta(hours=2), title="Form B"),
        _signal("assignment_deadline", _NOW + timedelta(hours=3), title="Project"),
    ]

    plan = build_daily_plan(state, recent, now=_NOW, settings=OrchestratorSettings()).plan

    assert plan.attention_budget_min == 15
    assert len(plan.actions) <= 3
    assert sum(action.time_cost_min for action in plan.actions) <= 15
    assert sum(1 for action in plan.actions if action.type == ActionType.DO_NOTHING) <= 1
