"""Behavior tests for lane-based candidate generation."""

from __future__ import annotations

from datetime import UTC, datetime

from services.action.orchestrator.candidates import generate_candidates
from services.action.orchestrator.domain import ActionType, Signal, Zone
from services.action.orchestrator.features import extract_features
from services.action.orchestrator.state import create_initial_state

_NOW = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)


def _signal(**overrides: object) -> Signal:
    values: dict[str, object] = {
        "familyId": "fam-1",
        "source": "school",
        "type": "school_message",
        "timestamp": _NOW.isoformat(),
        "payload": {},
    }
    values.update(overrides)
    return Signal.model_validate(values)


def _types(state, signal: Signal) -> list[ActionType]:
    features = extract_features(signal, now=_NOW)
    return [action.type for action in generate_candidates(state, signal, features, now=_NOW)]


def test_restraint_is_always_the_last_candidate() -> None:
    state = create_initial_state("fam-1", _NOW)
    assert _types(state, _signal()) == [ActionType.DO_NOTHING]


def test_priority_lane_fires_for_safety_payloads() -> None:
    state = create_initial_state("fam-1", _NOW)
    types = _types(state, _signal(payload={"isSafety": True}))
    assert types[0] == ActionType.NOTIFY_NOW
    assert types[-1] == ActionType.DO_NOTHING


def test_brake_and_deescalate_lanes_in_amber_for_heated_school_messages() -> None:
    state = create_initial_state("fam-1", _NOW).model_copy(update={"zone": Zone.AMBER})
    types = _types(state, _signal(features={"emotionHeat": 0.8}))
    assert types == [ActionType.ADD_TO_DIGEST, ActionType.DRAFT_MESSAGE, ActionType.DO_NOTHING]

    home = _signal(source="home", type="routine_change", features={"emotionHeat": 0.8})
    assert ActionType.DRAFT_MESSAGE not in _types(state, home)


def test_execute_lane_for_forms_and_deadlines() -> None:
    state = create_initial_state("fam-1", _NOW)
    assert ActionType.CREATE_MICRO_TASK in _types(state, _signal(type="form_request"))
    assert ActionType.CREATE_MICRO_TASK in _types(state, _signal(type="assignment_deadline"))
    assert ActionType.CREATE_MICRO_TASK not in _types(state, _signal(type="event_invite"))


def test_slack_lanes_only_when_green_and_slack_is_high() -> None:
    state = create_initial_state("fam-1", _NOW).model_copy(update={"slack": 0.7})
    assert _types(state, _signal()) == [
        ActionType.PROPOSE_MEETING,
        ActionType.SUGGEST_CONNECTION_MOMENT,
        ActionType.DO_NOTHING,
    ]

    amber = state.model_copy(update={"zone": Zone.AMBER})
    assert ActionType.PROPOSE_MEETING not in _types(amber, _signal())


def test_candidates_carry_signal_context_in_meta() -> None:
    state = create_initial_state("fam-1", _NOW)
    signal = _signal(type="form_request", payload={"title": "Field trip form"})
    features = extract_features(signal, now=_NOW)
    task = generate_candidates(state, signal, features, now=_NOW)[0]

    assert task.family_id == "fam-1"
    assert task.id.startswith("act_")
    assert task.meta["lane"] == "execute"
    assert task.meta["signal_type"] == "form_request"
    assert task.meta["payload"]["title"] == "Field trip form"
    assert "kind" not in task.meta["payload"]
