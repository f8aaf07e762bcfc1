"""Candidate action generation, one builder per lane.

Each lane builder is a pure function returning a typed ``Action``. The
generator decides which lanes apply; lanes are additive and ``do_nothing``
is always last.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from packages.hearth_shared.ids import make_id
from services.action.orchestrator.domain import (
    Action,
    ActionType,
    FeatureVector,
    OrchestratorState,
    Signal,
    SignalSource,
    SignalType,
    Zone,
    utc_now,
)
from services.action.orchestrator.features import clamp01

DUE_SOON_URGENCY = 0.75
HOT_EMOTION_HEAT = 0.65
SLACK_HIGH = 0.65

_EXECUTE_SIGNAL_TYPES = frozenset({SignalType.FORM_REQUEST, SignalType.ASSIGNMENT_DEADLINE})


@dataclass(frozen=True)
class LaneContext:
    """Inputs shared by every lane builder for one generation pass."""

    state: OrchestratorState
    signal: Signal
    features: FeatureVector
    now: datetime

    def action(self, lane: str, action_type: ActionType, **fields: Any) -> Action:
        meta = {
            "signal_type": self.signal.type.value,
            "signal_source": self.signal.source.value,
            "payload": self.signal.payload.model_dump(mode="json", exclude={"kind"}),
            "lane": lane,
        }
        return Action(
            id=make_id("act"),
            family_id=self.state.family_id,
            created_at=self.now,
            type=action_type,
            meta=meta,
            **fields,
        )


def priority_action(ctx: LaneContext) -> Action:
    f = ctx.features
    is_priority = ctx.signal.payload.is_priority
    return ctx.action(
        "priority",
        ActionType.NOTIFY_NOW,
        title="Time-sensitive school item" if is_priority else "Due soon",
        summary=(
            "A high-priority item needs attention. A concise response or a "
            "micro-task can be drafted right away."
            if is_priority
            else "An upcoming deadline may need a quick plan to avoid a last-minute scramble."
        ),
        kid_benefit=clamp01(0.6 + 0.4 * f.impact),
        relationship_benefit=clamp01(0.2 + 0.3 * (1 - f.emotion_heat)),
        school_resolution_benefit=clamp01(0.5 + 0.4 * f.urgency),
        cognitive_cost=0.35,
        emotional_cost=clamp01(0.2 + 0.5 * f.emotion_heat),
        time_cost_min=2,
        parent_burden=clamp01(f.parent_burden),
        teacher_burden=clamp01(f.teacher_burden),
    )


def brake_action(ctx: LaneContext) -> Action:
    f = ctx.features
    return ctx.action(
        "brake",
        ActionType.ADD_TO_DIGEST,
        title="Batch non-urgent items",
        summary="Reduce cognitive load by batching noncritical items into the next digest window.",
        kid_benefit=clamp01(0.2 + 0.3 * f.impact),
        relationship_benefit=clamp01(0.4 + 0.2 * (1 - f.emotion_heat)),
        school_resolution_benefit=clamp01(0.2 + 0.3 * (1 - f.urgency)),
        cognitive_cost=0.05,
        emotional_cost=0.05,
        time_cost_min=0,
        parent_burden=0.05,
        teacher_burden=0.05,
    )


def deescalate_action(ctx: LaneContext) -> Action:
    f = ctx.features
    return ctx.action(
        "deescalate",
        ActionType.DRAFT_MESSAGE,
        title="Draft a calm, collaborative reply",
        summary=(
            "Write a short, factual, non-accusatory reply that clarifies next "
            "steps and cuts down on back-and-forth."
        ),
        kid_benefit=clamp01(0.3 + 0.3 * f.impact),
        relationship_benefit=clamp01(0.55 + 0.25 * (1 - f.emotion_heat)),
        school_resolution_benefit=clamp01(0.35 + 0.25 * f.blocking),
        cognitive_cost=0.2,
        emotional_cost=clamp01(0.15 + 0.35 * f.emotion_heat),
        time_cost_min=3,
        parent_burden=clamp01(f.parent_burden * 0.6),
        teacher_burden=clamp01(f.teacher_burden * 0.4),
    )


def execute_action(ctx: LaneContext) -> Action:
    f = ctx.features
    return ctx.action(
        "execute",
        ActionType.CREATE_MICRO_TASK,
        title="Make a 5-minute micro-task",
        summary="Turn this into one concrete next step with a time estimate and a stopping point.",
        kid_benefit=clamp01(0.55 + 0.35 * f.impact),
        relationship_benefit=clamp01(0.2 + 0.2 * (1 - f.emotion_heat)),
        school_resolution_benefit=clamp01(0.6 + 0.3 * f.blocking),
        cognitive_cost=0.25,
        emotional_cost=clamp01(0.1 + 0.3 * f.emotion_heat),
        time_cost_min=5,
        parent_burden=clamp01(f.parent_burden),
        teacher_burden=clamp01(f.teacher_burden),
    )


def slack_action(ctx: LaneContext) -> Action:
    return ctx.action(
        "slack",
        ActionType.PROPOSE_MEETING,
        title="Nudge a low-friction touchpoint",
        summary="Suggest a brief check-in or office-hours slot to prevent drift without adding pressure.",
        kid_benefit=clamp01(0.3 + 0.3 * ctx.state.child_risk),
        relationship_benefit=0.55,
        school_resolution_benefit=0.25,
        cognitive_cost=0.15,
        emotional_cost=0.1,
        time_cost_min=2,
        parent_burden=0.25,
        teacher_burden=0.25,
    )


def connection_action(ctx: LaneContext) -> Action:
    return ctx.action(
        "connection",
        ActionType.SUGGEST_CONNECTION_MOMENT,
        title="Suggest a 2-minute connection moment",
        summary="Offer a tiny parent and child moment tied to the week, such as a curiosity question.",
        kid_benefit=clamp01(0.35 + 0.25 * ctx.state.child_risk),
        relationship_benefit=0.35,
        school_resolution_benefit=0.05,
        cognitive_cost=0.05,
        emotional_cost=0.05,
        time_cost_min=2,
        parent_burden=0.1,
        teacher_burden=0.0,
    )


def restraint_action(ctx: LaneContext) -> Action:
    return ctx.action(
        "restraint",
        ActionType.DO_NOTHING,
        title="No action right now",
        summary="Defer until the next digest window or until a clearer signal arrives.",
        kid_benefit=0.0,
        relationship_benefit=0.15,
        school_resolution_benefit=0.0,
        cognitive_cost=0.0,
        emotional_cost=0.0,
        time_cost_min=0,
        parent_burden=0.0,
        teacher_burden=0.0,
    )


def generate_candidates(
    state: OrchestratorState,
    signal: Signal,
    features: FeatureVector,
    *,
    now: datetime | None = None,
    slack_high: float = SLACK_HIGH,
) -> list[Action]:
    """Return every applicable candidate in lane order."""
    ctx = LaneContext(
        state=state,
        signal=signal,
        features=features,
        now=utc_now() if now is None else now,
    )
    actions: list[Action] = []

    if signal.payload.is_priority or features.urgency >= DUE_SOON_URGENCY:
        actions.append(priority_action(ctx))

    if state.zone in (Zone.AMBER, Zone.RED):
        actions.append(brake_action(ctx))
        if features.emotion_heat >= HOT_EMOTION_HEAT and signal.source == SignalSource.SCHOOL:
            actions.append(deescalate_action(ctx))

    if signal.type in _EXECUTE_SIGNAL_TYPES:
        actions.append(execute_action(ctx))

    if state.slack >= slack_high and state.zone == Zone.GREEN:
        actions.append(slack_action(ctx))
        actions.append(connection_action(ctx))

    actions.append(restraint_action(ctx))
    return actions
