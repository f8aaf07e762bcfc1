"""Deterministic weekly brief and conservative setpoint tuning."""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from services.action.orchestrator.config import ZoneThresholds
from services.action.orchestrator.domain import (
    OrchestratorState,
    SetpointAdjustments,
    Signal,
    SignalType,
    WeeklyBrief,
    Zone,
    ZoneSummary,
)

WEEK = timedelta(days=7)
WHY_NOW_MAX_LENGTH = 240

DEADLINE_HIGHLIGHT_COUNT = 3
FORM_HIGHLIGHT_COUNT = 2
STRAIN_RISK = 0.5
CHILD_RISK = 0.6

MIN_DAILY_BUDGET_MIN = 5
BUDGET_SHRINK_FACTOR = 0.8
MIN_NOTIFICATIONS_PER_HOUR = 1
MAX_NOTIFICATIONS_PER_HOUR = 5

NEXT_STEPS: dict[Zone, tuple[str, ...]] = {
    Zone.GREEN: (
        "Keep the daily digest as the main channel for school updates.",
        "Pick one small connection moment with your child this week.",
        "Glance at next week's calendar for early deadlines.",
    ),
    Zone.AMBER: (
        "Batch non-urgent school items into the digest.",
        "Turn the most blocking item into one 5-minute task.",
        "Leave one evening this week free of school admin.",
    ),
    Zone.RED: (
        "Handle only safety and compliance items this week.",
        "Let the digest hold everything else until things calm down.",
        "Send one short, calm message if a school thread needs a reply.",
    ),
}


@dataclass(frozen=True)
class WeeklyOutcome:
    """A new brief plus the state with any tuned setpoints applied."""

    brief: WeeklyBrief
    state: OrchestratorState


def count_signals(
    signals: Sequence[Signal], *, week_start: datetime, week_end: datetime
) -> dict[str, int]:
    """Count signals by type whose timestamp falls in the trailing week."""
    counts: Counter[str] = Counter(
        signal.type.value
        for signal in signals
        if week_start <= signal.timestamp <= week_end
    )
    return dict(sorted(counts.items()))


def highlights_for(counts: dict[str, int]) -> list[str]:
    highlights: list[str] = []
    if not counts:
        return ["A quiet week with no new school or home updates."]
    deadlines = counts.get(SignalType.ASSIGNMENT_DEADLINE.value, 0)
    if deadlines >= DEADLINE_HIGHLIGHT_COUNT:
        highlights.append(f"{deadlines} assignment deadlines came through this week.")
    forms = counts.get(SignalType.FORM_REQUEST.value, 0)
    if forms >= FORM_HIGHLIGHT_COUNT:
        highlights.append(f"{forms} forms were requested by school.")
    completed = counts.get(SignalType.ACTION_COMPLETED.value, 0)
    if completed >= 1:
        noun = "action" if completed == 1 else "actions"
        highlights.append(f"You completed {completed} {noun}. Small wins add up.")
    return highlights


def risks_for(state: OrchestratorState, thresholds: ZoneThresholds) -> list[str]:
    risks: list[str] = []
    if state.relationship_strain >= STRAIN_RISK:
        risks.append("Home and school communication has felt tense lately.")
    if state.child_risk >= CHILD_RISK:
        risks.append("Recent school notes suggest your child may need extra support.")
    if state.tension >= thresholds.tension_high:
        risks.append("Overall load is high; expect fewer prompts until it eases.")
    if state.slack >= thresholds.slack_high and state.zone == Zone.GREEN:
        risks.append("Things are quiet enough that school engagement could drift.")
    return risks


def tune_setpoints(
    state: OrchestratorState, thresholds: ZoneThresholds
) -> SetpointAdjustments | None:
    """Small, bounded setpoint moves; ``None`` when nothing changes.

    High tension only ever lowers setpoints and calm only ever raises the
    notification cap, so neither rule undoes a more protective value.
    """
    budget = state.daily_attention_budget_min
    notifications = state.max_notifications_per_hour
    new_budget = budget
    new_notifications = notifications

    if state.tension >= thresholds.tension_high or state.zone == Zone.RED:
        shrunk = max(MIN_DAILY_BUDGET_MIN, math.floor(budget * BUDGET_SHRINK_FACTOR))
        new_budget = min(budget, shrunk)
        lowered = max(MIN_NOTIFICATIONS_PER_HOUR, notifications - 1)
        new_notifications = min(notifications, lowered)
    elif (
        state.zone == Zone.GREEN
        and state.tension < thresholds.tension_low
        and state.slack >= thresholds.slack_high
    ):
        raised = min(MAX_NOTIFICATIONS_PER_HOUR, notifications + 1)
        new_notifications = max(notifications, raised)

    changes: dict[str, int] = {}
    if new_budget != budget:
        changes["daily_attention_budget_min"] = new_budget
    if new_notifications != notifications:
        changes["max_notifications_per_hour"] = new_notifications
    if not changes:
        return None
    return SetpointAdjustments(**changes)


def why_now(
    state: OrchestratorState, counts: dict[str, int], adjustments: SetpointAdjustments | None
) -> str:
    total = sum(counts.values())
    noun = "update" if total == 1 else "updates"
    sentence = f"This week brought {total} {noun} and the family is in the {state.zone.value} zone"
    if adjustments is None:
        sentence += ", so settings stay as they are."
    elif adjustments.max_notifications_per_hour is not None and (
        adjustments.max_notifications_per_hour > state.max_notifications_per_hour
    ):
        sentence += ", so a little more real-time help is allowed."
    else:
        sentence += ", so prompts are being eased back."
    return sentence[:WHY_NOW_MAX_LENGTH]


def build_weekly_brief(
    state: OrchestratorState,
    signals: Sequence[Signal],
    *,
    now: datetime,
    thresholds: ZoneThresholds,
) -> WeeklyOutcome:
    week_start = now - WEEK
    counts = count_signals(signals, week_start=week_start, week_end=now)
    adjustments = tune_setpoints(state, thresholds)

    brief = WeeklyBrief(
        family_id=state.family_id,
        created_at=now,
        week_start=week_start,
        week_end=now,
        zone_summary=ZoneSummary(
            current_zone=state.zone,
            tension=state.tension,
            slack=state.slack,
            cooldown_active=state.cooldown_active(now),
        ),
        signal_counts=counts,
        highlights=highlights_for(counts),
        risks=risks_for(state, thresholds),
        recommended_next_steps=list(NEXT_STEPS[state.zone]),
        why_now=why_now(state, counts, adjustments),
        setpoint_adjustments=adjustments,
    )

    tuned = state
    if adjustments is not None:
        tuned = state.model_copy(
            update={
                **adjustments.model_dump(exclude_none=True),
                "updated_at": now,
            }
        )
    return WeeklyOutcome(brief=brief, state=tuned)
