"""Daily planning: upcoming deadlines, the daily tick and greedy plan selection."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from services.action.orchestrator.candidates import generate_candidates
from services.action.orchestrator.config import OrchestratorSettings, PlannerSettings
from services.action.orchestrator.domain import (
    Action,
    DailyPlan,
    DailyTickPayload,
    OrchestratorState,
    Signal,
    SignalSource,
    SignalType,
    UpcomingDeadline,
    Zone,
)
from services.action.orchestrator.features import extract_features
from services.action.orchestrator.optimizer import optimize_plan
from services.action.orchestrator.state import reduce_state


@dataclass(frozen=True)
class DailyPlanOutcome:
    """A new plan plus the state after the daily tick was folded in."""

    plan: DailyPlan
    state: OrchestratorState
    tick: Signal


def collect_upcoming_deadlines(
    signals: Sequence[Signal],
    *,
    window_start: datetime,
    window_end: datetime,
    limit: int = 10,
) -> list[UpcomingDeadline]:
    """Deadlines inside ``[window_start, window_end]``, soonest first.

    Each source signal contributes at most once.
    """
    found: list[UpcomingDeadline] = []
    seen: set[str] = set()
    for signal in signals:
        deadline = signal.payload.deadline
        if deadline is None or signal.id in seen:
            continue
        if not window_start <= deadline <= window_end:
            continue
        seen.add(signal.id)
        found.append(
            UpcomingDeadline(
                signal_id=signal.id,
                signal_type=signal.type,
                source=signal.source,
                deadline=deadline,
                title=signal.payload.title,
            )
        )
    found.sort(key=lambda item: item.deadline)
    return found[: max(0, limit)]


def effective_budget(state: OrchestratorState, settings: PlannerSettings) -> int:
    """Minutes available today; red zone halves the budget down to a floor."""
    budget = state.daily_attention_budget_min
    if state.zone != Zone.RED:
        return budget
    reduced = math.floor(budget * settings.red_zone_budget_factor)
    return max(settings.min_red_zone_budget_min, reduced)


def build_tick_signal(
    family_id: str,
    deadlines: Sequence[UpcomingDeadline],
    *,
    window_start: datetime,
    window_end: datetime,
    now: datetime,
) -> Signal:
    return Signal(
        family_id=family_id,
        source=SignalSource.SYSTEM,
        type=SignalType.SYSTEM_DAILY_TICK,
        timestamp=now,
        payload=DailyTickPayload(
            deadlines=list(deadlines),
            window_start=window_start,
            window_end=window_end,
        ),
    )


def deadline_signal(family_id: str, item: UpcomingDeadline, *, now: datetime) -> Signal:
    """Synthetic stand-in for one upcoming deadline; never stored."""
    return Signal(
        family_id=family_id,
        source=item.source,
        type=item.signal_type,
        timestamp=now,
        payload={
            "title": item.title,
            "deadline": item.deadline,
            "source_signal_id": item.signal_id,
        },
    )


def build_daily_plan(
    state: OrchestratorState,
    recent_signals: Sequence[Signal],
    *,
    now: datetime,
    settings: OrchestratorSettings,
) -> DailyPlanOutcome:
    """Fold the daily tick into ``state`` and pick up to ``plan_size`` actions."""
    planner = settings.planner
    window_start = now
    window_end = now + timedelta(hours=planner.horizon_hours)
    deadlines = collect_upcoming_deadlines(
        recent_signals,
        window_start=window_start,
        window_end=window_end,
        limit=planner.max_deadlines,
    )

    tick = build_tick_signal(
        state.family_id,
        deadlines,
        window_start=window_start,
        window_end=window_end,
        now=now,
    )
    tick_features = extract_features(tick, now=now)
    next_state = reduce_state(state, tick, tick_features, now=now, thresholds=settings.thresholds)
    slack_high = settings.thresholds.slack_high

    pool: list[Action] = generate_candidates(
        next_state, tick, tick_features, now=now, slack_high=slack_high
    )
    for item in deadlines:
        synthetic = deadline_signal(state.family_id, item, now=now)
        pool.extend(
            generate_candidates(
                next_state,
                synthetic,
                extract_features(synthetic, now=now),
                now=now,
                slack_high=slack_high,
            )
        )

    budget = effective_budget(next_state, planner)
    selection = optimize_plan(
        pool,
        budget_min=budget,
        k=planner.plan_size,
        allow_notify_now=next_state.zone != Zone.RED,
    )
    plan = DailyPlan(
        family_id=state.family_id,
        created_at=now,
        window_start=window_start,
        window_end=window_end,
        zone_at_plan_time=next_state.zone,
        attention_budget_min=budget,
        actions=selection.actions,
        rationale=selection.rationale,
    )
    return DailyPlanOutcome(plan=plan, state=next_state, tick=tick)
