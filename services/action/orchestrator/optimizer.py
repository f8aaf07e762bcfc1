"""Multi-objective scoring and the two selection strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from services.action.orchestrator.domain import Action, ActionType
from services.action.orchestrator.features import clamp01

NOTIFY_MIN_REMAINING_BUDGET = 2.0


@dataclass(frozen=True)
class Weights:
    kid: float = 0.45
    relationship: float = 0.25
    school: float = 0.30
    cognitive: float = 0.25
    emotional: float = 0.25
    time: float = 0.20
    fairness: float = 0.15


DEFAULT_WEIGHTS = Weights()


@dataclass(frozen=True)
class ScoredAction:
    action: Action
    utility: float


@dataclass(frozen=True)
class OptimizeResult:
    ranked: list[ScoredAction]
    chosen: Action | None = None

    @property
    def ranked_actions(self) -> list[Action]:
        return [item.action for item in self.ranked]


@dataclass(frozen=True)
class PlanSelection:
    actions: list[Action]
    ranked: list[ScoredAction] = field(default_factory=list)
    rationale: str = ""


def utility(action: Action, weights: Weights = DEFAULT_WEIGHTS) -> float:
    """Weighted benefit minus weighted cost minus a burden-imbalance penalty."""
    benefit = (
        weights.kid * action.kid_benefit
        + weights.relationship * action.relationship_benefit
        + weights.school * action.school_resolution_benefit
    )
    cost = (
        weights.cognitive * action.cognitive_cost
        + weights.emotional * action.emotional_cost
        + weights.time * clamp01(action.time_cost_min / 30.0)
    )
    fairness = abs(action.parent_burden - action.teacher_burden)
    return benefit - cost - weights.fairness * fairness


def rank(actions: Sequence[Action], weights: Weights = DEFAULT_WEIGHTS) -> list[ScoredAction]:
    """Sort by utility, highest first. Ties keep generation order."""
    scored = [ScoredAction(action=action, utility=utility(action, weights)) for action in actions]
    return sorted(scored, key=lambda item: item.utility, reverse=True)


def optimize(
    candidates: Sequence[Action],
    *,
    remaining_budget_min: float,
    notify_suppressed: bool,
    weights: Weights = DEFAULT_WEIGHTS,
) -> OptimizeResult:
    """Pick the single best feasible action."""
    ranked = rank(candidates, weights)
    for item in ranked:
        action = item.action
        if action.type == ActionType.NOTIFY_NOW and notify_suppressed:
            continue
        if action.time_cost_min > remaining_budget_min:
            continue
        if (
            action.type == ActionType.NOTIFY_NOW
            and remaining_budget_min < NOTIFY_MIN_REMAINING_BUDGET
        ):
            continue
        return OptimizeResult(ranked=ranked, chosen=action)
    return OptimizeResult(ranked=ranked, chosen=None)


def optimize_plan(
    candidates: Sequence[Action],
    *,
    budget_min: float,
    k: int,
    allow_notify_now: bool,
    weights: Weights = DEFAULT_WEIGHTS,
) -> PlanSelection:
    """Greedily take up to ``k`` ranked actions that fit a shared time budget.

    At most one ``do_nothing`` is taken, and only ``create_micro_task`` may
    appear more than once.
    """
    ranked = rank(candidates, weights)
    chosen: list[ScoredAction] = []
    seen_types: set[ActionType] = set()
    remaining = float(budget_min)

    for item in ranked:
        if len(chosen) >= k:
            break
        action = item.action
        if action.type == ActionType.NOTIFY_NOW and not allow_notify_now:
            continue
        if action.time_cost_min > remaining:
            continue
        if action.type in seen_types and action.type != ActionType.CREATE_MICRO_TASK:
            continue
        chosen.append(item)
        seen_types.add(action.type)
        remaining -= action.time_cost_min

    return PlanSelection(
        actions=[item.action for item in chosen],
        ranked=ranked,
        rationale=_plan_rationale(chosen, budget_min=budget_min, remaining=remaining, k=k),
    )


def _plan_rationale(
    chosen: Sequence[ScoredAction],
    *,
    budget_min: float,
    remaining: float,
    k: int,
) -> str:
    if not chosen:
        return f"No action fit the {budget_min:g}-minute attention budget."
    used = budget_min - remaining
    parts = ", ".join(f"{item.action.type.value} ({item.utility:.2f})" for item in chosen)
    return (
        f"Selected {len(chosen)} of up to {k} actions using {used:g} of "
        f"{budget_min:g} budget minutes, ranked by utility: {parts}."
    )
