"""State reduction: EWMA smoothing, derived indices, and the zone machine.

Reduction is pure. The engine reads the stored state, calls
``reduce_state`` and writes the result back under the family lock.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from services.action.orchestrator.config import ZoneThresholds
from services.action.orchestrator.domain import (
    FeatureVector,
    OrchestratorState,
    QuietHours,
    Signal,
    SignalSource,
    SignalType,
    Zone,
    utc_now,
)
from services.action.orchestrator.features import clamp01

DEFAULT_THRESHOLDS = ZoneThresholds()

ALPHA_FAST = 0.35
ALPHA_SLOW = 0.12
HOME_SLACK_TARGET = 0.2
HOME_SLACK_ALPHA = 0.15
RELIEF_TARGET = 0.05
RELIEF_BACKLOG_ALPHA = 0.25
RELIEF_STRAIN_ALPHA = 0.2
CHILD_RISK_BASELINE = 0.2
CHILD_RISK_DECAY_ALPHA = 0.03
DRIFT_ALPHA = 0.05

_CHILD_RISK_FLAGS = frozenset(
    {SignalType.ATTENDANCE_FLAG, SignalType.BEHAVIOR_NOTE, SignalType.GRADE_FLAG}
)


def ewma(prev: float, x: float, alpha: float) -> float:
    """Move ``prev`` toward ``x`` by ``alpha``; the result lies between them."""
    return clamp01(alpha * x + (1.0 - alpha) * prev)


def create_initial_state(family_id: str, now: datetime | None = None) -> OrchestratorState:
    """Return the default state for a family seen for the first time."""
    now = utc_now() if now is None else now
    return OrchestratorState(
        family_id=family_id,
        updated_at=now,
        parent_bandwidth=0.6,
        school_pressure=0.3,
        backlog_load=0.2,
        relationship_strain=0.1,
        child_risk=0.2,
        engagement_slack=0.3,
        schedule_density=0.3,
        tension=0.25,
        slack=0.3,
        zone=Zone.GREEN,
        zone_since=now,
        cooldown_until=None,
        daily_attention_budget_min=15,
        max_notifications_per_hour=3,
        quiet_hours_local=QuietHours(start="21:00", end="07:00"),
    )


def compute_indices(values: Mapping[str, Any]) -> tuple[float, float]:
    """Return ``(tension, slack)`` from raw state fields."""
    tension = clamp01(
        0.22 * values["school_pressure"]
        + 0.18 * values["backlog_load"]
        + 0.22 * values["relationship_strain"]
        + 0.18 * values["schedule_density"]
        + 0.20 * values["child_risk"]
        - 0.22 * values["parent_bandwidth"]
    )
    slack = clamp01(
        0.40 * values["engagement_slack"]
        + 0.30 * (1.0 - values["backlog_load"])
        + 0.20 * (1.0 - values["school_pressure"])
        + 0.10 * (1.0 if values["child_risk"] > 0.6 else 0.0)
    )
    return tension, slack


def next_zone(
    *,
    zone: Zone,
    zone_since: datetime,
    tension: float,
    now: datetime,
    thresholds: ZoneThresholds = DEFAULT_THRESHOLDS,
) -> tuple[Zone, datetime]:
    """Apply hysteresis and return ``(zone, zone_since)``.

    Escalation to red is immediate. Any other change needs the current zone
    to have held for at least the dwell time.
    """
    dwell_ok = now - zone_since >= thresholds.dwell
    target = zone
    if tension >= thresholds.tension_high:
        target = Zone.RED
    elif tension >= thresholds.tension_low:
        if zone != Zone.AMBER and dwell_ok:
            target = Zone.AMBER
    elif zone != Zone.GREEN and dwell_ok:
        target = Zone.GREEN

    if target == zone:
        return zone, zone_since
    return target, now


def reduce_state(
    prev: OrchestratorState,
    signal: Signal,
    features: FeatureVector,
    *,
    now: datetime | None = None,
    thresholds: ZoneThresholds = DEFAULT_THRESHOLDS,
) -> OrchestratorState:
    """Fold one signal into the family state."""
    now = utc_now() if now is None else now
    payload = signal.payload
    values: dict[str, Any] = {
        "parent_bandwidth": prev.parent_bandwidth,
        "school_pressure": prev.school_pressure,
        "backlog_load": prev.backlog_load,
        "relationship_strain": prev.relationship_strain,
        "child_risk": prev.child_risk,
        "engagement_slack": prev.engagement_slack,
        "schedule_density": prev.schedule_density,
    }
    updates: dict[str, Any] = {}

    # Explicit home updates.
    bandwidth = getattr(payload, "bandwidth", None)
    if signal.type == SignalType.PARENT_CAPACITY_UPDATE and bandwidth is not None:
        values["parent_bandwidth"] = clamp01(bandwidth)
    density = getattr(payload, "density", None)
    if signal.type == SignalType.CALENDAR_DENSITY_UPDATE and density is not None:
        values["schedule_density"] = clamp01(density)
    quiet_hours = getattr(payload, "quiet_hours", None)
    if signal.type == SignalType.PARENT_PREFERENCE_UPDATE and quiet_hours is not None:
        updates["quiet_hours_local"] = quiet_hours

    if signal.source == SignalSource.SCHOOL:
        pressure = clamp01(0.55 * features.urgency + 0.45 * features.impact)
        values["school_pressure"] = ewma(prev.school_pressure, pressure, ALPHA_FAST)
        backlog = clamp01(0.5 * features.effort + 0.5 * features.blocking)
        values["backlog_load"] = ewma(prev.backlog_load, backlog, ALPHA_FAST)
        values["relationship_strain"] = ewma(
            prev.relationship_strain, features.emotion_heat, ALPHA_SLOW
        )

    if signal.source == SignalSource.HOME:
        values["engagement_slack"] = ewma(
            prev.engagement_slack, HOME_SLACK_TARGET, HOME_SLACK_ALPHA
        )

    if signal.type == SignalType.ACTION_COMPLETED:
        values["backlog_load"] = ewma(prev.backlog_load, RELIEF_TARGET, RELIEF_BACKLOG_ALPHA)
        values["relationship_strain"] = ewma(
            prev.relationship_strain, RELIEF_TARGET, RELIEF_STRAIN_ALPHA
        )

    risk = getattr(payload, "risk", None)
    if signal.type in _CHILD_RISK_FLAGS:
        target = clamp01(0.55 * features.impact + 0.45 * features.emotion_heat)
        values["child_risk"] = ewma(prev.child_risk, target, ALPHA_SLOW)
    elif signal.type == SignalType.CHILD_CONTEXT_UPDATE and risk is not None:
        values["child_risk"] = clamp01(risk)
    else:
        values["child_risk"] = ewma(prev.child_risk, CHILD_RISK_BASELINE, CHILD_RISK_DECAY_ALPHA)

    # Drift is smoothed from the previous slack, so it supersedes the home nudge.
    drift = clamp01(0.5 * (1.0 - values["school_pressure"]) + 0.5 * (1.0 - values["backlog_load"]))
    values["engagement_slack"] = ewma(prev.engagement_slack, drift, DRIFT_ALPHA)

    tension, slack = compute_indices(values)
    zone, zone_since = next_zone(
        zone=prev.zone,
        zone_since=prev.zone_since,
        tension=tension,
        now=now,
        thresholds=thresholds,
    )

    cooldown_until = prev.cooldown_until
    if prev.zone != Zone.RED and zone == Zone.RED:
        cooldown_until = now + thresholds.cooldown
    if cooldown_until is not None and cooldown_until <= now:
        cooldown_until = None

    return prev.model_copy(
        update={
            **values,
            **updates,
            "tension": tension,
            "slack": slack,
            "zone": zone,
            "zone_since": zone_since,
            "cooldown_until": cooldown_until,
            "updated_at": now,
        }
    )

