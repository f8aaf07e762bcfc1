"""Heuristic feature extraction for inbound signals."""

from __future__ import annotations

from datetime import datetime

from services.action.orchestrator.domain import (
    FeatureVector,
    Signal,
    SignalType,
    ensure_utc,
    utc_now,
)

BASE_FEATURES: dict[str, float] = {
    "urgency": 0.2,
    "impact": 0.3,
    "effort": 0.2,
    "emotion_heat": 0.1,
    "blocking": 0.1,
    "parent_burden": 0.2,
    "teacher_burden": 0.2,
}

# Per-type adjustments. Plain values are assigned; ("max", v) raises the
# field to at least v.
_TYPE_ADJUSTMENTS: dict[SignalType, dict[str, float | tuple[str, float]]] = {
    SignalType.SCHOOL_MESSAGE: {
        "impact": 0.4,
        "effort": ("max", 0.2),
        "parent_burden": 0.3,
        "teacher_burden": 0.2,
    },
    SignalType.ASSIGNMENT_DEADLINE: {
        "impact": 0.6,
        "blocking": 0.5,
        "parent_burden": 0.4,
        "teacher_burden": 0.1,
    },
    SignalType.GRADE_FLAG: {
        "impact": 0.7,
        "emotion_heat": ("max", 0.3),
        "parent_burden": 0.4,
        "teacher_burden": 0.1,
    },
    SignalType.ATTENDANCE_FLAG: {
        "impact": 0.75,
        "urgency": ("max", 0.6),
        "emotion_heat": ("max", 0.4),
        "parent_burden": 0.5,
        "teacher_burden": 0.1,
    },
    SignalType.BEHAVIOR_NOTE: {
        "impact": 0.8,
        "emotion_heat": ("max", 0.5),
        "parent_burden": 0.5,
        "teacher_burden": 0.2,
    },
    SignalType.FORM_REQUEST: {
        "impact": 0.65,
        "urgency": ("max", 0.4),
        "effort": ("max", 0.4),
        "blocking": ("max", 0.6),
        "parent_burden": 0.6,
        "teacher_burden": 0.1,
    },
    SignalType.EVENT_INVITE: {
        "impact": 0.35,
        "urgency": ("max", 0.2),
        "effort": ("max", 0.2),
        "parent_burden": 0.3,
        "teacher_burden": 0.2,
    },
    SignalType.PARENT_CAPACITY_UPDATE: {
        "impact": 0.2,
        "effort": 0.05,
        "parent_burden": 0.0,
        "teacher_burden": 0.0,
    },
    SignalType.CALENDAR_DENSITY_UPDATE: {
        "impact": 0.2,
        "effort": 0.05,
        "parent_burden": 0.0,
        "teacher_burden": 0.0,
    },
    SignalType.CHILD_CONTEXT_UPDATE: {
        "impact": 0.5,
        "emotion_heat": ("max", 0.2),
        "parent_burden": 0.2,
        "teacher_burden": 0.0,
    },
}


def clamp01(value: float) -> float:
    """Clamp to ``[0, 1]``; NaN collapses to 0."""
    if value != value:
        return 0.0
    return min(1.0, max(0.0, float(value)))


def deadline_urgency(deadline: datetime, now: datetime) -> float:
    """Urgency decays with lead time: 1 when due, about 0.14 three days out."""
    hours = max(0.0, (ensure_utc(deadline) - ensure_utc(now)).total_seconds() / 3600.0)
    if hours <= 0:
        return 1.0
    return clamp01(1.0 / (1.0 + hours / 12.0))


def extract_features(signal: Signal, *, now: datetime | None = None) -> FeatureVector:
    """Map a signal to its feature vector. Pure; explicit features always win."""
    now = utc_now() if now is None else now
    payload = signal.payload
    values = dict(BASE_FEATURES)

    if payload.deadline is not None:
        values["urgency"] = deadline_urgency(payload.deadline, now)
    if payload.sentiment is not None:
        values["emotion_heat"] = clamp01((1.0 - payload.sentiment) / 2.0)
    if payload.estimated_minutes is not None:
        values["effort"] = clamp01(payload.estimated_minutes / 30.0)

    for field_name, adjustment in _TYPE_ADJUSTMENTS.get(signal.type, {}).items():
        if isinstance(adjustment, tuple):
            values[field_name] = max(values[field_name], adjustment[1])
        else:
            values[field_name] = adjustment

    if signal.features is not None:
        values.update(signal.features.model_dump(exclude_none=True))

    return FeatureVector(**{name: clamp01(value) for name, value in values.items()})
