"""Domain contracts for the family orchestrator.

Every record is a frozen pydantic model. Field names are snake_case; the
camelCase spellings used by upstream producers (``familyId``, ``isSafety``,
``estimatedMinutes``) are accepted on input.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from packages.hearth_shared.ids import make_id
from packages.hearth_shared.logging import get_logger

logger = get_logger(__name__)

Unit = Annotated[float, Field(ge=0.0, le=1.0)]
HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class SignalSource(StrEnum):
    SCHOOL = "school"
    HOME = "home"
    SYSTEM = "system"


class SignalType(StrEnum):
    """Closed set of event kinds the engine understands."""

    # School side
    SCHOOL_MESSAGE = "school_message"
    ASSIGNMENT_DEADLINE = "assignment_deadline"
    EVENT_INVITE = "event_invite"
    ATTENDANCE_FLAG = "attendance_flag"
    BEHAVIOR_NOTE = "behavior_note"
    FORM_REQUEST = "form_request"
    GRADE_FLAG = "grade_flag"

    # Home side
    PARENT_CAPACITY_UPDATE = "parent_capacity_update"
    CALENDAR_DENSITY_UPDATE = "calendar_density_update"
    ROUTINE_CHANGE = "routine_change"
    CHILD_CONTEXT_UPDATE = "child_context_update"
    PARENT_PREFERENCE_UPDATE = "parent_preference_update"

    # System
    DIGEST_DELIVERED = "digest_delivered"
    ACTION_COMPLETED = "action_completed"
    NOTIFICATION_OPENED = "notification_opened"
    COOLDOWN_STARTED = "cooldown_started"
    COOLDOWN_ENDED = "cooldown_ended"

    # Planner ticks
    SYSTEM_DAILY_TICK = "system_daily_tick"
    SYSTEM_WEEKLY_TICK = "system_weekly_tick"


class Zone(StrEnum):
    GREEN = "green"
    AMBER = "amber"
    RED = "red"


class ActionType(StrEnum):
    NOTIFY_NOW = "notify_now"
    ADD_TO_DIGEST = "add_to_digest"
    CREATE_MICRO_TASK = "create_micro_task"
    DRAFT_MESSAGE = "draft_message"
    PROPOSE_MEETING = "propose_meeting"
    SUGGEST_CONNECTION_MOMENT = "suggest_connection_moment"
    DO_NOTHING = "do_nothing"


class ActionStatus(StrEnum):
    QUEUED = "queued"
    COMPLETED = "completed"
    DISMISSED = "dismissed"


class DigestStatus(StrEnum):
    QUEUED = "queued"
    DELIVERED = "delivered"
    DISMISSED = "dismissed"


class SuppressionReason(StrEnum):
    COOLDOWN_ACTIVE = "cooldown_active"
    QUIET_HOURS = "quiet_hours"
    RED_ZONE_THROTTLE = "red_zone_throttle"
    RATE_LIMITED = "rate_limited"
    DUPLICATE_SIGNAL = "duplicate_signal"


class MitigationType(StrEnum):
    DUPLICATE_STORM = "duplicate_storm"


class MitigationOutcome(StrEnum):
    """Reasons a mitigation request did not apply a new patch."""

    DISABLED = "disabled"
    BELOW_THRESHOLD = "below_threshold"
    ALREADY_ACTIVE = "already_active"
    NO_STATE = "no_state"


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


class _Record(BaseModel):
    """Base for persisted records; normalizes every datetime field to UTC."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


class QuietHours(_Record):
    """Local ``HH:MM`` window; ``end`` earlier than ``start`` wraps past midnight."""

    start: str = Field(pattern=HHMM_PATTERN)
    end: str = Field(pattern=HHMM_PATTERN)


class FeatureVector(_Record):
    """Seven normalized per-signal features used by the reducer and scorer."""

    urgency: Unit
    impact: Unit
    effort: Unit
    emotion_heat: Unit
    blocking: Unit
    parent_burden: Unit
    teacher_burden: Unit


class FeatureOverrides(_Record):
    """Caller-supplied features; any field present wins over the heuristics."""

    urgency: Unit | None = None
    impact: Unit | None = None
    effort: Unit | None = None
    emotion_heat: Unit | None = None
    blocking: Unit | None = None
    parent_burden: Unit | None = None
    teacher_burden: Unit | None = None


# ---------------------------------------------------------------------------
# Signal payloads


class SignalPayload(_Record):
    """Hint fields shared by every payload variant.

    Keys that no variant declares are kept in ``extra`` so producers can ship
    new fields before the engine learns about them.
    """

    title: str | None = None
    deadline: datetime | None = None
    sentiment: float | None = Field(default=None, ge=-1.0, le=1.0)
    estimated_minutes: float | None = Field(default=None, ge=0.0)
    is_safety: bool = False
    is_compliance: bool = False
    priority: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_unknown_keys(cls, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value
        known: set[str] = set()
        for name, info in cls.model_fields.items():
            known.add(name)
            if info.alias:
                known.add(info.alias)
        data: dict[str, Any] = {}
        extra = dict(value.get("extra") or {})
        for key, item in value.items():
            if key == "extra":
                continue
            if key in known:
                data[key] = item
            else:
                extra[str(key)] = item
        data["extra"] = extra
        return data

    @field_validator("deadline", mode="before")
    @classmethod
    def _lenient_deadline(cls, value: Any) -> Any:
        # Unparseable deadlines carry no urgency hint rather than rejecting the signal.
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                return None
        if value is None or isinstance(value, datetime):
            return value
        return None

    @property
    def is_priority(self) -> bool:
        return self.is_safety or self.is_compliance or self.priority == "high"


class GenericPayload(SignalPayload):
    kind: Literal[
        "school_message",
        "assignment_deadline",
        "event_invite",
        "attendance_flag",
        "behavior_note",
        "form_request",
        "grade_flag",
        "routine_change",
        "digest_delivered",
        "notification_opened",
        "cooldown_started",
        "cooldown_ended",
        "system_weekly_tick",
    ]


class ParentCapacityPayload(SignalPayload):
    kind: Literal["parent_capacity_update"] = "parent_capacity_update"
    bandwidth: Unit | None = None


class CalendarDensityPayload(SignalPayload):
    kind: Literal["calendar_density_update"] = "calendar_density_update"
    density: Unit | None = None


class ParentPreferencePayload(SignalPayload):
    kind: Literal["parent_preference_update"] = "parent_preference_update"
    quiet_hours: QuietHours | None = None


class ChildContextPayload(SignalPayload):
    kind: Literal["child_context_update"] = "child_context_update"
    risk: Unit | None = None


class ActionCompletedPayload(SignalPayload):
    kind: Literal["action_completed"] = "action_completed"
    action_id: str | None = None


class UpcomingDeadline(_Record):
    """One deadline found in recent history that falls inside a plan window."""

    signal_id: str
    signal_type: SignalType
    source: SignalSource
    deadline: datetime
    title: str | None = None


class DailyTickPayload(SignalPayload):
    kind: Literal["system_daily_tick"] = "system_daily_tick"
    deadlines: list[UpcomingDeadline] = Field(default_factory=list)
    window_start: datetime | None = None
    window_end: datetime | None = None


Payload = Annotated[
    Union[
        GenericPayload,
        ParentCapacityPayload,
        CalendarDensityPayload,
        ParentPreferencePayload,
        ChildContextPayload,
        ActionCompletedPayload,
        DailyTickPayload,
    ],
    Field(discriminator="kind"),
]


class Signal(_Record):
    """One inbound event. Immutable once stored."""

    id: str = Field(default_factory=lambda: make_id("sig"), min_length=1)
    family_id: str = Field(min_length=1)
    child_id: str | None = None
    source: SignalSource
    type: SignalType
    timestamp: datetime = Field(default_factory=utc_now)
    features: FeatureOverrides | None = None
    payload: Payload
    idempotency_key: str | None = Field(default=None, min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _tag_payload(cls, value: Any) -> Any:
        """Route the raw payload to the variant matching the signal type."""
        if not isinstance(value, Mapping):
            return value
        data = dict(value)
        raw = data.get("payload")
        if isinstance(raw, SignalPayload):
            raw = raw.model_dump(exclude={"kind"})
        elif raw is None:
            raw = {}
        elif not isinstance(raw, Mapping):
            return data
        signal_type = data.get("type")
        if isinstance(signal_type, str):
            raw = {key: item for key, item in raw.items() if key != "kind"}
            data["payload"] = {**raw, "kind": str(signal_type)}
        return data

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if isinstance(value, datetime) and value.tzinfo is None:
            logger.warning("Signal timestamp has no offset; assuming UTC")
        return value


# ---------------------------------------------------------------------------
# State and decisions


class OrchestratorState(_Record):
    """Per-family homeostatic state."""

    family_id: str = Field(min_length=1)
    updated_at: datetime

    parent_bandwidth: Unit
    school_pressure: Unit
    backlog_load: Unit
    relationship_strain: Unit
    child_risk: Unit
    engagement_slack: Unit
    schedule_density: Unit

    tension: Unit
    slack: Unit
    zone: Zone
    zone_since: datetime
    cooldown_until: datetime | None = None

    daily_attention_budget_min: int = Field(ge=0)
    max_notifications_per_hour: int = Field(ge=0)
    quiet_hours_local: QuietHours | None = None

    def cooldown_active(self, now: datetime) -> bool:
        return self.cooldown_until is not None and self.cooldown_until > now


class Action(_Record):
    """One candidate action with its benefit and cost bookkeeping."""

    id: str = Field(min_length=1)
    family_id: str = Field(min_length=1)
    created_at: datetime
    type: ActionType
    title: str
    summary: str

    kid_benefit: Unit
    relationship_benefit: Unit
    school_resolution_benefit: Unit
    cognitive_cost: Unit
    emotional_cost: Unit
    time_cost_min: float = Field(ge=0.0)
    parent_burden: Unit
    teacher_burden: Unit

    meta: dict[str, Any] = Field(default_factory=dict)


class QueuedAction(_Record):
    action: Action
    status: ActionStatus = ActionStatus.QUEUED
    queued_at: datetime
    completed_at: datetime | None = None
    dismissed_at: datetime | None = None


class Decision(_Record):
    """Result of one ingest cycle; not persisted on its own."""

    state: OrchestratorState
    next_action: Action | None = None
    candidates: list[Action] = Field(default_factory=list)
    suppressed_reason: SuppressionReason | None = None


class DigestItem(_Record):
    """A suppressed or batched notification awaiting the next digest window."""

    id: str = Field(default_factory=lambda: make_id("dig"), min_length=1)
    family_id: str = Field(min_length=1)
    created_at: datetime
    signal_type: SignalType
    title: str
    summary: str
    urgency: Unit
    impact: Unit
    meta: dict[str, Any] = Field(default_factory=dict)
    status: DigestStatus = DigestStatus.QUEUED
    delivered_at: datetime | None = None
    dismissed_at: datetime | None = None


class DailyPlan(_Record):
    id: str = Field(default_factory=lambda: make_id("plan"), min_length=1)
    family_id: str = Field(min_length=1)
    created_at: datetime
    window_start: datetime
    window_end: datetime
    zone_at_plan_time: Zone
    attention_budget_min: int = Field(ge=0)
    actions: list[Action] = Field(default_factory=list)
    rationale: str


class ZoneSummary(_Record):
    current_zone: Zone
    tension: Unit
    slack: Unit
    cooldown_active: bool


class SetpointAdjustments(_Record):
    """Only setpoints that actually changed are present."""

    daily_attention_budget_min: int | None = Field(default=None, ge=0)
    max_notifications_per_hour: int | None = Field(default=None, ge=0)


class WeeklyBrief(_Record):
    id: str = Field(default_factory=lambda: make_id("brief"), min_length=1)
    family_id: str = Field(min_length=1)
    created_at: datetime
    week_start: datetime
    week_end: datetime
    zone_summary: ZoneSummary
    signal_counts: dict[str, Annotated[int, Field(ge=0)]] = Field(default_factory=dict)
    highlights: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    recommended_next_steps: list[str] = Field(default_factory=list)
    why_now: str | None = Field(default=None, min_length=1, max_length=240)
    setpoint_adjustments: SetpointAdjustments | None = None


# ---------------------------------------------------------------------------
# Mitigation


class MitigationSnapshot(_Record):
    """Values of the patched fields captured immediately before a patch."""

    cooldown_until: datetime | None = None
    max_notifications_per_hour: int | None = Field(default=None, ge=0)


class MitigationPatch(_Record):
    """Values a mitigation wrote into the family state."""

    cooldown_until: datetime
    max_notifications_per_hour: int = Field(ge=0)


class MitigationRecord(_Record):
    family_id: str = Field(min_length=1)
    mitigation_type: MitigationType
    active: bool
    activated_at: datetime
    expires_at: datetime
    last_updated: datetime
    previous: MitigationSnapshot
    patch: MitigationPatch
    meta: dict[str, Any] = Field(default_factory=dict)
    count: int = Field(default=1, ge=0)


class MitigationResult(_Record):
    applied: bool
    reason: MitigationOutcome | None = None
    expires_at: datetime | None = None
    patch: MitigationPatch | None = None


class SweepResult(_Record):
    """Outcome of one expired-mitigation sweep."""

    cleared: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    error: str | None = None
    error_category: str | None = None
