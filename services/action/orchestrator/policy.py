"""Notification policy: token bucket, quiet hours, and suppression precedence."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, tzinfo

from packages.hearth_shared.logging import get_logger
from services.action.orchestrator.domain import (
    FeatureVector,
    OrchestratorState,
    QuietHours,
    Signal,
    SuppressionReason,
    Zone,
)

logger = get_logger(__name__)

SECONDS_PER_HOUR = 3600.0
QUIET_HOURS_URGENCY_BYPASS = 0.9
RED_ZONE_URGENCY_BYPASS = 0.85

# Absorbs float drift in linear refill (1200s at 3/3600 per second is one token).
_TOKEN_EPSILON = 1e-9


@dataclass(frozen=True)
class TokenBucket:
    """Linear-refill rate limiter value. Transitions return a new bucket."""

    capacity: float
    refill_per_sec: float
    tokens: float
    updated_at: datetime

    def refill(self, now: datetime) -> TokenBucket:
        """Credit tokens for elapsed time, capped at capacity."""
        elapsed = (now - self.updated_at).total_seconds()
        if elapsed <= 0:
            return self
        tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_sec)
        return replace(self, tokens=tokens, updated_at=now)

    def try_consume(self, cost: float, now: datetime) -> tuple[TokenBucket, bool]:
        """Refill, then take ``cost`` tokens if available. Never consumes partially."""
        refilled = self.refill(now)
        if refilled.tokens + _TOKEN_EPSILON < cost:
            return refilled, False
        return replace(refilled, tokens=max(0.0, refilled.tokens - cost)), True


@dataclass(frozen=True)
class NotifyGate:
    """Outcome of the notify-now check plus the bucket to keep afterwards."""

    suppressed_reason: SuppressionReason | None
    bucket: TokenBucket

    @property
    def allowed(self) -> bool:
        return self.suppressed_reason is None


def create_notification_bucket(state: OrchestratorState, now: datetime) -> TokenBucket:
    """Full bucket sized to ``max_notifications_per_hour``."""
    capacity = float(state.max_notifications_per_hour)
    return TokenBucket(
        capacity=capacity,
        refill_per_sec=capacity / SECONDS_PER_HOUR,
        tokens=capacity,
        updated_at=now,
    )


def fit_bucket(
    bucket: TokenBucket | None,
    state: OrchestratorState,
    now: datetime,
) -> TokenBucket:
    """Return a bucket matching the state's hourly cap.

    A capacity change rebuilds the bucket and keeps the refilled token count,
    capped at the new capacity.
    """
    if bucket is None:
        return create_notification_bucket(state, now)
    capacity = float(state.max_notifications_per_hour)
    if bucket.capacity == capacity:
        return bucket
    refilled = bucket.refill(now)
    return TokenBucket(
        capacity=capacity,
        refill_per_sec=capacity / SECONDS_PER_HOUR,
        tokens=min(refilled.tokens, capacity),
        updated_at=max(now, refilled.updated_at),
    )


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def in_quiet_hours(quiet_hours: QuietHours | None, now: datetime, tz: tzinfo) -> bool:
    """Whether ``now`` falls in the local window. Equal bounds mean no window."""
    if quiet_hours is None:
        return False
    start = _minutes(quiet_hours.start)
    end = _minutes(quiet_hours.end)
    if start == end:
        return False
    local = now.astimezone(tz)
    current = local.hour * 60 + local.minute
    if start < end:
        return start <= current < end
    return current >= start or current < end


def should_suppress_notify_now(
    state: OrchestratorState,
    signal: Signal,
    features: FeatureVector,
    bucket: TokenBucket,
    now: datetime,
    *,
    tz: tzinfo,
) -> NotifyGate:
    """Decide whether a notify-now may go out. First matching rule wins.

    Priority payloads (safety, compliance, ``priority == "high"``) are never
    suppressed; they still draw a token when one is available so the hourly
    budget reflects what was actually sent.
    """
    if signal.payload.is_priority:
        consumed, _ = bucket.try_consume(1, now)
        return NotifyGate(suppressed_reason=None, bucket=consumed)

    if state.cooldown_active(now):
        return NotifyGate(SuppressionReason.COOLDOWN_ACTIVE, bucket)

    if (
        in_quiet_hours(state.quiet_hours_local, now, tz)
        and features.urgency < QUIET_HOURS_URGENCY_BYPASS
    ):
        return NotifyGate(SuppressionReason.QUIET_HOURS, bucket)

    if state.zone == Zone.RED and features.urgency < RED_ZONE_URGENCY_BYPASS:
        return NotifyGate(SuppressionReason.RED_ZONE_THROTTLE, bucket)

    consumed, ok = bucket.try_consume(1, now)
    if not ok:
        logger.debug("Notification bucket exhausted (%.3f tokens)", consumed.tokens)
        return NotifyGate(SuppressionReason.RATE_LIMITED, consumed)
    return NotifyGate(suppressed_reason=None, bucket=consumed)
