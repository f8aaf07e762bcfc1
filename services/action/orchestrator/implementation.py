"""Concrete orchestrator engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Sequence

from packages.hearth_shared.config import HearthSettings
from packages.hearth_shared.logging import (
    family_context,
    fields,
    get_logger,
    log_context,
    operation_logged,
)
from services.action.orchestrator.candidates import generate_candidates
from services.action.orchestrator.config import (
    SERVICE_COMPONENT_ID,
    OrchestratorSettings,
    resolve_orchestrator_settings,
)
from services.action.orchestrator.domain import (
    Action,
    ActionCompletedPayload,
    ActionType,
    DailyPlan,
    Decision,
    DigestItem,
    DigestStatus,
    FeatureVector,
    OrchestratorState,
    QueuedAction,
    Signal,
    SignalSource,
    SignalType,
    SuppressionReason,
    WeeklyBrief,
    ensure_utc,
    utc_now,
)
from services.action.orchestrator.features import extract_features
from services.action.orchestrator.interfaces import OrchestratorStore
from services.action.orchestrator.locks import FamilyLocks
from services.action.orchestrator.mitigation import AuditHook, MitigationController
from services.action.orchestrator.optimizer import optimize
from services.action.orchestrator.planner import build_daily_plan
from services.action.orchestrator.policy import (
    TokenBucket,
    fit_bucket,
    should_suppress_notify_now,
)
from services.action.orchestrator.service import OrchestratorService
from services.action.orchestrator.state import create_initial_state, reduce_state
from services.action.orchestrator.validation import (
    FamilyRequest,
    ItemRequest,
    validate_request,
    validate_signal,
)
from services.action.orchestrator.weekly import build_weekly_brief

_LOGGER = get_logger(__name__)
_COMPONENT = str(SERVICE_COMPONENT_ID)


class DefaultOrchestratorService(OrchestratorService):
    """Orchestrator engine over an injected store.

    Every read-modify-write for one family runs under that family's lock.
    Ingest writes the signal, state and side effects in one store call, so a
    failed write leaves nothing behind and the caller may retry. Notification
    buckets are process-local, rebuilt whenever the state's hourly cap
    changes, and dropped once they refill.
    """

    def __init__(
        self,
        *,
        settings: OrchestratorSettings,
        store: OrchestratorStore,
        locks: FamilyLocks | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._locks = locks or FamilyLocks()
        self._buckets: dict[str, TokenBucket] = {}

    @classmethod
    def from_settings(
        cls, *, settings: HearthSettings, store: OrchestratorStore
    ) -> "DefaultOrchestratorService":
        return cls(settings=resolve_orchestrator_settings(settings), store=store)

    @property
    def store(self) -> OrchestratorStore:
        return self._store

    @property
    def locks(self) -> FamilyLocks:
        return self._locks

    def mitigation_controller(
        self, *, audit_hooks: Sequence[AuditHook] = ()
    ) -> MitigationController:
        """Controller sharing this engine's store and family locks."""
        return MitigationController(
            store=self._store,
            settings=self._settings.mitigation,
            locks=self._locks,
            audit_hooks=audit_hooks,
        )

    @operation_logged(logger=_LOGGER, component_id=_COMPONENT, id_fields=("family_id",))
    def ingest(
        self, signal: Signal | Mapping[str, Any], *, now: datetime | None = None
    ) -> Decision:
        """Fold one signal into family state and decide the next action."""
        signal = validate_signal(signal)
        now = _resolve_now(now)
        with family_context(
            signal.family_id,
            **{fields.SIGNAL_ID: signal.id, fields.SIGNAL_TYPE: signal.type.value},
        ):
            with self._locks.hold(signal.family_id):
                return self._ingest_locked(signal, now)

    def _ingest_locked(self, signal: Signal, now: datetime) -> Decision:
        store = self._store
        family_id = signal.family_id
        history = self._settings.history

        if signal.idempotency_key is not None:
            existing = store.find_signal(family_id, signal.idempotency_key)
            if existing is not None:
                return self._duplicate(existing, now)

        previous = store.get_state(family_id) or create_initial_state(family_id, now)
        features = extract_features(signal, now=now)
        state = reduce_state(
            previous, signal, features, now=now, thresholds=self._settings.thresholds
        )

        candidates = generate_candidates(
            state,
            signal,
            features,
            now=now,
            slack_high=self._settings.thresholds.slack_high,
        )
        bucket = fit_bucket(self._buckets.get(family_id), state, now)
        suppressed_reason: SuppressionReason | None = None
        notify = next((c for c in candidates if c.type == ActionType.NOTIFY_NOW), None)
        if notify is not None:
            gate = should_suppress_notify_now(
                state, signal, features, bucket, now, tz=self._settings.zone_info
            )
            bucket = gate.bucket
            suppressed_reason = gate.suppressed_reason

        result = optimize(
            candidates,
            remaining_budget_min=state.daily_attention_budget_min,
            notify_suppressed=suppressed_reason is not None,
        )
        chosen = result.chosen

        digest_item: DigestItem | None = None
        if suppressed_reason is not None:
            digest_item = _digest_item(
                signal, features, notify, now, reason=suppressed_reason.value
            )
        elif chosen is not None and chosen.type == ActionType.ADD_TO_DIGEST:
            digest_item = _digest_item(signal, features, chosen, now, reason="batched")
        queued: Action | None = None
        if chosen is not None and chosen.type != ActionType.DO_NOTHING:
            queued = chosen

        existing = store.record_ingest(
            signal,
            state,
            now,
            action=queued,
            digest_item=digest_item,
            max_history=history.max_signals,
            max_digest_items=history.max_digest_items,
        )
        if existing is not None:
            return self._duplicate(existing, now)

        self._keep_bucket(family_id, bucket, now)
        _log_zone_change(previous, state)
        if suppressed_reason is not None:
            _LOGGER.warning("Notification suppressed: %s", suppressed_reason.value)

        return Decision(
            state=state,
            next_action=chosen,
            candidates=result.ranked_actions,
            suppressed_reason=suppressed_reason,
        )

    def _keep_bucket(self, family_id: str, bucket: TokenBucket, now: datetime) -> None:
        # A full bucket equals a fresh one, so idle families hold no entry.
        if bucket.refill(now).tokens >= bucket.capacity:
            self._buckets.pop(family_id, None)
        else:
            self._buckets[family_id] = bucket

    def _duplicate(self, stored: Signal, now: datetime) -> Decision:
        _LOGGER.warning("Duplicate signal ignored; first stored as %s", stored.id)
        state = self._store.get_or_create_state(stored.family_id, now)
        return Decision(
            state=state,
            next_action=None,
            candidates=[],
            suppressed_reason=SuppressionReason.DUPLICATE_SIGNAL,
        )

    @operation_logged(logger=_LOGGER, component_id=_COMPONENT, id_fields=("family_id",))
    def run_daily(self, family_id: str, *, now: datetime | None = None) -> DailyPlan:
        """Build and store today's plan for one family."""
        request = validate_request(FamilyRequest, family_id=family_id)
        now = _resolve_now(now)
        history = self._settings.history
        with family_context(request.family_id):
            with self._locks.hold(request.family_id):
                state = self._store.get_or_create_state(request.family_id, now)
                recent = self._store.get_recent_signals(
                    request.family_id, limit=history.max_signals
                )
                outcome = build_daily_plan(state, recent, now=now, settings=self._settings)
                _log_zone_change(state, outcome.state)
                self._store.set_state(request.family_id, outcome.state, now)
                self._store.append_daily_plan(outcome.plan, max_plans=history.max_daily_plans)
            _LOGGER.info(
                "Daily plan %s: %d actions within %d minutes",
                outcome.plan.id,
                len(outcome.plan.actions),
                outcome.plan.attention_budget_min,
            )
        return outcome.plan

    @operation_logged(logger=_LOGGER, component_id=_COMPONENT, id_fields=("family_id",))
    def run_weekly(self, family_id: str, *, now: datetime | None = None) -> WeeklyBrief:
        """Build and store the weekly brief, applying any setpoint tuning."""
        request = validate_request(FamilyRequest, family_id=family_id)
        now = _resolve_now(now)
        history = self._settings.history
        with family_context(request.family_id):
            with self._locks.hold(request.family_id):
                state = self._store.get_or_create_state(request.family_id, now)
                recent = self._store.get_recent_signals(
                    request.family_id, limit=history.max_signals
                )
                outcome = build_weekly_brief(
                    state, recent, now=now, thresholds=self._settings.thresholds
                )
                if outcome.state is not state:
                    self._store.set_state(request.family_id, outcome.state, now)
                self._store.append_weekly_brief(
                    outcome.brief, max_briefs=history.max_weekly_briefs
                )
            adjustments = outcome.brief.setpoint_adjustments
            if adjustments is not None:
                _LOGGER.info(
                    "Weekly setpoints tuned: %s",
                    adjustments.model_dump(exclude_none=True),
                )
        return outcome.brief

    def get_state(self, family_id: str) -> OrchestratorState | None:
        request = validate_request(FamilyRequest, family_id=family_id)
        return self._store.get_state(request.family_id)

    def list_actions(self, family_id: str) -> list[QueuedAction]:
        request = validate_request(FamilyRequest, family_id=family_id)
        return self._store.list_actions(request.family_id)

    @operation_logged(logger=_LOGGER, component_id=_COMPONENT, id_fields=("family_id",))
    def complete_action(
        self, family_id: str, action_id: str, *, now: datetime | None = None
    ) -> QueuedAction | None:
        """Complete a queued action and feed the completion back as a signal."""
        request = validate_request(ItemRequest, family_id=family_id, item_id=action_id)
        now = _resolve_now(now)
        with family_context(request.family_id):
            with self._locks.hold(request.family_id):
                completed = self._store.complete_action(
                    request.family_id, request.item_id, now
                )
                if completed is None:
                    return None
                self.ingest(
                    Signal(
                        family_id=request.family_id,
                        source=SignalSource.SYSTEM,
                        type=SignalType.ACTION_COMPLETED,
                        timestamp=now,
                        payload=ActionCompletedPayload(
                            title=completed.action.title,
                            action_id=request.item_id,
                        ),
                        idempotency_key=f"action_completed:{request.item_id}",
                    ),
                    now=now,
                )
        return completed

    def dismiss_action(
        self, family_id: str, action_id: str, *, now: datetime | None = None
    ) -> QueuedAction | None:
        request = validate_request(ItemRequest, family_id=family_id, item_id=action_id)
        with self._locks.hold(request.family_id):
            return self._store.dismiss_action(
                request.family_id, request.item_id, _resolve_now(now)
            )

    def get_digest(
        self, family_id: str, *, status: DigestStatus | None = None
    ) -> list[DigestItem]:
        request = validate_request(FamilyRequest, family_id=family_id)
        return self._store.get_digest(request.family_id, status=status)

    @operation_logged(logger=_LOGGER, component_id=_COMPONENT, id_fields=("family_id",))
    def deliver_digest(
        self, family_id: str, *, now: datetime | None = None
    ) -> list[DigestItem]:
        """Mark every queued digest item delivered and return them."""
        request = validate_request(FamilyRequest, family_id=family_id)
        now = _resolve_now(now)
        with family_context(request.family_id):
            with self._locks.hold(request.family_id):
                delivered = self._store.mark_digest_delivered(request.family_id, now)
            if delivered:
                _LOGGER.info("Digest delivered with %d items", len(delivered))
        return delivered

    def dismiss_digest_item(
        self, family_id: str, item_id: str, *, now: datetime | None = None
    ) -> DigestItem | None:
        request = validate_request(ItemRequest, family_id=family_id, item_id=item_id)
        with self._locks.hold(request.family_id):
            return self._store.dismiss_digest_item(
                request.family_id, request.item_id, _resolve_now(now)
            )


def _digest_item(
    signal: Signal,
    features: FeatureVector,
    action: Action | None,
    now: datetime,
    *,
    reason: str,
) -> DigestItem:
    title = signal.payload.title or (action.title if action else signal.type.value)
    summary = action.summary if action else ""
    return DigestItem(
        family_id=signal.family_id,
        created_at=now,
        signal_type=signal.type,
        title=title,
        summary=summary or title,
        urgency=features.urgency,
        impact=features.impact,
        meta={
            "signal_id": signal.id,
            "reason": reason,
            "action_type": action.type.value if action else None,
        },
    )


def _resolve_now(now: datetime | None) -> datetime:
    return utc_now() if now is None else ensure_utc(now)


def _log_zone_change(previous: OrchestratorState, current: OrchestratorState) -> None:
    if previous.zone == current.zone:
        return
    with log_context({fields.ZONE: current.zone.value}):
        _LOGGER.info(
            "Zone changed from %s to %s (tension %.3f)",
            previous.zone.value,
            current.zone.value,
            current.tension,
        )
