"""Reversible protective overrides for abnormal signal patterns.

Apply captures the values of the fields it is about to patch. The reaper
restores a captured field only while the live value still equals what the
patch wrote; a field another writer changed in the meantime keeps its newer
value.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Sequence

from packages.hearth_shared.logging import family_context, fields, get_logger, log_context
from services.action.orchestrator.config import MitigationSettings
from services.action.orchestrator.domain import (
    MitigationOutcome,
    MitigationPatch,
    MitigationRecord,
    MitigationResult,
    MitigationSnapshot,
    MitigationType,
    OrchestratorState,
    SweepResult,
    ensure_utc,
    utc_now,
)
from services.action.orchestrator.interfaces import OrchestratorStore
from services.action.orchestrator.locks import FamilyLocks
from services.action.orchestrator.validation import DuplicateStormRequest, validate_request

logger = get_logger(__name__)

AuditHook = Callable[[str, MitigationRecord], None]

APPLIED_EVENT = "automitigation_applied"
CLEARED_EVENT = "automitigation_cleared"
DUPLICATE_STORM_REASON = "Duplicate signal storm detected; entering quiet mode temporarily."


class MitigationController:
    """Applies and clears duplicate-storm mitigations against the store."""

    def __init__(
        self,
        *,
        store: OrchestratorStore,
        settings: MitigationSettings,
        locks: FamilyLocks | None = None,
        audit_hooks: Sequence[AuditHook] = (),
    ) -> None:
        self._store = store
        self._settings = settings
        self._locks = locks or FamilyLocks()
        self._audit_hooks = tuple(audit_hooks)

    def apply_duplicate_storm_mitigation(
        self,
        family_id: str,
        duplicate_count: int,
        *,
        window_minutes: int | None = None,
        now: datetime | None = None,
    ) -> MitigationResult:
        """Enter quiet mode for a family flooding the engine with duplicates."""
        request = validate_request(
            DuplicateStormRequest,
            family_id=family_id,
            duplicate_count=duplicate_count,
            window_minutes=window_minutes,
        )
        now = utc_now() if now is None else ensure_utc(now)
        settings = self._settings
        if not settings.enabled:
            return MitigationResult(applied=False, reason=MitigationOutcome.DISABLED)
        if request.duplicate_count < settings.duplicate_threshold:
            return MitigationResult(applied=False, reason=MitigationOutcome.BELOW_THRESHOLD)

        mitigation_type = MitigationType.DUPLICATE_STORM
        window = request.window_minutes or settings.window_minutes
        with family_context(request.family_id, **{fields.MITIGATION_TYPE: mitigation_type}):
            with self._locks.hold(request.family_id):
                current = self._store.get_mitigation(request.family_id, mitigation_type)
                if current is not None and current.active and current.expires_at > now:
                    bumped = current.model_copy(
                        update={
                            "count": current.count + 1,
                            "last_updated": now,
                            "meta": {
                                **current.meta,
                                "last_duplicate_count": request.duplicate_count,
                            },
                        }
                    )
                    self._store.save_mitigation(bumped)
                    logger.debug("Mitigation already active until %s", current.expires_at)
                    return MitigationResult(
                        applied=False,
                        reason=MitigationOutcome.ALREADY_ACTIVE,
                        expires_at=current.expires_at,
                    )

                state = self._store.get_state(request.family_id)
                if state is None:
                    return MitigationResult(applied=False, reason=MitigationOutcome.NO_STATE)

                expires_at = now + timedelta(minutes=settings.cooldown_minutes)
                previous = MitigationSnapshot(
                    cooldown_until=state.cooldown_until,
                    max_notifications_per_hour=state.max_notifications_per_hour,
                )
                patch = MitigationPatch(
                    cooldown_until=expires_at,
                    max_notifications_per_hour=min(
                        state.max_notifications_per_hour,
                        settings.max_notifications_per_hour,
                    ),
                )
                self._store.set_state(
                    request.family_id,
                    state.model_copy(
                        update={
                            "cooldown_until": patch.cooldown_until,
                            "max_notifications_per_hour": patch.max_notifications_per_hour,
                            "updated_at": now,
                        }
                    ),
                    now,
                )
                record = MitigationRecord(
                    family_id=request.family_id,
                    mitigation_type=mitigation_type,
                    active=True,
                    activated_at=now,
                    expires_at=expires_at,
                    last_updated=now,
                    previous=previous,
                    patch=patch,
                    meta={
                        "window_minutes": window,
                        "duplicate_count": request.duplicate_count,
                        "reason": DUPLICATE_STORM_REASON,
                    },
                    count=1 if current is None else current.count + 1,
                )
                self._store.save_mitigation(record)

            logger.info(
                "Mitigation applied: %d duplicates in %d minutes, quiet until %s",
                request.duplicate_count,
                window,
                expires_at.isoformat(),
            )
            self._audit(APPLIED_EVENT, record)
        return MitigationResult(applied=True, expires_at=expires_at, patch=patch)

    def clear_expired_mitigations(self, now: datetime | None = None) -> SweepResult:
        """Restore the fields of every expired active mitigation.

        One failing record is logged and skipped; the sweep keeps going.
        """
        now = utc_now() if now is None else ensure_utc(now)
        cleared = 0
        failed = 0
        for expired in self._store.list_expired_mitigations(now):
            with family_context(
                expired.family_id, **{fields.MITIGATION_TYPE: expired.mitigation_type}
            ):
                try:
                    record = self._clear_one(expired, now)
                except Exception:
                    failed += 1
                    logger.exception("Failed to clear expired mitigation")
                    continue
                if record is None:
                    continue
                cleared += 1
                logger.info("Mitigation cleared")
                self._audit(CLEARED_EVENT, record)
        return SweepResult(cleared=cleared, failed=failed)

    def _clear_one(self, expired: MitigationRecord, now: datetime) -> MitigationRecord | None:
        with self._locks.hold(expired.family_id):
            record = self._store.get_mitigation(expired.family_id, expired.mitigation_type)
            # Re-applied or already cleared since the listing was taken.
            if record is None or not record.active or record.expires_at > now:
                return None

            state = self._store.get_state(record.family_id)
            if state is not None:
                restored = restore_fields(state, record)
                if restored:
                    self._store.set_state(
                        record.family_id,
                        state.model_copy(update={**restored, "updated_at": now}),
                        now,
                    )
                else:
                    logger.info("Mitigated fields changed since apply; keeping live values")

            inactive = record.model_copy(update={"active": False, "last_updated": now})
            self._store.save_mitigation(inactive)
            return inactive

    def _audit(self, event: str, record: MitigationRecord) -> None:
        for hook in self._audit_hooks:
            try:
                hook(event, record)
            except Exception:
                with log_context({fields.EVENT: event}):
                    logger.warning("Mitigation audit hook failed", exc_info=True)


def restore_fields(state: OrchestratorState, record: MitigationRecord) -> dict[str, Any]:
    """Captured values for fields that still hold exactly what the patch wrote."""
    restored: dict[str, Any] = {}
    if state.cooldown_until == record.patch.cooldown_until:
        restored["cooldown_until"] = record.previous.cooldown_until
    if state.max_notifications_per_hour == record.patch.max_notifications_per_hour:
        previous_cap = record.previous.max_notifications_per_hour
        if previous_cap is not None:
            restored["max_notifications_per_hour"] = previous_cap
    return restored
