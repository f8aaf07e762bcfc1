"""Behavior tests for the scheduler entry points."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from services.action.orchestrator.config import OrchestratorSettings
from services.action.orchestrator.domain import DailyPlan, MitigationRecord
from services.action.orchestrator.implementation import DefaultOrchestratorService
from services.action.orchestrator.jobs import (
    run_daily_tick,
    run_mitigation_sweep,
    run_weekly_tick,
)
from services.action.orchestrator.memory_store import InMemoryOrchestratorStore

_NOW = datetime(2026, 3, 2, 6, 0, tzinfo=UTC)


class _FlakyService(DefaultOrchestratorService):
    """Engine whose daily run fails for one family."""

    def run_daily(self, family_id: str, *, now: datetime | None = None) -> DailyPlan:
        if family_id == "fam-down":
            raise ConnectionError("database unavailable")
        return super().run_daily(family_id, now=now)


class _UnlistableStore(InMemoryOrchestratorStore):
    def list_expired_mitigations(self, now: datetime) -> list[MitigationRecord]:
        raise ConnectionError("database unavailable")


def _service(store: InMemoryOrchestratorStore | None = None) -> DefaultOrchestratorService:
    return DefaultOrchestratorService(
        settings=OrchestratorSettings(),
        store=store or InMemoryOrchestratorStore(),
    )


def test_daily_tick_isolates_family_failures() -> None:
    store = InMemoryOrchestratorStore()
    service = _FlakyService(settings=OrchestratorSettings(), store=store)

    results = run_daily_tick(service, ["fam-1", "fam-down", "fam-2"], now=_NOW)

    assert [item.family_id for item in results] == ["fam-1", "fam-down", "fam-2"]
    assert [item.ok for item in results] == [True, False, True]
    failed = results[1]
    assert failed.record_id is None
    assert failed.error_category == "dependency"
    assert failed.error
    assert results[0].record_id == store.get_daily_plans("fam-1")[0].id
    assert store.get_daily_plans("fam-down") == []


def test_weekly_tick_reports_brief_ids() -> None:
    store = InMemoryOrchestratorStore()
    service = _service(store)

    results = run_weekly_tick(service, ["fam-1"], now=_NOW)

    assert len(results) == 1
    assert results[0].ok
    assert results[0].record_id == store.get_weekly_briefs("fam-1")[0].id


def test_invalid_family_id_is_reported_not_raised() -> None:
    results = run_daily_tick(_service(), [""], now=_NOW)

    assert results[0].ok is False
    assert results[0].error_category == "validation"


def test_sweep_clears_expired_mitigations() -> None:
    store = InMemoryOrchestratorStore()
    store.get_or_create_state("fam-1", _NOW)
    controller = _service(store).mitigation_controller()
    controller.apply_duplicate_storm_mitigation("fam-1", 30, now=_NOW)

    result = run_mitigation_sweep(controller, now=_NOW + timedelta(minutes=61))

    assert result.cleared == 1
    assert result.failed == 0
    assert result.error is None


def test_sweep_reports_listing_failure() -> None:
    controller = _service(_UnlistableStore()).mitigation_controller()

    result = run_mitigation_sweep(controller, now=_NOW)

    assert result.cleared == 0
    assert result.error
    assert result.error_category == "dependency"
