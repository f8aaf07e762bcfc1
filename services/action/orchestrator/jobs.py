"""Scheduler entry points: daily and weekly ticks plus the mitigation reaper.

Each job walks its families sequentially. One family's failure is logged,
recorded on its result item and does not stop the batch.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable

from pydantic import BaseModel, ConfigDict

from packages.hearth_shared.errors import exception_to_error
from packages.hearth_shared.logging import family_context, fields, get_logger, log_context
from services.action.orchestrator.domain import SweepResult
from services.action.orchestrator.mitigation import MitigationController
from services.action.orchestrator.service import OrchestratorService

_LOGGER = get_logger(__name__)

DAILY_JOB = "daily_tick"
WEEKLY_JOB = "weekly_tick"
SWEEP_JOB = "mitigation_sweep"


class JobItemResult(BaseModel):
    """Outcome of one family within a batch job."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    family_id: str
    ok: bool
    record_id: str | None = None
    error: str | None = None
    error_category: str | None = None


def run_daily_tick(
    service: OrchestratorService,
    family_ids: Iterable[str],
    *,
    now: datetime | None = None,
) -> list[JobItemResult]:
    """Build a daily plan for each family; result items carry the plan id."""
    return _run_batch(
        DAILY_JOB,
        family_ids,
        lambda family_id: service.run_daily(family_id, now=now).id,
    )


def run_weekly_tick(
    service: OrchestratorService,
    family_ids: Iterable[str],
    *,
    now: datetime | None = None,
) -> list[JobItemResult]:
    """Build a weekly brief for each family; result items carry the brief id."""
    return _run_batch(
        WEEKLY_JOB,
        family_ids,
        lambda family_id: service.run_weekly(family_id, now=now).id,
    )


def run_mitigation_sweep(
    controller: MitigationController, *, now: datetime | None = None
) -> SweepResult:
    """Clear expired mitigations. A failed listing yields ``cleared=0`` with the error."""
    with log_context({fields.JOB: SWEEP_JOB}):
        try:
            result = controller.clear_expired_mitigations(now)
        except Exception as exc:
            detail = exception_to_error(exc)
            _LOGGER.exception("Mitigation sweep failed")
            return SweepResult(
                cleared=0,
                error=detail.message,
                error_category=detail.category.value,
            )
        _LOGGER.info(
            "Mitigation sweep finished: %d cleared, %d failed", result.cleared, result.failed
        )
        return result


def _run_batch(
    job: str,
    family_ids: Iterable[str],
    operation: Callable[[str], str],
) -> list[JobItemResult]:
    results: list[JobItemResult] = []
    with log_context({fields.JOB: job}):
        for family_id in family_ids:
            with family_context(family_id):
                try:
                    record_id = operation(family_id)
                except Exception as exc:
                    detail = exception_to_error(exc)
                    _LOGGER.exception("Job failed for family")
                    results.append(
                        JobItemResult(
                            family_id=family_id,
                            ok=False,
                            error=detail.message,
                            error_category=detail.category.value,
                        )
                    )
                    continue
            results.append(JobItemResult(family_id=family_id, ok=True, record_id=record_id))
        failed = sum(1 for item in results if not item.ok)
        _LOGGER.info("Job finished: %d ok, %d failed", len(results) - failed, failed)
    return results
