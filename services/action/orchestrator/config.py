"""Pydantic settings for the orchestrator service."""

from __future__ import annotations

from datetime import timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from packages.hearth_shared.config import HearthSettings, resolve_component_settings

SERVICE_COMPONENT_ID = "service_orchestrator"


class ZoneThresholds(BaseModel):
    """Hysteresis thresholds for the zone state machine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tension_low: float = Field(default=0.45, ge=0.0, le=1.0)
    tension_high: float = Field(default=0.70, ge=0.0, le=1.0)
    slack_high: float = Field(default=0.65, ge=0.0, le=1.0)
    dwell_minutes: float = Field(default=5.0, ge=0.0)
    cooldown_minutes: float = Field(default=60.0, ge=0.0)

    @property
    def dwell(self) -> timedelta:
        return timedelta(minutes=self.dwell_minutes)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(minutes=self.cooldown_minutes)


class PlannerSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    plan_size: int = Field(default=3, ge=1)
    horizon_hours: float = Field(default=24.0, gt=0.0)
    max_deadlines: int = Field(default=10, ge=0)
    red_zone_budget_factor: float = Field(default=0.5, gt=0.0, le=1.0)
    min_red_zone_budget_min: int = Field(default=5, ge=0)


class MitigationSettings(BaseModel):
    """Duplicate-storm mitigation knobs."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    duplicate_threshold: int = Field(default=15, ge=0)
    cooldown_minutes: int = Field(default=60, ge=1)
    max_notifications_per_hour: int = Field(default=0, ge=0)
    window_minutes: int = Field(default=10, ge=1)


class HistorySettings(BaseModel):
    """Retention caps for per-family append-only lists."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_signals: int = Field(default=200, ge=1)
    max_digest_items: int = Field(default=200, ge=1)
    max_daily_plans: int = Field(default=30, ge=1)
    max_weekly_briefs: int = Field(default=12, ge=1)


class OrchestratorSettings(BaseModel):
    """Runtime settings for the orchestrator engine and its batch jobs."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timezone: str = "UTC"
    thresholds: ZoneThresholds = Field(default_factory=ZoneThresholds)
    planner: PlannerSettings = Field(default_factory=PlannerSettings)
    mitigation: MitigationSettings = Field(default_factory=MitigationSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {value}") from exc
        return value

    @property
    def zone_info(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def resolve_orchestrator_settings(settings: HearthSettings) -> OrchestratorSettings:
    """Resolve service settings from ``components.service.orchestrator``."""
    return resolve_component_settings(
        settings=settings,
        component_id=SERVICE_COMPONENT_ID,
        model=OrchestratorSettings,
    )
