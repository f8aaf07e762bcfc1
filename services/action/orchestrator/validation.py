"""Boundary validation for orchestrator inputs and stored records."""

from __future__ import annotations

from typing import Any, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from services.action.orchestrator.domain import Signal

TModel = TypeVar("TModel", bound=BaseModel)


class OrchestratorValidationError(ValueError):
    """Input or stored data failed schema validation.

    ``field`` is the dotted path of the first offending field; the message
    reads ``"<field>: <reason>"``.
    """

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}" if field else reason)

    @classmethod
    def from_pydantic(cls, exc: ValidationError, *, prefix: str = "") -> "OrchestratorValidationError":
        errors = exc.errors()
        if not errors:
            return cls(prefix, str(exc))
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        if prefix:
            location = f"{prefix}.{location}" if location else prefix
        return cls(location, str(first.get("msg", "invalid value")))


def _strip_text(value: object) -> object:
    if isinstance(value, str):
        return value.strip()
    return value


def validate_signal(value: Signal | Mapping[str, Any]) -> Signal:
    """Parse a raw mapping (or re-check a model) into a ``Signal``."""
    if isinstance(value, Signal):
        return value
    if not isinstance(value, Mapping):
        raise OrchestratorValidationError("signal", "expected a mapping")
    try:
        return Signal.model_validate(dict(value))
    except ValidationError as exc:
        raise OrchestratorValidationError.from_pydantic(exc) from exc


def parse_record(model: type[TModel], data: Any, *, what: str) -> TModel:
    """Validate one stored JSON document on read-back."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise OrchestratorValidationError.from_pydantic(exc, prefix=what) from exc


class FamilyRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    family_id: str = Field(min_length=1)

    @field_validator("family_id", mode="before")
    @classmethod
    def _strip_fields(cls, value: object) -> object:
        return _strip_text(value)


class ItemRequest(FamilyRequest):
    """Family-scoped request naming one action or digest item."""

    item_id: str = Field(min_length=1)

    @field_validator("item_id", mode="before")
    @classmethod
    def _strip_item(cls, value: object) -> object:
        return _strip_text(value)


class DuplicateStormRequest(FamilyRequest):
    duplicate_count: int = Field(ge=0)
    window_minutes: int | None = Field(default=None, ge=1)


def validate_request(model: type[TModel], **values: Any) -> TModel:
    """Validate keyword arguments of one public operation."""
    try:
        return model.model_validate(values)
    except ValidationError as exc:
        raise OrchestratorValidationError.from_pydantic(exc) from exc
