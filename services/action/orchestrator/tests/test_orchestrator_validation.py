"""Boundary validation tests for signals and operation arguments."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from services.action.orchestrator.domain import (
    ActionCompletedPayload,
    ChildContextPayload,
    GenericPayload,
    Signal,
    SignalSource,
)
from services.action.orchestrator.validation import (
    ItemRequest,
    OrchestratorValidationError,
    parse_record,
    validate_request,
    validate_signal,
)

_RAW = {
    "familyId": "fam-1",
    "source": "school",
    "type": "school_message",
    "timestamp": "2026-03-02T15:00:00+00:00",
    "payload": {"title": "Picture day", "photographer": "Lens & Co"},
}


def test_raw_mapping_parses_with_camel_case_keys() -> None:
    signal = validate_signal(_RAW)

    assert signal.family_id == "fam-1"
    assert signal.source == SignalSource.SCHOOL
    assert signal.timestamp == datetime(2026, 3, 2, 15, 0, tzinfo=UTC)
    assert isinstance(signal.payload, GenericPayload)
    assert signal.payload.title == "Picture day"
    assert signal.payload.extra == {"photographer": "Lens & Co"}
    assert signal.id.startswith("sig")


def test_payload_variant_follows_signal_type() -> None:
    signal = validate_signal(
        {**_RAW, "type": "child_context_update", "source": "home", "payload": {"risk": 0.7}}
    )
    assert isinstance(signal.payload, ChildContextPayload)
    assert signal.payload.risk == 0.7


def test_stale_payload_kind_is_replaced() -> None:
    signal = Signal(
        family_id="fam-1",
        source="system",
        type="action_completed",
        payload={"kind": "school_message", "actionId": "act-9"},
    )
    assert isinstance(signal.payload, ActionCompletedPayload)
    assert signal.payload.action_id == "act-9"


def test_unparseable_deadline_is_dropped_not_rejected() -> None:
    signal = validate_signal({**_RAW, "payload": {"deadline": "next tuesday-ish"}})
    assert signal.payload.deadline is None


@pytest.mark.parametrize(
    ("change", "field"),
    [
        ({"familyId": ""}, "familyId"),
        ({"source": "carrier"}, "source"),
        ({"payload": {"sentiment": 3}}, "payload"),
    ],
)
def test_invalid_signal_names_the_field(change: dict[str, object], field: str) -> None:
    with pytest.raises(OrchestratorValidationError) as exc_info:
        validate_signal({**_RAW, **change})
    assert exc_info.value.field.startswith(field)
    assert str(exc_info.value).startswith(f"{exc_info.value.field}: ")


def test_non_mapping_signal_is_rejected() -> None:
    with pytest.raises(OrchestratorValidationError) as exc_info:
        validate_signal(["not", "a", "signal"])  # type: ignore[arg-type]
    assert exc_info.value.field == "signal"


def test_request_arguments_are_stripped() -> None:
    request = validate_request(ItemRequest, family_id=" fam-1 ", item_id=" act-1\n")
    assert request.family_id == "fam-1"
    assert request.item_id == "act-1"

    with pytest.raises(OrchestratorValidationError) as exc_info:
        validate_request(ItemRequest, family_id="fam-1", item_id="  ")
    assert exc_info.value.field == "item_id"


def test_stored_record_errors_are_prefixed() -> None:
    with pytest.raises(OrchestratorValidationError) as exc_info:
        parse_record(Signal, {"familyId": "fam-1"}, what="signal")
    assert exc_info.value.field.startswith("signal.")
