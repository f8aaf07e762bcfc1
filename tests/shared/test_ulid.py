"""Tests for shared ULID generation and prefixed record ids."""

from __future__ import annotations

import pytest

from packages.hearth_shared.ids import encode_ulid, generate_ulid_str, make_id


def test_generated_ulids_are_canonical_and_unique() -> None:
    """Generated values are 26 Crockford characters and never repeat."""
    values = {generate_ulid_str() for _ in range(200)}

    assert len(values) == 200
    assert all(len(value) == 26 for value in values)
    assert all(set(value) <= set("0123456789ABCDEFGHJKMNPQRSTVWXYZ") for value in values)


def test_ulid_string_order_follows_timestamp() -> None:
    """Earlier timestamps sort before later ones."""
    earlier = generate_ulid_str(timestamp_ms=1_700_000_000_000)
    later = generate_ulid_str(timestamp_ms=1_700_000_000_001)

    assert earlier < later


def test_encode_ulid_bounds() -> None:
    """Zero encodes to all zeros; values past 128 bits are rejected."""
    assert encode_ulid(0) == "0" * 26
    with pytest.raises(ValueError):
        encode_ulid(1 << 128)


def test_make_id_prefixes_kind() -> None:
    """Record ids carry their kind prefix ahead of the ULID."""
    record_id = make_id("act")

    prefix, _, body = record_id.partition("_")
    assert prefix == "act"
    assert len(body) == 26


def test_make_id_rejects_bad_prefix() -> None:
    """Prefixes must be plain alphanumerics."""
    with pytest.raises(ValueError):
        make_id("")
    with pytest.raises(ValueError):
        make_id("a_b")
