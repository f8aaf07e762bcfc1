"""Shared identifier helpers."""

from packages.hearth_shared.ids.ulid import encode_ulid, generate_ulid_str, make_id

__all__ = ["encode_ulid", "generate_ulid_str", "make_id"]
