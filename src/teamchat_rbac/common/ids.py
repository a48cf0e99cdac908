"""Identifier helpers."""

from __future__ import annotations

import uuid
from collections.abc import Callable

__all__ = ["generate_uuid7"]


def _resolve_uuid7() -> Callable[[], uuid.UUID]:
    """Return a callable that produces a UUIDv7, falling back to uuid4 when absent."""

    maybe_uuid7 = getattr(uuid, "uuid7", None)
    if callable(maybe_uuid7):
        return maybe_uuid7
    return uuid.uuid4


_uuid7_factory = _resolve_uuid7()


def generate_uuid7() -> uuid.UUID:
    """Return a sortable UUID for role and assignment identifiers (prefers RFC 9562 uuid7)."""

    return _uuid7_factory()
