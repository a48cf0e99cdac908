"""Process-wide cache of effective permissions keyed by role versions."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session

from .snapshots import RoleLike

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

CacheKey = tuple[tuple[str, int], ...]

_PENDING_KEY = "rbac_pending_invalidations"


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    invalidations: int
    evictions: int
    size: int
    max_entries: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


def cache_key(roles: Iterable[RoleLike]) -> CacheKey:
    """Sorted ``(role_id, version)`` pairs identifying one assigned role set."""

    return tuple(sorted({(str(role.id), role.version) for role in roles}))


class EffectivePermissionsCache:
    """LRU mapping from a role-set key to a computed result.

    Entries never expire by time. Writers drop entries through
    :meth:`invalidate_role`; since keys embed each role's version, a bumped
    version also misses naturally.
    """

    def __init__(self, *, max_entries: int = 1024, enabled: bool = True) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._enabled = enabled
        self._entries: OrderedDict[CacheKey, Any] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._invalidations = 0
        self._evictions = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get(self, key: CacheKey) -> Any | None:
        if not self._enabled:
            return None
        with self._lock:
            value = self._entries.get(key)
            if value is None:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return value

    def put(self, key: CacheKey, value: Any) -> None:
        if not self._enabled:
            return
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1

    def invalidate_role(self, role_id: UUID | str) -> int:
        """Drop every entry whose role set includes ``role_id``."""

        marker = str(role_id)
        with self._lock:
            stale = [key for key in self._entries if any(rid == marker for rid, _ in key)]
            for key in stale:
                del self._entries[key]
            self._invalidations += len(stale)
        if stale:
            logger.debug(
                "rbac.cache.invalidate",
                extra={"role_id": marker, "entries": len(stale)},
            )
        return len(stale)

    def invalidate_on_commit(self, session: AsyncSession, role_id: UUID) -> None:
        """Invalidate ``role_id`` once ``session`` commits its transaction."""

        sync_session = session.sync_session
        pending: set[UUID] | None = sync_session.info.get(_PENDING_KEY)
        if pending is None:
            pending = set()
            sync_session.info[_PENDING_KEY] = pending
            event.listen(sync_session, "after_commit", self._after_commit)
        pending.add(role_id)

    def _after_commit(self, session: Session) -> None:
        pending: set[UUID] = session.info.get(_PENDING_KEY, set())
        while pending:
            self.invalidate_role(pending.pop())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                invalidations=self._invalidations,
                evictions=self._evictions,
                size=len(self._entries),
                max_entries=self._max_entries,
            )

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["CacheKey", "CacheStats", "EffectivePermissionsCache", "cache_key"]
