"""Cache of resolved effective plans, invalidated by principal, subscription and catalog tags."""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, DefaultDict, Dict, Iterable, NamedTuple, Optional, Protocol, Set

from .models import EffectivePlan, as_utc


class EntitlementCache(Protocol):
    """Operations the subscription resolver and plan catalog rely on."""

    def generation(self) -> int:
        """Counter advanced by every invalidation; writers pass it back to ``set``."""

    def get(self, key: str) -> Optional[EffectivePlan]:
        ...

    def set(
        self,
        key: str,
        value: EffectivePlan,
        expires_at: datetime,
        tags: Set[str],
        *,
        generation: Optional[int] = None,
    ) -> None:
        """Store ``value`` unless an invalidation happened after ``generation`` was read."""

    def invalidate(self, tags: Iterable[str]) -> None:
        ...

    def clear(self) -> None:
        ...


class _Slot(NamedTuple):
    plan: EffectivePlan
    expires_at: datetime
    tags: frozenset


class InMemoryEntitlementCache:
    """Process-local cache for tests and single-worker deployments.

    A reverse index from tag to keys keeps invalidation proportional to the
    number of affected entries.
    """

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._slots: Dict[str, _Slot] = {}
        self._keys_by_tag: DefaultDict[str, Set[str]] = defaultdict(set)
        self._generation = 0
        self._lock = Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        return as_utc(self._clock())

    def _drop(self, key: str) -> None:
        slot = self._slots.pop(key, None)
        if slot is None:
            return
        for tag in slot.tags:
            keys = self._keys_by_tag.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._keys_by_tag[tag]

    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, key: str) -> Optional[EffectivePlan]:
        now = self._now()
        with self._lock:
            slot = self._slots.get(key)
            if slot is None:
                return None
            if now >= slot.expires_at:
                self._drop(key)
                return None
            return slot.plan

    def set(
        self,
        key: str,
        value: EffectivePlan,
        expires_at: datetime,
        tags: Set[str],
        *,
        generation: Optional[int] = None,
    ) -> None:
        expires_at = as_utc(expires_at)
        if expires_at <= self._now():
            return
        with self._lock:
            if generation is not None and generation != self._generation:
                return
            self._drop(key)
            self._slots[key] = _Slot(value, expires_at, frozenset(tags))
            for tag in tags:
                self._keys_by_tag[tag].add(key)

    def invalidate(self, tags: Iterable[str]) -> None:
        with self._lock:
            self._generation += 1
            for tag in set(tags):
                for key in list(self._keys_by_tag.get(tag, ())):
                    self._drop(key)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._slots.clear()
            self._keys_by_tag.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)
