"""Deterministic in-memory entity store.

This is the only component that owns cache entries. Fetch responses, push
events and local mutations all reach it through :meth:`EntityStore.merge`;
status bookkeeping (loading, error, invalidation) goes through the same
commit-and-notify path.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from chatsync._redact import redact_for_log
from chatsync.exceptions import ChatSyncError
from chatsync.state.events import CacheStatus, IngestionSource
from chatsync.state.fanout import Observer, SubscriptionFanout, Unsubscribe
from chatsync.state.merge import MergeStrategy

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CacheEntry(BaseModel):
    """Immutable snapshot of one cached key.

    ``fetched_at`` is the freshness timestamp: it is set only when a complete
    value landed (a fetch, or a push carrying the whole entity). ``stale``
    marks explicit invalidation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    key: str
    status: CacheStatus = CacheStatus.ABSENT
    value: Any = None
    fetched_at: datetime | None = None
    updated_at: datetime | None = None
    stale: bool = False
    error: ChatSyncError | None = None
    source: IngestionSource | None = None

    @property
    def is_ready(self) -> bool:
        return self.status == CacheStatus.READY

    @property
    def is_loading(self) -> bool:
        return self.status == CacheStatus.LOADING

    @property
    def has_value(self) -> bool:
        return self.value is not None


class EntityStore:
    """In-memory store for users, conversations and message lists.

    Designed to be deterministic: given the same sequence of merges, it
    produces the same entries. All methods are synchronous, so under the
    cooperative event loop no two merges ever interleave.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        fanout: SubscriptionFanout | None = None,
        payload_logging: bool = False,
    ) -> None:
        self._clock = clock
        self._fanout = fanout if fanout is not None else SubscriptionFanout()
        self._payload_logging = payload_logging
        self._entries: dict[str, CacheEntry] = {}
        # Bumped whenever a complete value lands; not part of the snapshot.
        self._generations: dict[str, int] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def now(self) -> datetime:
        return self._clock()

    def _require_open(self) -> None:
        if self._closed:
            raise ChatSyncError("Entity store is closed")

    def get(self, key: str) -> CacheEntry:
        """Return the entry for *key*, creating an ``absent`` one on first access."""
        self._require_open()
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[key] = entry
        return entry

    def peek(self, key: str) -> Any:
        """Return the cached value for *key* (``None`` when there is none)."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def keys(self) -> list[str]:
        return list(self._entries)

    def subscribe(self, key: str, observer: Observer) -> Unsubscribe:
        self._require_open()
        return self._fanout.subscribe(key, observer)

    def merge(
        self,
        key: str,
        incoming: Any,
        strategy: MergeStrategy,
        *,
        source: IngestionSource = IngestionSource.FETCH,
        fresh: bool = False,
    ) -> CacheEntry:
        """Merge *incoming* into the value cached for *key*.

        Parameters
        ----------
        strategy
            Pure function ``(current_value, incoming) -> new_value``.
        source
            Where the incoming value came from (recorded on the entry).
        fresh
            ``True`` when *incoming* is a complete, authoritative value: the
            entry becomes ``ready``, its freshness timestamp is reset, and any
            previous error or invalidation is cleared. Partial merges never
            change the status, except that a first value turns ``absent``
            into ``ready``.
        """
        current = self.get(key)
        value = strategy(current.value, incoming)
        value_changed = value != current.value
        now = self._clock()

        if fresh:
            self._generations[key] = self._generations.get(key, 0) + 1
            update: dict[str, Any] = {
                "status": CacheStatus.READY,
                "fetched_at": now,
                "stale": False,
                "error": None,
            }
        else:
            update = {"status": CacheStatus.READY if current.status == CacheStatus.ABSENT else current.status}

        if value_changed:
            update.update(value=value, updated_at=now, source=source)

        entry = self._commit(current, update)
        if entry is not current and self._payload_logging:
            _logger.debug("Merged %s from %s: %s", key, source, redact_for_log(incoming))
        return entry

    def mark_loading(self, key: str) -> CacheEntry:
        return self._commit(self.get(key), {"status": CacheStatus.LOADING})

    def mark_ready(self, key: str) -> CacheEntry:
        """Leave ``loading`` without a new value (the fetch was superseded)."""
        return self._commit(self.get(key), {"status": CacheStatus.READY, "error": None})

    def mark_error(self, key: str, error: ChatSyncError) -> CacheEntry:
        """Record a failed fetch. The cached value, if any, is kept."""
        return self._commit(self.get(key), {"status": CacheStatus.ERROR, "error": error})

    def invalidate(self, key: str) -> CacheEntry | None:
        """Mark *key* stale so the next ``ensure`` refetches it."""
        self._require_open()
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._commit(entry, {"stale": True})

    def generation(self, key: str) -> int:
        """Number of complete values merged into *key* so far."""
        return self._generations.get(key, 0)

    def subscriber_count(self, key: str) -> int:
        return self._fanout.observer_count(key)

    def close(self) -> None:
        """Drop every entry and observer; the store cannot be used afterwards."""
        self._closed = True
        self._entries.clear()
        self._generations.clear()
        self._fanout.clear()

    def _commit(self, current: CacheEntry, update: dict[str, Any]) -> CacheEntry:
        self._require_open()
        if all(getattr(current, name) == value for name, value in update.items()):
            return current
        entry = current.model_copy(update=update)
        self._entries[entry.key] = entry
        _logger.debug("Entry %s -> %s", entry.key, entry.status)
        self._fanout.notify(entry.key, entry)
        return entry
