"""Observer registry for cache entries."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chatsync.state.store import CacheEntry

_logger = logging.getLogger(__name__)

Observer = Callable[["CacheEntry"], None]
Unsubscribe = Callable[[], None]


class SubscriptionFanout:
    """Deliver entry snapshots to the observers registered on a key.

    Delivery is synchronous and in registration order. An observer that
    raises does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._observers: dict[str, list[Observer]] = {}

    def subscribe(self, key: str, observer: Observer) -> Unsubscribe:
        self._observers.setdefault(key, []).append(observer)

        def _unsubscribe() -> None:
            observers = self._observers.get(key)
            if observers is None:
                return
            # Remove by identity; the same callable may be registered twice.
            for index, candidate in enumerate(observers):
                if candidate is observer:
                    del observers[index]
                    break
            if not observers:
                self._observers.pop(key, None)

        return _unsubscribe

    def observer_count(self, key: str) -> int:
        return len(self._observers.get(key, ()))

    def notify(self, key: str, entry: CacheEntry) -> None:
        # Copy: observers may unsubscribe while being notified.
        for observer in list(self._observers.get(key, ())):
            try:
                observer(entry)
            except Exception:
                _logger.warning("Observer for %s failed", key, exc_info=True)

    def clear(self) -> None:
        self._observers.clear()
