"""Freshness policy.

Decides whether a cached value may be served without a new fetch. This module
contains no merge logic; see :mod:`chatsync.state.merge`.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from chatsync.state.keys import EntityKind

if TYPE_CHECKING:
    from chatsync.state.store import CacheEntry


class FreshnessPolicy(StrEnum):
    # Trusted until explicitly invalidated (push-maintained collections).
    NEVER_STALE = "never-stale"
    # Expires after a fixed window (user profiles).
    SHORT_LIVED = "short-lived"


def policy_for(kind: EntityKind) -> FreshnessPolicy:
    if kind == EntityKind.USERS:
        return FreshnessPolicy.SHORT_LIVED
    return FreshnessPolicy.NEVER_STALE


def is_expired(now: datetime, expires_at: datetime) -> bool:
    return now >= expires_at


def is_fresh(
    entry: CacheEntry,
    now: datetime,
    *,
    policy: FreshnessPolicy,
    ttl: timedelta,
) -> bool:
    """Return ``True`` when *entry* can be served without fetching.

    Policy:
    - Explicitly invalidated entries are never fresh.
    - An entry that was never populated by a complete value is never fresh.
    - ``never-stale`` entries stay fresh from then on.
    - ``short-lived`` entries are fresh for *ttl* after ``fetched_at``.
    """
    if entry.stale or entry.fetched_at is None:
        return False
    if policy == FreshnessPolicy.NEVER_STALE:
        return True
    return not is_expired(now, entry.fetched_at + ttl)
