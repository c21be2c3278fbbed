"""Synchronization layer.

This package contains the three write paths into the entity store (fetch
orchestration, push reconciliation, optimistic mutations) and the shared
helpers that turn transport values into store merges.
"""

__all__: list[str] = []
