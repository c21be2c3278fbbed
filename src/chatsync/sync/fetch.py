"""Fetch orchestration.

Owns:
- freshness checks before touching the transport
- at most one in-flight loader per key (later callers join the pending one)
- translating loader results into store merges and failures into statuses
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import timedelta
from functools import partial
from typing import Any

from chatsync._redact import redact_for_log
from chatsync.config import SyncConfig
from chatsync.exceptions import ChatSyncError, NotFoundError, TransientError, as_sync_error
from chatsync.models import Conversation, Message, User
from chatsync.state.events import CacheStatus, IngestionSource
from chatsync.state.keys import CONVERSATIONS_KEY, EntityKind, ParsedKey, conversation_key, parse_key, user_key
from chatsync.state.policy import is_fresh, policy_for
from chatsync.state.store import EntityStore
from chatsync.sync.apply import (
    apply_conversation,
    apply_conversations,
    apply_messages,
    apply_user,
    coerce_model,
)
from chatsync.transport import ChatTransport

_logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]


class FetchOrchestrator:
    def __init__(
        self,
        store: EntityStore,
        transport: ChatTransport,
        config: SyncConfig,
    ) -> None:
        self._store = store
        self._transport = transport
        self._config = config
        self._user_ttl = timedelta(seconds=config.user_ttl)
        self._local_user = User(id=config.local_user_id, username=config.local_username)
        self._inflight: dict[str, asyncio.Task[CacheStatus]] = {}

    def is_fresh(self, key: str) -> bool:
        parsed = parse_key(key)
        return is_fresh(
            self._store.get(key),
            self._store.now(),
            policy=policy_for(parsed.kind),
            ttl=self._user_ttl,
        )

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def ensure(self, key: str, *, loader: Loader | None = None, force: bool = False) -> CacheStatus:
        """Make sure *key* holds a usable value; return its resulting status.

        A fresh entry is served as-is without calling the transport (unless
        *force*). Otherwise one loader runs for the key; callers arriving while
        it is pending await that same run. Failures never raise: they are
        recorded on the entry as ``error`` and returned as the status.

        Parameters
        ----------
        loader
            Zero-argument coroutine function overriding the transport call
            normally used for the key's kind.
        force
            Refetch even when the cached value is fresh.
        """
        parsed = parse_key(key)
        task = self._inflight.get(key)
        if task is None or task.done():
            if not force and self.is_fresh(key):
                return self._store.get(key).status
            generation = self._store.generation(key)
            self._store.mark_loading(key)
            task = asyncio.get_running_loop().create_task(
                self._run(key, parsed, loader, generation),
                name=f"chatsync-ensure:{key}",
            )
            self._inflight[key] = task
        # Shielded: a caller giving up must not cancel the fetch for everyone else.
        return await asyncio.shield(task)

    async def ensure_many(self, keys: Iterable[str], *, force: bool = False) -> dict[str, CacheStatus]:
        unique = list(dict.fromkeys(keys))
        statuses = await asyncio.gather(*(self.ensure(key, force=force) for key in unique))
        return dict(zip(unique, statuses, strict=True))

    async def ensure_recipients(self, conversation_id: str) -> dict[str, CacheStatus]:
        """Ensure the profiles of every recipient of a conversation."""
        key = conversation_key(conversation_id)
        status = await self.ensure(key)
        conversation: Conversation | None = self._store.peek(key)
        if conversation is None:
            _logger.debug("No recipients for %s (status %s)", key, status)
            return {}
        return await self.ensure_many(user_key(recipient) for recipient in conversation.recipient_ids)

    async def wait_idle(self) -> None:
        """Wait for every in-flight fetch to settle."""
        while pending := [task for task in self._inflight.values() if not task.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, key: str, parsed: ParsedKey, loader: Loader | None, generation: int) -> CacheStatus:
        try:
            if parsed.kind == EntityKind.CONVERSATION and loader is None:
                return await self._ensure_conversation(key, parsed.ident, generation)
            resolved = loader if loader is not None else self._loader_for(parsed)
            result = await resolved()
            if self._config.payload_logging:
                _logger.debug("Fetched %s: %s", key, redact_for_log(result))
            self._apply(parsed, result)
            return self._store.get(key).status
        except asyncio.CancelledError:
            if not self._store.closed:
                self._store.mark_error(key, TransientError(f"Fetch for {key} was cancelled"))
            raise
        except Exception as exc:
            return self._fail(key, as_sync_error(exc), generation)
        finally:
            self._inflight.pop(key, None)

    async def _ensure_conversation(self, key: str, conversation_id: str, generation: int) -> CacheStatus:
        # Single conversations have no endpoint of their own; they come with the list.
        refetch = self._store.get(key).stale
        list_status = await self.ensure(CONVERSATIONS_KEY, force=refetch)
        entry = self._store.get(key)
        if list_status == CacheStatus.ERROR:
            error = self._store.get(CONVERSATIONS_KEY).error
            return self._fail(key, error or TransientError("Conversation list unavailable"), generation)
        # A refetched list that left the generation untouched no longer lists the conversation.
        unlisted = refetch and self._store.generation(key) == generation
        if entry.value is None or unlisted:
            return self._fail(key, NotFoundError(f"Conversation {conversation_id} not found", key=key), generation)
        return self._store.mark_ready(key).status

    def _fail(self, key: str, error: ChatSyncError, generation: int) -> CacheStatus:
        if self._store.generation(key) > generation:
            # A push delivered a complete value while the fetch was pending.
            _logger.debug("Fetch for %s failed after being superseded: %s", key, error)
            return self._store.mark_ready(key).status
        _logger.warning("Fetch for %s failed: %s", key, error)
        return self._store.mark_error(key, error).status

    def _loader_for(self, parsed: ParsedKey) -> Loader:
        if parsed.kind == EntityKind.CONVERSATIONS:
            return self._transport.fetch_conversations
        if parsed.kind == EntityKind.MESSAGES:
            return partial(self._transport.fetch_messages, parsed.ident)
        if parsed.kind == EntityKind.USERS:
            if parsed.ident == self._local_user.id:
                return self._load_local_user
            return partial(self._transport.fetch_user, parsed.ident)
        raise ValueError(f"No loader for {parsed.kind} keys")

    async def _load_local_user(self) -> User:
        return self._local_user

    def _apply(self, parsed: ParsedKey, result: Any) -> None:
        if parsed.kind == EntityKind.CONVERSATIONS:
            conversations = [coerce_model(Conversation, item) for item in result or ()]
            apply_conversations(self._store, conversations, source=IngestionSource.FETCH)
        elif parsed.kind == EntityKind.CONVERSATION:
            conversation = coerce_model(Conversation, result, defaults={"id": parsed.ident})
            apply_conversation(self._store, conversation, source=IngestionSource.FETCH, fresh=True)
        elif parsed.kind == EntityKind.MESSAGES:
            messages = [coerce_model(Message, item) for item in result or ()]
            apply_messages(
                self._store,
                parsed.ident,
                messages,
                source=IngestionSource.FETCH,
                tolerance_ms=self._config.placeholder_match_tolerance_ms,
                fresh=True,
            )
        elif parsed.kind == EntityKind.USERS:
            user = coerce_model(User, result, defaults={"id": parsed.ident})
            if user.id != parsed.ident:
                raise NotFoundError(f"Expected user {parsed.ident}, got {user.id}", key=user_key(parsed.ident))
            apply_user(self._store, user, source=IngestionSource.FETCH)
