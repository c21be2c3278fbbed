"""High-level async facade over the chat synchronization cache."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from chatsync.config import SyncConfig
from chatsync.exceptions import ChatSyncError
from chatsync.models import Conversation, Message, User
from chatsync.state.events import CacheStatus, PushEventKind
from chatsync.state.fanout import Observer, Unsubscribe
from chatsync.state.keys import CONVERSATIONS_KEY, messages_key, user_key
from chatsync.state.store import CacheEntry, EntityStore
from chatsync.sync.fetch import FetchOrchestrator, Loader
from chatsync.sync.mutations import MutationCoordinator, PendingSend
from chatsync.sync.push import PushReconciler
from chatsync.transport import ChatTransport

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ChatSyncClient:
    """Local synchronization cache for one signed-in chat session.

    Usage::

        async with ChatSyncClient(config, transport) as client:
            await client.ensure("conversations")
            client.subscribe("messages:c1", render)
            await client.send("c1", "hello")
    """

    def __init__(
        self,
        config: SyncConfig,
        transport: ChatTransport,
        *,
        clock: Callable[[], datetime] = _utcnow,
        store: EntityStore | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._store = (
            store if store is not None else EntityStore(clock=clock, payload_logging=config.payload_logging)
        )
        self._fetch = FetchOrchestrator(self._store, transport, config)
        self._mutations = MutationCoordinator(self._store, transport, config)
        self._push = PushReconciler(self._store, config)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ChatSyncClient:
        self._require_open()
        self._push.attach(self._transport)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop receiving pushes, let pending work settle, then drop the cache."""
        if self._store.closed:
            return
        self._push.detach()
        await self._mutations.wait_idle()
        await self._fetch.wait_idle()
        self._store.close()
        _logger.debug("Chat sync client closed")

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def closed(self) -> bool:
        return self._store.closed

    def _require_open(self) -> None:
        if self._store.closed:
            raise ChatSyncError("Client is closed")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str) -> CacheEntry:
        return self._store.get(key)

    def subscribe(self, key: str, observer: Observer) -> Unsubscribe:
        """Register *observer* for every change of *key*.

        Observers are called synchronously with the new :class:`CacheEntry`.
        Unsubscribing does not cancel a fetch already in flight.
        """
        return self._store.subscribe(key, observer)

    async def ensure(self, key: str, *, loader: Loader | None = None, force: bool = False) -> CacheStatus:
        self._require_open()
        return await self._fetch.ensure(key, loader=loader, force=force)

    async def ensure_many(self, keys: Iterable[str], *, force: bool = False) -> dict[str, CacheStatus]:
        self._require_open()
        return await self._fetch.ensure_many(keys, force=force)

    async def ensure_recipients(self, conversation_id: str) -> dict[str, CacheStatus]:
        self._require_open()
        return await self._fetch.ensure_recipients(conversation_id)

    def conversations(self) -> tuple[Conversation, ...]:
        """Cached conversation list, most recent first (empty when not loaded)."""
        return self._store.peek(CONVERSATIONS_KEY) or ()

    def messages(self, conversation_id: str) -> tuple[Message, ...]:
        """Cached messages of a conversation in display order."""
        return self._store.peek(messages_key(conversation_id)) or ()

    def user(self, user_id: str) -> User | None:
        return self._store.peek(user_key(user_id))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def send(self, conversation_id: str, text: str) -> PendingSend:
        self._require_open()
        return self._mutations.send(conversation_id, text)

    async def create_conversation(self, recipient_ids: Sequence[str], name: str = "") -> Conversation:
        self._require_open()
        return await self._mutations.create_conversation(recipient_ids, name)

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def on_event(self, kind: str | PushEventKind, payload: Any) -> bool:
        """Feed one push payload directly (for transports without ``subscribe``)."""
        return self._push.on_event(kind, payload)

    def handle_channel_reset(self) -> list[str]:
        return self._push.handle_channel_reset()
