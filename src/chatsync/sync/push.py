"""Push reconciliation.

Owns:
- the push subscription on the transport (one per kind, per session)
- validating raw payloads into typed events at the boundary
- translating events into the same store merges fetches use
- recovering from a lost channel by invalidating push-maintained keys
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import partial
from typing import Any

from chatsync._redact import redact_for_log
from chatsync.config import SyncConfig
from chatsync.exceptions import InvalidEventError
from chatsync.models import Message, make_preview
from chatsync.state.events import (
    ConversationAddedEvent,
    ConversationUpdatedEvent,
    IngestionSource,
    MessageAddedEvent,
    NewMessage,
    PushEventKind,
    SyncEvent,
    parse_push_event,
)
from chatsync.state.keys import parse_key
from chatsync.state.policy import FreshnessPolicy, policy_for
from chatsync.state.store import EntityStore
from chatsync.sync.apply import apply_conversation, apply_last_message, apply_messages, is_complete_conversation
from chatsync.transport import ChatTransport

_logger = logging.getLogger(__name__)

_DATA_KINDS = (
    PushEventKind.CONVERSATION_ADDED,
    PushEventKind.CONVERSATION_UPDATED,
    PushEventKind.MESSAGE_ADDED,
    PushEventKind.SYNC,
)


class PushReconciler:
    def __init__(self, store: EntityStore, config: SyncConfig) -> None:
        self._store = store
        self._config = config
        self._transport: ChatTransport | None = None
        self._unsubscribers: list[Callable[[], None]] = []

    @property
    def attached(self) -> bool:
        return self._transport is not None

    def attach(self, transport: ChatTransport) -> None:
        """Subscribe to every push kind on *transport*.

        Attaching twice to the same transport is a no-op; attaching to a
        different one first detaches from the old one.
        """
        if self._transport is transport:
            return
        if self._transport is not None:
            self.detach()
        self._transport = transport
        for kind in _DATA_KINDS:
            self._unsubscribers.append(transport.subscribe(kind, partial(self.on_event, kind)))
        self._unsubscribers.append(transport.subscribe(PushEventKind.CHANNEL_RESET, self._on_channel_reset))
        _logger.debug("Push reconciler attached")

    def detach(self) -> None:
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        self._transport = None
        for unsubscribe in reversed(unsubscribers):
            unsubscribe()

    def on_event(self, kind: str | PushEventKind, payload: Any) -> bool:
        """Apply one raw push payload.

        Returns ``False`` when the payload was dropped (unknown kind or schema
        mismatch); such payloads are logged, never raised into the transport.
        """
        if kind == PushEventKind.CHANNEL_RESET:
            self.handle_channel_reset()
            return True
        try:
            event = parse_push_event(kind, payload)
        except InvalidEventError as exc:
            _logger.warning("Dropping push event %s: %s", kind, exc)
            if self._config.payload_logging:
                _logger.debug("Dropped payload: %s", redact_for_log(payload))
            return False

        if self._store.closed:
            _logger.debug("Ignoring push event %s after close", kind)
            return False
        if self._config.payload_logging:
            _logger.debug("Push event %s: %s", kind, redact_for_log(event))

        if isinstance(event, ConversationAddedEvent | ConversationUpdatedEvent):
            conversation = event.conversation
            apply_conversation(
                self._store,
                conversation,
                source=IngestionSource.PUSH,
                fresh=is_complete_conversation(conversation),
            )
        elif isinstance(event, MessageAddedEvent):
            self._apply_new_message(event)
        elif isinstance(event, SyncEvent):
            for conversation in event.conversations:
                apply_conversation(
                    self._store,
                    conversation,
                    source=IngestionSource.PUSH,
                    fresh=is_complete_conversation(conversation),
                )
            for new_message in event.messages:
                self._apply_new_message(new_message)
        return True

    def _apply_new_message(self, event: NewMessage) -> None:
        message: Message = event.message
        apply_messages(
            self._store,
            event.conversation_id,
            (message,),
            source=IngestionSource.PUSH,
            tolerance_ms=self._config.placeholder_match_tolerance_ms,
        )
        preview = event.preview
        if preview is None:
            preview = make_preview(message.text, self._config.preview_length)
        apply_last_message(
            self._store,
            event.conversation_id,
            message,
            preview=preview,
            source=IngestionSource.PUSH,
        )

    def _on_channel_reset(self, _payload: Any = None) -> None:
        self.handle_channel_reset()

    def handle_channel_reset(self) -> list[str]:
        """Re-subscribe after the push channel was lost; return the invalidated keys.

        Events missed while the channel was down are not replayed. Instead every
        push-maintained key is marked stale, so the next ``ensure`` refetches it.
        """
        transport = self._transport
        if transport is not None:
            self.detach()
            self.attach(transport)
        if self._store.closed:
            return []

        invalidated: list[str] = []
        for key in self._store.keys():
            try:
                kind = parse_key(key).kind
            except ValueError:
                # Caller-defined keys are not maintained by push.
                _logger.debug("Channel reset skips key %r", key)
                continue
            if policy_for(kind) != FreshnessPolicy.NEVER_STALE:
                continue
            if self._store.invalidate(key) is not None:
                invalidated.append(key)
        _logger.info("Push channel reset; %d key(s) marked stale", len(invalidated))
        return invalidated
