"""Store application helpers.

This module centralizes the pattern shared by fetch responses, push events
and mutations:

- coerce a transport value (model or mapping) into a typed model
- merge it into its own key with the right strategy
- keep derived keys (the conversation list, the conversation's last-message
  fields) in step

Keeping this in one place means the supersede and monotonic rules are applied
identically no matter which path a value arrived on.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from functools import partial
from typing import Any, TypeVar

from chatsync.models import ChatBaseModel, Conversation, Message, User
from chatsync.state.events import IngestionSource
from chatsync.state.keys import CONVERSATIONS_KEY, conversation_key, messages_key, user_key
from chatsync.state.merge import merge_conversation, merge_conversation_list, merge_message_list, merge_user
from chatsync.state.store import CacheEntry, EntityStore

TModel = TypeVar("TModel", bound=ChatBaseModel)


def coerce_model(model_cls: type[TModel], payload: Any, *, defaults: Mapping[str, Any] | None = None) -> TModel:
    """Validate *payload* as *model_cls*.

    ``defaults`` fill fields the payload does not carry; values present in
    the payload always win.
    """
    if isinstance(payload, model_cls):
        if not defaults:
            return payload
        missing = {name: value for name, value in defaults.items() if name not in payload.model_fields_set}
        return payload.model_copy(update=missing) if missing else payload
    if not isinstance(payload, Mapping):
        raise TypeError(f"Expected {model_cls.__name__} or mapping, got {type(payload).__name__}")
    if not defaults:
        return model_cls.model_validate(dict(payload))
    # Alias choices list the wire name first, so aliased payload keys win over defaults.
    return model_cls.model_validate({**defaults, **payload})


def is_complete_conversation(conversation: Conversation) -> bool:
    """Whether the payload described the whole conversation, not just its last message."""
    return "recipient_ids" in conversation.model_fields_set


def apply_conversation(
    store: EntityStore,
    conversation: Conversation,
    *,
    source: IngestionSource,
    fresh: bool,
) -> CacheEntry:
    """Merge one conversation into its own key, then into the conversation list."""
    entry = store.merge(
        conversation_key(conversation.id),
        conversation,
        merge_conversation,
        source=source,
        fresh=fresh,
    )
    merged: Conversation = entry.value
    store.merge(CONVERSATIONS_KEY, (merged,), merge_conversation_list, source=source)
    return entry


def apply_conversations(
    store: EntityStore,
    conversations: Iterable[Conversation],
    *,
    source: IngestionSource,
) -> CacheEntry:
    """Merge a complete conversation listing (a fetch response)."""
    merged: list[Conversation] = []
    for conversation in conversations:
        entry = store.merge(
            conversation_key(conversation.id),
            conversation,
            merge_conversation,
            source=source,
            fresh=True,
        )
        merged.append(entry.value)
    return store.merge(CONVERSATIONS_KEY, tuple(merged), merge_conversation_list, source=source, fresh=True)


def apply_messages(
    store: EntityStore,
    conversation_id: str,
    messages: Iterable[Message],
    *,
    source: IngestionSource,
    tolerance_ms: int,
    retract: Iterable[str] = (),
    fresh: bool = False,
) -> CacheEntry:
    strategy = partial(merge_message_list, tolerance_ms=tolerance_ms, retract=tuple(retract))
    return store.merge(messages_key(conversation_id), tuple(messages), strategy, source=source, fresh=fresh)


def apply_last_message(
    store: EntityStore,
    conversation_id: str,
    message: Message,
    *,
    preview: str,
    source: IngestionSource,
) -> CacheEntry:
    """Advance the conversation's last-message fields (monotonic)."""
    partial_conversation = Conversation(
        id=conversation_id,
        last_message_preview=preview,
        last_message_sender_id=message.sender_id,
        last_message_timestamp=message.timestamp,
    )
    return apply_conversation(store, partial_conversation, source=source, fresh=False)


def apply_user(store: EntityStore, user: User, *, source: IngestionSource) -> CacheEntry:
    return store.merge(user_key(user.id), user, merge_user, source=source, fresh=True)
