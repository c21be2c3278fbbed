"""Deterministic merge strategies.

A strategy is a pure function ``(current_value, incoming) -> new_value``.
Every strategy here is idempotent: applying the same incoming value twice
yields the same result as applying it once. The store is the only caller;
it decides what counts as a change and who is notified.

Incoming models carry only the fields their payload actually set
(``model_fields_set``), so field-wise merges never revert a known value to a
default just because a partial payload omitted it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from chatsync._constants import PLACEHOLDER_CLOCK_SKEW_MS
from chatsync.models import LAST_MESSAGE_FIELDS, ChatBaseModel, Conversation, Message, User

MergeStrategy = Callable[[Any, Any], Any]

TModel = TypeVar("TModel", bound=ChatBaseModel)


def _check_same_id(current: Any, incoming: Any) -> None:
    if current.id != incoming.id:
        raise ValueError(f"Cannot merge {type(incoming).__name__} {incoming.id!r} into {current.id!r}")


def overwrite_fields(current: TModel | None, incoming: TModel) -> TModel:
    """Field-wise overwrite: every field the incoming payload carries wins."""
    if current is None:
        return incoming
    _check_same_id(current, incoming)
    patch = incoming.patch()
    if not patch:
        return current
    return current.model_copy(update=patch)


def merge_user(current: User | None, incoming: User) -> User:
    return overwrite_fields(current, incoming)


def merge_conversation(current: Conversation | None, incoming: Conversation) -> Conversation:
    """Field-wise overwrite with a monotonic last-message group.

    The last-message timestamp, preview and sender move together and only
    overwrite when the incoming timestamp is greater-or-equal to the cached
    one. Other fields (name, recipients) overwrite unconditionally.
    """
    if current is None:
        return incoming
    _check_same_id(current, incoming)

    patch = incoming.patch()
    last_message = {name: patch.pop(name) for name in LAST_MESSAGE_FIELDS if name in patch}
    if last_message and incoming.last_message_timestamp >= current.last_message_timestamp:
        patch.update(last_message)
    if not patch:
        return current
    return current.model_copy(update=patch)


def _conversation_order(conversation: Conversation) -> tuple[int, str]:
    # Most recent activity first.
    return (-conversation.last_message_timestamp, conversation.id)


def merge_conversation_list(
    current: tuple[Conversation, ...] | None,
    incoming: Iterable[Conversation],
) -> tuple[Conversation, ...]:
    """Upsert conversations by id, each through :func:`merge_conversation`."""
    by_id: dict[str, Conversation] = {conversation.id: conversation for conversation in current or ()}
    for conversation in incoming:
        by_id[conversation.id] = merge_conversation(by_id.get(conversation.id), conversation)
    return tuple(sorted(by_id.values(), key=_conversation_order))


def _message_order(message: Message) -> tuple[int, bool, str]:
    # Real ids before placeholders on equal timestamps; id keeps ties deterministic.
    return (message.timestamp, message.is_placeholder, message.id)


def merge_message_list(
    current: tuple[Message, ...] | None,
    incoming: Iterable[Message],
    *,
    tolerance_ms: int = 0,
    retract: Iterable[str] = (),
) -> tuple[Message, ...]:
    """Upsert messages by id, sort ascending, and drop superseded placeholders.

    Parameters
    ----------
    tolerance_ms
        A real message that is new to the list supersedes (removes) the
        closest placeholder with the same sender and text sent at most this
        many milliseconds before it. A real message older than the
        placeholder only matches within a few seconds of clock skew, so an
        earlier send of the same text never takes a pending one's place.
        Each real message supersedes at most one placeholder.
    retract
        Ids removed before the upsert. Used to roll back or replace an
        optimistic entry; unknown ids are ignored.
    """
    by_id: dict[str, Message] = {message.id: message for message in current or ()}
    for message_id in retract:
        by_id.pop(message_id, None)

    added: list[Message] = []
    for message in incoming:
        if message.is_placeholder:
            # A placeholder whose real counterpart is already listed is never stored.
            if any(
                not existing.is_placeholder and existing.same_content(message)
                for existing in by_id.values()
            ):
                continue
        elif message.id not in by_id:
            added.append(message)
        by_id[message.id] = message

    skew_ms = min(tolerance_ms, PLACEHOLDER_CLOCK_SKEW_MS)
    for message in added:
        candidates = [
            existing
            for existing in by_id.values()
            if existing.is_placeholder
            and existing.same_content(message, tolerance_ms=tolerance_ms)
            and message.timestamp - existing.timestamp >= -skew_ms
        ]
        if candidates:
            closest = min(candidates, key=lambda p: (abs(p.timestamp - message.timestamp), p.id))
            del by_id[closest.id]

    return tuple(sorted(by_id.values(), key=_message_order))
