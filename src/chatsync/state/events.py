"""Cache statuses, ingestion sources and push event payloads.

All three write paths (fetch responses, push events, local mutations) are
tagged with an :class:`IngestionSource`. Push payloads are validated into a
tagged union here, at the subscription boundary, so the reconciler only ever
sees typed events.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError, model_validator

from chatsync.exceptions import InvalidEventError
from chatsync.models import ChatBaseModel, Conversation, EntityId, Message


class IngestionSource(StrEnum):
    FETCH = "fetch"
    PUSH = "push"
    MUTATION = "mutation"
    OPTIMISTIC = "optimistic"


class CacheStatus(StrEnum):
    ABSENT = "absent"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class PushEventKind(StrEnum):
    CONVERSATION_ADDED = "conversation-added"
    CONVERSATION_UPDATED = "conversation-updated"
    MESSAGE_ADDED = "message-added"
    SYNC = "sync"
    # Signal only; carries no payload.
    CHANNEL_RESET = "channel-reset"


def _as_dict(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        # Keep only explicitly-set fields so partial updates stay partial.
        return payload.model_dump(exclude_unset=True)
    if isinstance(payload, Mapping):
        return dict(payload)
    return payload


class NewMessage(ChatBaseModel):
    """A message together with the conversation it belongs to.

    Accepts the transport's flat shape (``ConversationID``, ``MessageID``,
    ``SenderID``, ``Text``, ``Preview``, ``Timestamp``) as well as a nested
    ``message`` object.
    """

    conversation_id: EntityId = Field(
        ...,
        validation_alias=AliasChoices("ConversationID", "conversation_id", "conversationID"),
    )
    message: Message
    preview: str | None = Field(default=None, validation_alias=AliasChoices("Preview", "preview"))

    @model_validator(mode="before")
    @classmethod
    def _nest_message(cls, values: Any) -> Any:
        values = _as_dict(values)
        if isinstance(values, dict) and "message" not in values:
            return {**values, "message": values}
        if isinstance(values, dict):
            return {**values, "message": _as_dict(values["message"])}
        return values


class ConversationAddedEvent(ChatBaseModel):
    kind: Literal["conversation-added"] = "conversation-added"
    conversation: Conversation

    @model_validator(mode="before")
    @classmethod
    def _nest_conversation(cls, values: Any) -> Any:
        return _nest(values, "conversation")


class ConversationUpdatedEvent(ChatBaseModel):
    kind: Literal["conversation-updated"] = "conversation-updated"
    conversation: Conversation

    @model_validator(mode="before")
    @classmethod
    def _nest_conversation(cls, values: Any) -> Any:
        return _nest(values, "conversation")


class MessageAddedEvent(NewMessage):
    kind: Literal["message-added"] = "message-added"


class SyncEvent(ChatBaseModel):
    """Catch-up batch delivered by the push channel."""

    kind: Literal["sync"] = "sync"
    conversations: tuple[Conversation, ...] = Field(
        default=(),
        validation_alias=AliasChoices("NewConversations", "new_conversations", "conversations"),
    )
    messages: tuple[NewMessage, ...] = Field(
        default=(),
        validation_alias=AliasChoices("NewMessages", "new_messages", "messages"),
    )


def _nest(values: Any, field_name: str) -> Any:
    values = _as_dict(values)
    if not isinstance(values, dict):
        return values
    if field_name in values:
        return {"kind": values.get("kind"), field_name: _as_dict(values[field_name])}
    body = {key: value for key, value in values.items() if key != "kind"}
    return {"kind": values.get("kind"), field_name: body}


PushEvent = Annotated[
    ConversationAddedEvent | ConversationUpdatedEvent | MessageAddedEvent | SyncEvent,
    Field(discriminator="kind"),
]

_PUSH_EVENT_ADAPTER: TypeAdapter[
    ConversationAddedEvent | ConversationUpdatedEvent | MessageAddedEvent | SyncEvent
] = TypeAdapter(PushEvent)


def parse_push_event(
    kind: str | PushEventKind,
    payload: Any,
) -> ConversationAddedEvent | ConversationUpdatedEvent | MessageAddedEvent | SyncEvent:
    """Validate a raw push payload for *kind*.

    Raises
    ------
    InvalidEventError
        Unknown kind, or the payload does not match the kind's schema.
    """
    try:
        event_kind = PushEventKind(kind)
    except ValueError as exc:
        raise InvalidEventError(f"Unknown push event kind: {kind!r}", kind=str(kind)) from exc
    if event_kind == PushEventKind.CHANNEL_RESET:
        raise InvalidEventError("channel-reset carries no payload", kind=event_kind)

    body = _as_dict(payload)
    if not isinstance(body, dict):
        raise InvalidEventError(f"{event_kind} payload must be an object", kind=event_kind)
    try:
        return _PUSH_EVENT_ADAPTER.validate_python({**body, "kind": event_kind.value})
    except ValidationError as exc:
        raise InvalidEventError(f"Invalid {event_kind} payload: {exc.error_count()} error(s)", kind=event_kind) from exc
