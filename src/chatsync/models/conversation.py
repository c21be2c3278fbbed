"""Conversation model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from chatsync.models._base import ChatBaseModel, EntityId, EpochMillis

#: Fields describing the conversation's latest message. They move together and
#: only ever forward in time.
LAST_MESSAGE_FIELDS: frozenset[str] = frozenset(
    {"last_message_preview", "last_message_sender_id", "last_message_timestamp"}
)


def make_preview(text: str, length: int) -> str:
    return text[:length]


class Conversation(ChatBaseModel):
    """A conversation summary as shown in the conversation list.

    ``recipient_ids`` is an ordered set: duplicates are dropped (first
    occurrence wins) and order is ignored for equality but kept for display.
    """

    id: EntityId = Field(..., validation_alias=AliasChoices("ID", "id", "ConversationID", "conversation_id"))
    """Conversation identifier."""
    name: str = Field(default="", validation_alias=AliasChoices("Name", "name"))
    """Optional conversation title."""
    recipient_ids: tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices("RecipientIDs", "recipient_ids", "ParticipantIDs", "participant_ids"),
    )
    """Participants, in display order."""
    last_message_preview: str = Field(
        default="",
        validation_alias=AliasChoices("LastMessagePreview", "last_message_preview", "Preview", "preview"),
    )
    """Truncated text of the latest message."""
    last_message_sender_id: str = Field(
        default="",
        validation_alias=AliasChoices("LastMessageSenderID", "last_message_sender_id"),
    )
    """Sender of the latest message."""
    last_message_timestamp: EpochMillis = Field(
        default=0,
        validation_alias=AliasChoices("LastMessageTimestamp", "last_message_timestamp"),
    )
    """Epoch milliseconds of the latest message; ``0`` means no messages yet."""

    @field_validator("recipient_ids", mode="before")
    @classmethod
    def _dedupe_recipients(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        seen: dict[str, None] = {}
        for item in value:
            seen.setdefault(str(item), None)
        return tuple(seen)

    @property
    def has_messages(self) -> bool:
        return self.last_message_timestamp > 0

    def _identity(self) -> tuple[Any, ...]:
        return (
            self.id,
            self.name,
            frozenset(self.recipient_ids),
            self.last_message_preview,
            self.last_message_sender_id,
            self.last_message_timestamp,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Conversation):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())
