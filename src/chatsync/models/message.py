"""Message model."""

from __future__ import annotations

import secrets
from typing import Any

from pydantic import AliasChoices, Field

from chatsync._constants import PLACEHOLDER_PREFIX
from chatsync.models._base import ChatBaseModel, EntityId, EpochMillis


def is_placeholder_id(message_id: str) -> bool:
    """Return ``True`` for client-generated ids of not-yet-acknowledged sends."""
    return message_id.startswith(PLACEHOLDER_PREFIX)


def new_placeholder_id() -> str:
    return f"{PLACEHOLDER_PREFIX}{secrets.token_hex(8)}"


class Message(ChatBaseModel):
    """A single chat message.

    Messages are immutable once created; the conversation they belong to is
    implied by the list they are stored in.
    """

    id: EntityId = Field(..., validation_alias=AliasChoices("ID", "id", "MessageID", "message_id"))
    """Server-assigned id, or a ``temp-`` placeholder for an unacknowledged send."""
    sender_id: str = Field(default="", validation_alias=AliasChoices("SenderID", "sender_id", "senderID"))
    """Identifier of the sending user."""
    text: str = Field(default="", validation_alias=AliasChoices("Text", "text"))
    """Decrypted message body."""
    timestamp: EpochMillis = Field(default=0, validation_alias=AliasChoices("Timestamp", "timestamp", "ts"))
    """Epoch milliseconds."""
    envelope: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("Envelope", "envelope"))
    """Encrypted-envelope metadata. Opaque here and passed through unchanged."""

    @property
    def is_placeholder(self) -> bool:
        """Whether this is a local optimistic entry awaiting its real id."""
        return is_placeholder_id(self.id)

    def same_content(self, other: Message, *, tolerance_ms: int = 0) -> bool:
        """Whether *other* carries the same sender and text within *tolerance_ms*."""
        return (
            self.sender_id == other.sender_id
            and self.text == other.text
            and abs(self.timestamp - other.timestamp) <= tolerance_ms
        )
