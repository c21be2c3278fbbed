"""Data models for chat entities."""

from chatsync.models._base import ChatBaseModel, EntityId, EpochMillis, from_epoch_millis, to_epoch_millis
from chatsync.models.conversation import LAST_MESSAGE_FIELDS, Conversation, make_preview
from chatsync.models.message import Message, is_placeholder_id, new_placeholder_id
from chatsync.models.user import User

__all__ = [
    "ChatBaseModel",
    "Conversation",
    "EntityId",
    "EpochMillis",
    "LAST_MESSAGE_FIELDS",
    "Message",
    "User",
    "from_epoch_millis",
    "is_placeholder_id",
    "make_preview",
    "new_placeholder_id",
    "to_epoch_millis",
]
