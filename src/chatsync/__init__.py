"""chatsync - Local synchronization cache for an async chat client."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("chatsync")
except PackageNotFoundError:
    __version__ = "0+local"
from chatsync.client import ChatSyncClient
from chatsync.config import SyncConfig
from chatsync.exceptions import (
    ChatSyncConfigError,
    ChatSyncError,
    ConflictError,
    InvalidEventError,
    NotFoundError,
    TransientError,
)
from chatsync.models import Conversation, Message, User
from chatsync.state.events import CacheStatus, IngestionSource, PushEventKind
from chatsync.state.keys import CONVERSATIONS_KEY, conversation_key, messages_key, user_key
from chatsync.state.store import CacheEntry, EntityStore
from chatsync.sync.mutations import PendingSend
from chatsync.transport import ChatTransport

__all__ = [
    "__version__",
    "CONVERSATIONS_KEY",
    "CacheEntry",
    "CacheStatus",
    "ChatSyncClient",
    "ChatSyncConfigError",
    "ChatSyncError",
    "ChatTransport",
    "ConflictError",
    "Conversation",
    "EntityStore",
    "IngestionSource",
    "InvalidEventError",
    "Message",
    "NotFoundError",
    "PendingSend",
    "PushEventKind",
    "SyncConfig",
    "TransientError",
    "User",
    "conversation_key",
    "messages_key",
    "user_key",
]
