"""Contract for the transport collaborator.

The transport performs the actual network calls and owns the push channel.
It may return either chatsync models or plain mappings in the wire shape;
the sync layer validates whatever it gets. Timeouts are the transport's
responsibility and surface as exceptions like any other failure.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

from chatsync.models import Conversation, Message, User
from chatsync.state.events import PushEventKind

PushHandler = Callable[[Any], None]


class ChatTransport(Protocol):
    async def fetch_conversations(self) -> Sequence[Conversation | Mapping[str, Any]]: ...

    async def fetch_messages(self, conversation_id: str) -> Sequence[Message | Mapping[str, Any]]: ...

    async def fetch_user(self, user_id: str) -> User | Mapping[str, Any]: ...

    async def send_message(self, conversation_id: str, text: str) -> Message | Mapping[str, Any]: ...

    async def create_conversation(
        self,
        recipient_ids: Sequence[str],
        name: str,
    ) -> Conversation | Mapping[str, Any]: ...

    def subscribe(self, kind: PushEventKind, handler: PushHandler) -> Callable[[], None]:
        """Register *handler* for push events of *kind*; returns an unsubscribe callable.

        ``PushEventKind.CHANNEL_RESET`` handlers are invoked (with ``None``)
        when the push channel was lost and re-established.
        """
        ...
