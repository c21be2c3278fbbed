"""Optimistic mutations.

A send shows up in the message list immediately as a placeholder, then is
reconciled against the authoritative result:

- success: one merge retracts the placeholder and upserts the real message
- failure: the placeholder is retracted and the error goes to the caller
- a push for the same message arriving first supersedes the placeholder via
  the message-list merge rule; the late write response is then a no-op upsert
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Generator, Sequence
from dataclasses import dataclass
from typing import Any

from chatsync.config import SyncConfig
from chatsync.exceptions import as_sync_error
from chatsync.models import Conversation, Message, make_preview, new_placeholder_id
from chatsync.state.events import IngestionSource
from chatsync.state.store import EntityStore
from chatsync.sync.apply import apply_conversation, apply_last_message, apply_messages, coerce_model
from chatsync.transport import ChatTransport

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingSend:
    """Handle for an in-progress send.

    Await it (or call :meth:`result` once :meth:`done`) to get the
    authoritative :class:`Message`; a failed send raises the mapped
    :class:`chatsync.exceptions.ChatSyncError` after its placeholder has been
    rolled back.
    """

    conversation_id: str
    placeholder: Message
    task: asyncio.Task[Message]

    def done(self) -> bool:
        return self.task.done()

    def result(self) -> Message:
        return self.task.result()

    def __await__(self) -> Generator[Any, None, Message]:
        # Shielded: an impatient awaiter must not abort the write itself.
        return asyncio.shield(self.task).__await__()


class MutationCoordinator:
    def __init__(
        self,
        store: EntityStore,
        transport: ChatTransport,
        config: SyncConfig,
    ) -> None:
        self._store = store
        self._transport = transport
        self._config = config
        self._pending: set[asyncio.Task[Message]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def send(self, conversation_id: str, text: str) -> PendingSend:
        """Send *text* to a conversation, showing a placeholder right away.

        Must be called from within the running event loop. The placeholder is
        merged before this method returns; the remote write runs as a task.
        """
        if not conversation_id or not conversation_id.strip():
            raise ValueError("conversation_id must be non-empty")
        if not text or not text.strip():
            raise ValueError("text must be non-empty")
        loop = asyncio.get_running_loop()

        placeholder = Message(
            id=new_placeholder_id(),
            sender_id=self._config.local_user_id,
            text=text,
            timestamp=self._store.now(),
        )
        apply_messages(
            self._store,
            conversation_id,
            (placeholder,),
            source=IngestionSource.OPTIMISTIC,
            tolerance_ms=self._config.placeholder_match_tolerance_ms,
        )

        task = loop.create_task(
            self._complete_send(conversation_id, placeholder),
            name=f"chatsync-send:{conversation_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return PendingSend(conversation_id=conversation_id, placeholder=placeholder, task=task)

    async def _complete_send(self, conversation_id: str, placeholder: Message) -> Message:
        try:
            raw = await self._transport.send_message(conversation_id, placeholder.text)
            # The write response may omit the echo of what we sent.
            message = coerce_model(
                Message,
                raw,
                defaults={"sender_id": placeholder.sender_id, "text": placeholder.text},
            )
        except asyncio.CancelledError:
            self._rollback(conversation_id, placeholder)
            raise
        except Exception as exc:
            error = as_sync_error(exc)
            self._rollback(conversation_id, placeholder)
            _logger.info("Send to %s failed, placeholder rolled back: %s", conversation_id, error)
            if error is exc:
                raise
            raise error from exc

        apply_messages(
            self._store,
            conversation_id,
            (message,),
            source=IngestionSource.MUTATION,
            tolerance_ms=self._config.placeholder_match_tolerance_ms,
            retract=(placeholder.id,),
        )
        apply_last_message(
            self._store,
            conversation_id,
            message,
            preview=make_preview(message.text, self._config.preview_length),
            source=IngestionSource.MUTATION,
        )
        return message

    def _rollback(self, conversation_id: str, placeholder: Message) -> None:
        if self._store.closed:
            return
        apply_messages(
            self._store,
            conversation_id,
            (),
            source=IngestionSource.MUTATION,
            tolerance_ms=self._config.placeholder_match_tolerance_ms,
            retract=(placeholder.id,),
        )

    async def create_conversation(self, recipient_ids: Sequence[str], name: str = "") -> Conversation:
        """Create a conversation remotely and cache the result.

        Nothing is cached optimistically; on failure the mapped error is
        raised and the cache is untouched.
        """
        if isinstance(recipient_ids, str):
            recipient_ids = [recipient_ids]
        recipients = tuple(dict.fromkeys(rid.strip() for rid in recipient_ids if rid and rid.strip()))
        if not recipients:
            raise ValueError("recipient_ids must not be empty")

        try:
            raw = await self._transport.create_conversation(list(recipients), name)
            conversation = coerce_model(
                Conversation,
                raw,
                defaults={"recipient_ids": recipients, "name": name},
            )
        except Exception as exc:
            error = as_sync_error(exc)
            _logger.info("Creating conversation with %d recipient(s) failed: %s", len(recipients), error)
            if error is exc:
                raise
            raise error from exc

        entry = apply_conversation(self._store, conversation, source=IngestionSource.MUTATION, fresh=True)
        merged: Conversation = entry.value
        return merged

    async def wait_idle(self) -> None:
        """Wait for every pending send to settle (successfully or not)."""
        while pending := [task for task in self._pending if not task.done()]:
            await asyncio.gather(*pending, return_exceptions=True)
