from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from chatsync.config import SyncConfig
from chatsync.exceptions import InvalidEventError
from chatsync.models import Conversation, Message, User
from chatsync.state.events import (
    CacheStatus,
    ConversationUpdatedEvent,
    IngestionSource,
    MessageAddedEvent,
    PushEventKind,
    SyncEvent,
    parse_push_event,
)
from chatsync.state.keys import CONVERSATIONS_KEY, conversation_key, messages_key, user_key
from chatsync.state.store import EntityStore
from chatsync.sync.apply import apply_conversations, apply_messages, apply_user
from chatsync.sync.push import PushReconciler


def _dt() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


class _FakeChannel:
    """Minimal push side of a transport."""

    def __init__(self) -> None:
        self.handlers: dict[PushEventKind, list[Callable[[Any], None]]] = {}
        self.subscribe_calls = 0

    def subscribe(self, kind: PushEventKind, handler: Callable[[Any], None]) -> Callable[[], None]:
        self.subscribe_calls += 1
        self.handlers.setdefault(kind, []).append(handler)
        return lambda: self.handlers[kind].remove(handler)

    def emit(self, kind: PushEventKind, payload: Any = None) -> None:
        for handler in list(self.handlers.get(kind, ())):
            handler(payload)

    def handler_count(self) -> int:
        return sum(len(handlers) for handlers in self.handlers.values())


def _make() -> tuple[PushReconciler, EntityStore]:
    store = EntityStore(clock=_dt)
    config = SyncConfig(local_user_id="me", placeholder_match_tolerance_ms=1_000, preview_length=4)
    return PushReconciler(store, config), store


def _ids(store: EntityStore, conversation_id: str) -> list[str]:
    return [message.id for message in store.peek(messages_key(conversation_id)) or ()]


# ------------------------------------------------------------------
# Payload validation
# ------------------------------------------------------------------


class TestParsePushEvent:
    def test_flat_message_payload(self) -> None:
        event = parse_push_event(
            "message-added",
            {
                "ConversationID": "c1",
                "MessageID": "m2",
                "SenderID": "u2",
                "Text": "hey",
                "Preview": "hey",
                "Timestamp": 50,
            },
        )
        assert isinstance(event, MessageAddedEvent)
        assert event.conversation_id == "c1"
        assert event.message == Message(id="m2", sender_id="u2", text="hey", timestamp=50)
        assert event.preview == "hey"

    def test_nested_message_payload(self) -> None:
        event = parse_push_event(
            PushEventKind.MESSAGE_ADDED,
            {"conversation_id": "c1", "message": Message(id="m2", timestamp=50)},
        )
        assert isinstance(event, MessageAddedEvent)
        assert event.message.id == "m2"
        assert event.preview is None

    def test_conversation_payload(self) -> None:
        event = parse_push_event("conversation-updated", {"ID": "c1", "Name": "renamed"})
        assert isinstance(event, ConversationUpdatedEvent)
        assert event.conversation.patch() == {"id": "c1", "name": "renamed"}

    def test_sync_payload(self) -> None:
        event = parse_push_event(
            "sync",
            {
                "NewConversations": [{"ID": "c2", "RecipientIDs": ["me", "u3"]}],
                "NewMessages": [{"ConversationID": "c2", "ID": "m5", "Text": "hi", "Timestamp": 9}],
            },
        )
        assert isinstance(event, SyncEvent)
        assert [conversation.id for conversation in event.conversations] == ["c2"]
        assert event.messages[0].message.id == "m5"

    @pytest.mark.parametrize(
        ("kind", "payload"),
        [
            ("typing", {"ID": "c1"}),
            ("channel-reset", {}),
            ("message-added", "not an object"),
            ("message-added", {"ConversationID": "c1"}),
            ("conversation-added", {"Name": "no id"}),
            ("conversation-updated", {"ID": "  "}),
            ("message-added", {"ConversationID": " ", "ID": "m1"}),
            ("message-added", {"ConversationID": "c1", "ID": "\t"}),
        ],
    )
    def test_invalid_payloads(self, kind: str, payload: Any) -> None:
        with pytest.raises(InvalidEventError):
            parse_push_event(kind, payload)


# ------------------------------------------------------------------
# Reconciliation
# ------------------------------------------------------------------


def test_message_push_merges_message_and_last_message() -> None:
    push, store = _make()

    assert push.on_event(
        "message-added",
        {"ConversationID": "c1", "ID": "m2", "SenderID": "u2", "Text": "hello", "Timestamp": 50},
    )

    assert _ids(store, "c1") == ["m2"]
    assert store.get(messages_key("c1")).source == IngestionSource.PUSH
    conversation = store.peek(conversation_key("c1"))
    assert conversation.last_message_preview == "hell"
    assert conversation.last_message_sender_id == "u2"
    assert conversation.last_message_timestamp == 50
    assert [item.id for item in store.peek(CONVERSATIONS_KEY)] == ["c1"]


def test_message_push_uses_payload_preview() -> None:
    push, store = _make()
    push.on_event(
        "message-added",
        {"ConversationID": "c1", "ID": "m2", "Text": "hello", "Preview": "hel…", "Timestamp": 5},
    )
    assert store.peek(conversation_key("c1")).last_message_preview == "hel…"


def test_push_into_fetched_list_scenario() -> None:
    push, store = _make()
    apply_messages(
        store,
        "c1",
        [Message(id="m1", sender_id="u1", text="a", timestamp=100)],
        source=IngestionSource.FETCH,
        tolerance_ms=0,
        fresh=True,
    )

    push.on_event(
        "message-added",
        {"ConversationID": "c1", "ID": "m2", "SenderID": "u2", "Text": "b", "Timestamp": 50},
    )
    assert _ids(store, "c1") == ["m2", "m1"]

    before = store.get(messages_key("c1"))
    push.on_event(
        "message-added",
        {"ConversationID": "c1", "ID": "m1", "SenderID": "u1", "Text": "a", "Timestamp": 100},
    )
    assert store.get(messages_key("c1")) is before


def test_older_message_push_does_not_rewind_last_message() -> None:
    push, store = _make()
    push.on_event("message-added", {"ConversationID": "c1", "ID": "m1", "Text": "new", "Timestamp": 100})
    push.on_event("message-added", {"ConversationID": "c1", "ID": "m0", "Text": "old", "Timestamp": 40})

    conversation = store.peek(conversation_key("c1"))
    assert conversation.last_message_timestamp == 100
    assert conversation.last_message_preview == "new"


def test_message_push_keeps_list_not_fresh() -> None:
    push, store = _make()
    push.on_event("message-added", {"ConversationID": "c1", "ID": "m1", "Timestamp": 1})

    entry = store.get(messages_key("c1"))
    assert entry.status == CacheStatus.READY
    assert entry.fetched_at is None


def test_complete_conversation_push_is_fresh() -> None:
    push, store = _make()
    push.on_event("conversation-added", {"ID": "c1", "Name": "team", "RecipientIDs": ["me", "u2"]})

    entry = store.get(conversation_key("c1"))
    assert entry.value == Conversation(id="c1", name="team", recipient_ids=["me", "u2"])
    assert entry.fetched_at == _dt()
    # The list itself still needs its first fetch.
    assert store.get(CONVERSATIONS_KEY).fetched_at is None


def test_partial_conversation_update_keeps_other_fields() -> None:
    push, store = _make()
    apply_conversations(
        store,
        [Conversation(id="c1", name="team", recipient_ids=["me", "u2"], last_message_timestamp=10)],
        source=IngestionSource.FETCH,
    )

    push.on_event("conversation-updated", {"ID": "c1", "Name": "renamed"})

    conversation = store.peek(conversation_key("c1"))
    assert conversation.name == "renamed"
    assert conversation.recipient_ids == ("me", "u2")
    assert store.peek(CONVERSATIONS_KEY)[0].name == "renamed"


def test_push_supersedes_local_placeholder() -> None:
    push, store = _make()
    apply_messages(
        store,
        "c1",
        [Message(id="temp-abc", sender_id="me", text="hi", timestamp=1_000)],
        source=IngestionSource.OPTIMISTIC,
        tolerance_ms=1_000,
    )

    push.on_event(
        "message-added",
        {"ConversationID": "c1", "ID": "m3", "SenderID": "me", "Text": "hi", "Timestamp": 1_500},
    )

    assert _ids(store, "c1") == ["m3"]


def test_sync_event_applies_conversations_then_messages() -> None:
    push, store = _make()

    assert push.on_event(
        "sync",
        {
            "NewConversations": [{"ID": "c2", "RecipientIDs": ["me", "u3"]}],
            "NewMessages": [
                {"ConversationID": "c2", "ID": "m5", "SenderID": "u3", "Text": "first", "Timestamp": 9},
                {"ConversationID": "c1", "ID": "m6", "SenderID": "u2", "Text": "other", "Timestamp": 12},
            ],
        },
    )

    assert _ids(store, "c2") == ["m5"]
    assert _ids(store, "c1") == ["m6"]
    assert store.peek(conversation_key("c2")).recipient_ids == ("me", "u3")
    assert store.peek(conversation_key("c2")).last_message_preview == "firs"
    assert [item.id for item in store.peek(CONVERSATIONS_KEY)] == ["c1", "c2"]


def test_invalid_payload_is_dropped(caplog: pytest.LogCaptureFixture) -> None:
    push, store = _make()

    with caplog.at_level(logging.WARNING, logger="chatsync.sync.push"):
        assert push.on_event("message-added", {"Text": "no ids"}) is False
        assert push.on_event("typing", {"ID": "c1"}) is False

    assert store.keys() == []
    assert "Dropping push event" in caplog.text


def test_blank_ids_are_dropped_not_raised() -> None:
    push, store = _make()

    assert push.on_event("message-added", {"ConversationID": " ", "ID": "m1", "Timestamp": 1}) is False
    assert push.on_event("conversation-updated", {"ID": "   ", "Name": "x"}) is False
    assert store.keys() == []

    assert push.on_event("message-added", {"ConversationID": " c1 ", "ID": " m1", "Timestamp": 1})
    assert _ids(store, "c1") == ["m1"]


def test_push_after_close_is_ignored() -> None:
    push, store = _make()
    store.close()
    assert push.on_event("message-added", {"ConversationID": "c1", "ID": "m1"}) is False


# ------------------------------------------------------------------
# Subscription lifecycle
# ------------------------------------------------------------------


def test_attach_subscribes_once_per_kind() -> None:
    push, store = _make()
    channel = _FakeChannel()

    push.attach(channel)  # type: ignore[arg-type]
    push.attach(channel)  # type: ignore[arg-type]

    assert push.attached
    assert channel.handler_count() == 5
    channel.emit(PushEventKind.MESSAGE_ADDED, {"ConversationID": "c1", "ID": "m1", "Timestamp": 1})
    assert _ids(store, "c1") == ["m1"]


def test_detach_unsubscribes() -> None:
    push, store = _make()
    channel = _FakeChannel()
    push.attach(channel)  # type: ignore[arg-type]

    push.detach()
    channel.emit(PushEventKind.MESSAGE_ADDED, {"ConversationID": "c1", "ID": "m1", "Timestamp": 1})

    assert not push.attached
    assert channel.handler_count() == 0
    assert store.keys() == []


def test_channel_reset_resubscribes_and_invalidates_push_maintained_keys() -> None:
    push, store = _make()
    channel = _FakeChannel()
    push.attach(channel)  # type: ignore[arg-type]
    apply_conversations(store, [Conversation(id="c1", recipient_ids=["me"])], source=IngestionSource.FETCH)
    apply_messages(store, "c1", [Message(id="m1")], source=IngestionSource.FETCH, tolerance_ms=0, fresh=True)
    apply_user(store, User(id="u2"), source=IngestionSource.FETCH)

    channel.emit(PushEventKind.CHANNEL_RESET)

    assert channel.subscribe_calls == 10
    assert channel.handler_count() == 5
    assert store.get(CONVERSATIONS_KEY).stale
    assert store.get(conversation_key("c1")).stale
    assert store.get(messages_key("c1")).stale
    assert not store.get(user_key("u2")).stale
    # Values are kept; only freshness is lost.
    assert _ids(store, "c1") == ["m1"]


def test_channel_reset_skips_caller_defined_keys() -> None:
    push, store = _make()
    store.get("draft")
    apply_messages(store, "c1", [Message(id="m1")], source=IngestionSource.FETCH, tolerance_ms=0, fresh=True)
    apply_messages(store, "c2", [Message(id="m2")], source=IngestionSource.FETCH, tolerance_ms=0, fresh=True)

    invalidated = push.handle_channel_reset()

    assert sorted(invalidated) == [messages_key("c1"), messages_key("c2")]
    assert store.get(messages_key("c2")).stale
    assert not store.get("draft").stale


def test_channel_reset_event_kind_via_on_event() -> None:
    push, store = _make()
    apply_messages(store, "c1", [Message(id="m1")], source=IngestionSource.FETCH, tolerance_ms=0, fresh=True)

    assert push.on_event("channel-reset", None)
    assert store.get(messages_key("c1")).stale
