"""Cache keys.

Keys are plain strings so views can hold and log them cheaply:

* ``conversations``: the conversation list
* ``conversation:<id>``: a single conversation
* ``messages:<conversation id>``: a conversation's message list
* ``users:<id>``: a user profile
"""

from __future__ import annotations

from enum import StrEnum
from typing import NamedTuple

CONVERSATIONS_KEY = "conversations"


class EntityKind(StrEnum):
    CONVERSATIONS = "conversations"
    CONVERSATION = "conversation"
    MESSAGES = "messages"
    USERS = "users"


class ParsedKey(NamedTuple):
    kind: EntityKind
    ident: str


def _require_ident(kind: str, ident: str) -> str:
    value = ident.strip()
    if not value:
        raise ValueError(f"{kind} key requires a non-empty identifier")
    return value


def conversation_key(conversation_id: str) -> str:
    return f"{EntityKind.CONVERSATION}:{_require_ident('conversation', conversation_id)}"


def messages_key(conversation_id: str) -> str:
    return f"{EntityKind.MESSAGES}:{_require_ident('messages', conversation_id)}"


def user_key(user_id: str) -> str:
    return f"{EntityKind.USERS}:{_require_ident('users', user_id)}"


def parse_key(key: str) -> ParsedKey:
    """Split a key into its kind and identifier.

    Raises ``ValueError`` for unknown kinds or a missing identifier.
    """
    if key == CONVERSATIONS_KEY:
        return ParsedKey(EntityKind.CONVERSATIONS, "")
    prefix, sep, ident = key.partition(":")
    if not sep:
        raise ValueError(f"Malformed cache key: {key!r}")
    try:
        kind = EntityKind(prefix)
    except ValueError as exc:
        raise ValueError(f"Unknown cache key kind: {prefix!r}") from exc
    if kind == EntityKind.CONVERSATIONS:
        raise ValueError(f"Malformed cache key: {key!r}")
    return ParsedKey(kind, _require_ident(prefix, ident))
