"""Custom exception hierarchy for chatsync."""

from __future__ import annotations


class ChatSyncError(Exception):
    """Base exception for all chatsync errors."""


class ChatSyncConfigError(ChatSyncError):
    """Invalid or missing configuration."""


class NotFoundError(ChatSyncError):
    """The remote service reports that the entity does not exist.

    Cached as an ``error`` status; a previously ``ready`` value is kept.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class TransientError(ChatSyncError):
    """Network or transport failure (including timeouts).

    Whether the call is worth retrying is the transport's business; at this
    layer it is handled exactly like :class:`NotFoundError`.
    """


class ConflictError(ChatSyncError):
    """A write failed because server state diverged.

    For example the conversation already exists. Raised to the caller of the
    mutation after the optimistic placeholder has been rolled back.
    """


class InvalidEventError(ChatSyncError):
    """A push payload did not match the schema for its event kind."""

    def __init__(self, message: str, *, kind: str = "") -> None:
        self.kind = kind
        super().__init__(message)


def as_sync_error(exc: BaseException) -> ChatSyncError:
    """Map a collaborator exception onto the chatsync taxonomy.

    Library exceptions pass through unchanged. Foreign exceptions are wrapped
    and keep the original as ``__cause__``.
    """
    if isinstance(exc, ChatSyncError):
        return exc
    if isinstance(exc, TimeoutError):
        wrapped: ChatSyncError = TransientError(f"Request timed out: {exc}" if str(exc) else "Request timed out")
    elif isinstance(exc, LookupError):
        wrapped = NotFoundError(str(exc) or "Entity not found")
    else:
        # OSError / ConnectionError and anything unrecognised.
        wrapped = TransientError(str(exc) or type(exc).__name__)
    wrapped.__cause__ = exc
    return wrapped
