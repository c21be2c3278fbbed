"""User profile model."""

from __future__ import annotations

from pydantic import AliasChoices, Field

from chatsync.models._base import ChatBaseModel, EntityId


class User(ChatBaseModel):
    """A user profile as returned by ``GetUser``."""

    id: EntityId = Field(..., validation_alias=AliasChoices("ID", "id", "UserID", "user_id"))
    """Stable, globally unique user identifier."""
    username: str = Field(
        default="",
        validation_alias=AliasChoices("Username", "username", "DisplayName", "display_name"),
    )
    """Display name. The only field that may change after the first fetch."""

    @property
    def display_name(self) -> str:
        """Name to render; falls back to the identifier when no name is known."""
        return self.username or self.id
