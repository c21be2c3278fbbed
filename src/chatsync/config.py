"""Client configuration for chatsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from chatsync._constants import (
    DEFAULT_PLACEHOLDER_TOLERANCE_MS,
    DEFAULT_PREVIEW_LENGTH,
    DEFAULT_USER_TTL_SECONDS,
)
from chatsync.exceptions import ChatSyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(value)
    except ValueError as exc:
        raise ChatSyncConfigError(f"{env_key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Cache configuration.

    Parameters
    ----------
    local_user_id : str
        Identifier of the signed-in user. Used as the sender of optimistic
        placeholders and to answer profile lookups for "me" locally.
    local_username : str
        Display name of the signed-in user.
    user_ttl : float
        Seconds a fetched user profile stays fresh. Profiles can change out
        of band and are cheap to refetch. Defaults to five minutes.
    placeholder_match_tolerance_ms : int
        Maximum timestamp distance, in milliseconds, between a local
        placeholder and a pushed message with the same sender and text for
        the push to supersede the placeholder. ``0`` requires an exact match.
    preview_length : int
        Number of characters of a message kept as the conversation's
        last-message preview.
    payload_logging : bool
        Emit redacted push/fetch payloads in DEBUG logs.
    """

    local_user_id: str
    local_username: str = ""
    user_ttl: float = DEFAULT_USER_TTL_SECONDS
    placeholder_match_tolerance_ms: int = DEFAULT_PLACEHOLDER_TOLERANCE_MS
    preview_length: int = DEFAULT_PREVIEW_LENGTH
    payload_logging: bool = False

    def __post_init__(self) -> None:
        if not self.local_user_id or not self.local_user_id.strip():
            raise ChatSyncConfigError("local_user_id must be non-empty")
        if self.user_ttl <= 0:
            raise ChatSyncConfigError("user_ttl must be positive")
        if self.placeholder_match_tolerance_ms < 0:
            raise ChatSyncConfigError("placeholder_match_tolerance_ms must not be negative")
        if self.preview_length <= 0:
            raise ChatSyncConfigError("preview_length must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads ``CHATSYNC_LOCAL_USER_ID`` and the optional ``CHATSYNC_*``
        variables below. Explicit keyword arguments override environment
        values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SyncConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "CHATSYNC_LOCAL_USER_ID": "local_user_id",
            "CHATSYNC_LOCAL_USERNAME": "local_username",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        ttl_env = env.get("CHATSYNC_USER_TTL")
        if ttl_env is not None and "user_ttl" not in overrides:
            config_kwargs["user_ttl"] = _env_number("CHATSYNC_USER_TTL", ttl_env, float)

        tolerance_env = env.get("CHATSYNC_PLACEHOLDER_TOLERANCE_MS")
        if tolerance_env is not None and "placeholder_match_tolerance_ms" not in overrides:
            config_kwargs["placeholder_match_tolerance_ms"] = _env_number(
                "CHATSYNC_PLACEHOLDER_TOLERANCE_MS",
                tolerance_env,
                int,
            )

        preview_env = env.get("CHATSYNC_PREVIEW_LENGTH")
        if preview_env is not None and "preview_length" not in overrides:
            config_kwargs["preview_length"] = _env_number("CHATSYNC_PREVIEW_LENGTH", preview_env, int)

        if "payload_logging" not in overrides:
            config_kwargs["payload_logging"] = _env_bool(env.get("CHATSYNC_PAYLOAD_LOGGING"), False)

        config_kwargs.update(overrides)

        if "local_user_id" not in config_kwargs:
            raise ChatSyncConfigError("CHATSYNC_LOCAL_USER_ID is not set")

        return cls(**config_kwargs)
