from __future__ import annotations

import pytest

from chatsync.config import SyncConfig
from chatsync.exceptions import ChatSyncConfigError


def test_defaults() -> None:
    config = SyncConfig(local_user_id="me")
    assert config.user_ttl == 300
    assert config.placeholder_match_tolerance_ms == 60_000
    assert config.preview_length == 100
    assert config.payload_logging is False


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATSYNC_LOCAL_USER_ID", "u1")
    monkeypatch.setenv("CHATSYNC_LOCAL_USERNAME", "alice")
    monkeypatch.setenv("CHATSYNC_USER_TTL", "60")
    monkeypatch.setenv("CHATSYNC_PLACEHOLDER_TOLERANCE_MS", "0")
    monkeypatch.setenv("CHATSYNC_PREVIEW_LENGTH", "40")
    monkeypatch.setenv("CHATSYNC_PAYLOAD_LOGGING", "yes")

    config = SyncConfig.from_env()

    assert config.local_user_id == "u1"
    assert config.local_username == "alice"
    assert config.user_ttl == 60.0
    assert config.placeholder_match_tolerance_ms == 0
    assert config.preview_length == 40
    assert config.payload_logging is True


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATSYNC_LOCAL_USER_ID", "u1")
    monkeypatch.setenv("CHATSYNC_USER_TTL", "60")

    config = SyncConfig.from_env(local_user_id="u2", user_ttl=10)

    assert config.local_user_id == "u2"
    assert config.user_ttl == 10


def test_from_env_requires_user(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CHATSYNC_LOCAL_USER_ID", raising=False)
    with pytest.raises(ChatSyncConfigError):
        SyncConfig.from_env()


def test_from_env_rejects_bad_number(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATSYNC_LOCAL_USER_ID", "u1")
    monkeypatch.setenv("CHATSYNC_PREVIEW_LENGTH", "long")
    with pytest.raises(ChatSyncConfigError):
        SyncConfig.from_env()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"local_user_id": " "},
        {"local_user_id": "me", "user_ttl": 0},
        {"local_user_id": "me", "placeholder_match_tolerance_ms": -1},
        {"local_user_id": "me", "preview_length": 0},
    ],
)
def test_invalid_values_rejected(kwargs: dict[str, object]) -> None:
    with pytest.raises(ChatSyncConfigError):
        SyncConfig(**kwargs)  # type: ignore[arg-type]
