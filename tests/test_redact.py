from __future__ import annotations

from chatsync._redact import redact_for_log
from chatsync.models import Conversation, Message


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "ConversationID": "c1",
        "Text": "secret body",
        "Preview": "secret",
        "Envelope": {"nonce": "abc"},
        "nested": {"ciphertext": "deadbeef", "Timestamp": 5},
    }

    redacted = redact_for_log(payload)
    assert redacted["ConversationID"] == "c1"
    assert redacted["Text"] == "<redacted>"
    assert redacted["Preview"] == "<redacted>"
    assert redacted["Envelope"] == "<redacted>"
    assert redacted["nested"]["ciphertext"] == "<redacted>"
    assert redacted["nested"]["Timestamp"] == 5


def test_redact_for_log_dumps_models() -> None:
    redacted = redact_for_log(
        [
            Message(id="m1", sender_id="u1", text="hello", timestamp=100),
            Conversation(id="c1", last_message_preview="hello"),
        ]
    )
    assert redacted[0]["id"] == "m1"
    assert redacted[0]["text"] == "<redacted>"
    assert redacted[1]["last_message_preview"] == "<redacted>"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]
