from __future__ import annotations

import json

import pytest

from chat_realtime.infrastructure.ws.protocol import (
    MessagePayload,
    ReconnectHint,
    SendMessagePayload,
    UserTypingPayload,
    frame,
)
from tests.conftest import make_message


def test_reconnect_backoff_doubles_and_caps():
    hint = ReconnectHint(base_delay_ms=1000, max_delay_ms=5000, multiplier=2.0, max_attempts=5)

    assert [hint.delay_ms(n) for n in range(1, 6)] == [1000, 2000, 4000, 5000, 5000]
    assert hint.delay_ms(0) is None
    assert hint.delay_ms(6) is None


def test_frames_use_camel_case_keys(alice):
    raw = frame("user_typing", UserTypingPayload(user_id=alice, is_typing=True))

    assert json.loads(raw) == {"type": "user_typing", "data": {"userId": str(alice), "isTyping": True}}


def test_list_payloads_are_wrapped_in_items():
    raw = frame("online_users", [])

    assert json.loads(raw) == {"type": "online_users", "data": {"items": []}}


def test_inbound_payload_accepts_camel_case(bob):
    payload = SendMessagePayload.model_validate({"recipientId": str(bob), "content": "hi", "replyToId": 3})

    assert payload.recipient_id == bob
    assert payload.reply_to_id == 3
    assert payload.attachments == []


def test_inbound_payload_rejects_bad_ids():
    with pytest.raises(ValueError):
        SendMessagePayload.model_validate({"recipientId": "not-a-uuid"})


def test_message_frame_carries_store_fields():
    data = json.loads(frame("new_message", MessagePayload.from_entity(make_message(message_id=9))))["data"]

    assert data["id"] == 9
    assert data["messageType"] == "text"
    assert data["isRead"] is False
    assert data["createdAt"].startswith("2024-01-01T00:00:09")
