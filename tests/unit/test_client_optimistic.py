from __future__ import annotations

import uuid

import pytest

from chat_realtime.client.optimistic import OptimisticOutbox, SendState
from chat_realtime.infrastructure.ws.protocol import ErrorPayload, MessagePayload, WsOutbound
from tests.conftest import make_message


def _echo(client_msg_id, message_id: int = 1) -> WsOutbound:
    message = make_message(message_id=message_id)
    payload = MessagePayload.from_entity(message).model_copy(update={"client_msg_id": client_msg_id})
    return WsOutbound(type="message_sent", data=payload.to_wire())


def test_stage_builds_send_message_frame(bob):
    outbox = OptimisticOutbox()

    send, outgoing = outbox.stage(bob, "hello")

    assert send.state is SendState.PENDING
    assert outgoing.type == "send_message"
    assert outgoing.data["recipientId"] == str(bob)
    assert outgoing.data["clientMsgId"] == str(send.client_msg_id)
    assert outbox.pending() == [send]


def test_echo_confirms_pending_send(bob):
    outbox = OptimisticOutbox()
    send, _ = outbox.stage(bob, "hello")

    confirmed = outbox.apply(_echo(send.client_msg_id, message_id=12))

    assert confirmed is send
    assert send.state is SendState.CONFIRMED
    assert send.message.id == 12
    assert outbox.pending() == []
    assert outbox.discard_confirmed() == 1
    assert len(outbox) == 0


def test_error_marks_send_failed_and_retry_restages(bob):
    outbox = OptimisticOutbox()
    send, _ = outbox.stage(bob, "hello")
    error = ErrorPayload(code="delivery_failed", detail="try later", client_msg_id=send.client_msg_id)

    failed = outbox.apply(WsOutbound(type="error", data=error.to_wire()))

    assert failed is send
    assert send.state is SendState.FAILED
    assert send.error == "try later"

    retried, outgoing = outbox.retry(send.client_msg_id)
    assert retried.client_msg_id != send.client_msg_id
    assert retried.state is SendState.PENDING
    assert outgoing.data["content"] == "hello"
    assert outbox.get(send.client_msg_id) is None


def test_unrelated_frames_are_ignored(bob):
    outbox = OptimisticOutbox()
    send, _ = outbox.stage(bob, "hello")

    assert outbox.apply(_echo(uuid.uuid4())) is None
    assert outbox.apply(WsOutbound(type="error", data={"code": "unknown_type"})) is None
    assert outbox.apply(WsOutbound(type="user_typing", data={})) is None
    assert send.state is SendState.PENDING


def test_retry_requires_failed_send(bob):
    outbox = OptimisticOutbox()
    send, _ = outbox.stage(bob, "hello")

    with pytest.raises(KeyError):
        outbox.retry(send.client_msg_id)
