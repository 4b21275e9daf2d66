from __future__ import annotations

import asyncio

import pytest

from chat_realtime.application.dto.message import SendMessageDTO
from chat_realtime.application.exceptions import DeliveryFailedError, UnauthorizedError
from chat_realtime.realtime.hub import RealtimeHub
from tests.conftest import FakeVerifier, connect, make_message, make_uow_factory, settle


@pytest.mark.asyncio
async def test_mark_read_notifies_sender_once(hub, store, publisher, clock, alice, bob):
    alice_lc, alice_t = await connect(hub, alice)
    message = await hub.pipeline.send(alice, SendMessageDTO(recipient_id=bob, content="read me"))
    publisher.events.clear()

    assert await hub.reconciler.mark_read(bob, message.id) is True
    assert await hub.reconciler.mark_read(bob, message.id) is False
    await settle(alice_lc)

    assert alice_t.of_type("message_read") == [
        {"messageId": message.id, "readAt": "2024-01-01T00:00:00Z"},
    ]
    assert store.messages[message.id].is_read
    assert store.messages[message.id].read_at == clock.now()
    assert store.unread(bob, alice) == 0
    assert [e[0] for e in publisher.events] == ["chat.message_read"]


@pytest.mark.asyncio
async def test_unknown_and_foreign_messages_look_the_same(hub, store, alice, bob, carol):
    store.add(make_message(message_id=7, sender_id=alice, recipient_id=bob))

    with pytest.raises(UnauthorizedError) as foreign:
        await hub.reconciler.mark_read(carol, 7)
    with pytest.raises(UnauthorizedError) as missing:
        await hub.reconciler.mark_read(carol, 999)

    assert foreign.value.detail == missing.value.detail
    assert not store.messages[7].is_read


@pytest.mark.asyncio
async def test_sender_cannot_mark_own_message_read(hub, store, alice, bob):
    store.add(make_message(message_id=3, sender_id=alice, recipient_id=bob))

    with pytest.raises(UnauthorizedError):
        await hub.reconciler.mark_read(alice, 3)


@pytest.mark.asyncio
async def test_unread_count_never_goes_negative(hub, store, alice, bob):
    store.add(make_message(message_id=5, sender_id=alice, recipient_id=bob))

    assert await hub.reconciler.mark_read(bob, 5) is True
    assert store.unread(bob, alice) == 0


@pytest.mark.asyncio
async def test_store_failure_is_reported(hub, store, alice, bob):
    store.add(make_message(message_id=4, sender_id=alice, recipient_id=bob))
    store.fail_writes = True

    with pytest.raises(DeliveryFailedError):
        await hub.reconciler.mark_read(bob, 4)


@pytest.mark.asyncio
async def test_reads_and_sends_on_one_pair_share_a_small_pool(store, publisher, clock, alice, bob):
    hub = RealtimeHub(
        uow_factory=make_uow_factory(store, pool_size=1),
        verifier=FakeVerifier(),
        publisher=publisher,
        clock=clock,
    )
    first = await hub.pipeline.send(alice, SendMessageDTO(recipient_id=bob, content="one"))
    second = await hub.pipeline.send(alice, SendMessageDTO(recipient_id=bob, content="two"))
    store.insert_jitter = 0.01

    results = await asyncio.wait_for(
        asyncio.gather(
            hub.pipeline.send(alice, SendMessageDTO(recipient_id=bob, content="three")),
            hub.pipeline.send(alice, SendMessageDTO(recipient_id=bob, content="four")),
            hub.reconciler.mark_read(bob, first.id),
            hub.reconciler.mark_read(bob, second.id),
        ),
        timeout=2.0,
    )

    assert results[2:] == [True, True]
    assert store.unread(bob, alice) == 2
