from __future__ import annotations

import asyncio
import dataclasses

import pytest

from chat_realtime.application.dto.message import SendMessageDTO
from chat_realtime.application.exceptions import InvalidRequestError
from chat_realtime.infrastructure.db.repositories._cursor import encode_cursor
from chat_realtime.services import conversation_service, message_service, read_state_service
from tests.conftest import EPOCH, FakeMessageReader, FakeUoW


async def _send(uow: FakeUoW, sender, recipient, content: str = "hi"):
    return await message_service.send_message(
        sender, SendMessageDTO(recipient_id=recipient, content=content), uow, max_length=4000,
    )


@pytest.mark.asyncio
async def test_list_conversations_most_recent_first(alice, bob, carol):
    uow = FakeUoW()
    await _send(uow, alice, bob)
    await _send(uow, carol, alice)

    result = await conversation_service.list_conversations(alice, None, 20, uow)

    assert [s.counterpart_id for s in result] == [carol, bob]
    assert [s.unread_count for s in result] == [1, 0]


@pytest.mark.asyncio
async def test_list_conversations_cursor(alice, bob, carol):
    uow = FakeUoW()
    await _send(uow, alice, bob)
    await _send(uow, alice, carol)

    first_page = await conversation_service.list_conversations(alice, None, 1, uow)
    second_page = await conversation_service.list_conversations(
        alice, encode_cursor(first_page[0]), 1, uow,
    )

    assert [s.counterpart_id for s in first_page] == [carol]
    assert [s.counterpart_id for s in second_page] == [bob]


@pytest.mark.asyncio
async def test_malformed_cursor_is_rejected(alice):
    with pytest.raises(InvalidRequestError):
        await conversation_service.list_conversations(alice, "%%%", 20, FakeUoW())


@pytest.mark.asyncio
async def test_counterparts(alice, bob, carol):
    uow = FakeUoW()
    await _send(uow, alice, bob)
    await _send(uow, carol, alice)

    assert await conversation_service.counterparts(alice, uow) == {bob, carol}
    assert await conversation_service.counterparts(bob, uow) == {alice}


@pytest.mark.asyncio
async def test_read_decrements_unread(alice, bob):
    uow = FakeUoW()
    first = await _send(uow, alice, bob)
    await _send(uow, alice, bob)

    updated = await read_state_service.mark_read(first, uow, read_at=EPOCH)

    assert updated is not None and updated.is_read
    assert uow.store.unread(bob, alice) == 1
    assert await read_state_service.mark_read(updated, uow, read_at=EPOCH) is None
    assert uow.store.unread(bob, alice) == 1


@pytest.mark.asyncio
async def test_rebuild_repairs_drifted_summaries(alice, bob, carol):
    uow = FakeUoW()
    await _send(uow, bob, alice)
    await _send(uow, bob, alice)
    last = await _send(uow, carol, alice)
    key = (alice, bob)
    uow.store.summaries[key] = dataclasses.replace(uow.store.summaries[key], unread_count=42)
    uow._committed = False

    rebuilt = await conversation_service.rebuild_conversation_index(alice, uow)

    assert uow._committed is True
    assert [s.counterpart_id for s in rebuilt] == [carol, bob]
    assert uow.store.unread(alice, bob) == 2
    assert uow.store.unread(alice, carol) == 1
    assert uow.store.summaries[(alice, carol)].last_message_id == last.id


@pytest.fixture
def slow_summarize(monkeypatch):
    summarize = FakeMessageReader.summarize_for_owner

    async def slow(self, owner_id):
        summaries = await summarize(self, owner_id)
        await asyncio.sleep(0.01)
        return summaries

    monkeypatch.setattr(FakeMessageReader, "summarize_for_owner", slow)


@pytest.mark.asyncio
async def test_rebuild_keeps_a_send_that_lands_mid_rebuild(hub, store, slow_summarize, alice, bob):
    rebuild = asyncio.create_task(hub.rebuild_conversation_index(bob))
    await asyncio.sleep(0)

    await hub.pipeline.send(alice, SendMessageDTO(recipient_id=bob, content="hi"))
    await rebuild

    assert store.unread(bob, alice) == 1
    assert store.unread(alice, bob) == 0


@pytest.mark.asyncio
async def test_rebuild_keeps_a_read_that_lands_mid_rebuild(hub, store, slow_summarize, alice, bob):
    message = await hub.pipeline.send(alice, SendMessageDTO(recipient_id=bob, content="hi"))
    assert store.unread(bob, alice) == 1

    rebuild = asyncio.create_task(hub.rebuild_conversation_index(bob))
    await asyncio.sleep(0)

    assert await hub.reconciler.mark_read(bob, message.id) is True
    await rebuild

    assert store.unread(bob, alice) == 0
