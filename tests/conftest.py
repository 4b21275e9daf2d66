"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import dataclasses
import json
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator
from uuid import UUID

import jwt
import pytest

from chat_realtime.application.dto.principal import Principal
from chat_realtime.domain.entities.conversation_summary import ConversationSummary
from chat_realtime.domain.entities.message import Message, MessageDraft
from chat_realtime.infrastructure.db.repositories._cursor import decode_cursor
from chat_realtime.realtime.hub import RealtimeHub
from chat_realtime.realtime.lifecycle import ConnectionLifecycle

ALICE = UUID("00000000-0000-4000-8000-00000000a11c")
BOB = UUID("00000000-0000-4000-8000-000000000b0b")
CAROL = UUID("00000000-0000-4000-8000-0000000ca201")

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def alice() -> UUID:
    return ALICE


@pytest.fixture
def bob() -> UUID:
    return BOB


@pytest.fixture
def carol() -> UUID:
    return CAROL


def make_message(
    *,
    message_id: int = 1,
    sender_id: UUID = ALICE,
    recipient_id: UUID = BOB,
    content: str = "hello",
    is_read: bool = False,
) -> Message:
    return Message(
        id=message_id,
        sender_id=sender_id,
        recipient_id=recipient_id,
        content=content,
        message_type="text",
        is_read=is_read,
        read_at=EPOCH if is_read else None,
        created_at=EPOCH + timedelta(seconds=message_id),
    )


# -- in-memory store ----------------------------------------------------------


@dataclass
class InMemoryStore:
    """State shared by every FakeUoW opened against it."""

    messages: dict[int, Message] = field(default_factory=dict)
    summaries: dict[tuple[UUID, UUID], ConversationSummary] = field(default_factory=dict)
    fail_writes: bool = False
    fail_reads: bool = False
    insert_jitter: float = 0.0
    _next_id: int = 1

    def add(self, message: Message) -> Message:
        self.messages[message.id] = message
        self._next_id = max(self._next_id, message.id + 1)
        return message

    def next_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def unread(self, owner_id: UUID, counterpart_id: UUID) -> int:
        summary = self.summaries.get((owner_id, counterpart_id))
        return summary.unread_count if summary else 0


@dataclass
class FakeMessageReader:
    _store: InMemoryStore

    async def get_by_id(self, message_id: int) -> Message | None:
        if self._store.fail_reads:
            raise ConnectionError("database unavailable")
        return self._store.messages.get(message_id)

    async def list_between(
        self,
        user_id: UUID,
        other_id: UUID,
        *,
        before_id: int | None = None,
        limit: int = 50,
    ) -> list[Message]:
        pair = sorted(
            (
                m for m in self._store.messages.values()
                if m.is_between(user_id, other_id) and (before_id is None or m.id < before_id)
            ),
            key=lambda m: m.id,
        )
        return pair[-limit:]

    async def count_unread(self, recipient_id: UUID) -> int:
        return sum(
            1 for m in self._store.messages.values()
            if m.recipient_id == recipient_id and not m.is_read
        )

    async def summarize_for_owner(self, owner_id: UUID) -> list[ConversationSummary]:
        grouped: dict[UUID, list[Message]] = {}
        for m in self._store.messages.values():
            if m.sender_id == owner_id:
                grouped.setdefault(m.recipient_id, []).append(m)
            elif m.recipient_id == owner_id:
                grouped.setdefault(m.sender_id, []).append(m)
        return [
            ConversationSummary(
                owner_id=owner_id,
                counterpart_id=counterpart,
                last_message_id=max(m.id for m in msgs),
                last_message_at=max(m.created_at for m in msgs),
                unread_count=sum(1 for m in msgs if m.recipient_id == owner_id and not m.is_read),
            )
            for counterpart, msgs in grouped.items()
        ]


@dataclass
class FakeMessageWriter:
    _store: InMemoryStore

    async def insert(self, draft: MessageDraft) -> Message:
        if self._store.fail_writes:
            raise ConnectionError("database unavailable")
        message_id = self._store.next_id()
        message = Message(
            id=message_id,
            sender_id=draft.sender_id,
            recipient_id=draft.recipient_id,
            content=draft.content,
            message_type=draft.message_type,
            attachments=draft.attachments,
            reply_to_id=draft.reply_to_id,
            client_msg_id=draft.client_msg_id,
            created_at=EPOCH + timedelta(seconds=message_id),
        )
        self._store.add(message)
        if self._store.insert_jitter:
            # The id is taken before the round trip completes, as with a real store.
            await asyncio.sleep(random.random() * self._store.insert_jitter)
        return message

    async def mark_read(self, message_id: int, recipient_id: UUID, read_at: datetime) -> Message | None:
        if self._store.fail_writes:
            raise ConnectionError("database unavailable")
        message = self._store.messages.get(message_id)
        if message is None or message.recipient_id != recipient_id or message.is_read:
            return None
        updated = dataclasses.replace(message, is_read=True, read_at=read_at)
        self._store.messages[message_id] = updated
        return updated


@dataclass
class FakeSummaryReader:
    _store: InMemoryStore

    async def list_for_owner(
        self, owner_id: UUID, *, cursor: str | None = None, limit: int = 20
    ) -> list[ConversationSummary]:
        rows = sorted(
            (s for s in self._store.summaries.values() if s.owner_id == owner_id),
            key=lambda s: (-s.last_message_at.timestamp(), s.counterpart_id),
        )
        if cursor:
            ts, counterpart_id = decode_cursor(cursor)
            rows = [
                s for s in rows
                if s.last_message_at < ts
                or (s.last_message_at == ts and s.counterpart_id > counterpart_id)
            ]
        return rows[:limit]

    async def list_counterparts(self, owner_id: UUID) -> set[UUID]:
        if self._store.fail_reads:
            raise ConnectionError("database unavailable")
        return {s.counterpart_id for s in self._store.summaries.values() if s.owner_id == owner_id}


@dataclass
class FakeSummaryWriter:
    _store: InMemoryStore

    async def record_message(
        self,
        owner_id: UUID,
        counterpart_id: UUID,
        message_id: int,
        message_at: datetime,
        *,
        unread_increment: int = 0,
    ) -> None:
        key = (owner_id, counterpart_id)
        current = self._store.summaries.get(key)
        if current is None:
            self._store.summaries[key] = ConversationSummary(
                owner_id=owner_id,
                counterpart_id=counterpart_id,
                last_message_id=message_id,
                last_message_at=message_at,
                unread_count=unread_increment,
            )
            return
        self._store.summaries[key] = dataclasses.replace(
            current,
            last_message_id=max(current.last_message_id, message_id),
            last_message_at=max(current.last_message_at, message_at),
            unread_count=current.unread_count + unread_increment,
        )

    async def decrement_unread(self, owner_id: UUID, counterpart_id: UUID) -> None:
        key = (owner_id, counterpart_id)
        current = self._store.summaries.get(key)
        if current is not None:
            self._store.summaries[key] = dataclasses.replace(
                current, unread_count=max(current.unread_count - 1, 0),
            )

    async def lock_owner(self, owner_id: UUID) -> None:
        pass

    async def replace_for_owner(self, owner_id: UUID, summaries: list[ConversationSummary]) -> None:
        for key in [k for k in self._store.summaries if k[0] == owner_id]:
            del self._store.summaries[key]
        for s in summaries:
            self._store.summaries[(s.owner_id, s.counterpart_id)] = s


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    store: InMemoryStore = field(default_factory=InMemoryStore)
    messages: FakeMessageReader | None = None
    messages_w: FakeMessageWriter | None = None
    summaries: FakeSummaryReader | None = None
    summaries_w: FakeSummaryWriter | None = None
    _committed: bool = False

    def __post_init__(self) -> None:
        self.messages = FakeMessageReader(self.store)
        self.messages_w = FakeMessageWriter(self.store)
        self.summaries = FakeSummaryReader(self.store)
        self.summaries_w = FakeSummaryWriter(self.store)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        pass


def make_uow_factory(store: InMemoryStore, *, pool_size: int | None = None):
    """UoW factory; with ``pool_size`` each open UoW holds one of that many connections."""
    pool = asyncio.Semaphore(pool_size) if pool_size else None

    @asynccontextmanager
    async def factory() -> AsyncIterator[FakeUoW]:
        if pool is None:
            yield FakeUoW(store)
            return
        async with pool:
            yield FakeUoW(store)

    return factory


# -- collaborators ------------------------------------------------------------


class FakeTransport:
    """Records frames written by a Connection."""

    def __init__(self, *, fail_sends: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed: tuple[int, str | None] | None = None
        self.fail_sends = fail_sends

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise ConnectionResetError("peer went away")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = (code, reason)

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [f["data"] for f in self.sent if f["type"] == event_type]

    @property
    def types(self) -> list[str]:
        return [f["type"] for f in self.sent]


@dataclass
class FakePublisher:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    fail: bool = False

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.events.append((event_type, payload))


class FakeVerifier:
    """Accepts ``token-<uuid>`` and rejects everything else."""

    async def verify(self, token: str) -> Principal:
        prefix = "token-"
        if not token.startswith(prefix):
            raise jwt.InvalidTokenError("Malformed token")
        return Principal(user_id=UUID(token[len(prefix):]))


def token_for(user_id: UUID) -> str:
    return f"token-{user_id}"


class FixedClock:
    def __init__(self, now: datetime = EPOCH) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


# -- hub fixtures -------------------------------------------------------------


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def hub(store, publisher, clock) -> RealtimeHub:
    return RealtimeHub(
        uow_factory=make_uow_factory(store),
        verifier=FakeVerifier(),
        publisher=publisher,
        clock=clock,
        typing_idle_seconds=0.05,
        auth_grace_seconds=5.0,
        drain_timeout_seconds=0.5,
    )


async def connect(hub: RealtimeHub, user_id: UUID) -> tuple[ConnectionLifecycle, FakeTransport]:
    """Open and authenticate a connection, then drop the handshake frames."""
    transport = FakeTransport()
    lifecycle = await hub.open_connection(transport, token_for(user_id))
    await settle(lifecycle)
    transport.sent.clear()
    return lifecycle, transport


async def settle(*lifecycles: ConnectionLifecycle) -> None:
    """Wait until every queued frame has reached its transport."""
    await asyncio.sleep(0)
    for lc in lifecycles:
        await lc.connection.flush(1.0)


def seed_conversation(store: InMemoryStore, user_a: UUID, user_b: UUID) -> None:
    """Give two users an existing conversation so presence events flow between them."""
    message = store.add(
        make_message(message_id=store.next_id(), sender_id=user_a, recipient_id=user_b, is_read=True),
    )
    for owner, counterpart in ((user_a, user_b), (user_b, user_a)):
        store.summaries[(owner, counterpart)] = ConversationSummary(
            owner_id=owner,
            counterpart_id=counterpart,
            last_message_id=message.id,
            last_message_at=message.created_at,
        )
