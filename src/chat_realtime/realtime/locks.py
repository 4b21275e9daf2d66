"""Keyed asyncio locks: one lock per key, released entries are dropped."""
from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Generic, Hashable, TypeVar
from uuid import UUID

K = TypeVar("K", bound=Hashable)


class KeyedLock(Generic[K]):
    """Mutual exclusion per key without a global lock."""

    def __init__(self) -> None:
        self._locks: dict[K, asyncio.Lock] = {}
        self._holders: dict[K, int] = {}

    @asynccontextmanager
    async def hold(self, key: K) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold_all(self, *keys: K) -> AsyncIterator[None]:
        """Hold several keys at once, always acquired in sorted order."""
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self.hold(key))
            yield

    def __len__(self) -> int:
        return len(self._locks)


def conversation_key(user_a: UUID, user_b: UUID) -> tuple[UUID, UUID]:
    """Order-independent key for the one-to-one conversation of two users."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)
