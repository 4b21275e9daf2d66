"""In-memory registry of live connections per user."""
from __future__ import annotations

import logging
from typing import Any, Protocol
from uuid import UUID

from chat_realtime.infrastructure.ws.protocol import WirePayload, frame
from chat_realtime.realtime.connection import Connection
from chat_realtime.realtime.locks import KeyedLock

logger = logging.getLogger(__name__)


class PresenceListener(Protocol):
    """Notified when a user's connection set becomes non-empty / empty."""

    async def user_online(self, user_id: UUID) -> None: ...

    async def user_offline(self, user_id: UUID) -> None: ...


class ConnectionRegistry:
    """Maps users to their open connections.

    register/unregister are the only mutation points and are serialized per
    user; listeners run inside the same per-user critical section so
    transitions are observed in order.
    """

    def __init__(self) -> None:
        self._by_user: dict[UUID, dict[str, Connection]] = {}
        self._by_id: dict[str, Connection] = {}
        self._locks: KeyedLock[UUID] = KeyedLock()
        self._listeners: list[PresenceListener] = []

    def subscribe(self, listener: PresenceListener) -> None:
        self._listeners.append(listener)

    async def register(self, user_id: UUID, connection: Connection) -> int:
        """Attach `connection` to `user_id`. Returns the user's connection count."""
        async with self._locks.hold(user_id):
            conns = self._by_user.setdefault(user_id, {})
            came_online = not conns
            connection.user_id = user_id
            conns[connection.id] = connection
            self._by_id[connection.id] = connection
            count = len(conns)
            logger.info("Registered connection %s for user %s (count=%d)", connection.id, user_id, count)
            if came_online:
                await self._notify("user_online", user_id)
            return count

    async def unregister(self, connection_id: str) -> bool:
        connection = self._by_id.get(connection_id)
        if connection is None or connection.user_id is None:
            return False
        user_id = connection.user_id
        async with self._locks.hold(user_id):
            conns = self._by_user.get(user_id)
            if not conns or conns.pop(connection_id, None) is None:
                return False
            self._by_id.pop(connection_id, None)
            went_offline = not conns
            if went_offline:
                del self._by_user[user_id]
            logger.info(
                "Unregistered connection %s for user %s (count=%d)",
                connection_id,
                user_id,
                len(conns),
            )
            if went_offline:
                await self._notify("user_offline", user_id)
            return True

    def is_online(self, user_id: UUID) -> bool:
        return bool(self._by_user.get(user_id))

    def list_online(self) -> set[UUID]:
        return set(self._by_user)

    def get(self, connection_id: str) -> Connection | None:
        return self._by_id.get(connection_id)

    def connections_for(self, user_id: UUID) -> list[Connection]:
        return list(self._by_user.get(user_id, {}).values())

    def connection_count(self, user_id: UUID) -> int:
        return len(self._by_user.get(user_id, {}))

    def fan_out(
        self,
        user_id: UUID,
        event_type: str,
        data: WirePayload | dict[str, Any] | list[Any] | None = None,
    ) -> int:
        """Queue one event on every deliverable connection of a user.

        The frame is rendered once so all connections get identical bytes.
        Returns the number of connections the frame was queued on.
        """
        targets = [c for c in self.connections_for(user_id) if c.is_deliverable]
        if not targets:
            return 0
        raw = frame(event_type, data)
        return sum(1 for c in targets if c.send_raw(raw))

    async def _notify(self, hook: str, user_id: UUID) -> None:
        for listener in self._listeners:
            try:
                await getattr(listener, hook)(user_id)
            except Exception:
                logger.exception("Presence listener %r failed on %s for %s", listener, hook, user_id)
