"""Presence derived from the connection registry."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Awaitable, Callable
from uuid import UUID

from chat_realtime.application.ports.clock import Clock, system_clock
from chat_realtime.domain.entities.presence import PresenceRecord
from chat_realtime.domain.value_objects.enums import PresenceStatus
from chat_realtime.infrastructure.ws.protocol import UserStatusPayload
from chat_realtime.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

CounterpartLookup = Callable[[UUID], Awaitable[set[UUID]]]


class PresenceTracker:
    """Emits ``user_status`` to a user's conversation counterparts on transitions.

    Status is always read from the registry, so it cannot drift from the set
    of live connections. Only ``last_seen_at`` of offline users is kept here.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        counterparts: CounterpartLookup,
        clock: Clock = system_clock,
    ) -> None:
        self._registry = registry
        self._counterparts = counterparts
        self._clock = clock
        self._last_seen: dict[UUID, datetime] = {}

    def snapshot(self, user_id: UUID) -> PresenceRecord:
        count = self._registry.connection_count(user_id)
        if count:
            return PresenceRecord(
                user_id=user_id,
                status=PresenceStatus.ONLINE,
                last_seen_at=self._clock.now(),
                active_connection_count=count,
            )
        return PresenceRecord(
            user_id=user_id,
            status=PresenceStatus.OFFLINE,
            last_seen_at=self._last_seen.get(user_id),
            active_connection_count=0,
        )

    def online_snapshots(self, *, exclude: UUID | None = None) -> list[PresenceRecord]:
        return [
            self.snapshot(user_id)
            for user_id in sorted(self._registry.list_online(), key=str)
            if user_id != exclude
        ]

    async def user_online(self, user_id: UUID) -> None:
        now = self._clock.now()
        self._last_seen[user_id] = now
        await self._broadcast(user_id, True, now)

    async def user_offline(self, user_id: UUID) -> None:
        now = self._clock.now()
        self._last_seen[user_id] = now
        await self._broadcast(user_id, False, now)

    async def _broadcast(self, user_id: UUID, is_online: bool, at: datetime) -> None:
        try:
            audience = await self._counterparts(user_id)
        except Exception:  # noqa: BLE001
            logger.warning("Presence audience lookup failed for %s", user_id, exc_info=True)
            return

        payload = UserStatusPayload(user_id=user_id, is_online=is_online, last_seen_at=at)
        delivered = sum(
            self._registry.fan_out(peer, "user_status", payload)
            for peer in audience
            if peer != user_id
        )
        logger.debug(
            "user_status %s online=%s -> %d connections", user_id, is_online, delivered,
        )
