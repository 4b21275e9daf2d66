"""Composition root for the realtime core of one server process."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING
from uuid import UUID

from chat_realtime.application.ports.auth import TokenVerifier
from chat_realtime.application.ports.bus import EventPublisher
from chat_realtime.application.ports.clock import Clock, system_clock
from chat_realtime.application.uow import UoWFactory
from chat_realtime.domain.entities.conversation_summary import ConversationSummary
from chat_realtime.infrastructure.ws.protocol import ReconnectHint
from chat_realtime.realtime.connection import Connection, Transport
from chat_realtime.realtime.delivery import MessageDeliveryPipeline
from chat_realtime.realtime.lifecycle import ConnectionLifecycle
from chat_realtime.realtime.locks import KeyedLock
from chat_realtime.realtime.presence import PresenceTracker
from chat_realtime.realtime.read_receipts import ReadReceiptReconciler
from chat_realtime.realtime.registry import ConnectionRegistry
from chat_realtime.realtime.typing_indicator import TypingDebouncer
from chat_realtime.services import conversation_service

if TYPE_CHECKING:
    from chat_realtime.config import Settings

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Owns the registry, presence, typing, delivery and read-receipt components.

    All state is in-process; a restart drops it and clients reconnect.
    """

    def __init__(
        self,
        *,
        uow_factory: UoWFactory,
        verifier: TokenVerifier,
        publisher: EventPublisher,
        clock: Clock = system_clock,
        typing_idle_seconds: float = 2.0,
        auth_grace_seconds: float = 10.0,
        send_queue_size: int = 256,
        drain_timeout_seconds: float = 5.0,
        heartbeat_seconds: float = 30.0,
        message_max_length: int = 4000,
        reconnect_hint: ReconnectHint | None = None,
    ) -> None:
        self.verifier = verifier
        self.clock = clock
        self.auth_grace_seconds = auth_grace_seconds
        self.send_queue_size = send_queue_size
        self.drain_timeout_seconds = drain_timeout_seconds
        self.heartbeat_seconds = heartbeat_seconds
        self.reconnect_hint = reconnect_hint or ReconnectHint()
        self.draining = False

        self._uow_factory = uow_factory
        self._lifecycles: set[ConnectionLifecycle] = set()
        conversation_locks: KeyedLock[tuple[UUID, UUID]] = KeyedLock()
        self._owner_locks: KeyedLock[UUID] = KeyedLock()

        self.registry = ConnectionRegistry()
        self.presence = PresenceTracker(self.registry, self._counterparts, clock)
        self.typing = TypingDebouncer(self.registry, typing_idle_seconds)
        self.registry.subscribe(self.presence)
        self.registry.subscribe(self.typing)

        self.pipeline = MessageDeliveryPipeline(
            self.registry,
            self.typing,
            uow_factory,
            publisher,
            conversation_locks,
            self._owner_locks,
            max_length=message_max_length,
        )
        self.reconciler = ReadReceiptReconciler(
            self.registry, uow_factory, publisher, conversation_locks, self._owner_locks, clock,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        uow_factory: UoWFactory,
        verifier: TokenVerifier,
        publisher: EventPublisher,
    ) -> RealtimeHub:
        return cls(
            uow_factory=uow_factory,
            verifier=verifier,
            publisher=publisher,
            typing_idle_seconds=settings.TYPING_IDLE_SECONDS,
            auth_grace_seconds=settings.WS_AUTH_GRACE_SECONDS,
            send_queue_size=settings.WS_SEND_QUEUE_SIZE,
            drain_timeout_seconds=settings.WS_DRAIN_TIMEOUT_SECONDS,
            heartbeat_seconds=settings.WS_HEARTBEAT_SECONDS,
            message_max_length=settings.MESSAGE_MAX_LENGTH,
            reconnect_hint=ReconnectHint(
                base_delay_ms=settings.RECONNECT_BASE_DELAY_MS,
                max_delay_ms=settings.RECONNECT_MAX_DELAY_MS,
                multiplier=settings.RECONNECT_MULTIPLIER,
                max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
            ),
        )

    async def open_connection(
        self,
        transport: Transport,
        token: str | None = None,
    ) -> ConnectionLifecycle:
        connection = Connection(transport, queue_size=self.send_queue_size, clock=self.clock)
        lifecycle = ConnectionLifecycle(connection, self)
        self._lifecycles.add(lifecycle)
        await lifecycle.open(token)
        return lifecycle

    def forget(self, lifecycle: ConnectionLifecycle) -> None:
        self._lifecycles.discard(lifecycle)

    @property
    def open_connections(self) -> int:
        return len(self._lifecycles)

    async def drain_all(self, reason: str = "Server is shutting down") -> None:
        """Ask every client to reconnect elsewhere, then close all connections."""
        self.draining = True
        lifecycles = list(self._lifecycles)
        logger.info("Draining %d connections", len(lifecycles))
        results = await asyncio.gather(
            *(lc.drain(reason) for lc in lifecycles),
            return_exceptions=True,
        )
        for lifecycle, result in zip(lifecycles, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Draining connection %s failed",
                    lifecycle.connection.id,
                    exc_info=result,
                )
        self.typing.discard_all()

    async def rebuild_conversation_index(self, user_id: UUID) -> list[ConversationSummary]:
        """Rebuild one user's summaries while no send or read can touch them."""
        async with self._owner_locks.hold(user_id):
            async with self._uow_factory() as uow:
                return await conversation_service.rebuild_conversation_index(user_id, uow)

    async def _counterparts(self, user_id: UUID) -> set[UUID]:
        async with self._uow_factory() as uow:
            return await conversation_service.counterparts(user_id, uow)
