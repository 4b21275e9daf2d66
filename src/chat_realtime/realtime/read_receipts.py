"""Read receipts: mark inbound messages read and tell the sender."""
from __future__ import annotations

import logging
from uuid import UUID

from chat_realtime.application.exceptions import AppError, DeliveryFailedError
from chat_realtime.application.ports.bus import EventPublisher
from chat_realtime.application.ports.clock import Clock, system_clock
from chat_realtime.application.uow import UoWFactory
from chat_realtime.domain.entities.message import Message
from chat_realtime.domain.events.message_read import MessageRead
from chat_realtime.infrastructure.ws.protocol import MessageReadPayload
from chat_realtime.realtime.locks import KeyedLock, conversation_key
from chat_realtime.realtime.registry import ConnectionRegistry
from chat_realtime.services import read_state_service
from chat_realtime.services.events import publish_domain_event

logger = logging.getLogger(__name__)


class ReadReceiptReconciler:
    def __init__(
        self,
        registry: ConnectionRegistry,
        uow_factory: UoWFactory,
        publisher: EventPublisher,
        conversation_locks: KeyedLock[tuple[UUID, UUID]],
        owner_locks: KeyedLock[UUID],
        clock: Clock = system_clock,
    ) -> None:
        self._registry = registry
        self._uow_factory = uow_factory
        self._publisher = publisher
        self._locks = conversation_locks
        self._owner_locks = owner_locks
        self._clock = clock

    async def mark_read(self, reader_id: UUID, message_id: int) -> bool:
        """Mark a message read by its recipient.

        Returns False when the message was already read (no event emitted).
        Raises UnauthorizedError for unknown ids and other users' messages.
        """
        try:
            async with self._uow_factory() as uow:
                message = await read_state_service.get_inbound_message(reader_id, message_id, uow)

            # No database connection is held while waiting for the locks.
            async with self._locks.hold(conversation_key(message.sender_id, reader_id)):
                async with self._owner_locks.hold(reader_id):
                    async with self._uow_factory() as uow:
                        updated = await read_state_service.mark_read(
                            message, uow, read_at=self._clock.now(),
                        )
                if updated is not None:
                    self._notify_sender(updated)
        except AppError:
            raise
        except Exception as exc:
            logger.exception("Marking message %d read failed", message_id)
            raise DeliveryFailedError("Read receipt could not be stored, retry later") from exc

        if updated is None:
            logger.debug("Message %d already read by %s", message_id, reader_id)
            return False

        await publish_domain_event(
            self._publisher,
            MessageRead(
                message_id=updated.id,
                sender_id=updated.sender_id,
                reader_id=reader_id,
                read_at=updated.read_at,
            ),
        )
        return True

    def _notify_sender(self, message: Message) -> None:
        payload = MessageReadPayload(message_id=message.id, read_at=message.read_at)
        self._registry.fan_out(message.sender_id, "message_read", payload)
