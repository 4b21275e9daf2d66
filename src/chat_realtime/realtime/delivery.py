"""Message delivery: persist, acknowledge to the sender, fan out to the recipient."""
from __future__ import annotations

import logging
from uuid import UUID

from chat_realtime.application.dto.message import SendMessageDTO
from chat_realtime.application.exceptions import AppError, DeliveryFailedError
from chat_realtime.application.ports.bus import EventPublisher
from chat_realtime.application.uow import UoWFactory
from chat_realtime.domain.entities.message import Message
from chat_realtime.domain.events.message_created import MessageCreated
from chat_realtime.infrastructure.ws.protocol import MessagePayload
from chat_realtime.realtime.locks import KeyedLock, conversation_key
from chat_realtime.realtime.registry import ConnectionRegistry
from chat_realtime.realtime.typing_indicator import TypingDebouncer
from chat_realtime.services import message_service
from chat_realtime.services.events import publish_domain_event

logger = logging.getLogger(__name__)


class MessageDeliveryPipeline:
    """Sends one message end to end.

    Persistence and enqueueing happen under the conversation lock, so for a
    given pair the recipient's queues receive messages in store order. The
    summary rows of both users are written under their owner locks, which
    index rebuilds also take. Enqueueing never waits on sockets.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        typing: TypingDebouncer,
        uow_factory: UoWFactory,
        publisher: EventPublisher,
        conversation_locks: KeyedLock[tuple[UUID, UUID]],
        owner_locks: KeyedLock[UUID],
        *,
        max_length: int = 4000,
    ) -> None:
        self._registry = registry
        self._typing = typing
        self._uow_factory = uow_factory
        self._publisher = publisher
        self._locks = conversation_locks
        self._owner_locks = owner_locks
        self._max_length = max_length

    async def send(self, sender_id: UUID, dto: SendMessageDTO) -> Message:
        message_service.validate_send(sender_id, dto, max_length=self._max_length)

        async with self._locks.hold(conversation_key(sender_id, dto.recipient_id)):
            async with self._owner_locks.hold_all(sender_id, dto.recipient_id):
                message = await self._persist(sender_id, dto)

            self._typing.force_expire(sender_id, dto.recipient_id)
            payload = MessagePayload.from_entity(message)
            acked = self._registry.fan_out(sender_id, "message_sent", payload)
            delivered = self._registry.fan_out(dto.recipient_id, "new_message", payload)

        logger.info(
            "Message %d %s -> %s (acked=%d, delivered=%d)",
            message.id,
            sender_id,
            dto.recipient_id,
            acked,
            delivered,
        )
        await publish_domain_event(
            self._publisher,
            MessageCreated(
                message_id=message.id,
                sender_id=message.sender_id,
                recipient_id=message.recipient_id,
                message_type=message.message_type,
                created_at=message.created_at,
            ),
        )
        return message

    async def _persist(self, sender_id: UUID, dto: SendMessageDTO) -> Message:
        try:
            async with self._uow_factory() as uow:
                return await message_service.send_message(
                    sender_id, dto, uow, max_length=self._max_length,
                )
        except AppError:
            raise
        except Exception as exc:
            logger.exception("Storing message %s -> %s failed", sender_id, dto.recipient_id)
            raise DeliveryFailedError("Message could not be stored, retry later") from exc
