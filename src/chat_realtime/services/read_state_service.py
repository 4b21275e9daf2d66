from __future__ import annotations

import uuid
from datetime import datetime

from chat_realtime.application.exceptions import UnauthorizedError
from chat_realtime.application.uow import UnitOfWork
from chat_realtime.domain.entities.message import Message
from chat_realtime.services import conversation_service


async def get_inbound_message(
    reader_id: uuid.UUID,
    message_id: int,
    uow: UnitOfWork,
) -> Message:
    """Load a message the reader is allowed to mark read.

    Unknown ids and messages addressed to someone else are indistinguishable
    to the caller.
    """
    message = await uow.messages.get_by_id(message_id)
    if message is None or message.recipient_id != reader_id:
        raise UnauthorizedError("Message not found or not addressed to you")
    return message


async def mark_read(
    message: Message,
    uow: UnitOfWork,
    *,
    read_at: datetime,
) -> Message | None:
    """Flip is_read and decrement the reader's unread count.

    Returns the updated message, or None if it was already read.
    """
    if message.is_read:
        return None
    updated = await uow.messages_w.mark_read(message.id, message.recipient_id, read_at)
    if updated is None:
        return None
    await conversation_service.record_read(updated, uow)
    await uow.commit()
    return updated
