from __future__ import annotations

import uuid

from chat_realtime.application.dto.message import SendMessageDTO
from chat_realtime.application.exceptions import InvalidRequestError
from chat_realtime.application.uow import UnitOfWork
from chat_realtime.domain.entities.message import Message, MessageDraft
from chat_realtime.domain.value_objects.enums import MessageType
from chat_realtime.services import conversation_service


def validate_send(sender_id: uuid.UUID, dto: SendMessageDTO, *, max_length: int) -> None:
    """Reject malformed or self-targeted sends before anything is stored."""
    if dto.recipient_id == sender_id:
        raise InvalidRequestError("Cannot send a message to yourself")
    if dto.message_type == MessageType.TEXT and not dto.content.strip():
        raise InvalidRequestError("Text message content must not be empty")
    if dto.message_type != MessageType.TEXT and not (dto.content.strip() or dto.attachments):
        raise InvalidRequestError("Message must have content or attachments")
    if len(dto.content) > max_length:
        raise InvalidRequestError(f"Message content exceeds {max_length} characters")


async def send_message(
    sender_id: uuid.UUID,
    dto: SendMessageDTO,
    uow: UnitOfWork,
    *,
    max_length: int,
) -> Message:
    """Persist a message and fold it into both sides' conversation summaries.

    The store assigns the id and created_at; both are authoritative for
    ordering. Nothing is written if validation fails.
    """
    validate_send(sender_id, dto, max_length=max_length)
    if dto.reply_to_id is not None:
        await _check_reply_target(sender_id, dto, uow)

    draft = MessageDraft(
        sender_id=sender_id,
        recipient_id=dto.recipient_id,
        content=dto.content,
        message_type=dto.message_type.value,
        attachments=tuple(dto.attachments),
        reply_to_id=dto.reply_to_id,
        client_msg_id=dto.client_msg_id,
    )
    message = await uow.messages_w.insert(draft)
    await conversation_service.record_message(message, uow)
    await uow.commit()
    return message


async def _check_reply_target(sender_id: uuid.UUID, dto: SendMessageDTO, uow: UnitOfWork) -> None:
    # Unknown ids and other conversations' messages get the same answer.
    target = await uow.messages.get_by_id(dto.reply_to_id)
    if target is None or not target.is_between(sender_id, dto.recipient_id):
        raise InvalidRequestError("Replied-to message is not part of this conversation")


async def list_messages_between(
    user_id: uuid.UUID,
    other_id: uuid.UUID,
    before_id: int | None,
    limit: int,
    uow: UnitOfWork,
) -> list[Message]:
    if user_id == other_id:
        raise InvalidRequestError("No conversation with yourself")
    return await uow.messages.list_between(
        user_id, other_id, before_id=before_id, limit=limit,
    )


async def unread_total(user_id: uuid.UUID, uow: UnitOfWork) -> int:
    return await uow.messages.count_unread(user_id)
