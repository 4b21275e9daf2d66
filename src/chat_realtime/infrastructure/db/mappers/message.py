from __future__ import annotations

from chat_realtime.domain.entities.message import Message, MessageDraft
from chat_realtime.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        sender_id=model.sender_id,
        recipient_id=model.recipient_id,
        content=model.content,
        message_type=model.message_type,
        attachments=tuple(model.attachments or ()),
        reply_to_id=model.reply_to_id,
        is_read=model.is_read,
        read_at=model.read_at,
        client_msg_id=model.client_msg_id,
        created_at=model.created_at,
    )


def draft_to_values(draft: MessageDraft) -> dict:
    return {
        "sender_id": draft.sender_id,
        "recipient_id": draft.recipient_id,
        "content": draft.content,
        "message_type": draft.message_type,
        "attachments": list(draft.attachments),
        "reply_to_id": draft.reply_to_id,
        "client_msg_id": draft.client_msg_id,
    }
