"""Conversation index: per-user summaries of one-to-one conversations.

The index is a projection over messages. It is only written from the send
and read paths below, and can be rebuilt from history at any time.
"""
from __future__ import annotations

import logging
import uuid

from chat_realtime.application.uow import UnitOfWork
from chat_realtime.domain.entities.conversation_summary import ConversationSummary
from chat_realtime.domain.entities.message import Message

logger = logging.getLogger(__name__)


async def record_message(message: Message, uow: UnitOfWork) -> None:
    await uow.summaries_w.record_message(
        message.sender_id, message.recipient_id, message.id, message.created_at,
    )
    await uow.summaries_w.record_message(
        message.recipient_id,
        message.sender_id,
        message.id,
        message.created_at,
        unread_increment=1,
    )


async def record_read(message: Message, uow: UnitOfWork) -> None:
    await uow.summaries_w.decrement_unread(message.recipient_id, message.sender_id)


async def list_conversations(
    user_id: uuid.UUID,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> list[ConversationSummary]:
    """Summaries ordered by most recent message first."""
    return await uow.summaries.list_for_owner(user_id, cursor=cursor, limit=limit)


async def counterparts(user_id: uuid.UUID, uow: UnitOfWork) -> set[uuid.UUID]:
    return await uow.summaries.list_counterparts(user_id)


async def rebuild_conversation_index(
    user_id: uuid.UUID,
    uow: UnitOfWork,
) -> list[ConversationSummary]:
    """Recompute the user's summaries from message history and replace them.

    Callers in the service process also hold the user's owner lock.
    """
    await uow.summaries_w.lock_owner(user_id)
    summaries = await uow.messages.summarize_for_owner(user_id)
    await uow.summaries_w.replace_for_owner(user_id, summaries)
    await uow.commit()
    logger.info("Rebuilt conversation index for %s (%d conversations)", user_id, len(summaries))
    return sorted(
        summaries,
        key=lambda s: (s.last_message_at, s.last_message_id),
        reverse=True,
    )
