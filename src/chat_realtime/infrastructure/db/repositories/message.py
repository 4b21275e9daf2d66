from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, case, false, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chat_realtime.domain.entities.conversation_summary import ConversationSummary
from chat_realtime.domain.entities.message import Message, MessageDraft
from chat_realtime.infrastructure.db.mappers import message as mapper
from chat_realtime.infrastructure.db.models.message import MessageModel


def _pair_clause(user_id: UUID, other_id: UUID):
    return or_(
        and_(MessageModel.sender_id == user_id, MessageModel.recipient_id == other_id),
        and_(MessageModel.sender_id == other_id, MessageModel.recipient_id == user_id),
    )


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, message_id: int) -> Message | None:
        model = await self._session.get(MessageModel, message_id)
        return mapper.model_to_entity(model) if model else None

    async def list_between(
        self,
        user_id: UUID,
        other_id: UUID,
        *,
        before_id: int | None = None,
        limit: int = 50,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(_pair_clause(user_id, other_id))
            .order_by(MessageModel.id.desc())
            .limit(limit)
        )
        if before_id is not None:
            stmt = stmt.where(MessageModel.id < before_id)
        result = await self._session.execute(stmt)
        page = [mapper.model_to_entity(m) for m in result.scalars().all()]
        page.reverse()
        return page

    async def count_unread(self, recipient_id: UUID) -> int:
        stmt = select(func.count()).select_from(MessageModel).where(
            MessageModel.recipient_id == recipient_id,
            MessageModel.is_read.is_(false()),
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def summarize_for_owner(self, owner_id: UUID) -> list[ConversationSummary]:
        counterpart = case(
            (MessageModel.sender_id == owner_id, MessageModel.recipient_id),
            else_=MessageModel.sender_id,
        ).label("counterpart_id")
        unread = func.count().filter(
            MessageModel.recipient_id == owner_id,
            MessageModel.is_read.is_(false()),
        )
        stmt = (
            select(
                counterpart,
                func.max(MessageModel.id),
                func.max(MessageModel.created_at),
                unread,
            )
            .where(
                or_(MessageModel.sender_id == owner_id, MessageModel.recipient_id == owner_id),
                MessageModel.sender_id != MessageModel.recipient_id,
            )
            .group_by(counterpart)
        )
        result = await self._session.execute(stmt)
        return [
            ConversationSummary(
                owner_id=owner_id,
                counterpart_id=counterpart_id,
                last_message_id=last_id,
                last_message_at=last_at,
                unread_count=unread_count,
            )
            for counterpart_id, last_id, last_at, unread_count in result.all()
        ]


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def insert(self, draft: MessageDraft) -> Message:
        stmt = (
            insert(MessageModel)
            .values(**mapper.draft_to_values(draft))
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        return mapper.model_to_entity(result.scalar_one())

    async def mark_read(
        self,
        message_id: int,
        recipient_id: UUID,
        read_at: datetime,
    ) -> Message | None:
        # Conditional update: concurrent marks from several sessions flip the row once.
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.id == message_id,
                MessageModel.recipient_id == recipient_id,
                MessageModel.is_read.is_(false()),
            )
            .values(is_read=True, read_at=read_at)
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None
