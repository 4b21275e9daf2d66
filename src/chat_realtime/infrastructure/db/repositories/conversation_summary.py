from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chat_realtime.domain.entities.conversation_summary import ConversationSummary
from chat_realtime.infrastructure.db.mappers import conversation_summary as mapper
from chat_realtime.infrastructure.db.models.conversation_summary import ConversationSummaryModel
from chat_realtime.infrastructure.db.repositories._cursor import decode_cursor


class ConversationSummaryReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_owner(
        self,
        owner_id: UUID,
        *,
        cursor: str | None = None,
        limit: int = 20,
    ) -> list[ConversationSummary]:
        stmt = (
            select(ConversationSummaryModel)
            .where(ConversationSummaryModel.owner_id == owner_id)
            .order_by(
                ConversationSummaryModel.last_message_at.desc(),
                ConversationSummaryModel.counterpart_id,
            )
            .limit(limit)
        )
        if cursor:
            ts, counterpart_id = decode_cursor(cursor)
            stmt = stmt.where(
                (ConversationSummaryModel.last_message_at < ts)
                | (
                    (ConversationSummaryModel.last_message_at == ts)
                    & (ConversationSummaryModel.counterpart_id > counterpart_id)
                )
            )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_counterparts(self, owner_id: UUID) -> set[UUID]:
        stmt = select(ConversationSummaryModel.counterpart_id).where(
            ConversationSummaryModel.owner_id == owner_id,
        )
        result = await self._session.execute(stmt)
        return set(result.scalars().all())


class ConversationSummaryWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record_message(
        self,
        owner_id: UUID,
        counterpart_id: UUID,
        message_id: int,
        message_at: datetime,
        *,
        unread_increment: int = 0,
    ) -> None:
        stmt = pg_insert(ConversationSummaryModel).values(
            owner_id=owner_id,
            counterpart_id=counterpart_id,
            last_message_id=message_id,
            last_message_at=message_at,
            unread_count=unread_increment,
        )
        existing = ConversationSummaryModel.__table__.c
        stmt = stmt.on_conflict_do_update(
            index_elements=["owner_id", "counterpart_id"],
            set_={
                "last_message_id": func.greatest(existing.last_message_id, stmt.excluded.last_message_id),
                "last_message_at": func.greatest(existing.last_message_at, stmt.excluded.last_message_at),
                "unread_count": existing.unread_count + stmt.excluded.unread_count,
            },
        )
        await self._session.execute(stmt)

    async def decrement_unread(self, owner_id: UUID, counterpart_id: UUID) -> None:
        stmt = (
            update(ConversationSummaryModel)
            .where(
                ConversationSummaryModel.owner_id == owner_id,
                ConversationSummaryModel.counterpart_id == counterpart_id,
            )
            .values(unread_count=func.greatest(ConversationSummaryModel.unread_count - 1, 0))
        )
        await self._session.execute(stmt)

    async def lock_owner(self, owner_id: UUID) -> None:
        await self._session.execute(
            select(ConversationSummaryModel.counterpart_id)
            .where(ConversationSummaryModel.owner_id == owner_id)
            .with_for_update()
        )

    async def replace_for_owner(
        self,
        owner_id: UUID,
        summaries: list[ConversationSummary],
    ) -> None:
        await self._session.execute(
            delete(ConversationSummaryModel).where(ConversationSummaryModel.owner_id == owner_id)
        )
        self._session.add_all([mapper.entity_to_model(s) for s in summaries])
        await self._session.flush()
