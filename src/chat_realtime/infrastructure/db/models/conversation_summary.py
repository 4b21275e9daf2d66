from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Index, Integer, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from chat_realtime.infrastructure.db.base import Base


class ConversationSummaryModel(Base):
    __tablename__ = "conversation_summaries"

    owner_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    counterpart_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    last_message_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_message_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    unread_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )

    __table_args__ = (
        Index(
            "ix_conversation_summaries_owner_recent",
            "owner_id",
            last_message_at.desc(),
            "counterpart_id",
        ),
    )
