from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_realtime.domain.entities.conversation_summary import ConversationSummary


class ConversationSummaryReader(Protocol):
    async def list_for_owner(
        self, owner_id: UUID, *, cursor: str | None = None, limit: int = 20
    ) -> list[ConversationSummary]: ...

    async def list_counterparts(self, owner_id: UUID) -> set[UUID]: ...


class ConversationSummaryWriter(Protocol):
    async def record_message(
        self,
        owner_id: UUID,
        counterpart_id: UUID,
        message_id: int,
        message_at: datetime,
        *,
        unread_increment: int = 0,
    ) -> None: ...

    async def decrement_unread(self, owner_id: UUID, counterpart_id: UUID) -> None:
        """Decrement unread_count, floored at zero."""
        ...

    async def lock_owner(self, owner_id: UUID) -> None:
        """Block concurrent writers to the owner's summaries until commit."""
        ...

    async def replace_for_owner(
        self, owner_id: UUID, summaries: list[ConversationSummary]
    ) -> None: ...
