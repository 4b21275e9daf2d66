from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_realtime.domain.entities.conversation_summary import ConversationSummary
from chat_realtime.domain.entities.message import Message, MessageDraft


class MessageReader(Protocol):
    async def get_by_id(self, message_id: int) -> Message | None: ...

    async def list_between(
        self,
        user_id: UUID,
        other_id: UUID,
        *,
        before_id: int | None = None,
        limit: int = 50,
    ) -> list[Message]:
        """Newest `limit` messages of the pair older than `before_id`, ascending by id."""
        ...

    async def count_unread(self, recipient_id: UUID) -> int: ...

    async def summarize_for_owner(self, owner_id: UUID) -> list[ConversationSummary]:
        """Recompute the owner's conversation summaries from message history."""
        ...


class MessageWriter(Protocol):
    async def insert(self, draft: MessageDraft) -> Message:
        """Persist a message. The store assigns id and created_at."""
        ...

    async def mark_read(
        self, message_id: int, recipient_id: UUID, read_at: datetime
    ) -> Message | None:
        """Flip is_read on an unread message addressed to recipient_id.

        Returns the updated message, or None if nothing changed.
        """
        ...
