from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ConversationSummary:
    """Per-owner projection of a one-to-one conversation.

    Rebuildable from message history; never a source of truth.
    """

    owner_id: UUID
    counterpart_id: UUID
    last_message_id: int
    last_message_at: datetime
    unread_count: int = 0
