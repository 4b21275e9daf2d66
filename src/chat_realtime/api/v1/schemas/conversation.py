from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class ConversationSummaryResponse(BaseModel):
    counterpart_id: UUID
    last_message_id: int
    last_message_at: datetime
    unread_count: int
    is_online: bool = False

    model_config = {"from_attributes": True}
