from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class PresenceResponse(BaseModel):
    user_id: UUID
    status: str
    is_online: bool
    last_seen_at: datetime | None
    active_connection_count: int
