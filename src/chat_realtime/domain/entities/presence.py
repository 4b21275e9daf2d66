from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from chat_realtime.domain.value_objects.enums import PresenceStatus


@dataclass(frozen=True, slots=True)
class PresenceRecord:
    user_id: UUID
    status: PresenceStatus
    last_seen_at: datetime | None
    active_connection_count: int

    @property
    def is_online(self) -> bool:
        return self.status == PresenceStatus.ONLINE
