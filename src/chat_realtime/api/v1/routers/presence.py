from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter

from chat_realtime.api.deps import CurrentPrincipal, HubDep
from chat_realtime.api.v1.schemas.presence import PresenceResponse
from chat_realtime.domain.entities.presence import PresenceRecord

router = APIRouter(prefix="/api/v1/chat/presence", tags=["presence"])


def _to_response(record: PresenceRecord) -> PresenceResponse:
    return PresenceResponse(
        user_id=record.user_id,
        status=record.status,
        is_online=record.is_online,
        last_seen_at=record.last_seen_at,
        active_connection_count=record.active_connection_count,
    )


@router.get("/online", response_model=list[PresenceResponse])
async def list_online(
    principal: CurrentPrincipal,
    hub: HubDep,
) -> list[PresenceResponse]:
    return [_to_response(r) for r in hub.presence.online_snapshots(exclude=principal.user_id)]


@router.get("/{user_id}", response_model=PresenceResponse)
async def get_presence(
    user_id: UUID,
    principal: CurrentPrincipal,
    hub: HubDep,
) -> PresenceResponse:
    return _to_response(hub.presence.snapshot(user_id))
