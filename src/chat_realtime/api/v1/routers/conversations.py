from __future__ import annotations

from fastapi import APIRouter, Query

from chat_realtime.api.deps import CurrentPrincipal, HubDep, UoWDep
from chat_realtime.api.v1.schemas.common import PaginatedResponse
from chat_realtime.api.v1.schemas.conversation import ConversationSummaryResponse
from chat_realtime.domain.entities.conversation_summary import ConversationSummary
from chat_realtime.infrastructure.db.repositories._cursor import encode_cursor
from chat_realtime.realtime.hub import RealtimeHub
from chat_realtime.services import conversation_service

router = APIRouter(prefix="/api/v1/chat/conversations", tags=["conversations"])


def _to_response(summary: ConversationSummary, hub: RealtimeHub) -> ConversationSummaryResponse:
    return ConversationSummaryResponse(
        counterpart_id=summary.counterpart_id,
        last_message_id=summary.last_message_id,
        last_message_at=summary.last_message_at,
        unread_count=summary.unread_count,
        is_online=hub.registry.is_online(summary.counterpart_id),
    )


@router.get("", response_model=PaginatedResponse[ConversationSummaryResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
    hub: HubDep,
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> PaginatedResponse[ConversationSummaryResponse]:
    summaries = await conversation_service.list_conversations(
        principal.user_id, cursor, limit, uow,
    )
    next_cursor = encode_cursor(summaries[-1]) if len(summaries) == limit else None
    return PaginatedResponse[ConversationSummaryResponse](
        items=[_to_response(s, hub) for s in summaries],
        next_cursor=next_cursor,
    )


@router.post("/rebuild", response_model=list[ConversationSummaryResponse])
async def rebuild_conversations(
    principal: CurrentPrincipal,
    hub: HubDep,
) -> list[ConversationSummaryResponse]:
    summaries = await hub.rebuild_conversation_index(principal.user_id)
    return [_to_response(s, hub) for s in summaries]
