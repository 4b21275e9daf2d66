from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query

from chat_realtime.api.deps import CurrentPrincipal, HubDep, UoWDep
from chat_realtime.api.v1.schemas.message import (
    MarkReadResponse,
    MessageResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from chat_realtime.application.dto.message import SendMessageDTO
from chat_realtime.services import message_service

router = APIRouter(prefix="/api/v1/chat/messages", tags=["messages"])


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> UnreadCountResponse:
    total = await message_service.unread_total(principal.user_id, uow)
    return UnreadCountResponse(unread_count=total)


@router.get("/{other_user_id}", response_model=list[MessageResponse])
async def list_messages(
    other_user_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    before_id: int | None = Query(None, ge=1),
    limit: int = Query(50, ge=1, le=200),
) -> list[MessageResponse]:
    messages = await message_service.list_messages_between(
        principal.user_id, other_user_id, before_id, limit, uow,
    )
    return [MessageResponse.model_validate(m, from_attributes=True) for m in messages]


@router.post("", response_model=MessageResponse, status_code=201)
async def send_message(
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    hub: HubDep,
) -> MessageResponse:
    dto = SendMessageDTO(
        recipient_id=body.recipient_id,
        content=body.content,
        message_type=body.message_type,
        attachments=tuple(body.attachments),
        reply_to_id=body.reply_to_id,
        client_msg_id=body.client_msg_id,
    )
    message = await hub.pipeline.send(principal.user_id, dto)
    return MessageResponse.model_validate(message, from_attributes=True)


@router.post("/{message_id}/read", response_model=MarkReadResponse)
async def mark_read(
    message_id: int,
    principal: CurrentPrincipal,
    hub: HubDep,
) -> MarkReadResponse:
    changed = await hub.reconciler.mark_read(principal.user_id, message_id)
    return MarkReadResponse(message_id=message_id, changed=changed)
