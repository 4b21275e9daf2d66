from __future__ import annotations

from chat_realtime.domain.entities.conversation_summary import ConversationSummary
from chat_realtime.infrastructure.db.models.conversation_summary import ConversationSummaryModel


def model_to_entity(model: ConversationSummaryModel) -> ConversationSummary:
    return ConversationSummary(
        owner_id=model.owner_id,
        counterpart_id=model.counterpart_id,
        last_message_id=model.last_message_id,
        last_message_at=model.last_message_at,
        unread_count=model.unread_count,
    )


def entity_to_model(entity: ConversationSummary) -> ConversationSummaryModel:
    return ConversationSummaryModel(
        owner_id=entity.owner_id,
        counterpart_id=entity.counterpart_id,
        last_message_id=entity.last_message_id,
        last_message_at=entity.last_message_at,
        unread_count=entity.unread_count,
    )
