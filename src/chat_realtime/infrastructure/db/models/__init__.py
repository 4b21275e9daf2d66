"""Import all models so Base.metadata sees every table."""
from chat_realtime.infrastructure.db.models.conversation_summary import ConversationSummaryModel
from chat_realtime.infrastructure.db.models.message import MessageModel

__all__ = [
    "ConversationSummaryModel",
    "MessageModel",
]
