from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from chat_realtime.application.repositories.conversation_summary import (
    ConversationSummaryReader,
    ConversationSummaryWriter,
)
from chat_realtime.application.repositories.message import MessageReader, MessageWriter


class UnitOfWork(Protocol):
    messages: MessageReader
    messages_w: MessageWriter
    summaries: ConversationSummaryReader
    summaries_w: ConversationSummaryWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
