"""Seed development data: creates the schema and a short conversation between two users."""
from __future__ import annotations

import asyncio
import logging
import uuid

from chat_realtime.application.dto.message import SendMessageDTO
from chat_realtime.config import settings
from chat_realtime.infrastructure.db import models  # noqa: F401
from chat_realtime.infrastructure.db.base import Base
from chat_realtime.infrastructure.db.session import engine
from chat_realtime.infrastructure.db.uow import sqlalchemy_uow
from chat_realtime.logging_setup import configure_logging
from chat_realtime.services import message_service

logger = logging.getLogger(__name__)

ALICE = uuid.UUID("00000000-0000-4000-8000-00000000a11c")
BOB = uuid.UUID("00000000-0000-4000-8000-000000000b0b")


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    messages_data = [
        (ALICE, BOB, "Hi Bob, did the invoice go out?"),
        (BOB, ALICE, "Yes, this morning."),
        (ALICE, BOB, "Great, thanks!"),
    ]
    for sender_id, recipient_id, content in messages_data:
        async with sqlalchemy_uow() as uow:
            await message_service.send_message(
                sender_id,
                SendMessageDTO(recipient_id=recipient_id, content=content),
                uow,
                max_length=settings.MESSAGE_MAX_LENGTH,
            )

    logger.info("Seeded %d messages between %s and %s", len(messages_data), ALICE, BOB)
    await engine.dispose()


def main() -> None:
    configure_logging()
    asyncio.run(seed())


if __name__ == "__main__":
    main()
