"""Recompute conversation summaries from message history.

Usage: python -m chat_realtime.scripts.rebuild_conversation_index <user-uuid> [...]
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import uuid

from chat_realtime.infrastructure.db.uow import sqlalchemy_uow
from chat_realtime.logging_setup import configure_logging
from chat_realtime.services import conversation_service

logger = logging.getLogger(__name__)


async def rebuild(user_ids: list[uuid.UUID]) -> int:
    total = 0
    for user_id in user_ids:
        async with sqlalchemy_uow() as uow:
            summaries = await conversation_service.rebuild_conversation_index(user_id, uow)
        total += len(summaries)
    logger.info("Rebuilt %d conversations for %d users", total, len(user_ids))
    return total


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("user_ids", nargs="+", type=uuid.UUID)
    args = parser.parse_args()

    configure_logging()
    asyncio.run(rebuild(args.user_ids))


if __name__ == "__main__":
    main()
