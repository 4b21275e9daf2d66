"""Entrypoint: python -m chat_realtime"""
from __future__ import annotations

import uvicorn

from chat_realtime.config import settings
from chat_realtime.logging_setup import configure_logging


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "chat_realtime.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
