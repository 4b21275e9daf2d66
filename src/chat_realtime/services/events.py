from __future__ import annotations

import logging
from dataclasses import asdict

from chat_realtime.application.ports.bus import EventPublisher
from chat_realtime.domain.events.message_created import MessageCreated
from chat_realtime.domain.events.message_read import MessageRead

logger = logging.getLogger(__name__)


async def publish_domain_event(
    publisher: EventPublisher,
    event: MessageCreated | MessageRead,
) -> None:
    """Hand a committed event to downstream consumers; failures are logged only."""
    try:
        await publisher.publish(event.event_type, asdict(event))
    except Exception:  # noqa: BLE001
        logger.warning("Failed to publish %s", event.event_type, exc_info=True)
