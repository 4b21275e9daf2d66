from __future__ import annotations

import logging

from chat_realtime.api.middleware.correlation_id import CorrelationIdFilter

LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Root logging for entrypoints; every record carries a correlation id."""
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=[handler])
