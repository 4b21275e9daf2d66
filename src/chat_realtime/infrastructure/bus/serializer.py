"""JSON envelope for events published on the Redis channel.

Envelope: {"event": <type>, "version": 1, "data": {...}}. UUIDs and datetimes
are rendered as strings.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID

ENVELOPE_VERSION = 1


def _default(o: object) -> Any:
    if isinstance(o, UUID):
        return str(o)
    if isinstance(o, datetime):
        return o.isoformat()
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


def serialize_event(event_type: str, payload: dict[str, Any]) -> str:
    envelope = {"event": event_type, "version": ENVELOPE_VERSION, "data": payload}
    return json.dumps(envelope, default=_default, separators=(",", ":"))
