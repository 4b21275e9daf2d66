"""Cursor helpers for conversation list pagination.

Cursor format: urlsafe base64("<iso last_message_at>|<counterpart uuid>"), unpadded.
"""
from __future__ import annotations

import base64
import binascii
from datetime import datetime
from uuid import UUID

from chat_realtime.application.exceptions import InvalidRequestError
from chat_realtime.domain.entities.conversation_summary import ConversationSummary


def encode_cursor(summary: ConversationSummary) -> str:
    raw = f"{summary.last_message_at.isoformat()}|{summary.counterpart_id}"
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode()).decode()
        ts_str, uid_str = raw.split("|", 1)
        return datetime.fromisoformat(ts_str), UUID(uid_str)
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise InvalidRequestError("Malformed cursor") from exc
