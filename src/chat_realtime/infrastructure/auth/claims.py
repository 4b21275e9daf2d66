from __future__ import annotations

from typing import Any
from uuid import UUID

import jwt

from chat_realtime.application.dto.principal import Principal


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """Map verified token claims to a Principal.

    The identity provider puts the user UUID in `sub` (older tokens used `userId`).
    """
    raw_subject = payload.get("sub") or payload.get("userId")
    if not raw_subject:
        raise jwt.InvalidTokenError("Token has no subject")
    try:
        user_id = UUID(str(raw_subject))
    except ValueError as exc:
        raise jwt.InvalidTokenError("Token subject is not a user id") from exc
    roles = payload.get("roles") or ([payload["role"]] if payload.get("role") else [])
    return Principal(user_id=user_id, roles=list(roles))
