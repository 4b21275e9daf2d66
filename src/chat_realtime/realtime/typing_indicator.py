"""Typing indicator debouncing per (sender, recipient) pair."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

from chat_realtime.application.exceptions import InvalidRequestError
from chat_realtime.infrastructure.ws.protocol import UserTypingPayload
from chat_realtime.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

PairKey = tuple[UUID, UUID]


@dataclass(slots=True)
class TypingState:
    sender_id: UUID
    recipient_id: UUID
    expires_at: float  # event loop time
    is_typing: bool = True
    timer: asyncio.TimerHandle | None = None


class TypingDebouncer:
    """Collapses bursts of typing signals into one start/stop pair.

    Each active pair owns a single timer handle. A refresh only moves
    ``expires_at``; when the timer fires early it re-arms for the new
    deadline instead of scheduling a callback per keystroke.
    """

    def __init__(self, registry: ConnectionRegistry, idle_seconds: float = 2.0) -> None:
        self._registry = registry
        self._idle_seconds = idle_seconds
        self._states: dict[PairKey, TypingState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def is_typing(self, sender_id: UUID, recipient_id: UUID) -> bool:
        return (sender_id, recipient_id) in self._states

    def signal_typing(self, sender_id: UUID, recipient_id: UUID) -> bool:
        """Register a keystroke. Returns True if a ``user_typing`` start was emitted."""
        if sender_id == recipient_id:
            raise InvalidRequestError("Cannot send typing indicator to yourself")

        loop = asyncio.get_running_loop()
        key = (sender_id, recipient_id)
        deadline = loop.time() + self._idle_seconds
        state = self._states.get(key)
        if state is not None:
            state.expires_at = deadline
            return False

        state = TypingState(sender_id=sender_id, recipient_id=recipient_id, expires_at=deadline)
        state.timer = loop.call_at(deadline, self._on_timer, key)
        self._states[key] = state
        self._emit(state)
        return True

    def stop_typing(self, sender_id: UUID, recipient_id: UUID) -> bool:
        """Expire the pair now, as if the idle window had elapsed."""
        if sender_id == recipient_id:
            raise InvalidRequestError("Cannot send typing indicator to yourself")
        return self._expire((sender_id, recipient_id))

    def force_expire(self, sender_id: UUID, recipient_id: UUID) -> bool:
        return self._expire((sender_id, recipient_id))

    def discard_all(self) -> None:
        """Drop every entry without notifying anyone (shutdown)."""
        for state in self._states.values():
            if state.timer is not None:
                state.timer.cancel()
        self._states.clear()

    async def user_online(self, user_id: UUID) -> None:
        return None

    async def user_offline(self, user_id: UUID) -> None:
        for key in [k for k in self._states if k[0] == user_id]:
            self._expire(key)

    def _on_timer(self, key: PairKey) -> None:
        state = self._states.get(key)
        if state is None:
            return
        loop = asyncio.get_running_loop()
        if loop.time() < state.expires_at:
            state.timer = loop.call_at(state.expires_at, self._on_timer, key)
            return
        self._expire(key)

    def _expire(self, key: PairKey) -> bool:
        state = self._states.pop(key, None)
        if state is None:
            return False
        if state.timer is not None:
            state.timer.cancel()
            state.timer = None
        state.is_typing = False
        self._emit(state)
        return True

    def _emit(self, state: TypingState) -> None:
        payload = UserTypingPayload(user_id=state.sender_id, is_typing=state.is_typing)
        self._registry.fan_out(state.recipient_id, "user_typing", payload)
