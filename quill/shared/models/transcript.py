"""Transcript: the ordered, bounded log of messages in one conversation."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from quill.shared.models.message import Message

logger = logging.getLogger(__name__)

# Called with the message that was added or changed.
TranscriptListener = Callable[[Message], None]

MAX_MESSAGES = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Transcript:
    """Holds the visible conversation and notifies renderers of changes.

    Adding a message whose id, or whose tool call id, is already present
    replaces the earlier entry in place, so a tool call is represented by
    exactly one message at any time.
    """

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    max_messages: int = MAX_MESSAGES
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    _listeners: list[TranscriptListener] = field(default_factory=list, repr=False)

    def add(self, message: Message) -> Message:
        index = self._index_of(message)
        if index is None:
            self.messages.append(message)
            self._evict()
        else:
            self.messages[index] = message
        self.notify(message)
        return message

    def notify(self, message: Message) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Transcript listener failed for %s", message.id)

    def subscribe(self, listener: TranscriptListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def get(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def find_by_tool_call_id(self, tool_call_id: str) -> Message | None:
        for message in self.messages:
            if getattr(message, "tool_call_id", None) == tool_call_id:
                return message
        return None

    def __contains__(self, message: Message) -> bool:
        return any(m is message for m in self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def to_model_messages(self) -> list[dict[str, Any]]:
        """Entries for the next model turn, skipping variants the model never sees."""
        entries: list[dict[str, Any]] = []
        for message in self.messages:
            entry = message.to_transcript_entry()
            if entry is not None:
                entries.append(entry)
        return entries

    def clear(self) -> None:
        self.messages.clear()

    def _index_of(self, message: Message) -> int | None:
        tool_call_id = getattr(message, "tool_call_id", "")
        for index, existing in enumerate(self.messages):
            if existing.id == message.id:
                return index
            if tool_call_id and getattr(existing, "tool_call_id", "") == tool_call_id:
                return index
        return None

    def _evict(self) -> None:
        while self.max_messages > 0 and len(self.messages) > self.max_messages:
            evicted = self.messages.pop(0)
            logger.debug("Evicted message %s (%s)", evicted.id, evicted.role.value)
