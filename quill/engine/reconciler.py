"""Stream reconciler: routes model output deltas into transcript messages.

Deltas for one turn arrive interleaved (text, reasoning and several tool
calls may alternate). Each delta is matched to its live message by
identity: text goes to the assistant message whose id is the turn id,
reasoning goes to the thinking message whose id derives from it, and tool
call fragments accumulate in a per-call buffer until the call ends.

Messages are created on first sight and closed when the stream ends.
Every mutation is pushed to the transcript so renderers refresh.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterable, Awaitable, Callable, Iterable

from .models import DeltaKind, ToolCallRequest
from quill.adapters.events import (
    ReasoningDelta,
    StreamDelta,
    TextDelta,
    ToolCallDelta,
)
from quill.shared.models.message import (
    THINKING_SUFFIX,
    AssistantMessage,
    Message,
    ThinkingMessage,
    derive_message_id,
)
from quill.shared.models.transcript import Transcript

logger = logging.getLogger(__name__)

ToolCallCallback = Callable[[ToolCallRequest], Awaitable[None] | None]


@dataclass
class _ToolCallBuffer:
    identity: str
    tool_call_id: str
    tool_name: str = ""
    arguments: str = ""


class StreamReconciler:
    """Applies one turn's deltas to the transcript."""

    def __init__(
        self,
        transcript: Transcript,
        on_tool_call: ToolCallCallback | None = None,
    ) -> None:
        self._transcript = transcript
        self._on_tool_call = on_tool_call
        self._opened: list[Message] = []
        self._buffers: dict[str, _ToolCallBuffer] = {}
        # Completed tool call ids, to ignore duplicate end deltas.
        self._finished: set[str] = set()

    @property
    def opened_messages(self) -> list[Message]:
        return list(self._opened)

    async def consume(self, stream: AsyncIterable[StreamDelta] | Iterable[StreamDelta]) -> None:
        """Feed every delta of ``stream`` and then finish the turn.

        The turn is finished even when the stream raises part way through.
        """
        try:
            if hasattr(stream, "__aiter__"):
                async for delta in stream:
                    await self.feed(delta)
            else:
                for delta in stream:
                    await self.feed(delta)
        finally:
            await self.finish()

    async def feed(self, delta: StreamDelta) -> None:
        kind = delta.kind
        if kind == DeltaKind.TEXT and isinstance(delta, TextDelta):
            self._append(AssistantMessage, delta.identity, delta.text)
        elif kind == DeltaKind.REASONING and isinstance(delta, ReasoningDelta):
            self._append(ThinkingMessage, delta.identity, delta.text)
        elif isinstance(delta, ToolCallDelta):
            await self._feed_tool_call(delta)
        else:
            logger.warning("Ignoring stream delta of unknown kind %r", kind)

    async def finish(self) -> None:
        """Flush unterminated tool calls and close every message opened this turn."""
        pending: list[_ToolCallBuffer] = []
        for buffer in self._buffers.values():
            if buffer not in pending:
                pending.append(buffer)
        self._buffers.clear()
        for buffer in pending:
            if not buffer.tool_name:
                logger.warning(
                    "Dropping unterminated tool call %s without a name",
                    buffer.tool_call_id,
                )
                continue
            logger.debug("Flushing unterminated tool call %s", buffer.tool_call_id)
            await self._complete(buffer)

        for message in self._opened:
            if message.is_streaming:
                message.close()
                self._transcript.notify(message)
        self._opened.clear()

    # ── messages ──

    def _find_open(self, cls: type[Message], identity: str) -> Message | None:
        for message in self._opened:
            if isinstance(message, cls) and message.is_match(identity):
                return message
        message_id = (
            derive_message_id(identity, THINKING_SUFFIX)
            if cls is ThinkingMessage
            else identity
        )
        existing = self._transcript.get(message_id)
        if isinstance(existing, cls) and existing.is_streaming:
            return existing
        return None

    def _append(self, cls: type[Message], identity: str, text: str) -> Message:
        message = self._find_open(cls, identity)
        if message is None:
            message = cls.create_empty(identity)
            self._opened.append(message)
            message.append_content(text)
            self._transcript.add(message)
            return message
        message.append_content(text)
        self._transcript.notify(message)
        return message

    def _assistant(self, identity: str) -> AssistantMessage:
        message = self._find_open(AssistantMessage, identity)
        if message is None:
            message = AssistantMessage.create_empty(identity)
            self._opened.append(message)
            self._transcript.add(message)
        return message  # type: ignore[return-value]

    # ── tool calls ──

    def _buffer_for(self, delta: ToolCallDelta) -> _ToolCallBuffer:
        index_key = f"{delta.identity}:{delta.index}"
        key = delta.tool_call_id or index_key
        buffer = self._buffers.get(key)
        if buffer is None:
            buffer = _ToolCallBuffer(
                identity=delta.identity,
                tool_call_id=delta.tool_call_id or f"{delta.identity}#{delta.index}",
            )
            self._buffers[key] = buffer
            if delta.tool_call_id:
                # Later fragments may carry only the index.
                self._buffers[index_key] = buffer
        return buffer

    def _drop_buffer(self, buffer: _ToolCallBuffer) -> None:
        for key in [k for k, b in self._buffers.items() if b is buffer]:
            del self._buffers[key]

    async def _feed_tool_call(self, delta: ToolCallDelta) -> None:
        if delta.tool_call_id and delta.tool_call_id in self._finished:
            logger.debug("Ignoring delta for finished tool call %s", delta.tool_call_id)
            return
        buffer = self._buffer_for(delta)
        buffer.tool_name += delta.tool_name or ""
        buffer.arguments += delta.arguments or ""
        if delta.kind == DeltaKind.TOOL_CALL_END:
            self._drop_buffer(buffer)
            if not buffer.tool_name:
                logger.warning(
                    "Dropping tool call %s that ended without a name",
                    buffer.tool_call_id,
                )
                return
            await self._complete(buffer)

    async def _complete(self, buffer: _ToolCallBuffer) -> None:
        self._finished.add(buffer.tool_call_id)
        assistant = self._assistant(buffer.identity)
        assistant.add_tool_call(buffer.tool_call_id, buffer.tool_name, buffer.arguments)
        self._transcript.notify(assistant)
        request = ToolCallRequest(
            tool_call_id=buffer.tool_call_id,
            tool_name=buffer.tool_name,
            arguments=buffer.arguments,
            turn_id=buffer.identity,
        )
        logger.debug("Tool call %s (%s) complete", request.tool_call_id, request.tool_name)
        if self._on_tool_call is not None:
            result = self._on_tool_call(request)
            if result is not None:
                await result
