"""Conversation engine: runs one model turn end to end.

Usage:
    from quill.engine import AgentContext, ConversationEngine

    engine = ConversationEngine(AgentContext.create())
    engine.add_user_message("Tidy up my meeting notes")
    next_turn = await engine.run_turn(deltas)
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterable, Iterable

from .context import AgentContext
from .models import ToolCallRequest
from .pipeline import ToolInvocationPipeline
from .reconciler import StreamReconciler
from quill.adapters.events import StreamDelta
from quill.shared.models.message import UserMessage

logger = logging.getLogger(__name__)


class ConversationEngine:
    """Feeds a delta stream through the reconciler and runs its tool calls.

    Each completed tool call gets its own pipeline task as soon as the call
    ends, so a call waiting for approval does not hold up the rest of the
    stream. ``run_turn`` returns once the stream is exhausted and every
    pipeline has reached a terminal state.
    """

    def __init__(self, context: AgentContext) -> None:
        self._ctx = context
        self._pipeline = ToolInvocationPipeline(context)
        self._tasks: list[asyncio.Task[str]] = []

    @property
    def context(self) -> AgentContext:
        return self._ctx

    @property
    def pipeline(self) -> ToolInvocationPipeline:
        return self._pipeline

    def add_user_message(self, text: str) -> UserMessage:
        message = UserMessage(content=text)
        self._ctx.transcript.add(message)
        return message

    async def run_turn(
        self, stream: AsyncIterable[StreamDelta] | Iterable[StreamDelta]
    ) -> list[dict[str, Any]]:
        """Reconcile ``stream`` into the transcript and settle its tool calls.

        Returns the model-facing transcript for the next turn.
        """
        self._tasks = []
        reconciler = StreamReconciler(self._ctx.transcript, on_tool_call=self._schedule)
        await self._ctx.emit({"event": "turn_started"})
        try:
            await reconciler.consume(stream)
        finally:
            # Pipelines already started still settle if the stream breaks.
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for request_result in results:
            if isinstance(request_result, BaseException):
                logger.error("Tool pipeline task failed: %r", request_result)
        logger.info("Turn finished with %d tool call(s)", len(self._tasks))
        await self._ctx.emit({"event": "turn_finished", "tool_calls": len(self._tasks)})
        return self._ctx.transcript.to_model_messages()

    def _schedule(self, request: ToolCallRequest) -> None:
        logger.debug("Scheduling %s (%s)", request.tool_name, request.tool_call_id)
        task = asyncio.create_task(
            self._pipeline.run(request),
            name=f"tool-{request.tool_call_id}",
        )
        self._tasks.append(task)
