"""Tool invocation pipeline.

Runs one tool call from raw arguments to a closed, terminal ToolMessage:

    VALIDATING -> (PREVIEW_PENDING_APPROVAL -> DECIDING) -> COMMITTING -> FINALIZED

with ERRORED reachable from every step. Gated tools publish a preview,
wait on a DecisionGate and only then snapshot and mutate. A rejected call
never snapshots and never touches the vault.

``run()`` never raises for tool failures: every error becomes an error
message in the transcript and an error string for the model.
"""
from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import TYPE_CHECKING, Any

from .approval import DecisionGate, wait_with_timeout
from .errors import QuillError
from .models import (
    Decision,
    PipelineState,
    ToolCallRequest,
    ToolInvocationRecord,
    ToolOutcome,
)
from quill.shared.formatters.tool_call import format_tool_call, parse_args
from quill.shared.models.message import ErrorMessage, ToolMessage

if TYPE_CHECKING:
    from .context import AgentContext
    from .tools.base import BaseTool

logger = logging.getLogger(__name__)


class ToolInvocationPipeline:
    """Executes tool calls against one agent context."""

    def __init__(self, context: AgentContext) -> None:
        self._ctx = context
        self._path_locks: dict[str, asyncio.Lock] = {}
        self._path_users: dict[str, int] = {}

    async def run(self, request: ToolCallRequest) -> str:
        """Execute ``request`` and return the text handed back to the model."""
        record = await self.invoke(request)
        return record.summary

    async def invoke(self, request: ToolCallRequest) -> ToolInvocationRecord:
        """Execute ``request`` and return its full invocation record."""
        record = ToolInvocationRecord(
            tool_call_id=request.tool_call_id,
            tool_name=request.tool_name,
        )
        record.transition(PipelineState.VALIDATING)
        arguments = parse_args(request.arguments)
        record.arguments = arguments
        try:
            tool = self._ctx.tools.get(request.tool_name)
            record.input = tool.validate(
                request.arguments, self._ctx.validation_context()
            )
            if tool.requires_approval:
                await self._run_gated(tool, record, arguments)
            else:
                await self._run_ungated(tool, record, arguments)
        except QuillError as exc:
            self._fail(record, exc.error_type, str(exc), getattr(exc, "details", None))
        except Exception as exc:
            logger.exception(
                "Tool %s (%s) crashed", request.tool_name, request.tool_call_id
            )
            self._fail(record, "internal", f"{type(exc).__name__}: {exc}")
        await self._ctx.emit(
            {
                "event": "tool_call_finished",
                "tool_call_id": record.tool_call_id,
                "tool_name": record.tool_name,
                "decision": record.decision.value if record.decision else None,
                "snapshot_id": record.snapshot_id,
            }
        )
        return record

    # ── gated ──

    async def _run_gated(
        self, tool: BaseTool, record: ToolInvocationRecord, arguments: dict[str, Any]
    ) -> None:
        params = record.input
        proposal = await tool.prepare(self._ctx, params)
        record.resource_path = proposal.resource_path

        record.transition(PipelineState.PREVIEW_PENDING_APPROVAL)
        message = self._new_message(tool, record)
        message.set_content(
            json.dumps({"preview": proposal.preview}, ensure_ascii=False, default=str)
        )
        message.set_children(tool.render(arguments, proposal.preview))
        gate = DecisionGate(label=record.tool_call_id)
        record.gate = gate
        message.attach_gate(gate)
        self._publish(record)

        auto = self._ctx.approval_policy.decide(tool.name)
        if auto is not None:
            logger.info("Auto-%s %s for %s", auto.value, tool.name, proposal.resource_path)
            gate.resolve(auto)
        decision = await wait_with_timeout(
            gate, self._ctx.config.approval_timeout_seconds, Decision.REJECT
        )

        record.transition(PipelineState.DECIDING)
        if decision is not Decision.APPLY:
            logger.info("%s rejected for %s", tool.name, proposal.resource_path)
            self._finalize(
                tool, record, arguments, ToolOutcome.REJECTED,
                tool.rejected_result(params, proposal),
            )
            return

        record.transition(PipelineState.COMMITTING)
        async with self._path_lock(proposal.resource_path, tool.serialize_commit):
            record.snapshot_id = await self._ctx.snapshots.create_snapshot(
                proposal.resource_path
            )
            result = await tool.commit(self._ctx, params, proposal)
        self._finalize(tool, record, arguments, ToolOutcome.APPLIED, result)

    def _path_lock(
        self, path: str, required: bool = False
    ) -> contextlib.AbstractAsyncContextManager:
        if not (required or self._ctx.config.serialize_path_mutations):
            return contextlib.nullcontext()
        return self._hold_path(path)

    @contextlib.asynccontextmanager
    async def _hold_path(self, path: str):
        lock = self._path_locks.setdefault(path, asyncio.Lock())
        self._path_users[path] = self._path_users.get(path, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._path_users[path] -= 1
            if not self._path_users[path]:
                del self._path_users[path]
                del self._path_locks[path]

    # ── ungated ──

    async def _run_ungated(
        self, tool: BaseTool, record: ToolInvocationRecord, arguments: dict[str, Any]
    ) -> None:
        message = self._new_message(tool, record)
        message.set_children(tool.render(arguments, None))
        self._publish(record)
        result = await tool.execute(self._ctx, record.input, message)
        self._finalize(tool, record, arguments, ToolOutcome.APPLIED, result)

    # ── terminal states ──

    def _new_message(self, tool: BaseTool, record: ToolInvocationRecord) -> ToolMessage:
        message = tool.message_class(
            tool_name=tool.name, tool_call_id=record.tool_call_id
        )
        record.message = message
        return message

    def _publish(self, record: ToolInvocationRecord) -> None:
        self._ctx.transcript.add(record.message)
        record.published = True

    def _finalize(
        self,
        tool: BaseTool,
        record: ToolInvocationRecord,
        arguments: dict[str, Any],
        outcome: ToolOutcome,
        result: dict[str, Any],
    ) -> None:
        message = record.message
        record.decision = outcome
        if outcome is ToolOutcome.REJECTED:
            record.summary = json.dumps(result, ensure_ascii=False, default=str)
            message.set_status("rejected")
        else:
            record.summary = tool.summarize(result)
            message.set_status("done")
        message.set_content(
            json.dumps(
                {
                    "decision": outcome.value,
                    "result": result,
                    "snapshot_id": record.snapshot_id,
                },
                ensure_ascii=False,
                default=str,
            )
        )
        message.set_children(tool.render(arguments, result))
        message.model_result = record.summary
        message.close()
        record.transition(PipelineState.FINALIZED)
        self._ctx.transcript.add(message)
        logger.debug(
            "Tool call %s finalized: %s", record.tool_call_id, outcome.value
        )

    def _fail(
        self,
        record: ToolInvocationRecord,
        error_type: str,
        error: str,
        details: Any = None,
    ) -> None:
        record.decision = ToolOutcome.ERRORED
        record.transition(PipelineState.ERRORED)
        if record.snapshot_id:
            # The mutation failed after the snapshot was taken; keep it restorable.
            details = {"snapshot_id": record.snapshot_id, "details": details}
        logger.warning(
            "Tool %s (%s) failed [%s]: %s",
            record.tool_name, record.tool_call_id, error_type, error,
        )

        message = record.message
        if message is not None and record.published and message.is_streaming:
            message.fail(error_type, error, details)
            message.set_children(
                format_tool_call(
                    record.tool_name,
                    record.arguments,
                    json.dumps({"error": error}),
                    success=False,
                )
            )
            message.close()
            self._ctx.transcript.add(message)
            record.summary = message.model_result
            return

        error_message = ErrorMessage(
            content=error,
            tool_name=record.tool_name,
            tool_call_id=record.tool_call_id,
            error_type=error_type,
            details=details,
        )
        record.message = None
        self._ctx.transcript.add(error_message)
        record.summary = json.dumps(error_message.payload(), default=str)
