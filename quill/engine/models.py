"""Core data models for the tool orchestration engine.

Enums and the bookkeeping dataclasses shared by the pipeline, the stream
reconciler and the conversation engine.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pydantic import BaseModel

    from quill.engine.approval import ApprovalGate
    from quill.shared.models.message import ToolMessage

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    """Outcome of an approval gate."""
    APPLY = "apply"
    REJECT = "reject"


class ToolOutcome(str, Enum):
    """Terminal decision recorded for a tool invocation."""
    APPLIED = "applied"
    REJECTED = "rejected"
    ERRORED = "errored"


class PipelineState(str, Enum):
    """Tool invocation states. ERRORED is reachable from every step."""
    VALIDATING = "validating"
    PREVIEW_PENDING_APPROVAL = "preview_pending_approval"
    DECIDING = "deciding"
    COMMITTING = "committing"
    FINALIZED = "finalized"
    ERRORED = "errored"


class DeltaKind(str, Enum):
    """Payload kinds a model stream can carry."""
    TEXT = "text"
    REASONING = "reasoning"
    TOOL_CALL_START = "tool-call-start"
    TOOL_CALL_ARGS_DELTA = "tool-call-args-delta"
    TOOL_CALL_END = "tool-call-end"


@dataclass
class ToolCallRequest:
    """A completed tool call assembled from stream deltas."""
    tool_call_id: str
    tool_name: str
    arguments: str | dict[str, Any] = ""
    turn_id: str = ""


@dataclass
class ToolInvocationRecord:
    """What one pipeline run carries from validation to its terminal state."""
    tool_call_id: str
    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    input: BaseModel | None = None
    message: ToolMessage | None = None
    gate: ApprovalGate | None = None
    snapshot_id: str | None = None
    resource_path: str | None = None
    decision: ToolOutcome | None = None
    summary: str = ""
    published: bool = False
    states: list[PipelineState] = field(default_factory=list)

    @property
    def state(self) -> PipelineState | None:
        return self.states[-1] if self.states else None

    def transition(self, state: PipelineState) -> None:
        logger.debug(
            "Tool call %s (%s): %s -> %s",
            self.tool_call_id,
            self.tool_name,
            self.state.value if self.state else "-",
            state.value,
        )
        self.states.append(state)
