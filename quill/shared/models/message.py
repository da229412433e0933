"""Message variants that make up the conversation transcript.

Every variant shares the same streaming lifecycle: it is created empty and
open, accumulates content through ``append_content`` and is closed exactly
once. Closing is one-way. Each variant knows how to project itself into the
entry sent to the model on the next turn and into a Rich renderable.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, ClassVar

from rich.console import Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from quill.shared.formatters.tool_call import (
    FormattedToolCall,
    format_tool_call,
    render_collapsed_rich,
    render_expanded_rich,
)

if TYPE_CHECKING:
    from quill.engine.approval import ApprovalGate

logger = logging.getLogger(__name__)

THINKING_SUFFIX = "thinking"


def derive_message_id(turn_id: str, suffix: str) -> str:
    """Id of a message paired with the turn ``turn_id``.

    Both the thinking message and the stream reconciler go through this
    function so the two sides cannot drift apart.
    """
    return f"{turn_id}-{suffix}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_id() -> str:
    return uuid.uuid4().hex


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    THINKING = "thinking"
    TOOL = "tool"
    QUESTION = "question"
    ERROR = "error"


@dataclass(eq=False)
class Message:
    """Base message. Subclasses set ``role`` and override the projections."""

    role: ClassVar[MessageRole]

    id: str = field(default_factory=_gen_id)
    content: str = ""
    is_streaming: bool = True
    timestamp: datetime = field(default_factory=_utcnow)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "id" and "id" in self.__dict__:
            raise AttributeError("Message id is immutable")
        super().__setattr__(name, value)

    @classmethod
    def create_empty(cls, turn_id: str) -> Message:
        return cls(id=turn_id)

    def append_content(self, fragment: str | None) -> bool:
        """Append a streamed fragment. Returns False once the message is closed."""
        if not self.is_streaming:
            logger.debug("Ignoring append to closed message %s", self.id)
            return False
        self.content += fragment or ""
        return True

    def is_match(self, candidate_id: str) -> bool:
        return candidate_id == self.id

    def close(self) -> None:
        self.is_streaming = False

    def to_transcript_entry(self) -> dict[str, Any] | None:
        return None

    def render(self) -> RenderableType:
        return Text(self.content)


@dataclass(eq=False)
class UserMessage(Message):
    role: ClassVar[MessageRole] = MessageRole.USER

    def __post_init__(self) -> None:
        self.is_streaming = False

    def to_transcript_entry(self) -> dict[str, Any] | None:
        return {"role": "user", "content": self.content}

    def render(self) -> RenderableType:
        return Text.assemble(("you ", "bold green"), self.content)


@dataclass(eq=False)
class AssistantMessage(Message):
    """Model output for one turn. Its id is the turn id."""

    role: ClassVar[MessageRole] = MessageRole.ASSISTANT

    # Tool calls requested during this turn, in the order they completed.
    tool_calls: list[dict[str, Any]] = field(default_factory=list)

    def add_tool_call(self, tool_call_id: str, name: str, arguments: str) -> None:
        self.tool_calls.append(
            {
                "id": tool_call_id,
                "type": "function",
                "function": {"name": name, "arguments": arguments},
            }
        )

    def to_transcript_entry(self) -> dict[str, Any] | None:
        if not self.content and not self.tool_calls:
            return None
        entry: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            entry["tool_calls"] = list(self.tool_calls)
        return entry

    def render(self) -> RenderableType:
        body = Markdown(self.content) if self.content else Text("…", style="dim")
        if self.is_streaming:
            return Group(body, Text("▌", style="yellow"))
        return body


@dataclass(eq=False)
class ThinkingMessage(Message):
    """Reasoning stream paired with an assistant turn.

    Claims every reasoning delta whose turn id derives to its own id.
    Never sent back to the model.
    """

    role: ClassVar[MessageRole] = MessageRole.THINKING

    @classmethod
    def create_empty(cls, turn_id: str) -> ThinkingMessage:
        return cls(id=derive_message_id(turn_id, THINKING_SUFFIX))

    def is_match(self, candidate_id: str) -> bool:
        return derive_message_id(candidate_id, THINKING_SUFFIX) == self.id

    def render(self) -> RenderableType:
        if self.is_streaming:
            return Panel(
                Text(self.content, style="dim italic"),
                title="thinking",
                border_style="dim",
            )
        return Text.from_markup(
            f"[dim]▶ thought ({len(self.content)} chars)[/dim]"
        )


@dataclass(eq=False)
class ToolMessage(Message):
    """One tool invocation. Owned by its pipeline until closed."""

    role: ClassVar[MessageRole] = MessageRole.TOOL

    tool_name: str = ""
    tool_call_id: str = ""
    # Presentation only; never sent to the model.
    children: FormattedToolCall | None = None
    # Text handed back to the model for this call.
    model_result: str = ""
    is_error: bool = False
    error_type: str | None = None
    error_details: Any = None
    status: str = "pending"
    _gate: ApprovalGate | None = field(default=None, repr=False)

    def set_content(self, content: str) -> None:
        if not self.is_streaming:
            logger.debug("Ignoring set_content on closed tool message %s", self.id)
            return
        self.content = content

    def set_children(self, children: FormattedToolCall | None) -> None:
        if not self.is_streaming:
            return
        self.children = children

    def set_status(self, status: str) -> None:
        if self.is_streaming:
            self.status = status

    def fail(self, error_type: str, error: str, details: Any = None) -> None:
        """Switch this message to its error form."""
        if not self.is_streaming:
            return
        self.is_error = True
        self.error_type = error_type
        self.error_details = details
        self.status = "error"
        self.content = json.dumps(
            {"_isError": True, "error": error, "details": details, "type": error_type},
            default=str,
        )
        self.model_result = self.content

    # ── approval wiring ──

    def attach_gate(self, gate: ApprovalGate) -> None:
        self._gate = gate
        self.status = "awaiting"

    @property
    def awaiting_decision(self) -> bool:
        return self._gate is not None and not self._gate.resolved

    def resolve(self, value: Any) -> bool:
        """Hand a decision or answer to the attached gate."""
        if self._gate is None:
            logger.debug("No pending gate on %s", self.id)
            return False
        return self._gate.resolve(value)

    def apply(self) -> bool:
        from quill.engine.models import Decision

        return self.resolve(Decision.APPLY)

    def reject(self) -> bool:
        from quill.engine.models import Decision

        return self.resolve(Decision.REJECT)

    def decision_callbacks(self) -> tuple[Callable[[], bool], Callable[[], bool]]:
        """``(on_apply, on_reject)`` for the rendering layer."""
        return self.apply, self.reject

    def close(self) -> None:
        super().close()
        # The gate is not needed once settled; dropping it lets an abandoned
        # wait be collected together with the message.
        self._gate = None

    # ── projections ──

    def to_transcript_entry(self) -> dict[str, Any] | None:
        if self.is_streaming:
            return None
        return {
            "role": "tool",
            "content": self.model_result or self.content,
            "name": self.tool_name,
            "tool_call_id": self.tool_call_id,
        }

    def render(self) -> RenderableType:
        fmt = self.children or format_tool_call(self.tool_name, {})
        if self.is_streaming:
            return Text.from_markup(render_expanded_rich(fmt, self.status))
        return Text.from_markup(render_collapsed_rich(fmt, self.status))


@dataclass(eq=False)
class QuestionMessage(ToolMessage):
    """A tool call that waits for a free-form answer instead of apply/reject."""

    role: ClassVar[MessageRole] = MessageRole.QUESTION

    question: str = ""
    options: list[str] = field(default_factory=list)
    answer: str | None = None

    def answer_with(self, answer: str) -> bool:
        return self.resolve(answer)

    def render(self) -> RenderableType:
        if not self.is_streaming:
            return super().render()
        lines = [Text(self.question, style="bold")]
        for index, option in enumerate(self.options, start=1):
            lines.append(Text(f"  {index}. {option}"))
        return Panel(Group(*lines), title="question", border_style="yellow")


@dataclass(eq=False)
class ErrorMessage(Message):
    """Terminal error. Closed as soon as it is created."""

    role: ClassVar[MessageRole] = MessageRole.ERROR

    tool_name: str = ""
    tool_call_id: str = ""
    error_type: str = "error"
    details: Any = None

    def __post_init__(self) -> None:
        self.is_streaming = False

    def payload(self) -> dict[str, Any]:
        return {
            "_isError": True,
            "error": self.content,
            "details": self.details,
            "type": self.error_type,
        }

    def to_transcript_entry(self) -> dict[str, Any] | None:
        # A standalone error has no call to answer.
        if not self.tool_call_id:
            return None
        return {
            "role": "tool",
            "content": json.dumps(self.payload(), default=str),
            "name": self.tool_name,
            "tool_call_id": self.tool_call_id,
        }

    def render(self) -> RenderableType:
        title = f"{self.tool_name} failed" if self.tool_name else "error"
        body = Text(self.content)
        if self.tool_call_id:
            body.append(f"\ncall {self.tool_call_id} · {self.error_type}", style="dim")
        return Panel(body, title=title, border_style="red")
