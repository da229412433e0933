"""Tool contract shared by every built-in tool.

A tool declares a pydantic input model and whether it needs approval.
Gated tools split their work in two: ``prepare`` computes a preview
without touching the vault, ``commit`` performs the mutation once the
pipeline has an ``apply`` decision and a snapshot. Ungated tools do all
their work in ``execute``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Iterable

from pydantic import BaseModel, ValidationError, ValidationInfo

from quill.engine.errors import ToolValidationError, UnknownToolError
from quill.shared.formatters.tool_call import FormattedToolCall, format_tool_call
from quill.shared.models.message import ToolMessage
from quill.shared.services.vault import normalize_vault_path

if TYPE_CHECKING:
    from quill.engine.context import AgentContext

logger = logging.getLogger(__name__)


@dataclass
class Proposal:
    """What a gated tool intends to do, computed before any decision."""
    resource_path: str
    preview: dict[str, Any] = field(default_factory=dict)
    # Tool-private data carried from prepare() to commit().
    extra: dict[str, Any] = field(default_factory=dict)


def clean_vault_path(value: str, info: ValidationInfo, *, allow_root: bool = False) -> str:
    """Field validator body: normalize a model-supplied vault path."""
    root = (info.context or {}).get("vault_root")
    path = normalize_vault_path(value, root)
    if not path and not allow_root:
        raise ValueError("a path inside the vault is required")
    return path


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "input"
    return f"{location}: {first.get('msg', 'invalid value')}"


class BaseTool:
    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    input_model: ClassVar[type[BaseModel]]
    requires_approval: ClassVar[bool] = False
    # commit() reads the resource again, so commits on one path must not interleave
    serialize_commit: ClassVar[bool] = False
    message_class: ClassVar[type[ToolMessage]] = ToolMessage

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    def validate(
        self,
        arguments: str | dict[str, Any] | None,
        context: dict[str, Any] | None = None,
    ) -> BaseModel:
        """Parse raw arguments into the input model. Nothing is touched on failure."""
        if isinstance(arguments, str):
            if not arguments.strip():
                arguments = {}
            else:
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError as exc:
                    raise ToolValidationError(
                        self.name, f"arguments are not valid JSON ({exc.msg})"
                    ) from exc
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ToolValidationError(self.name, "arguments must be a JSON object")
        try:
            return self.input_model.model_validate(arguments, context=context)
        except ValidationError as exc:
            raise ToolValidationError(
                self.name,
                _describe_validation_error(exc),
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

    def schema(self) -> dict[str, Any]:
        """Function-calling schema advertised to the model."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.input_model.model_json_schema(),
        }

    # ── gated tools ──

    async def prepare(self, ctx: AgentContext, params: BaseModel) -> Proposal:
        raise NotImplementedError

    async def commit(
        self, ctx: AgentContext, params: BaseModel, proposal: Proposal
    ) -> dict[str, Any]:
        raise NotImplementedError

    def rejected_result(self, params: BaseModel, proposal: Proposal) -> dict[str, Any]:
        return {
            "success": False,
            "cancelled": True,
            "file_path": proposal.resource_path,
            "message": f"User rejected the change to {proposal.resource_path}",
        }

    # ── ungated tools ──

    async def execute(
        self, ctx: AgentContext, params: BaseModel, message: ToolMessage
    ) -> dict[str, Any]:
        raise NotImplementedError

    # ── presentation ──

    def summarize(self, result: dict[str, Any]) -> str:
        """Text returned to the model for a settled call."""
        return json.dumps(result, ensure_ascii=False)

    def render(
        self,
        arguments: dict[str, Any],
        payload: dict[str, Any] | None,
        success: bool = True,
    ) -> FormattedToolCall:
        result = json.dumps(payload, ensure_ascii=False, default=str) if payload is not None else None
        return format_tool_call(self.name, arguments, result, success)


class ToolRegistry:
    """Name → tool lookup for one agent context."""

    def __init__(self, tools: Iterable[BaseTool] = ()) -> None:
        self._tools: dict[str, BaseTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            logger.warning("Replacing registered tool %s", tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> BaseTool:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name, self.names()) from None

    def names(self) -> list[str]:
        return sorted(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        return [self._tools[name].schema() for name in self.names()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
