"""Built-in vault tools."""
from __future__ import annotations

import logging

from quill.engine.config import EngineConfig
from quill.engine.tools.artifact import CreateArtifactTool
from quill.engine.tools.base import BaseTool, Proposal, ToolRegistry
from quill.engine.tools.edit import EditFileTool
from quill.engine.tools.listing import ListTool
from quill.engine.tools.question import QuestionTool
from quill.engine.tools.read_note import ReadNoteByPathTool
from quill.engine.tools.search import SearchTool
from quill.engine.tools.web_search import WebSearchTool
from quill.engine.tools.write import WriteTool

logger = logging.getLogger(__name__)

BUILTIN_TOOLS: tuple[type[BaseTool], ...] = (
    WriteTool,
    EditFileTool,
    CreateArtifactTool,
    ListTool,
    ReadNoteByPathTool,
    SearchTool,
    QuestionTool,
    WebSearchTool,
)


def build_default_tools(config: EngineConfig | None = None) -> ToolRegistry:
    """Registry of the built-in tools allowed by ``config.enabled_tools``.

    An empty ``enabled_tools`` enables everything.
    """
    config = config or EngineConfig()
    enabled = set(config.enabled_tools)
    unknown = enabled - {cls.name for cls in BUILTIN_TOOLS}
    if unknown:
        logger.warning("Ignoring unknown tools in config: %s", ", ".join(sorted(unknown)))

    registry = ToolRegistry()
    for cls in BUILTIN_TOOLS:
        if enabled and cls.name not in enabled:
            continue
        registry.register(cls())
    return registry


__all__ = [
    "BUILTIN_TOOLS",
    "BaseTool",
    "CreateArtifactTool",
    "EditFileTool",
    "ListTool",
    "Proposal",
    "QuestionTool",
    "ReadNoteByPathTool",
    "SearchTool",
    "ToolRegistry",
    "WebSearchTool",
    "WriteTool",
    "build_default_tools",
]
