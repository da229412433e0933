"""readNoteByPath: read a markdown note with line numbers."""
from __future__ import annotations

import posixpath
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, Field, ValidationInfo, field_validator

from quill.engine.errors import ResourceNotFoundError, ToolExecutionError
from quill.engine.tools.base import BaseTool, clean_vault_path
from quill.shared.models.message import ToolMessage

if TYPE_CHECKING:
    from quill.engine.context import AgentContext


class ReadNoteInput(BaseModel):
    file_path: str = Field(
        validation_alias=AliasChoices("file_path", "filePath", "path"),
        description="Vault-relative path of the note, e.g. 'projects/docs/README.md'.",
    )

    @field_validator("file_path")
    @classmethod
    def _clean_path(cls, value: str, info: ValidationInfo) -> str:
        return clean_vault_path(value, info)


def number_lines(content: str) -> str:
    return "\n".join(
        f"{index}: {line}" for index, line in enumerate(content.split("\n"), start=1)
    )


class ReadNoteByPathTool(BaseTool):
    name = "readNoteByPath"
    description = (
        "Read a markdown note by its vault path. Returns the note title, path "
        "and the content with line numbers. Only .md files can be read."
    )
    input_model = ReadNoteInput

    async def execute(
        self, ctx: AgentContext, params: ReadNoteInput, message: ToolMessage
    ) -> dict[str, Any]:
        path = params.file_path
        if not path.lower().endswith(".md"):
            raise ToolExecutionError(
                self.name, f'Only .md files can be read, got "{path}"'
            )
        if not await ctx.store.exists(path):
            raise ResourceNotFoundError(path)
        content = await ctx.store.read(path)
        title = posixpath.splitext(posixpath.basename(path))[0]
        return {
            "file_path": path,
            "title": title,
            "line_count": len(content.split("\n")),
            "text": (
                f"<metadata>\ntitle: {title}\nnote path: {path}\n</metadata>\n"
                f"<content>\n{number_lines(content)}\n</content>"
            ),
        }

    def summarize(self, result: dict[str, Any]) -> str:
        return result["text"]
