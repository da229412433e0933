"""write: create a note or replace its whole content, after approval."""
from __future__ import annotations

import difflib
import logging
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, Field, ValidationInfo, field_validator

from quill.engine.tools.base import BaseTool, Proposal, clean_vault_path
from quill.shared.services.vault import parent_path

if TYPE_CHECKING:
    from quill.engine.context import AgentContext

logger = logging.getLogger(__name__)


def unified_diff(old: str, new: str, path: str) -> str:
    """Unified diff of two note versions, empty when they are identical."""
    lines = difflib.unified_diff(
        old.splitlines(),
        new.splitlines(),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
        lineterm="",
    )
    return "\n".join(lines)


class WriteInput(BaseModel):
    file_path: str = Field(
        validation_alias=AliasChoices("file_path", "filePath", "path"),
        description="Vault-relative path of the note, e.g. 'projects/plan.md'.",
    )
    content: str = Field(description="The complete new content of the note.")

    @field_validator("file_path")
    @classmethod
    def _clean_path(cls, value: str, info: ValidationInfo) -> str:
        return clean_vault_path(value, info)


class NoteMutationTool(BaseTool):
    """Shared preview/commit flow for tools that rewrite one note."""

    requires_approval = True

    def build_proposal(
        self, path: str, old_content: str, new_content: str, is_new_file: bool
    ) -> Proposal:
        return Proposal(
            resource_path=path,
            preview={
                "file_path": path,
                "old_content": old_content,
                "new_content": new_content,
                "is_new_file": is_new_file,
                "diff": unified_diff(old_content, new_content, path),
            },
        )

    async def commit(
        self, ctx: AgentContext, params: BaseModel, proposal: Proposal
    ) -> dict[str, Any]:
        path = proposal.resource_path
        content = proposal.preview["new_content"]
        # The note may have appeared or vanished while the preview waited.
        if await ctx.store.exists(path):
            await ctx.store.write(path, content)
        else:
            folder = parent_path(path)
            if folder:
                await ctx.store.mkdir_recursive_if_missing(folder)
            await ctx.store.create(path, content)
        logger.info("%s applied to %s", self.name, path)
        return {
            "success": True,
            "file_path": path,
            "is_new_file": proposal.preview["is_new_file"],
            "diff": proposal.preview["diff"],
        }


class WriteTool(NoteMutationTool):
    name = "write"
    description = (
        "Write a note in the vault. Creates the note (and missing folders) if "
        "it does not exist, otherwise replaces its entire content. The user "
        "sees a diff and must approve before anything is written."
    )
    input_model = WriteInput

    async def prepare(self, ctx: AgentContext, params: WriteInput) -> Proposal:
        path = params.file_path
        exists = await ctx.store.exists(path)
        old_content = await ctx.store.read(path) if exists else ""
        return self.build_proposal(path, old_content, params.content, not exists)
