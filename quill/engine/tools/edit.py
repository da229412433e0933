"""editFile: replace one exact occurrence of a string in a note."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, Field, ValidationInfo, field_validator

from quill.engine.errors import ResourceNotFoundError, ToolExecutionError
from quill.engine.tools.base import Proposal, clean_vault_path
from quill.engine.tools.write import NoteMutationTool, unified_diff

if TYPE_CHECKING:
    from quill.engine.context import AgentContext

logger = logging.getLogger(__name__)


class EditInput(BaseModel):
    file_path: str = Field(
        validation_alias=AliasChoices("file_path", "filePath", "path"),
        description="Vault-relative path of the note to edit.",
    )
    old_string: str = Field(
        default="",
        validation_alias=AliasChoices("old_string", "oldString"),
        description=(
            "Exact text to replace. Must occur exactly once; include surrounding "
            "lines to make it unique. Leave empty to create a new note."
        ),
    )
    new_string: str = Field(
        validation_alias=AliasChoices("new_string", "newString"),
        description="Replacement text.",
    )

    @field_validator("file_path")
    @classmethod
    def _clean_path(cls, value: str, info: ValidationInfo) -> str:
        return clean_vault_path(value, info)


class EditFileTool(NoteMutationTool):
    name = "editFile"
    description = (
        "Edit a note by replacing one exact, unique occurrence of old_string "
        "with new_string. With an empty old_string, creates a new note whose "
        "content is new_string. Requires the user's approval."
    )
    input_model = EditInput
    serialize_commit = True

    async def prepare(self, ctx: AgentContext, params: EditInput) -> Proposal:
        path = params.file_path
        exists = await ctx.store.exists(path)

        if not params.old_string:
            if exists:
                raise ToolExecutionError(
                    self.name,
                    f"{path} already exists; provide old_string to edit it",
                )
            return self.build_proposal(path, "", params.new_string, True)

        if not exists:
            raise ResourceNotFoundError(path, "edit")
        if params.old_string == params.new_string:
            raise ToolExecutionError(self.name, "old_string and new_string are identical")

        old_content = await ctx.store.read(path)
        new_content = self._replace_unique(path, old_content, params)
        return self.build_proposal(path, old_content, new_content, False)

    def _replace_unique(self, path: str, content: str, params: EditInput) -> str:
        occurrences = content.count(params.old_string)
        if occurrences == 0:
            raise ToolExecutionError(self.name, f"old_string not found in {path}")
        if occurrences > 1:
            raise ToolExecutionError(
                self.name,
                f"old_string occurs {occurrences} times in {path}; "
                "include more context to make it unique",
            )
        return content.replace(params.old_string, params.new_string, 1)

    async def commit(
        self, ctx: AgentContext, params: EditInput, proposal: Proposal
    ) -> dict[str, Any]:
        """Apply the replacement to the note as it is now, not as previewed."""
        path = proposal.resource_path
        if not params.old_string:
            if await ctx.store.exists(path):
                raise ToolExecutionError(
                    self.name, f"{path} was created while awaiting approval"
                )
            return await super().commit(ctx, params, proposal)

        current = await ctx.store.read(path)
        new_content = self._replace_unique(path, current, params)
        await ctx.store.write(path, new_content)
        logger.info("%s applied to %s", self.name, path)
        return {
            "success": True,
            "file_path": path,
            "is_new_file": False,
            "diff": unified_diff(current, new_content, path),
        }
