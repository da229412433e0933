"""createArtifact: save a reusable command or skill as a note."""
from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

from quill.engine.errors import ToolExecutionError
from quill.engine.tools.base import Proposal
from quill.engine.tools.write import NoteMutationTool

if TYPE_CHECKING:
    from quill.engine.context import AgentContext

SKILL_NAME_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
MAX_SKILL_NAME = 64


class ArtifactInput(BaseModel):
    type: Literal["command", "skill"] = Field(
        description="Kind of artifact: 'command' or 'skill'."
    )
    name: str = Field(
        description=(
            "Artifact name. Commands use lowercase with underscores "
            "(translate_text); skills use lowercase with hyphens (translate-text)."
        )
    )
    description: str = Field(description="One-line description of what it does.")
    content: str = Field(
        description="Body: the command template or the skill instructions."
    )
    license: str | None = Field(default=None, description="Skills only.")
    compatibility: str | None = Field(default=None, description="Skills only.")
    metadata: dict[str, str] | None = Field(
        default=None, description="Skills only: extra key/value pairs."
    )


def command_name(raw: str) -> str:
    """Lowercase, spaces to underscores, then keep only [a-z0-9_]."""
    name = re.sub(r"\s+", "_", raw.strip().lower())
    return re.sub(r"[^a-z0-9_]", "", name)


def validate_skill_name(name: str) -> str | None:
    """Error text for an invalid skill name, None when valid."""
    if not name:
        return "Skill name is required"
    if len(name) > MAX_SKILL_NAME:
        return f"Skill name must be 1-{MAX_SKILL_NAME} characters"
    if not SKILL_NAME_RE.match(name):
        return "Skill name must be lowercase alphanumeric with single hyphen separators"
    return None


def format_command_file(name: str, description: str, template: str) -> str:
    return f"---\nname: {name}\ndescription: {description}\n---\n{template}"


def format_skill_file(
    name: str,
    description: str,
    body: str,
    license: str | None = None,
    compatibility: str | None = None,
    metadata: dict[str, str] | None = None,
) -> str:
    lines = ["---", f"name: {name}", f"description: {description}"]
    if license:
        lines.append(f"license: {license}")
    if compatibility:
        lines.append(f"compatibility: {compatibility}")
    if metadata:
        lines.append("metadata:")
        lines.extend(f"  {key}: {value}" for key, value in metadata.items())
    lines.append("---")
    return "\n".join(lines) + "\n\n" + body


class CreateArtifactTool(NoteMutationTool):
    name = "createArtifact"
    description = (
        "Create or update a command (<root>/commands/<name>.md, triggered with "
        "/<name>, supports $ARGUMENTS and $1, $2) or a skill "
        "(<root>/skills/<name>/SKILL.md, loaded on demand). Requires approval."
    )
    input_model = ArtifactInput

    async def prepare(self, ctx: AgentContext, params: ArtifactInput) -> Proposal:
        root = ctx.config.artifact_root.strip("/")
        reserved = set(ctx.config.reserved_artifact_names)

        if params.type == "command":
            name = command_name(params.name)
            if not name:
                raise ToolExecutionError(
                    self.name,
                    "Command name must contain at least one alphanumeric character",
                )
            path = f"{root}/commands/{name}.md"
            content = format_command_file(name, params.description, params.content)
        else:
            name = params.name.strip()
            error = validate_skill_name(name)
            if error:
                raise ToolExecutionError(self.name, error)
            path = f"{root}/skills/{name}/SKILL.md"
            content = format_skill_file(
                name,
                params.description,
                params.content,
                params.license,
                params.compatibility,
                params.metadata,
            )

        if name in reserved:
            raise ToolExecutionError(
                self.name, f'"{name}" is a reserved name and cannot be used'
            )

        exists = await ctx.store.exists(path)
        old_content = await ctx.store.read(path) if exists else ""
        proposal = self.build_proposal(path, old_content, content, not exists)
        proposal.preview.update(
            {"type": params.type, "name": name, "content": content}
        )
        return proposal

    async def commit(
        self, ctx: AgentContext, params: ArtifactInput, proposal: Proposal
    ) -> dict[str, Any]:
        result = await super().commit(ctx, params, proposal)
        kind = "Command" if params.type == "command" else "Skill"
        verb = "created" if proposal.preview["is_new_file"] else "updated"
        name = proposal.preview["name"]
        result.update(
            {
                "type": params.type,
                "name": name,
                "message": f'{kind} "{name}" {verb} successfully',
            }
        )
        return result

    def rejected_result(self, params: ArtifactInput, proposal: Proposal) -> dict[str, Any]:
        result = super().rejected_result(params, proposal)
        result.update(
            {
                "type": params.type,
                "name": proposal.preview["name"],
                "message": f"User rejected the {params.type} creation",
            }
        )
        return result
