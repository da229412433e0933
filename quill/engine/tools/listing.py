"""list: show the folder tree under a vault path."""
from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from quill.engine.tools.base import BaseTool, clean_vault_path
from quill.shared.models.message import ToolMessage

if TYPE_CHECKING:
    from quill.engine.context import AgentContext
    from quill.shared.services.vault import ResourceStore


class ListInput(BaseModel):
    path: str = Field(
        default="",
        description="Folder path relative to the vault root; omit for the root.",
    )
    ignore: list[str] = Field(
        default_factory=list,
        description="Glob patterns of names to leave out, e.g. ['*.png', 'archive'].",
    )

    @field_validator("path")
    @classmethod
    def _clean_path(cls, value: str, info: ValidationInfo) -> str:
        return clean_vault_path(value, info, allow_root=True)


@dataclass
class _Node:
    name: str
    is_folder: bool
    children: list[_Node] = field(default_factory=list)


@dataclass
class _Walk:
    limit: int
    patterns: list[str]
    file_count: int = 0
    folder_count: int = 0
    total: int = 0
    truncated: bool = False

    def ignored(self, name: str) -> bool:
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.patterns)


async def _build_tree(store: ResourceStore, path: str, walk: _Walk) -> list[_Node]:
    children = await store.list_children(path)
    # Folders first, then by name.
    children.sort(key=lambda c: (not c.is_container, c.name.lower()))
    nodes: list[_Node] = []
    for child in children:
        if walk.total >= walk.limit:
            walk.truncated = True
            break
        if walk.ignored(child.name):
            continue
        walk.total += 1
        if child.is_container:
            walk.folder_count += 1
            child_path = f"{path}/{child.name}" if path else child.name
            nodes.append(
                _Node(child.name, True, await _build_tree(store, child_path, walk))
            )
        else:
            walk.file_count += 1
            nodes.append(_Node(child.name, False))
    return nodes


def _render_tree(nodes: list[_Node], indent: str = "") -> list[str]:
    lines: list[str] = []
    for node in nodes:
        if node.is_folder:
            lines.append(f"{indent}{node.name}/")
            lines.extend(_render_tree(node.children, indent + "  "))
        else:
            lines.append(f"{indent}{node.name}")
    return lines


class ListTool(BaseTool):
    name = "list"
    description = (
        "List files and folders under a vault path as an indented tree, "
        "folders first. Hidden system folders are skipped."
    )
    input_model = ListInput

    async def execute(
        self, ctx: AgentContext, params: ListInput, message: ToolMessage
    ) -> dict[str, Any]:
        walk = _Walk(
            limit=ctx.config.list_limit,
            patterns=[*ctx.config.list_ignore, *params.ignore],
        )
        tree = await _build_tree(ctx.store, params.path, walk)
        header = params.path or "/"
        lines = [header if header.endswith("/") else f"{header}/"]
        lines.extend(_render_tree(tree, "  "))
        return {
            "path": header,
            "tree": "\n".join(lines),
            "stats": {
                "fileCount": walk.file_count,
                "folderCount": walk.folder_count,
                "truncated": walk.truncated,
            },
        }

    def summarize(self, result: dict[str, Any]) -> str:
        text = result["tree"]
        stats = result["stats"]
        if stats["truncated"]:
            shown = stats["fileCount"] + stats["folderCount"]
            text += f"\n(truncated after {shown} entries)"
        return text
