"""search: find notes by file name or content."""
from __future__ import annotations

import fnmatch
import logging
import posixpath
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from pydantic import AliasChoices, BaseModel, Field, ValidationInfo, field_validator

from quill.engine.errors import ToolExecutionError
from quill.engine.tools.base import BaseTool, clean_vault_path
from quill.shared.models.message import ToolMessage
from quill.shared.services.vault import walk_files

if TYPE_CHECKING:
    from quill.engine.context import AgentContext

logger = logging.getLogger(__name__)


class SearchInput(BaseModel):
    query: str = Field(
        min_length=1,
        description="Keyword, or a regular expression when use_regex is set.",
    )
    search_type: Literal["content", "filename", "both"] = Field(
        default="both",
        validation_alias=AliasChoices("search_type", "searchType"),
        description="Search note content, file names, or both.",
    )
    case_sensitive: bool = Field(
        default=False,
        validation_alias=AliasChoices("case_sensitive", "caseSensitive"),
        description="Match case exactly.",
    )
    use_regex: bool = Field(
        default=False,
        validation_alias=AliasChoices("use_regex", "useRegex"),
        description="Treat the query as a regular expression.",
    )
    limit: int = Field(
        default=50, ge=1, le=200, description="Maximum number of files returned."
    )
    path: str = Field(
        default="",
        description="Only search below this folder; empty searches the whole vault.",
    )
    show_context_lines: int = Field(
        default=1,
        ge=0,
        le=5,
        validation_alias=AliasChoices("show_context_lines", "showContextLines"),
        description="Lines of context shown around each matching line.",
    )

    @field_validator("path")
    @classmethod
    def _clean_path(cls, value: str, info: ValidationInfo) -> str:
        return clean_vault_path(value, info, allow_root=True)


@dataclass
class LineMatch:
    line_number: int
    line_text: str
    start: int
    end: int
    before: list[str] = field(default_factory=list)
    after: list[str] = field(default_factory=list)


@dataclass
class FileResult:
    path: str
    filename_match: bool = False
    matches: list[LineMatch] = field(default_factory=list)

    @property
    def score(self) -> int:
        return len(self.matches) + (1 if self.filename_match else 0)


def compile_pattern(query: str, use_regex: bool, case_sensitive: bool) -> re.Pattern[str]:
    flags = 0 if case_sensitive else re.IGNORECASE
    source = query if use_regex else re.escape(query)
    try:
        return re.compile(source, flags)
    except re.error as exc:
        raise ToolExecutionError("search", f"invalid regular expression: {exc}") from exc


def search_text(content: str, pattern: re.Pattern[str], context_lines: int) -> list[LineMatch]:
    lines = content.split("\n")
    matches: list[LineMatch] = []
    for index, line in enumerate(lines):
        found = pattern.search(line)
        if found is None:
            continue
        matches.append(
            LineMatch(
                line_number=index + 1,
                line_text=line,
                start=found.start(),
                end=found.end(),
                before=lines[max(0, index - context_lines):index] if context_lines else [],
                after=lines[index + 1:index + 1 + context_lines] if context_lines else [],
            )
        )
    return matches


def _highlight(match: LineMatch) -> str:
    text = match.line_text
    if match.start >= match.end:
        return text
    return f"{text[:match.start]}**{text[match.start:match.end]}**{text[match.end:]}"


def format_results(
    results: list[FileResult], total_matches: int, elapsed_ms: int, truncated: bool
) -> str:
    if not results:
        return "No matching files found."
    out = [
        f"## Search Results ({len(results)} files found, {total_matches} matches)",
        f"Search time: {elapsed_ms}ms",
    ]
    if truncated:
        out.append(f"*Note: Results truncated, showing only first {len(results)} files*")
    out.append("")
    for result in results:
        icon = "📁" if result.filename_match else "📄"
        out.append(f"### {icon} {posixpath.basename(result.path)}")
        out.append(f"Path: {result.path}")
        out.append("")
        if result.filename_match:
            out.append("*(Filename match)*")
            out.append("")
        if result.matches:
            out.append("Matched content:")
            for match in result.matches:
                out.extend(f"  {line}" for line in match.before)
                out.append(f"- Line {match.line_number}: {_highlight(match)}")
                out.extend(f"  {line}" for line in match.after)
        out.append("")
    return "\n".join(out)


class SearchTool(BaseTool):
    name = "search"
    description = (
        "Search markdown notes in the vault by file name and/or content. "
        "Supports plain text or regular expressions, case sensitivity, a "
        "folder scope and context lines around each match."
    )
    input_model = SearchInput

    async def execute(
        self, ctx: AgentContext, params: SearchInput, message: ToolMessage
    ) -> dict[str, Any]:
        started = time.perf_counter()
        pattern = compile_pattern(params.query, params.use_regex, params.case_sensitive)
        ignore = ctx.config.list_ignore

        def skip(name: str) -> bool:
            return any(fnmatch.fnmatchcase(name, p) for p in ignore)

        paths = [
            path
            async for path in walk_files(ctx.store, params.path, skip=skip)
            if path.lower().endswith(".md")
        ]
        if not paths and params.path:
            raise ToolExecutionError(
                self.name, f'No markdown files found in path "{params.path}"'
            )

        results: list[FileResult] = []
        for path in paths:
            result = FileResult(path=path)
            if params.search_type != "content":
                result.filename_match = pattern.search(posixpath.basename(path)) is not None
            if params.search_type != "filename" and not result.filename_match:
                content = await ctx.store.read(path)
                result.matches = search_text(content, pattern, params.show_context_lines)
            if result.filename_match or result.matches:
                results.append(result)

        results.sort(key=lambda r: (-r.score, r.path))
        truncated = len(results) > params.limit
        results = results[: params.limit]
        total_matches = sum(r.score for r in results)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.debug(
            "search %r: %d file(s), %d match(es) in %dms",
            params.query, len(results), total_matches, elapsed_ms,
        )
        return {
            "query": params.query,
            "matched_files": len(results),
            "total_matches": total_matches,
            "truncated": truncated,
            "text": format_results(results, total_matches, elapsed_ms, truncated),
        }

    def summarize(self, result: dict[str, Any]) -> str:
        return result["text"]
