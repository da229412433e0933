"""Rich tool call formatting with per-tool-type rendering.

Provides a registry-based formatter system that parses tool arguments and
the structured payload a tool produced, and builds an intermediate
representation. Renderers then convert the IR to Rich markup for the
terminal and the approval modal.

Adding a new tool format requires only a single decorated function:

    @tool_formatter("myTool")
    def _format_my_tool(name, args, result, success):
        return FormattedToolCall(icon="🔧", label=name, summary=..., sections=[...])

``result`` is the JSON payload string the pipeline attaches: the preview
while a decision is pending, the final result once the call is settled.
"""

from __future__ import annotations

import ast
import json
from dataclasses import dataclass, field
from typing import Any, Callable


# ── Intermediate Representation ──


@dataclass
class Section:
    """A typed content section in the expanded tool call view.

    Supported kinds:
        "patch"        → content: list[str] (unified diff lines)
        "diff"         → content: {"old_lines": list[str], "new_lines": list[str]}
        "code"         → content: {"language": str, "text": str}
        "path"         → content: str (vault path)
        "checklist"    → content: list[{"text": str, "done": bool}]
        "kv"           → content: dict[str, str]
        "plain"        → content: str
        "result_block" → content: {"text": str, "status": str}
    """

    kind: str
    title: str = ""
    content: Any = None


@dataclass
class FormattedToolCall:
    """Structured representation of a formatted tool call."""

    icon: str = ""
    label: str = ""
    summary: str = ""
    file_path: str = ""  # Primary vault path (for click-to-open)
    sections: list[Section] = field(default_factory=list)


# ── Argument Parsing ──


def parse_args(arguments: str | dict | None) -> dict:
    """Parse a tool arguments string to a dict, falling back gracefully.

    Streamed tool calls deliver arguments as a JSON string, so
    ``json.loads`` succeeds for the common case. Falls back to
    ``ast.literal_eval`` for Python repr format, then to ``{"_raw": arguments}``.
    """
    if isinstance(arguments, dict):
        return arguments
    if not arguments:
        return {}
    try:
        parsed = json.loads(arguments)
        if isinstance(parsed, dict):
            return parsed
        return {"_raw": arguments}
    except (json.JSONDecodeError, TypeError):
        pass
    try:
        parsed = ast.literal_eval(arguments)
        if isinstance(parsed, dict):
            return parsed
        return {"_raw": arguments}
    except (ValueError, SyntaxError):
        pass
    return {"_raw": arguments}


def _parse_result_json(result: str | None) -> dict | None:
    """Parse a JSON object payload, returning None for plain text results."""
    if not result:
        return None
    try:
        parsed = json.loads(result)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


# ── Formatter Registry ──

_FORMATTERS: dict[str, Callable[..., FormattedToolCall]] = {}
_TOOL_NAME_ALIASES: dict[str, str] = {
    "write_file": "write",
    "write_note": "write",
    "edit": "editFile",
    "edit_file": "editFile",
    "create_artifact": "createArtifact",
    "ls": "list",
    "list_directory": "list",
    "read_note": "readNoteByPath",
    "read_note_by_path": "readNoteByPath",
    "grep": "search",
    "search_vault": "search",
    "ask_question": "askQuestion",
    "ask_user": "askQuestion",
    "web_search": "exaWebSearch",
    "exa_web_search": "exaWebSearch",
}


def tool_formatter(name: str):
    """Decorator to register a formatter for a given tool name."""

    def decorator(fn: Callable[..., FormattedToolCall]):
        _FORMATTERS[name] = fn
        return fn

    return decorator


def _normalize_tool_name(name: str) -> str:
    """Map provider-style aliases to canonical tool names.

    E.g. ``write_file`` → ``write`` and ``ask_user`` → ``askQuestion``.
    """
    return _TOOL_NAME_ALIASES.get(name.lower(), name)


def format_tool_call(
    name: str,
    arguments: str | dict | None,
    result: str | None = None,
    success: bool = True,
) -> FormattedToolCall:
    """Main entry point: dispatch to a registered formatter or the default."""
    args = parse_args(arguments)
    formatter = _FORMATTERS.get(name)
    if formatter is None:
        formatter = _FORMATTERS.get(_normalize_tool_name(name), _format_default)
    return formatter(name, args, result, success)


# ── Helpers ──


def _basename(path: str) -> str:
    """Extract a short display path (last 2 components)."""
    if not path:
        return ""
    parts = path.replace("\\", "/").rstrip("/").split("/")
    return "/".join(parts[-2:]) if len(parts) >= 2 else parts[-1]


def _trunc(text: str, length: int = 60) -> str:
    """Truncate text with ellipsis."""
    if not text:
        return ""
    if len(text) <= length:
        return text
    return text[: length - 3] + "..."


def _result_section(result: str | None, title: str = "Output") -> list[Section]:
    """Return a plain-text result section if result is available."""
    if result:
        return [Section(kind="plain", title=title, content=result)]
    return []


def _decision_sections(payload: dict | None) -> list[Section]:
    """Sections describing a cancellation or an error inside a payload."""
    if not payload:
        return []
    if payload.get("cancelled"):
        return [
            Section(
                kind="result_block",
                title="Rejected",
                content={"text": str(payload.get("message", "")), "status": "rejected"},
            )
        ]
    if payload.get("error"):
        text = str(payload["error"])
        if payload.get("details"):
            text += f"\n{payload['details']}"
        return [
            Section(
                kind="result_block",
                title="Error",
                content={"text": text, "status": "error"},
            )
        ]
    return []


def _patch_section(payload: dict | None) -> list[Section]:
    if not payload or not payload.get("diff"):
        return []
    return [
        Section(kind="patch", title="Changes", content=str(payload["diff"]).splitlines())
    ]


# ── Formatters ──


@tool_formatter("write")
def _format_write(name: str, args: dict, result: str | None, success: bool) -> FormattedToolCall:
    file_path = args.get("file_path") or args.get("filePath") or ""
    payload = _parse_result_json(result)
    if payload and payload.get("file_path"):
        file_path = payload["file_path"]

    sections: list[Section] = []
    if file_path:
        sections.append(Section(kind="path", content=file_path))
    if payload and "is_new_file" in payload:
        sections.append(
            Section(
                kind="kv",
                content={"new file": "yes" if payload["is_new_file"] else "no"},
            )
        )
    sections.extend(_patch_section(payload))
    sections.extend(_decision_sections(payload))
    if payload is None:
        sections.extend(_result_section(result))

    return FormattedToolCall(
        icon="\U0001f4dd",
        label="Write",
        summary=_basename(file_path),
        file_path=file_path,
        sections=sections,
    )


@tool_formatter("editFile")
def _format_edit(name: str, args: dict, result: str | None, success: bool) -> FormattedToolCall:
    file_path = args.get("file_path") or args.get("filePath") or ""
    old_string = args.get("old_string") or args.get("oldString") or ""
    new_string = args.get("new_string") or args.get("newString") or ""
    payload = _parse_result_json(result)

    sections: list[Section] = []
    if file_path:
        sections.append(Section(kind="path", content=file_path))
    patch = _patch_section(payload)
    if patch:
        sections.extend(patch)
    elif old_string or new_string:
        sections.append(
            Section(
                kind="diff",
                content={
                    "old_lines": old_string.splitlines() if old_string else [],
                    "new_lines": new_string.splitlines() if new_string else [],
                },
            )
        )
    sections.extend(_decision_sections(payload))

    return FormattedToolCall(
        icon="✏",
        label="Edit",
        summary=_basename(file_path),
        file_path=file_path,
        sections=sections,
    )


@tool_formatter("createArtifact")
def _format_create_artifact(name: str, args: dict, result: str | None, success: bool) -> FormattedToolCall:
    artifact_type = str(args.get("type", "") or "")
    artifact_name = str(args.get("name", "") or "")
    payload = _parse_result_json(result) or {}
    file_path = str(payload.get("file_path", "") or "")
    artifact_name = str(payload.get("name", "") or artifact_name)

    sections: list[Section] = []
    if file_path:
        sections.append(Section(kind="path", content=file_path))
    details = {"type": artifact_type or "?", "name": artifact_name}
    if args.get("description"):
        details["description"] = _trunc(str(args["description"]), 80)
    if "is_new_file" in payload:
        details["new file"] = "yes" if payload["is_new_file"] else "no"
    sections.append(Section(kind="kv", content=details))
    content = payload.get("content")
    if content:
        sections.append(
            Section(
                kind="code",
                title="File",
                content={"language": "markdown", "text": str(content)},
            )
        )
    sections.extend(_decision_sections(payload))

    label = "Create Skill" if artifact_type == "skill" else "Create Command"
    return FormattedToolCall(
        icon="✨",
        label=label,
        summary=artifact_name,
        file_path=file_path,
        sections=sections,
    )


@tool_formatter("list")
def _format_list(name: str, args: dict, result: str | None, success: bool) -> FormattedToolCall:
    path = str(args.get("path", "") or "") or "/"
    payload = _parse_result_json(result) or {}
    stats = payload.get("stats") or {}

    summary = path
    if stats.get("fileCount") or stats.get("folderCount"):
        summary += (
            f" ({stats.get('folderCount', 0)} folders,"
            f" {stats.get('fileCount', 0)} files)"
        )
    if stats.get("truncated"):
        summary += " [truncated]"

    sections: list[Section] = []
    tree = payload.get("tree")
    if tree:
        sections.append(
            Section(kind="code", title="Tree", content={"language": "text", "text": tree})
        )
    sections.extend(_decision_sections(payload))

    return FormattedToolCall(
        icon="\U0001f4c2",
        label="List",
        summary=summary,
        file_path=path if path != "/" else "",
        sections=sections,
    )


@tool_formatter("readNoteByPath")
def _format_read_note(name: str, args: dict, result: str | None, success: bool) -> FormattedToolCall:
    file_path = args.get("file_path") or args.get("filePath") or ""
    payload = _parse_result_json(result) or {}

    sections: list[Section] = []
    if file_path:
        sections.append(Section(kind="path", content=file_path))
    if payload.get("line_count") is not None:
        sections.append(Section(kind="kv", content={"lines": str(payload["line_count"])}))
    sections.extend(_decision_sections(payload))

    return FormattedToolCall(
        icon="\U0001f4c4",
        label="Read Note",
        summary=_basename(file_path),
        file_path=file_path,
        sections=sections,
    )


@tool_formatter("search")
def _format_search(name: str, args: dict, result: str | None, success: bool) -> FormattedToolCall:
    query = str(args.get("query", "") or "")
    path = str(args.get("path", "") or "")
    payload = _parse_result_json(result) or {}

    summary = f'"{_trunc(query, 30)}"'
    if path:
        summary += f" in {_basename(path)}"

    sections: list[Section] = []
    if "matched_files" in payload:
        sections.append(
            Section(
                kind="kv",
                content={
                    "files": str(payload.get("matched_files", 0)),
                    "matches": str(payload.get("total_matches", 0)),
                },
            )
        )
    sections.extend(_decision_sections(payload))

    return FormattedToolCall(
        icon="\U0001f50e",
        label="Search",
        summary=summary,
        file_path=path,
        sections=sections,
    )


@tool_formatter("askQuestion")
def _format_ask_question(name: str, args: dict, result: str | None, success: bool) -> FormattedToolCall:
    question = str(args.get("question", "") or "").strip()
    options = args.get("options", [])
    payload = _parse_result_json(result) or {}
    answer = payload.get("answer")

    sections: list[Section] = []
    if question:
        sections.append(Section(kind="plain", title="Question", content=question))
    if options and isinstance(options, list):
        items = [
            {"text": str(opt), "done": answer is not None and str(opt) == answer}
            for opt in options[:4]
        ]
        sections.append(Section(kind="checklist", title="Options", content=items))
    if answer is not None:
        sections.append(Section(kind="plain", title="Answer", content=str(answer)))
    sections.extend(_decision_sections(payload))

    return FormattedToolCall(
        icon="\U0001f4ac",
        label="Question",
        summary=_trunc(question, 50),
        sections=sections,
    )


@tool_formatter("exaWebSearch")
def _format_web_search(name: str, args: dict, result: str | None, success: bool) -> FormattedToolCall:
    query = str(args.get("query", "") or "")
    payload = _parse_result_json(result) or {}

    sections: list[Section] = []
    titles = payload.get("titles") or []
    if titles:
        sections.append(
            Section(
                kind="checklist",
                title="Results",
                content=[{"text": str(t), "done": True} for t in titles],
            )
        )
    sections.extend(_decision_sections(payload))

    return FormattedToolCall(
        icon="\U0001f310",
        label="Web Search",
        summary=f'"{_trunc(query, 50)}"',
        sections=sections,
    )


def _format_default(name: str, args: dict, result: str | None, success: bool) -> FormattedToolCall:
    """Fallback formatter for unrecognised tool names."""
    raw = args.get("_raw", "")
    if raw:
        summary = _trunc(raw, 50)
        sections = [Section(kind="plain", content=raw)]
    else:
        display_args = {k: _trunc(str(v), 80) for k, v in args.items() if not k.startswith("_")}
        summary = _trunc(", ".join(f"{k}={v}" for k, v in display_args.items()), 50)
        sections = [Section(kind="kv", content=display_args)] if display_args else []

    payload = _parse_result_json(result)
    if payload is not None:
        sections.extend(_decision_sections(payload))
    else:
        sections.extend(_result_section(result))

    return FormattedToolCall(
        icon="\U0001f527",
        label=name,
        summary=summary,
        sections=sections,
    )


# ── Rich Markup Renderer ──

_STATUS_MARKUP = {
    "pending": "[yellow]\\[pending][/yellow]",
    "awaiting": "[bold yellow]\\[awaiting approval][/bold yellow]",
    "done": "[green]done[/green]",
    "rejected": "[magenta]rejected[/magenta]",
    "error": "[red]error[/red]",
}


def _esc(text: str) -> str:
    """Escape Rich markup characters."""
    return text.replace("[", "\\[")


def render_collapsed_rich(fmt: FormattedToolCall, status: str) -> str:
    """Render a collapsed one-liner as a Rich markup string.

    Args:
        fmt: The formatted tool call IR.
        status: One of "pending", "awaiting", "done", "rejected", "error".
    """
    status_markup = _STATUS_MARKUP.get(status, f"[dim]{_esc(status)}[/dim]")

    label = _esc(fmt.label)
    summary = _esc(fmt.summary) if fmt.summary else ""

    parts = ["[dim]▶[/dim]"]
    if fmt.icon:
        parts.append(fmt.icon)
    parts.append(f"[cyan]{label}[/cyan]")
    if summary:
        parts.append(f"[dim]{summary}[/dim]")
    parts.append(status_markup)

    return "  ".join(parts)


def render_expanded_rich(
    fmt: FormattedToolCall, status: str, timestamp: str = "",
) -> str:
    """Render the full expanded view as a Rich markup string.

    Args:
        fmt: The formatted tool call IR.
        status: One of "pending", "awaiting", "done", "rejected", "error".
        timestamp: Optional HH:MM:SS timestamp.
    """
    lines: list[str] = []

    header_parts = ["[dim]▼[/dim]"]
    if timestamp:
        header_parts.append(f"[dim]{timestamp}[/dim]")
    if fmt.icon:
        header_parts.append(fmt.icon)
    header_parts.append(f"[bold cyan]{_esc(fmt.label)}[/bold cyan]")
    if fmt.summary:
        header_parts.append(f"[dim]{_esc(fmt.summary)}[/dim]")
    header_parts.append(_STATUS_MARKUP.get(status, ""))
    lines.append("  ".join(header_parts))

    for section in fmt.sections:
        if section.title:
            lines.append(f"  [bold dim]{_esc(section.title)}[/bold dim]")
        lines.extend(_render_section_rich(section))

    return "\n".join(lines)


def _render_section_rich(section: Section) -> list[str]:
    """Render a single section to Rich markup lines."""
    lines: list[str] = []

    if section.kind == "patch":
        for line in section.content or []:
            if line.startswith(("+++", "---")):
                lines.append(f"  [bold]{_esc(line)}[/bold]")
            elif line.startswith("@@"):
                lines.append(f"  [cyan]{_esc(line)}[/cyan]")
            elif line.startswith("+"):
                lines.append(f"  [green]{_esc(line)}[/green]")
            elif line.startswith("-"):
                lines.append(f"  [red]{_esc(line)}[/red]")
            else:
                lines.append(f"  [dim]{_esc(line)}[/dim]")

    elif section.kind == "diff":
        content = section.content or {}
        for line in content.get("old_lines", []):
            lines.append(f"  [red]- {_esc(line)}[/red]")
        for line in content.get("new_lines", []):
            lines.append(f"  [green]+ {_esc(line)}[/green]")

    elif section.kind == "code":
        content = section.content or {}
        text = content.get("text", "")
        code_lines = str(text).splitlines()
        for code_line in code_lines[:40]:
            lines.append(f"  {_esc(code_line)}")
        remaining = len(code_lines) - 40
        if remaining > 0:
            lines.append(f"  [dim]... {remaining} more lines[/dim]")

    elif section.kind == "path":
        lines.append(f"  [underline]{_esc(section.content or '')}[/underline]")

    elif section.kind == "checklist":
        for item in section.content or []:
            if isinstance(item, dict):
                marker = "[green]✓[/green]" if item.get("done") else "[dim]○[/dim]"
                lines.append(f"  {marker} {_esc(str(item.get('text', '')))}")

    elif section.kind == "kv":
        kv = section.content or {}
        if isinstance(kv, dict):
            for key, value in kv.items():
                lines.append(f"  [bold]{_esc(key)}:[/bold] {_esc(str(value))}")

    elif section.kind == "result_block":
        content = section.content or {}
        text = str(content.get("text", ""))
        border_color = {
            "success": "green",
            "error": "red",
            "rejected": "magenta",
        }.get(content.get("status", ""), "dim")
        for tl in text.splitlines()[:30]:
            lines.append(f"  [{border_color}]┃[/{border_color}] {_esc(tl)}")

    elif section.kind == "plain":
        text = str(section.content or "")
        for text_line in text.splitlines()[:20]:
            lines.append(f"  {_esc(text_line)}")
        remaining = len(text.splitlines()) - 20
        if remaining > 0:
            lines.append(f"  [dim]... {remaining} more lines[/dim]")

    return lines
