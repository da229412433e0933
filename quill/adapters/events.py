"""Delta types carried by a model output stream.

A provider adapter (or a recorded JSON-lines file) yields plain dicts;
``dict_to_delta`` parses them into typed dataclasses for the stream
reconciler. ``identity`` is the turn id shared by every delta of one
assistant turn.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from quill.engine.models import DeltaKind


@dataclass
class StreamDelta:
    """Base delta. Unknown kinds parse to this class."""
    kind: str = ""
    identity: str = ""


@dataclass
class TextDelta(StreamDelta):
    kind: str = DeltaKind.TEXT.value
    text: str = ""


@dataclass
class ReasoningDelta(StreamDelta):
    kind: str = DeltaKind.REASONING.value
    text: str = ""


@dataclass
class ToolCallDelta(StreamDelta):
    """Common fields of the three tool-call deltas.

    Providers that do not send a ``tool_call_id`` on every fragment are
    correlated by ``index`` within the turn.
    """
    tool_call_id: str = ""
    index: int = 0
    # Name and argument fragments; either may be split across deltas.
    tool_name: str = ""
    arguments: str = ""


@dataclass
class ToolCallStart(ToolCallDelta):
    kind: str = DeltaKind.TOOL_CALL_START.value


@dataclass
class ToolCallArgsDelta(ToolCallDelta):
    kind: str = DeltaKind.TOOL_CALL_ARGS_DELTA.value


@dataclass
class ToolCallEnd(ToolCallDelta):
    kind: str = DeltaKind.TOOL_CALL_END.value


_DELTA_MAP: dict[str, type[StreamDelta]] = {
    DeltaKind.TEXT.value: TextDelta,
    DeltaKind.REASONING.value: ReasoningDelta,
    DeltaKind.TOOL_CALL_START.value: ToolCallStart,
    DeltaKind.TOOL_CALL_ARGS_DELTA.value: ToolCallArgsDelta,
    DeltaKind.TOOL_CALL_END.value: ToolCallEnd,
}

# Alternate spellings seen in recorded streams.
_FIELD_ALIASES = {
    "type": "kind",
    "id": "identity",
    "turn_id": "identity",
    "toolCallId": "tool_call_id",
    "toolName": "tool_name",
    "delta": "text",
    "argsTextDelta": "arguments",
    "args": "arguments",
}


def delta_to_dict(delta: StreamDelta) -> dict[str, Any]:
    """Convert a delta to a plain dict for JSON-lines recording."""
    d: dict[str, Any] = {}
    for f in delta.__dataclass_fields__:
        val = getattr(delta, f)
        if val not in (None, ""):
            d[f] = val
    return d


def dict_to_delta(data: dict[str, Any]) -> StreamDelta:
    """Convert a recorded or adapter-produced dict to a typed delta."""
    normalized: dict[str, Any] = {}
    for key, value in data.items():
        normalized.setdefault(_FIELD_ALIASES.get(key, key), value)
    kind = str(normalized.get("kind", ""))
    cls = _DELTA_MAP.get(kind, StreamDelta)
    valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
    filtered = {k: v for k, v in normalized.items() if k in valid_fields}
    # Text payloads for the tool-call kinds arrive under "text" via the alias.
    if issubclass(cls, ToolCallDelta) and "arguments" not in filtered and "text" in normalized:
        filtered["arguments"] = normalized["text"]
    if isinstance(filtered.get("arguments"), dict):
        filtered["arguments"] = json.dumps(filtered["arguments"])
    if "index" in filtered:
        filtered["index"] = int(filtered["index"])
    return cls(**filtered)
