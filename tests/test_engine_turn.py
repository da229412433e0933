from __future__ import annotations

import asyncio
import json

import pytest

from quill.adapters.events import (
    ReasoningDelta,
    TextDelta,
    ToolCallArgsDelta,
    ToolCallEnd,
    ToolCallStart,
)
from quill.engine.engine import ConversationEngine
from quill.engine.models import Decision
from quill.shared.models.message import ToolMessage, derive_message_id


def _write_call(call_id: str, path: str, content: str):
    args = json.dumps({"file_path": path, "content": content})
    return [
        ToolCallStart(identity="turn-1", tool_call_id=call_id, tool_name="write"),
        ToolCallArgsDelta(identity="turn-1", tool_call_id=call_id, arguments=args),
        ToolCallEnd(identity="turn-1", tool_call_id=call_id),
    ]


@pytest.mark.asyncio
async def test_turn_returns_next_transcript(vault, make_context):
    (vault / "a.md").write_text("", encoding="utf-8")
    ctx = make_context()
    engine = ConversationEngine(ctx)
    engine.add_user_message("what is in my vault?")

    entries = await engine.run_turn(
        [
            TextDelta(identity="turn-1", text="Let me look."),
            ToolCallStart(identity="turn-1", tool_call_id="c1", tool_name="list"),
            ToolCallEnd(identity="turn-1", tool_call_id="c1", arguments="{}"),
        ]
    )

    assert [e["role"] for e in entries] == ["user", "assistant", "tool"]
    assert entries[1]["tool_calls"][0]["function"]["name"] == "list"
    assert entries[2]["tool_call_id"] == "c1"
    assert "a.md" in entries[2]["content"]


@pytest.mark.asyncio
async def test_turn_waits_for_pending_approvals(vault, make_context):
    ctx = make_context()
    engine = ConversationEngine(ctx)

    def approve_when_asked(message):
        if isinstance(message, ToolMessage) and message.awaiting_decision:
            asyncio.get_running_loop().call_soon(message.apply)

    ctx.transcript.subscribe(approve_when_asked)
    entries = await engine.run_turn(_write_call("c1", "notes/today.md", "hello"))

    assert (vault / "notes" / "today.md").read_text(encoding="utf-8") == "hello"
    tool_entry = entries[-1]
    assert tool_entry["role"] == "tool"
    assert json.loads(tool_entry["content"])["success"] is True


@pytest.mark.asyncio
async def test_every_call_gets_a_result(vault, make_context):
    ctx = make_context()
    ctx.approval_policy.default_decision = Decision.REJECT
    engine = ConversationEngine(ctx)

    stream = [
        *_write_call("c1", "x.md", "x"),
        ToolCallStart(identity="turn-1", tool_call_id="c2", tool_name="nope"),
        ToolCallEnd(identity="turn-1", tool_call_id="c2"),
        ToolCallStart(identity="turn-1", tool_call_id="c3", tool_name="readNoteByPath"),
        ToolCallEnd(identity="turn-1", tool_call_id="c3", arguments='{"file_path": "missing.md"}'),
    ]
    entries = await engine.run_turn(stream)

    results = {e["tool_call_id"]: json.loads(e["content"]) for e in entries if e["role"] == "tool"}
    assert set(results) == {"c1", "c2", "c3"}
    assert results["c1"]["cancelled"] is True
    assert results["c2"]["type"] == "unknown_tool"
    assert results["c3"]["type"] == "not_found"
    assert not (vault / "x.md").exists()


@pytest.mark.asyncio
async def test_broken_stream_still_settles_started_calls(vault, make_context):
    ctx = make_context(auto_approve_tools=["write"])
    engine = ConversationEngine(ctx)

    async def stream():
        yield ReasoningDelta(identity="turn-1", text="The user wants a note.")
        yield TextDelta(identity="turn-1", text="Saving it")
        for delta in _write_call("c1", "kept.md", "saved"):
            yield delta
        raise ConnectionError("provider hung up")

    with pytest.raises(ConnectionError):
        await engine.run_turn(stream())
    assert (vault / "kept.md").read_text(encoding="utf-8") == "saved"
    assert ctx.transcript.find_by_tool_call_id("c1").is_streaming is False

    assistant = ctx.transcript.get("turn-1")
    thinking = ctx.transcript.get(derive_message_id("turn-1", "thinking"))
    assert assistant.is_streaming is False
    assert thinking.is_streaming is False
    assistant.append_content(" late")
    assert assistant.content == "Saving it"


@pytest.mark.asyncio
async def test_turn_events(make_context):
    events = []

    async def on_event(event):
        events.append(event["event"])

    ctx = make_context(event_callback=on_event)
    await ConversationEngine(ctx).run_turn([TextDelta(identity="t", text="hi")])
    assert events == ["turn_started", "turn_finished"]
