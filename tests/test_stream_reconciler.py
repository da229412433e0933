"""Routing interleaved stream deltas into transcript messages."""

from __future__ import annotations

import logging

import pytest

from quill.adapters.events import (
    ReasoningDelta,
    StreamDelta,
    TextDelta,
    ToolCallArgsDelta,
    ToolCallEnd,
    ToolCallStart,
)
from quill.engine.reconciler import StreamReconciler
from quill.shared.models.message import AssistantMessage, ThinkingMessage
from quill.shared.models.transcript import Transcript


@pytest.fixture
def transcript():
    return Transcript()


@pytest.fixture
def calls():
    return []


@pytest.fixture
def reconciler(transcript, calls):
    return StreamReconciler(transcript, on_tool_call=calls.append)


@pytest.mark.asyncio
async def test_interleaved_turns_route_by_identity(transcript, reconciler):
    await reconciler.consume(
        [
            TextDelta(identity="A", text="1"),
            TextDelta(identity="B", text="1"),
            TextDelta(identity="A", text="2"),
            TextDelta(identity="B", text="2"),
        ]
    )
    assert [m.id for m in transcript.messages] == ["A", "B"]
    assert transcript.get("A").content == "12"
    assert transcript.get("B").content == "12"
    assert all(not m.is_streaming for m in transcript.messages)


@pytest.mark.asyncio
async def test_reasoning_goes_to_paired_thinking_message(transcript, reconciler):
    await reconciler.feed(ReasoningDelta(identity="t1", text="let me "))
    await reconciler.feed(TextDelta(identity="t1", text="Answer"))
    await reconciler.feed(ReasoningDelta(identity="t1", text="think"))

    thinking = transcript.get("t1-thinking")
    assert isinstance(thinking, ThinkingMessage)
    assert thinking.content == "let me think"
    assert isinstance(transcript.get("t1"), AssistantMessage)
    assert len(transcript) == 2

    await reconciler.finish()
    assert thinking.is_streaming is False
    assert reconciler.opened_messages == []


@pytest.mark.asyncio
async def test_every_update_notifies_listeners(transcript, reconciler):
    seen = []
    transcript.subscribe(lambda m: seen.append((m.id, m.content, m.is_streaming)))
    await reconciler.consume([TextDelta(identity="A", text="x"), TextDelta(identity="A", text="y")])
    assert seen == [("A", "x", True), ("A", "xy", True), ("A", "xy", False)]


@pytest.mark.asyncio
async def test_interleaved_tool_calls_with_ids(transcript, reconciler, calls):
    await reconciler.consume(
        [
            ToolCallStart(identity="T", tool_call_id="c1", tool_name="write"),
            ToolCallStart(identity="T", tool_call_id="c2", tool_name="list"),
            ToolCallArgsDelta(identity="T", tool_call_id="c1", arguments='{"file_path": '),
            ToolCallArgsDelta(identity="T", tool_call_id="c2", arguments="{}"),
            ToolCallEnd(identity="T", tool_call_id="c2"),
            ToolCallArgsDelta(identity="T", tool_call_id="c1", arguments='"a.md"}'),
            ToolCallEnd(identity="T", tool_call_id="c1"),
        ]
    )
    assert [(c.tool_call_id, c.tool_name, c.arguments) for c in calls] == [
        ("c2", "list", "{}"),
        ("c1", "write", '{"file_path": "a.md"}'),
    ]
    assert calls[0].turn_id == "T"
    assistant = transcript.get("T")
    assert [tc["id"] for tc in assistant.tool_calls] == ["c2", "c1"]


@pytest.mark.asyncio
async def test_index_only_fragments_are_correlated(reconciler, calls):
    await reconciler.consume(
        [
            ToolCallStart(identity="T", index=0, tool_name="sea"),
            ToolCallStart(identity="T", index=1, tool_name="list"),
            ToolCallArgsDelta(identity="T", index=0, tool_name="rch", arguments='{"query":'),
            ToolCallArgsDelta(identity="T", index=0, arguments=' "x"}'),
            ToolCallEnd(identity="T", index=0),
            ToolCallEnd(identity="T", index=1),
        ]
    )
    assert [(c.tool_call_id, c.tool_name, c.arguments) for c in calls] == [
        ("T#0", "search", '{"query": "x"}'),
        ("T#1", "list", ""),
    ]


@pytest.mark.asyncio
async def test_id_on_start_then_index_only_fragments(reconciler, calls):
    await reconciler.consume(
        [
            ToolCallStart(identity="T", tool_call_id="call-9", index=3, tool_name="list"),
            ToolCallArgsDelta(identity="T", index=3, arguments='{"path": "x"}'),
            ToolCallEnd(identity="T", index=3),
        ]
    )
    assert len(calls) == 1
    assert calls[0].tool_call_id == "call-9"
    assert calls[0].arguments == '{"path": "x"}'


@pytest.mark.asyncio
async def test_duplicate_end_is_ignored(reconciler, calls):
    await reconciler.consume(
        [
            ToolCallStart(identity="T", tool_call_id="c1", tool_name="list"),
            ToolCallEnd(identity="T", tool_call_id="c1"),
            ToolCallEnd(identity="T", tool_call_id="c1"),
        ]
    )
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_finish_flushes_unterminated_calls(reconciler, calls, caplog):
    with caplog.at_level(logging.WARNING):
        await reconciler.consume(
            [
                ToolCallStart(identity="T", tool_call_id="named", tool_name="list"),
                ToolCallArgsDelta(identity="T", tool_call_id="anonymous", arguments="{}"),
            ]
        )
    assert [c.tool_call_id for c in calls] == ["named"]
    assert "anonymous" in caplog.text


@pytest.mark.asyncio
async def test_unknown_delta_is_skipped(transcript, reconciler, caplog):
    with caplog.at_level(logging.WARNING):
        await reconciler.consume(
            [StreamDelta(kind="citation", identity="A"), TextDelta(identity="A", text="ok")]
        )
    assert "citation" in caplog.text
    assert transcript.get("A").content == "ok"


@pytest.mark.asyncio
async def test_async_stream_and_async_callback(transcript):
    received = []

    async def on_tool_call(request):
        received.append(request.tool_name)

    async def stream():
        yield TextDelta(identity="A", text="hi")
        yield ToolCallStart(identity="A", tool_call_id="c", tool_name="list")
        yield ToolCallEnd(identity="A", tool_call_id="c")

    await StreamReconciler(transcript, on_tool_call=on_tool_call).consume(stream())
    assert received == ["list"]
    assert transcript.get("A").to_transcript_entry()["tool_calls"][0]["id"] == "c"


@pytest.mark.asyncio
async def test_closed_message_from_earlier_turn_is_not_reused(transcript):
    old = AssistantMessage.create_empty("A")
    old.append_content("done")
    old.close()
    transcript.add(old)

    reconciler = StreamReconciler(transcript)
    await reconciler.feed(TextDelta(identity="A", text="again"))
    assert old.content == "done"
    assert transcript.get("A").content == "again"
    assert len(transcript) == 1
