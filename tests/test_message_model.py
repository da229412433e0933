"""Tests for the message variants: streaming lifecycle, identity, projections."""

from __future__ import annotations

import json

import pytest
from rich.panel import Panel
from rich.text import Text

from quill.engine.approval import DecisionGate
from quill.engine.models import Decision
from quill.shared.models.message import (
    AssistantMessage,
    ErrorMessage,
    QuestionMessage,
    ThinkingMessage,
    ToolMessage,
    UserMessage,
    derive_message_id,
)


def test_append_then_close_concatenates_fragments() -> None:
    msg = AssistantMessage.create_empty("turn-1")
    for fragment in ["Hel", "lo", None, ", world"]:
        assert msg.append_content(fragment) is True
    msg.close()

    assert msg.content == "Hello, world"
    assert msg.is_streaming is False


def test_append_after_close_is_ignored() -> None:
    msg = AssistantMessage.create_empty("turn-1")
    msg.append_content("done")
    msg.close()

    assert msg.append_content(" more") is False
    assert msg.content == "done"


def test_close_is_one_way() -> None:
    msg = ThinkingMessage.create_empty("turn-1")
    msg.close()
    msg.close()
    assert msg.is_streaming is False


def test_message_id_is_immutable() -> None:
    msg = AssistantMessage.create_empty("turn-1")
    with pytest.raises(AttributeError):
        msg.id = "other"
    assert msg.id == "turn-1"


def test_thinking_id_is_derived_from_turn_id() -> None:
    msg = ThinkingMessage.create_empty("turn-7")
    assert msg.id == derive_message_id("turn-7", "thinking") == "turn-7-thinking"
    assert msg.is_match("turn-7")
    assert not msg.is_match("turn-7-thinking")
    assert not msg.is_match("turn-8")


def test_assistant_matches_turn_id_directly() -> None:
    msg = AssistantMessage.create_empty("turn-7")
    assert msg.is_match("turn-7")
    assert not msg.is_match("turn-7-thinking")


def test_thinking_is_never_sent_to_the_model() -> None:
    msg = ThinkingMessage.create_empty("t")
    msg.append_content("pondering")
    msg.close()
    assert msg.to_transcript_entry() is None


def test_assistant_entry_includes_tool_calls() -> None:
    msg = AssistantMessage.create_empty("t")
    assert msg.to_transcript_entry() is None

    msg.append_content("Writing it now.")
    msg.add_tool_call("call-1", "write", '{"file_path": "a.md", "content": "x"}')
    entry = msg.to_transcript_entry()

    assert entry["role"] == "assistant"
    assert entry["content"] == "Writing it now."
    assert entry["tool_calls"] == [
        {
            "id": "call-1",
            "type": "function",
            "function": {"name": "write", "arguments": '{"file_path": "a.md", "content": "x"}'},
        }
    ]


def test_user_message_is_closed_on_creation() -> None:
    msg = UserMessage(content="hi")
    assert msg.is_streaming is False
    assert msg.to_transcript_entry() == {"role": "user", "content": "hi"}


def test_tool_entry_only_after_close() -> None:
    msg = ToolMessage(tool_name="list", tool_call_id="call-1")
    msg.set_content('{"decision": "applied"}')
    assert msg.to_transcript_entry() is None

    msg.model_result = "notes/\n  a.md"
    msg.close()
    assert msg.to_transcript_entry() == {
        "role": "tool",
        "content": "notes/\n  a.md",
        "name": "list",
        "tool_call_id": "call-1",
    }


def test_tool_message_ignores_updates_after_close() -> None:
    msg = ToolMessage(tool_name="write", tool_call_id="call-1")
    msg.set_content("final")
    msg.close()

    msg.set_content("late")
    msg.set_status("error")
    msg.fail("io", "boom")

    assert msg.content == "final"
    assert msg.status == "pending"
    assert msg.is_error is False


def test_tool_message_fail_sets_error_payload() -> None:
    msg = ToolMessage(tool_name="write", tool_call_id="call-1")
    msg.fail("io", "disk full", {"snapshot_id": "abc"})

    payload = json.loads(msg.content)
    assert payload == {
        "_isError": True,
        "error": "disk full",
        "details": {"snapshot_id": "abc"},
        "type": "io",
    }
    assert msg.model_result == msg.content
    assert msg.status == "error"


def test_decision_callbacks_resolve_attached_gate() -> None:
    msg = ToolMessage(tool_name="write", tool_call_id="call-1")
    gate = DecisionGate(label="call-1")
    msg.attach_gate(gate)
    assert msg.awaiting_decision
    assert msg.status == "awaiting"

    on_apply, on_reject = msg.decision_callbacks()
    assert on_apply() is True
    assert on_reject() is False
    assert gate.value is Decision.APPLY
    assert not msg.awaiting_decision


def test_resolve_without_gate_returns_false() -> None:
    msg = ToolMessage(tool_name="write", tool_call_id="call-1")
    assert msg.apply() is False


def test_close_drops_the_gate() -> None:
    msg = ToolMessage(tool_name="write", tool_call_id="call-1")
    msg.attach_gate(DecisionGate())
    msg.close()
    assert msg.awaiting_decision is False
    assert msg.reject() is False


def test_question_message_answer_goes_through_gate() -> None:
    from quill.engine.approval import ApprovalGate

    msg = QuestionMessage(tool_name="askQuestion", tool_call_id="q-1", question="Which?")
    gate: ApprovalGate[str] = ApprovalGate()
    msg.attach_gate(gate)
    assert msg.answer_with("the second") is True
    assert gate.value == "the second"


def test_error_message_entry() -> None:
    standalone = ErrorMessage(content="stream broke")
    assert standalone.is_streaming is False
    assert standalone.to_transcript_entry() is None

    err = ErrorMessage(
        content="Invalid input",
        tool_name="write",
        tool_call_id="call-9",
        error_type="validation",
        details=[{"loc": ["content"], "msg": "Field required"}],
    )
    entry = err.to_transcript_entry()
    assert entry["role"] == "tool"
    assert entry["tool_call_id"] == "call-9"
    payload = json.loads(entry["content"])
    assert payload["_isError"] is True
    assert payload["type"] == "validation"
    assert payload["error"] == "Invalid input"


def test_render_projections() -> None:
    thinking = ThinkingMessage.create_empty("t")
    thinking.append_content("hmm")
    assert isinstance(thinking.render(), Panel)
    thinking.close()
    assert isinstance(thinking.render(), Text)

    tool = ToolMessage(tool_name="list", tool_call_id="c")
    tool.close()
    rendered = tool.render()
    assert isinstance(rendered, Text)
    assert "List" in rendered.plain

    assert isinstance(ErrorMessage(content="x").render(), Panel)
