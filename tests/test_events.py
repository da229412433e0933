from __future__ import annotations

from quill.adapters.events import (
    ReasoningDelta,
    StreamDelta,
    TextDelta,
    ToolCallArgsDelta,
    ToolCallEnd,
    ToolCallStart,
    delta_to_dict,
    dict_to_delta,
)


def test_text_delta_from_dict():
    delta = dict_to_delta({"kind": "text", "identity": "t1", "text": "Hello"})
    assert delta == TextDelta(identity="t1", text="Hello")


def test_aliases_from_provider_style_events():
    delta = dict_to_delta({"type": "reasoning", "id": "t1", "delta": "hmm"})
    assert delta == ReasoningDelta(identity="t1", text="hmm")

    delta = dict_to_delta(
        {"type": "tool-call-args-delta", "id": "t1", "toolCallId": "c1", "argsTextDelta": '{"a"'}
    )
    assert delta == ToolCallArgsDelta(identity="t1", tool_call_id="c1", arguments='{"a"')


def test_tool_call_text_becomes_arguments():
    delta = dict_to_delta({"kind": "tool-call-end", "identity": "t", "index": "2", "text": "}"})
    assert isinstance(delta, ToolCallEnd)
    assert delta.arguments == "}"
    assert delta.index == 2


def test_dict_arguments_are_serialized():
    delta = dict_to_delta(
        {"kind": "tool-call-start", "identity": "t", "toolName": "list", "args": {"path": "x"}}
    )
    assert isinstance(delta, ToolCallStart)
    assert delta.tool_name == "list"
    assert delta.arguments == '{"path": "x"}'


def test_unknown_kind_parses_to_base_delta():
    delta = dict_to_delta({"kind": "citation", "identity": "t", "url": "https://x"})
    assert type(delta) is StreamDelta
    assert delta.kind == "citation"


def test_delta_to_dict_skips_empty_fields():
    assert delta_to_dict(ToolCallEnd(identity="t", tool_call_id="c1")) == {
        "kind": "tool-call-end",
        "identity": "t",
        "tool_call_id": "c1",
        "index": 0,
    }
    delta = ToolCallStart(identity="t", tool_call_id="c1", tool_name="write", arguments="{}")
    assert dict_to_delta(delta_to_dict(delta)) == delta
