"""Tests for RequestRewriter capture and filter passes."""

from __future__ import annotations

import copy

from fakes import assistant_call, tool_message

from context_pruning.config import DEFAULT_PLACEHOLDER
from context_pruning.rewrite.payloads import PayloadFormat, detect_payload
from context_pruning.rewrite.rewriter import RequestRewriter
from context_pruning.state.context import PruningContext


def _rewriter(**kwargs) -> tuple[RequestRewriter, PruningContext]:
    ctx = PruningContext()
    return RequestRewriter(ctx, **kwargs), ctx


# -- Filter: chat messages --


def test_chat_example() -> None:
    rewriter, _ = _rewriter()
    body = {"messages": [tool_message("call_abc", "big blob"), tool_message("call_xyz", "keep me")]}
    result = rewriter.rewrite(body, {"call_abc"}, "s1")
    assert result.modified is True
    assert result.replaced_count == 1
    assert result.format == PayloadFormat.CHAT_MESSAGES
    assert result.document == {
        "messages": [
            {"role": "tool", "tool_call_id": "call_abc", "content": DEFAULT_PLACEHOLDER},
            {"role": "tool", "tool_call_id": "call_xyz", "content": "keep me"},
        ]
    }


def test_chat_preserves_order_count_and_other_fields() -> None:
    rewriter, _ = _rewriter()
    body = {
        "model": "gpt-4o",
        "stream": True,
        "messages": [
            {"role": "system", "content": "be brief"},
            assistant_call("call_1", "read", '{"path": "a.py"}'),
            {**tool_message("call_1", "file a"), "name": "read"},
            assistant_call("call_2", "read", '{"path": "b.py"}'),
            tool_message("call_2", "file b"),
            {"role": "user", "content": "thanks"},
        ],
    }
    result = rewriter.rewrite(body, ["call_1", "call_2"])
    out = result.document
    assert result.replaced_count == 2
    assert out["model"] == "gpt-4o" and out["stream"] is True
    assert len(out["messages"]) == len(body["messages"])
    assert [m["role"] for m in out["messages"]] == [m["role"] for m in body["messages"]]
    assert out["messages"][2] == {
        "role": "tool", "tool_call_id": "call_1", "content": DEFAULT_PLACEHOLDER, "name": "read",
    }
    assert out["messages"][4]["content"] == DEFAULT_PLACEHOLDER
    for i in (0, 1, 3, 5):
        assert out["messages"][i] == body["messages"][i]


def test_chat_matching_is_case_sensitive() -> None:
    rewriter, _ = _rewriter()
    body = {"messages": [tool_message("CALL_ABC", "blob")]}
    result = rewriter.rewrite(body, {"call_abc"})
    assert result.modified is False
    assert result.document is body


def test_chat_only_tool_role_is_replaced() -> None:
    rewriter, _ = _rewriter()
    body = {"messages": [{"role": "user", "tool_call_id": "call_abc", "content": "mine"}]}
    assert rewriter.rewrite(body, {"call_abc"}).modified is False


def test_original_document_is_not_mutated() -> None:
    rewriter, _ = _rewriter()
    body = {"messages": [tool_message("call_abc", "big blob")]}
    snapshot = copy.deepcopy(body)
    result = rewriter.rewrite(body, {"call_abc"})
    assert result.modified is True
    assert body == snapshot
    assert result.document is not body


def test_rewrite_is_idempotent() -> None:
    rewriter, _ = _rewriter()
    body = {"messages": [tool_message("call_abc", "blob"), tool_message("call_x", "keep")]}
    once = rewriter.rewrite(body, {"call_abc"})
    twice = rewriter.rewrite(once.document, {"call_abc"})
    assert twice.document == once.document
    assert twice.modified is False
    assert twice.replaced_count == 0


def test_empty_pruned_set_is_noop() -> None:
    rewriter, _ = _rewriter()
    body = {"messages": [tool_message("call_abc", "blob")]}
    result = rewriter.rewrite(body, set())
    assert result.modified is False
    assert result.document is body


def test_custom_placeholder() -> None:
    rewriter, _ = _rewriter(chat_placeholder="[pruned]")
    result = rewriter.rewrite({"messages": [tool_message("c", "x")]}, {"c"})
    assert result.document["messages"][0]["content"] == "[pruned]"


# -- Filter: structured input --


def test_structured_example_case_insensitive() -> None:
    rewriter, _ = _rewriter()
    body = {"input": [{"type": "function_call_output", "call_id": "CALL_ABC", "output": "..."}]}
    result = rewriter.rewrite(body, {"call_abc"})
    assert result.modified is True
    assert result.format == PayloadFormat.STRUCTURED_INPUT
    assert result.document["input"][0] == {
        "type": "function_call_output", "call_id": "CALL_ABC", "output": DEFAULT_PLACEHOLDER,
    }


def test_structured_mixed_case_pruned_id() -> None:
    rewriter, _ = _rewriter(structured_placeholder="[gone]")
    body = {"input": [{"type": "function_call_output", "call_id": "call_abc", "output": "x"}]}
    result = rewriter.rewrite(body, {"Call_ABC"})
    assert result.document["input"][0]["output"] == "[gone]"


def test_structured_leaves_other_items() -> None:
    rewriter, _ = _rewriter()
    items = [
        {"type": "message", "role": "user", "content": "hi"},
        {"type": "function_call", "call_id": "c1", "name": "read", "arguments": "{}"},
        {"type": "function_call_output", "call_id": "c1", "output": "old"},
        {"type": "function_call_output", "call_id": "c2", "output": "new"},
    ]
    result = rewriter.rewrite({"input": items, "model": "gpt-5"}, {"c1"})
    assert result.replaced_count == 1
    out = result.document["input"]
    assert len(out) == 4
    assert out[0] == items[0] and out[1] == items[1] and out[3] == items[3]
    assert out[2]["output"] == DEFAULT_PLACEHOLDER
    assert result.document["model"] == "gpt-5"


# -- Pass-through and malformed shapes --


def test_unrecognized_body_is_untouched() -> None:
    rewriter, ctx = _rewriter()
    body = {"contents": [{"role": "user", "parts": [{"text": "hi"}]}]}
    snapshot = copy.deepcopy(body)
    result = rewriter.rewrite(body, {"call_abc"})
    assert result.modified is False
    assert result.format == PayloadFormat.PASSTHROUGH
    assert result.document is body
    assert body == snapshot
    assert len(ctx.tool_parameters) == 0


def test_malformed_entries_do_not_raise() -> None:
    rewriter, _ = _rewriter()
    body = {"messages": ["junk", None, {"role": "tool", "tool_call_id": ["not", "hashable"]}]}
    result = rewriter.rewrite(body, {"call_abc"})
    assert result.modified is False
    assert result.document is body


def test_non_string_pruned_ids_do_not_raise() -> None:
    rewriter, _ = _rewriter()
    body = {"input": [{"type": "function_call_output", "call_id": "c1", "output": "x"}]}
    result = rewriter.rewrite(body, {1, 2})
    assert result.modified is False


# -- Capture --


def test_capture_chat_tool_calls() -> None:
    rewriter, ctx = _rewriter()
    body = {
        "messages": [
            assistant_call("call_1", "read", '{"path": "a.py"}'),
            assistant_call("call_2", "bash", {"command": "ls"}),
        ]
    }
    rewriter.rewrite(body, set(), "s1")
    assert ctx.tool_parameters.get("call_1").parameters == {"path": "a.py"}
    assert ctx.tool_parameters.get("call_1").tool == "read"
    assert ctx.tool_parameters.get("call_2").parameters == {"command": "ls"}
    assert ctx.positions.resolve("s1", "read", 0) == "call_1"
    assert ctx.positions.resolve("s1", "bash", 0) == "call_2"


def test_capture_skips_malformed_arguments() -> None:
    rewriter, ctx = _rewriter()
    body = {"messages": [assistant_call("call_bad", "read", "{not json"), assistant_call("call_ok", "read", "{}")]}
    assert rewriter.capture(detect_payload(body), "s1") == 1
    assert ctx.tool_parameters.get("call_bad") is None
    assert ctx.tool_parameters.get("call_ok").parameters == {}
    assert ctx.positions.resolve("s1", "read", 0) == "call_ok"


def test_capture_structured_function_calls() -> None:
    rewriter, ctx = _rewriter()
    body = {"input": [
        {"type": "function_call", "call_id": "fc_1", "name": "grep", "arguments": '{"q": "x"}'},
        {"type": "function_call_output", "call_id": "fc_1", "output": "hits"},
    ]}
    rewriter.rewrite(body, set())
    assert ctx.tool_parameters.get("fc_1").tool == "grep"
    assert ctx.tool_parameters.get("fc_1").parameters == {"q": "x"}


def test_capture_without_conversation_skips_positions() -> None:
    rewriter, ctx = _rewriter()
    rewriter.rewrite({"messages": [assistant_call("call_1", "read", "{}")]}, set())
    assert ctx.tool_parameters.get("call_1") is not None
    assert ctx.positions.resolve("s1", "read", 0) is None


def test_capture_runs_even_when_nothing_is_filtered() -> None:
    rewriter, ctx = _rewriter()
    body = {"messages": [assistant_call("call_1", "read", "{}"), tool_message("call_1", "x")]}
    result = rewriter.rewrite(body, {"other"})
    assert result.modified is False
    assert ctx.tool_parameters.get("call_1") is not None


def test_capture_skips_only_the_malformed_call() -> None:
    rewriter, ctx = _rewriter()
    body = {"messages": [
        assistant_call("c_bad", 123, "{}"),
        {"role": "assistant", "tool_calls": [{"id": ["x"], "function": {"name": "read", "arguments": "{}"}}]},
        assistant_call("c_ok", "read", '{"p": 1}'),
    ]}
    assert rewriter.capture(detect_payload(body), "s1") == 1
    assert ctx.tool_parameters.get("c_bad") is None
    assert ctx.tool_parameters.get("c_ok").parameters == {"p": 1}
    assert ctx.positions.resolve("s1", "read", 0) == "c_ok"


def test_capture_structured_skips_non_string_ids() -> None:
    rewriter, ctx = _rewriter()
    body = {"input": [
        {"type": "function_call", "call_id": 7, "name": "grep", "arguments": "{}"},
        {"type": "function_call", "call_id": "fc_2", "name": "grep", "arguments": "{}"},
    ]}
    assert rewriter.capture(detect_payload(body)) == 1
    assert ctx.tool_parameters.get("fc_2").tool == "grep"
