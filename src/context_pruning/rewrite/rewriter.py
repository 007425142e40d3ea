"""Request rewriter: capture tool-call metadata and replace pruned tool outputs."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..config import DEFAULT_PLACEHOLDER
from ..state.context import PruningContext
from .payloads import ChatMessages, Payload, PayloadFormat, StructuredInput, detect_payload

log = logging.getLogger(__name__)


@dataclass
class RewriteResult:
    """Outcome of one filter pass. ``document`` is a fresh copy when modified."""

    document: Any
    modified: bool = False
    replaced_count: int = 0
    format: PayloadFormat = PayloadFormat.PASSTHROUGH


class RequestRewriter:
    """Capture and filter passes over decoded request documents."""

    def __init__(
        self,
        context: PruningContext,
        *,
        chat_placeholder: str = DEFAULT_PLACEHOLDER,
        structured_placeholder: str = DEFAULT_PLACEHOLDER,
    ) -> None:
        self._ctx = context
        self._chat_placeholder = chat_placeholder
        self._structured_placeholder = structured_placeholder

    # -- Capture --

    def capture(self, payload: Payload, conversation_id: str | None = None) -> int:
        """Cache tool parameters for every tool call in the payload. Returns calls cached."""
        if isinstance(payload, ChatMessages):
            calls = _chat_tool_calls(payload.messages)
        elif isinstance(payload, StructuredInput):
            calls = _structured_tool_calls(payload.items)
        else:
            return 0
        cached = 0
        for call_id, tool, raw_args in calls:
            try:
                params = _decode_arguments(raw_args)
                self._ctx.tool_parameters.put(call_id, tool, params)
            except (TypeError, ValueError):
                continue
            if conversation_id:
                self._ctx.positions.assign(conversation_id, tool, call_id)
            cached += 1
        if cached:
            log.debug("Cached parameters for %d tool calls (%s)", cached, payload.format.value)
        return cached

    # -- Filter --

    def filter(self, document: Any, payload: Payload, pruned_ids: Iterable[str]) -> RewriteResult:
        """Replace outputs of pruned calls. Never mutates *document*."""
        pruned = set(pruned_ids)
        if not pruned:
            return RewriteResult(document, format=payload.format)
        try:
            if isinstance(payload, ChatMessages):
                return self._filter_chat(document, payload, pruned)
            if isinstance(payload, StructuredInput):
                return self._filter_structured(document, payload, pruned)
        except (AttributeError, KeyError, TypeError) as exc:
            log.debug("Payload did not match its %s shape: %s", payload.format.value, exc)
            return RewriteResult(document, format=payload.format)
        return RewriteResult(document)

    def rewrite(
        self,
        document: Any,
        pruned_ids: Iterable[str],
        conversation_id: str | None = None,
    ) -> RewriteResult:
        """Detect, capture, then filter."""
        payload = detect_payload(document)
        self.capture(payload, conversation_id)
        return self.filter(document, payload, pruned_ids)

    def _filter_chat(self, document: Mapping, payload: ChatMessages, pruned: set[str]) -> RewriteResult:
        replaced = 0
        messages: list = []
        for m in payload.messages:
            if isinstance(m, Mapping) and m.get("role") == "tool" and m.get("tool_call_id") in pruned:
                if m.get("content") != self._chat_placeholder:
                    m = {**m, "content": self._chat_placeholder}
                    replaced += 1
            messages.append(m)
        if not replaced:
            return RewriteResult(document, format=payload.format)
        return RewriteResult({**document, "messages": messages}, True, replaced, payload.format)

    def _filter_structured(
        self, document: Mapping, payload: StructuredInput, pruned: set[str]
    ) -> RewriteResult:
        lowered = {p.lower() for p in pruned}
        replaced = 0
        items: list = []
        for item in payload.items:
            if (
                isinstance(item, Mapping)
                and item.get("type") == "function_call_output"
                and isinstance(item.get("call_id"), str)
                and item["call_id"].lower() in lowered
            ):
                if item.get("output") != self._structured_placeholder:
                    item = {**item, "output": self._structured_placeholder}
                    replaced += 1
            items.append(item)
        if not replaced:
            return RewriteResult(document, format=payload.format)
        return RewriteResult({**document, "input": items}, True, replaced, payload.format)


# -- Helpers --


def _chat_tool_calls(messages: list) -> list[tuple[str, str, Any]]:
    calls: list[tuple[str, str, Any]] = []
    for m in messages:
        if not isinstance(m, Mapping) or m.get("role") != "assistant":
            continue
        tool_calls = m.get("tool_calls")
        if not isinstance(tool_calls, list):
            continue
        for tc in tool_calls:
            if not isinstance(tc, Mapping):
                continue
            fn = tc.get("function")
            if not isinstance(fn, Mapping) or not _is_name(tc.get("id")) or not _is_name(fn.get("name")):
                continue
            calls.append((tc["id"], fn["name"], fn.get("arguments")))
    return calls


def _structured_tool_calls(items: list) -> list[tuple[str, str, Any]]:
    calls: list[tuple[str, str, Any]] = []
    for item in items:
        if not isinstance(item, Mapping) or item.get("type") != "function_call":
            continue
        if not _is_name(item.get("call_id")) or not _is_name(item.get("name")):
            continue
        calls.append((item["call_id"], item["name"], item.get("arguments")))
    return calls


def _is_name(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _decode_arguments(raw: Any) -> Any:
    """Decode textually-encoded arguments. Raises ValueError when malformed."""
    if isinstance(raw, str):
        return json.loads(raw)
    return raw
