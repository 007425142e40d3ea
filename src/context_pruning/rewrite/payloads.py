"""Request payload shapes: a closed set of variants plus pass-through."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Union


class PayloadFormat(str, Enum):
    CHAT_MESSAGES = "chat-messages"
    STRUCTURED_INPUT = "structured-input"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True)
class ChatMessages:
    """``{"messages": [{role, content, tool_call_id?, tool_calls?}, ...]}``"""

    messages: list

    format = PayloadFormat.CHAT_MESSAGES

    def has_tool_outputs(self) -> bool:
        return any(isinstance(m, Mapping) and m.get("role") == "tool" for m in self.messages)


@dataclass(frozen=True)
class StructuredInput:
    """``{"input": [{type, call_id, output}, ...]}`` (Responses-style)."""

    items: list

    format = PayloadFormat.STRUCTURED_INPUT

    def has_tool_outputs(self) -> bool:
        return any(
            isinstance(i, Mapping) and i.get("type") == "function_call_output" for i in self.items
        )


@dataclass(frozen=True)
class Passthrough:
    """Anything else. Never touched."""

    format = PayloadFormat.PASSTHROUGH

    def has_tool_outputs(self) -> bool:
        return False


Payload = Union[ChatMessages, StructuredInput, Passthrough]

PASSTHROUGH = Passthrough()


def detect_payload(document: Any) -> Payload:
    """Classify a decoded request document. ``messages`` wins over ``input``."""
    if not isinstance(document, Mapping):
        return PASSTHROUGH
    messages = document.get("messages")
    if isinstance(messages, list):
        return ChatMessages(messages)
    items = document.get("input")
    if isinstance(items, list):
        return StructuredInput(items)
    return PASSTHROUGH


def decode_body(body: Any) -> Any:
    """Decode a request body into a JSON document, or None if it isn't one."""
    if isinstance(body, Mapping):
        return body
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(body, str):
        return None
    try:
        return json.loads(body)
    except ValueError:
        return None


def encode_body(document: Any, like: Any) -> Any:
    """Re-encode *document* in the same representation as the original body *like*."""
    if isinstance(like, Mapping):
        return document
    text = json.dumps(document)
    if isinstance(like, (bytes, bytearray)):
        return text.encode("utf-8")
    return text
