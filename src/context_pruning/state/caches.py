"""Correlation caches: tool parameters, model info, positional call ids."""

from __future__ import annotations

import threading
from typing import Any

from .types import ModelInfo, ToolParameterEntry


class ToolParameterCache:
    """call id -> {tool, parameters}. ``put`` overwrites."""

    def __init__(self) -> None:
        self._entries: dict[str, ToolParameterEntry] = {}
        self._lock = threading.Lock()

    def put(self, call_id: str, tool: str, parameters: Any) -> None:
        entry = ToolParameterEntry(tool=tool, parameters=parameters)
        with self._lock:
            self._entries[call_id] = entry

    def get(self, call_id: str) -> ToolParameterEntry | None:
        with self._lock:
            return self._entries.get(call_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class ModelInfoCache:
    """conversation id -> model the conversation last used."""

    def __init__(self) -> None:
        self._entries: dict[str, ModelInfo] = {}
        self._lock = threading.Lock()

    def put(self, conversation_id: str, info: ModelInfo) -> None:
        with self._lock:
            self._entries[conversation_id] = info

    def get(self, conversation_id: str) -> ModelInfo | None:
        with self._lock:
            return self._entries.get(conversation_id)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class PositionMap:
    """(conversation, tool, occurrence index) -> call id.

    Some providers echo tool results back by position rather than by id.
    Positions are bound while capturing requests that do carry ids, in the
    order the calls appear, and looked up later without side effects.
    """

    def __init__(self) -> None:
        self._slots: dict[tuple[str, str], list[str]] = {}
        self._lock = threading.Lock()

    def assign(self, conversation_id: str, tool: str, call_id: str) -> str:
        """Bind *call_id* to the next free index for this tool. Idempotent per call id."""
        key = (conversation_id, tool)
        with self._lock:
            slots = self._slots.setdefault(key, [])
            if call_id not in slots:
                slots.append(call_id)
        return call_id

    def resolve(self, conversation_id: str, tool: str, index: int) -> str | None:
        with self._lock:
            slots = self._slots.get((conversation_id, tool))
            if slots is None or index < 0 or index >= len(slots):
                return None
            return slots[index]

    def clear(self) -> None:
        with self._lock:
            self._slots.clear()
