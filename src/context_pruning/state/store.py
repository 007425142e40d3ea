"""Pruned id store: per-conversation prune marks with a global union view."""

from __future__ import annotations

import asyncio
import logging
import threading

from pydantic import ValidationError

from ..host import ConversationDirectory, as_conversation
from .history import NullPruneHistory, PruneHistory

log = logging.getLogger(__name__)


class PrunedIdStore:
    """Ordered, monotonic sets of pruned call ids keyed by conversation.

    A conversation's marks are loaded from the history backend the first time
    it is read; after that the in-memory copy is authoritative. Marks are never
    removed while the process runs.
    """

    def __init__(self, history: PruneHistory | None = None) -> None:
        self._history = history or NullPruneHistory()
        self._ids: dict[str, list[str]] = {}
        self._lock = threading.Lock()
        self._loading: dict[str, asyncio.Lock] = {}

    async def get(self, conversation_id: str) -> list[str]:
        """Return the conversation's pruned ids, loading history on first access."""
        with self._lock:
            ids = self._ids.get(conversation_id)
            if ids is not None:
                return list(ids)
            gate = self._loading.setdefault(conversation_id, asyncio.Lock())

        async with gate:
            with self._lock:
                ids = self._ids.get(conversation_id)
                if ids is not None:
                    return list(ids)
            loaded = await self._history.load(conversation_id)
            with self._lock:
                self._ids[conversation_id] = list(dict.fromkeys(loaded))
                self._loading.pop(conversation_id, None)
                return list(self._ids[conversation_id])

    async def mark(self, conversation_id: str, call_id: str) -> bool:
        """Add a prune mark. Returns False if it was already present."""
        await self.get(conversation_id)
        with self._lock:
            ids = self._ids.setdefault(conversation_id, [])
            if call_id in ids:
                return False
            ids.append(call_id)
        await self._history.append(conversation_id, call_id)
        return True

    def known(self) -> list[str]:
        """Conversation ids whose marks are loaded in memory."""
        with self._lock:
            return list(self._ids)

    def peek(self, conversation_id: str) -> list[str] | None:
        """Cached ids without triggering a load, or None if not loaded yet."""
        with self._lock:
            ids = self._ids.get(conversation_id)
            return list(ids) if ids is not None else None

    async def global_union(self, directory: ConversationDirectory) -> set[str]:
        """Union of pruned ids across every non-subagent conversation.

        A failure to load one conversation drops only that conversation.
        """
        try:
            listed = await directory.list()
        except Exception as exc:
            log.error("Conversation listing failed, global union is empty: %s", exc)
            return set()

        ids: list[str] = []
        for raw in listed:
            try:
                conv = as_conversation(raw)
            except ValidationError as exc:
                log.warning("Skipping malformed conversation entry in global union: %s", exc)
                continue
            if conv.is_subagent:
                continue
            ids.append(conv.id)

        results = await asyncio.gather(*(self.get(cid) for cid in ids), return_exceptions=True)
        union: set[str] = set()
        for cid, result in zip(ids, results):
            if isinstance(result, BaseException):
                log.warning("Skipping conversation %s in global union: %s", cid, result)
                continue
            union.update(result)
        return union

    def clear(self) -> None:
        with self._lock:
            self._ids.clear()
            self._loading.clear()
