"""Janitor: idle-time analysis that marks superseded tool outputs for pruning."""

from __future__ import annotations

import asyncio
import logging

from ..diagnostics import SnapshotWriter
from ..host import TranscriptSource, as_transcript
from ..state.context import PruningContext
from ..state.types import SessionStats, ToolCallRecord, TranscriptEntry
from .policy import StalenessPolicy

log = logging.getLogger(__name__)


class Janitor:
    """Analyzes one conversation at a time and records new prune marks.

    Admission (one run per conversation) is the caller's job; see
    :class:`~context_pruning.janitor.pool.JanitorPool`.
    """

    def __init__(
        self,
        context: PruningContext,
        transcripts: TranscriptSource,
        policy: StalenessPolicy,
        *,
        snapshots: SnapshotWriter | None = None,
    ) -> None:
        self._ctx = context
        self._transcripts = transcripts
        self._policy = policy
        self._snapshots = snapshots

    async def run(self, conversation_id: str) -> SessionStats | None:
        """Analyze *conversation_id*. Returns updated stats, or None if the run failed."""
        try:
            return await self._run(conversation_id)
        except Exception:
            log.exception("Janitor run failed for %s", conversation_id)
            return None

    async def _run(self, conversation_id: str) -> SessionStats:
        entries = as_transcript(await self._transcripts.fetch(conversation_id))
        calls = self.observed_calls(conversation_id, entries)
        if not calls:
            log.debug("No tool calls to analyze in %s", conversation_id)
            return self._ctx.record_run(conversation_id, seen=0, pruned=0)

        model = self._ctx.models.get(conversation_id)
        superseded = await asyncio.to_thread(self._policy.evaluate, calls, model=model)

        already = set(await self._ctx.pruned.get(conversation_id))
        newly: list[str] = []
        for call in calls:
            if call.call_id in superseded and call.call_id not in already:
                if await self._ctx.pruned.mark(conversation_id, call.call_id):
                    newly.append(call.call_id)

        stats = self._ctx.record_run(conversation_id, seen=len(calls), pruned=len(newly))
        log.info(
            "Janitor %s: %d tool calls seen, %d newly pruned, %d pruned total",
            conversation_id, len(calls), len(newly), len(already) + len(newly),
        )
        if newly and self._snapshots is not None and self._snapshots.enabled:
            await self._snapshots.save(
                f"janitor-{conversation_id}",
                {"pruned": newly},
                {"seen": len(calls), "model": model.model_dump() if model else None},
                entries,
            )
        return stats

    def observed_calls(self, conversation_id: str, entries: list[TranscriptEntry]) -> list[ToolCallRecord]:
        """Ordered tool calls in the transcript, with parameters filled from the cache.

        Entries without a call id are matched by position: the n-th output of a
        tool maps to the n-th captured call of that tool.
        """
        occurrences: dict[str, int] = {}
        seen: set[str] = set()
        calls: list[ToolCallRecord] = []
        for entry in entries:
            if not entry.is_tool_output:
                continue
            call_id = entry.call_id
            cached = self._ctx.tool_parameters.get(call_id) if call_id else None
            tool = entry.tool or (cached.tool if cached else None)
            if not tool:
                continue
            index = occurrences.get(tool, 0)
            occurrences[tool] = index + 1
            if not call_id:
                call_id = self._ctx.positions.resolve(conversation_id, tool, index)
                if call_id is None:
                    continue
                cached = self._ctx.tool_parameters.get(call_id)
            if call_id in seen:
                continue
            seen.add(call_id)
            parameters = entry.parameters
            if parameters is None and cached is not None:
                parameters = cached.parameters
            calls.append(ToolCallRecord(call_id=call_id, tool=tool, parameters=parameters, order=index))
        return calls
