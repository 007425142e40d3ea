"""Pruning context: the one object that owns all mutable pruning state."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from .caches import ModelInfoCache, PositionMap, ToolParameterCache
from .history import PruneHistory
from .store import PrunedIdStore
from .types import SessionStats


@dataclass
class PruningContext:
    """Caches and stores shared by the rewriter, the chain and the janitor.

    Build one per process (or per host plugin instance) and pass it around;
    nothing in the package keeps module-level state.
    """

    pruned: PrunedIdStore = field(default_factory=PrunedIdStore)
    tool_parameters: ToolParameterCache = field(default_factory=ToolParameterCache)
    models: ModelInfoCache = field(default_factory=ModelInfoCache)
    positions: PositionMap = field(default_factory=PositionMap)
    stats: dict[str, SessionStats] = field(default_factory=dict)
    request_pruned_counts: dict[str, int] = field(default_factory=dict)
    _stats_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def with_history(cls, history: PruneHistory) -> PruningContext:
        return cls(pruned=PrunedIdStore(history))

    def record_run(self, conversation_id: str, *, seen: int, pruned: int) -> SessionStats:
        """Fold one janitor run into the conversation's stats."""
        with self._stats_lock:
            prev = self.stats.get(conversation_id) or SessionStats()
            updated = SessionStats(
                runs=prev.runs + 1,
                last_seen=seen,
                last_pruned=pruned,
                total_pruned=prev.total_pruned + pruned,
            )
            self.stats[conversation_id] = updated
            return updated

    def record_request(self, scope: str, replaced: int) -> None:
        with self._stats_lock:
            self.request_pruned_counts[scope] = replaced

    def dispose(self) -> None:
        """Drop every cached entry."""
        self.pruned.clear()
        self.tool_parameters.clear()
        self.models.clear()
        self.positions.clear()
        with self._stats_lock:
            self.stats.clear()
            self.request_pruned_counts.clear()
