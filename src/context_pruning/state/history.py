"""Prune history backends: where prune marks are loaded from and appended to."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

log = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


@runtime_checkable
class PruneHistory(Protocol):
    """Persisted record of prune marks, one ordered list per conversation."""

    async def load(self, conversation_id: str) -> list[str]: ...

    async def append(self, conversation_id: str, call_id: str) -> None: ...


class NullPruneHistory:
    """Keeps nothing. Marks live only as long as the process."""

    async def load(self, conversation_id: str) -> list[str]:
        return []

    async def append(self, conversation_id: str, call_id: str) -> None:
        return None


class JsonlPruneHistory:
    """One JSONL file of prune marks per conversation."""

    def __init__(self, history_dir: str | Path) -> None:
        self._dir = Path(history_dir).expanduser()
        self._dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, conversation_id: str) -> Path:
        return self._dir / f"{_UNSAFE.sub('_', conversation_id)}.jsonl"

    async def load(self, conversation_id: str) -> list[str]:
        return await asyncio.to_thread(self._read, self.path_for(conversation_id))

    async def append(self, conversation_id: str, call_id: str) -> None:
        line = json.dumps({
            "type": "prune",
            "conversation_id": conversation_id,
            "call_id": call_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        await asyncio.to_thread(self._write_line, self.path_for(conversation_id), line)

    def repair(self, conversation_id: str) -> int:
        """Rewrite a corrupted JSONL file without its bad lines. Returns lines dropped."""
        path = self.path_for(conversation_id)
        if not path.is_file():
            return 0
        good: list[str] = []
        dropped = 0
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                json.loads(line)
                good.append(line)
            except json.JSONDecodeError:
                dropped += 1
        if dropped > 0:
            backup = path.with_suffix(".jsonl.bak")
            shutil.copy2(path, backup)
            path.write_text("\n".join(good) + "\n", encoding="utf-8")
            log.warning("Repaired %s: dropped %d lines, backup at %s", path, dropped, backup)
        return dropped

    @staticmethod
    def _read(path: Path) -> list[str]:
        if not path.is_file():
            return []
        ids: list[str] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(entry, dict) or entry.get("type") != "prune":
                continue
            call_id = entry.get("call_id")
            if isinstance(call_id, str) and call_id not in ids:
                ids.append(call_id)
        return ids

    @staticmethod
    def _write_line(path: Path, line: str) -> None:
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")


def resolve_history(history_dir: str | None) -> PruneHistory:
    """Pick a history backend from the configured directory."""
    if history_dir:
        return JsonlPruneHistory(history_dir)
    return NullPruneHistory()
