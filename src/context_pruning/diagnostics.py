"""Diagnostics: log file setup and labeled request snapshots."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from pydantic import BaseModel

log = logging.getLogger(__name__)

_PACKAGE_LOGGER = "context_pruning"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(*, debug: bool = False, log_dir: str | Path | None = None) -> Path | None:
    """Set the package log level and, if *log_dir* is given, add a daily log file.

    Returns the log file path, or None when logging only to the host's handlers.
    """
    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if not log_dir:
        return None

    directory = Path(log_dir).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{datetime.now(timezone.utc):%Y-%m-%d}.log"
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == path.absolute():
            return path
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    return path


class SnapshotWriter:
    """Writes ``<log_dir>/snapshots/<label>/<timestamp>.json`` when enabled."""

    def __init__(self, log_dir: str | Path | None, *, enabled: bool = False) -> None:
        self._dir = Path(log_dir).expanduser() / "snapshots" if log_dir else None
        self.enabled = enabled and self._dir is not None

    async def save(
        self,
        label: str,
        body: Any,
        metadata: dict[str, Any] | None = None,
        transcript: Sequence[Any] | None = None,
    ) -> Path | None:
        """Persist one snapshot. Returns the written path, or None when disabled."""
        if not self.enabled:
            return None
        now = datetime.now(timezone.utc)
        record = {
            "timestamp": now.isoformat(),
            "label": label,
            "metadata": metadata or {},
            "body": body,
            "transcript": [_plain(e) for e in transcript] if transcript is not None else None,
        }
        safe_label = "".join(c if c.isalnum() or c in "-_" else "_" for c in label)[:64] or "unlabeled"
        path = self._dir / safe_label / f"{now:%Y%m%dT%H%M%S%f}.json"
        await asyncio.to_thread(_write_json, path, record)
        log.debug("Snapshot written to %s", path)
        return path


def _plain(entry: Any) -> Any:
    if isinstance(entry, BaseModel):
        return entry.model_dump(mode="json")
    return entry


def _write_json(path: Path, record: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(record, indent=2, default=str), encoding="utf-8")
