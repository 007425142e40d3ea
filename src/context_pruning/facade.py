"""Facade: single entry point for hosting context pruning."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

from .config import PrunerConfig
from .diagnostics import SnapshotWriter, configure_logging
from .host import ConversationDirectory, Sender, TranscriptSource, as_conversation
from .intercept.chain import InterceptionChain
from .janitor.janitor import Janitor
from .janitor.policy import StalenessPolicy, resolve_policy
from .janitor.pool import JanitorPool
from .rewrite.rewriter import RequestRewriter
from .state.context import PruningContext
from .state.history import resolve_history
from .state.types import ModelInfo, SessionStats

log = logging.getLogger(__name__)


class ContextPruner:
    """High-level facade wiring the store, rewriter, chain and janitor together.

    Usage::

        pruner = ContextPruner.from_config(directory=host.sessions, transcripts=host.messages)
        transport = pruner.wrap_global(transport)

        # Per chat request:
        send = await pruner.wrap_sender(conversation_id, send, model=model)

        # On host events:
        await pruner.handle_event(event)

        # On shutdown:
        await pruner.aclose()
    """

    def __init__(
        self,
        *,
        directory: ConversationDirectory,
        transcripts: TranscriptSource,
        config: PrunerConfig | None = None,
        context: PruningContext | None = None,
        policy: StalenessPolicy | None = None,
        snapshots: SnapshotWriter | None = None,
    ) -> None:
        self._config = config or PrunerConfig()
        self._directory = directory
        self._transcripts = transcripts
        self._ctx = context or PruningContext.with_history(resolve_history(self._config.history.dir))
        self._snapshots = snapshots or SnapshotWriter(
            self._config.diagnostics.log_dir,
            enabled=self._config.diagnostics.snapshots,
        )
        protected = self._config.pruning.protected_tools
        placeholders = self._config.pruning.placeholders
        rewriter = RequestRewriter(
            self._ctx,
            chat_placeholder=placeholders.chat,
            structured_placeholder=placeholders.structured,
        )
        self._chain = InterceptionChain(
            self._ctx,
            directory,
            rewriter=rewriter,
            transcripts=transcripts,
            snapshots=self._snapshots,
            global_fast_path=self._config.pruning.global_fast_path,
        )
        self._janitor = Janitor(
            self._ctx,
            transcripts,
            policy or resolve_policy(self._config.janitor, protected),
            snapshots=self._snapshots,
        )
        self._pool = JanitorPool(self._config.janitor.max_workers)

    @classmethod
    def from_config(
        cls,
        config_path: str | Path | None = None,
        *,
        directory: ConversationDirectory,
        transcripts: TranscriptSource,
    ) -> ContextPruner:
        """Create a ContextPruner from a CONFIG.yaml file."""
        from . import load_config

        cfg = PrunerConfig.from_dict(load_config(Path(config_path) if config_path else None) or {})
        configure_logging(debug=cfg.pruning.debug, log_dir=cfg.diagnostics.log_dir)
        log.info(
            "Context pruning initialized (policy=%s, global fast path=%s)",
            cfg.janitor.policy,
            cfg.pruning.global_fast_path,
        )
        return cls(directory=directory, transcripts=transcripts, config=cfg)

    # -- Properties --

    @property
    def context(self) -> PruningContext:
        return self._ctx

    @property
    def pool(self) -> JanitorPool:
        return self._pool

    @property
    def request_pruned_counts(self) -> dict[str, int]:
        """Outputs replaced by the most recent rewritten request, per scope."""
        return dict(self._ctx.request_pruned_counts)

    def stats(self, conversation_id: str) -> SessionStats | None:
        return self._ctx.stats.get(conversation_id)

    # -- Interception --

    def wrap_global(self, sender: Sender) -> Sender:
        """Wrap the process-wide sender. Filters with the union of all pruned ids."""
        return self._chain.wrap_global(sender)

    async def wrap_sender(
        self,
        conversation_id: str,
        sender: Sender,
        *,
        model: ModelInfo | Mapping[str, Any] | None = None,
    ) -> Sender:
        """Wrap a sender for one conversation. Subagent conversations are left alone."""
        if isinstance(model, Mapping):
            model = ModelInfo.model_validate(model)
        return await self._chain.wrap_conversation(conversation_id, sender, model=model)

    # -- Janitor --

    async def on_idle(self, conversation_id: str) -> bool:
        """Schedule a janitor run. Returns True if a run was admitted."""
        if not self._config.janitor.enabled:
            return False
        if self._pool.is_running(conversation_id):
            log.debug("Janitor already running for %s", conversation_id)
            return False
        try:
            conv = as_conversation(await self._directory.get(conversation_id))
        except Exception as exc:
            log.error("Conversation lookup failed for %s, skipping janitor: %s", conversation_id, exc)
            return False
        if conv.is_subagent:
            log.debug("Skipping janitor for subagent %s (parent %s)", conversation_id, conv.parent_id)
            return False
        log.debug("Conversation %s idle, triggering janitor", conversation_id)
        return self._pool.submit(conversation_id, self._janitor.run)

    async def handle_event(self, event: Mapping[str, Any]) -> bool:
        """Dispatch a host event. Only ``session.status`` idle events do anything."""
        if event.get("type") != "session.status":
            return False
        props = event.get("properties") or {}
        status = props.get("status") or {}
        conversation_id = props.get("sessionID")
        if status.get("type") != "idle" or not conversation_id:
            return False
        return await self.on_idle(conversation_id)

    async def drain(self) -> None:
        """Wait for pending janitor runs."""
        await self._pool.drain()

    async def aclose(self) -> None:
        """Cancel pending runs and drop all cached state."""
        await self._pool.aclose()
        self._ctx.dispose()
