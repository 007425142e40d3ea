"""Interception chain: rewrite stages composed around the active request sender."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, Sequence

from ..diagnostics import SnapshotWriter
from ..host import ConversationDirectory, Sender, TranscriptSource, as_conversation
from ..rewrite.payloads import PASSTHROUGH, Payload, decode_body, detect_payload, encode_body
from ..rewrite.rewriter import RequestRewriter, RewriteResult
from ..state.context import PruningContext
from ..state.types import ModelInfo

log = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"


@dataclass
class InterceptedRequest:
    """One outbound request as it moves through the stages."""

    target: Any
    body: Any
    scope: str
    conversation_id: str | None = None
    document: Any = None
    payload: Payload = PASSTHROUGH
    result: RewriteResult | None = None

    @property
    def modified(self) -> bool:
        return self.result is not None and self.result.modified


class Stage(Protocol):
    async def __call__(self, request: InterceptedRequest) -> None: ...


PrunedIdSource = Callable[[InterceptedRequest], Awaitable[Sequence[str] | set[str]]]


# -- Stages --


class DecodeStage:
    """Parse the body and classify its shape."""

    async def __call__(self, request: InterceptedRequest) -> None:
        request.document = decode_body(request.body)
        request.payload = detect_payload(request.document)


class CaptureStage:
    """Record tool parameters (and positions, when the conversation is known)."""

    def __init__(self, rewriter: RequestRewriter) -> None:
        self._rewriter = rewriter

    async def __call__(self, request: InterceptedRequest) -> None:
        self._rewriter.capture(request.payload, request.conversation_id)


class FilterStage:
    """Replace pruned tool outputs. Pruned ids are only fetched when outputs exist."""

    def __init__(self, rewriter: RequestRewriter, source: PrunedIdSource, context: PruningContext) -> None:
        self._rewriter = rewriter
        self._source = source
        self._ctx = context

    async def __call__(self, request: InterceptedRequest) -> None:
        if not request.payload.has_tool_outputs():
            return
        pruned = await self._source(request)
        if not pruned:
            return
        result = self._rewriter.filter(request.document, request.payload, pruned)
        request.result = result
        if result.modified:
            self._ctx.record_request(request.scope, result.replaced_count)
            log.info(
                "Replaced %d pruned tool outputs (%s, scope=%s, pruned ids=%d)",
                result.replaced_count,
                result.format.value,
                request.scope,
                len(pruned),
            )


class SnapshotStage:
    """Persist the rewritten body (and transcript) for debugging."""

    def __init__(self, writer: SnapshotWriter, transcripts: TranscriptSource | None = None) -> None:
        self._writer = writer
        self._transcripts = transcripts

    async def __call__(self, request: InterceptedRequest) -> None:
        if not self._writer.enabled or not request.modified:
            return
        transcript = None
        if self._transcripts is not None and request.conversation_id:
            transcript = await self._transcripts.fetch(request.conversation_id)
        await self._writer.save(
            request.scope,
            request.result.document,
            {
                "target": str(request.target)[:200],
                "format": request.result.format.value,
                "replaced": request.result.replaced_count,
            },
            transcript,
        )


# -- Pipeline --


class Pipeline:
    """An ordered list of stages, composed once and applied per request."""

    def __init__(self, stages: Sequence[Stage], *, scope: str, conversation_id: str | None = None) -> None:
        self._stages = list(stages)
        self.scope = scope
        self.conversation_id = conversation_id

    async def run(self, target: Any, options: dict) -> dict:
        """Run every stage; return the options to forward (a copy when rewritten).

        A failing stage stops the pipeline; whatever the earlier stages
        produced is still forwarded.
        """
        body = options.get("body")
        if body is None:
            return options
        request = InterceptedRequest(
            target=target, body=body, scope=self.scope, conversation_id=self.conversation_id,
        )
        for stage in self._stages:
            try:
                await stage(request)
            except Exception:
                log.exception("Stage %s failed (scope=%s)", type(stage).__name__, self.scope)
                break
        if not request.modified:
            return options
        return {**options, "body": encode_body(request.result.document, body)}

    def wrap(self, inner: Sender) -> Sender:
        """Return a sender that rewrites through this pipeline, then calls *inner*."""
        if _wrapped_with(inner, self.scope):
            return inner

        async def pruning_sender(target: Any, options: dict | None = None) -> Any:
            options = options if options is not None else {}
            try:
                forwarded = await self.run(target, options)
            except Exception:
                log.exception("Pruning pipeline failed (scope=%s), forwarding original request", self.scope)
                forwarded = options
            return await inner(target, forwarded)

        pruning_sender.__wrapped__ = inner  # type: ignore[attr-defined]
        pruning_sender.__pruning_scope__ = self.scope  # type: ignore[attr-defined]
        return pruning_sender


def _wrapped_with(sender: Any, scope: str) -> bool:
    seen: set[int] = set()
    while sender is not None and id(sender) not in seen:
        seen.add(id(sender))
        if getattr(sender, "__pruning_scope__", None) == scope:
            return True
        sender = getattr(sender, "__wrapped__", None)
    return False


# -- Wrap points --


class InterceptionChain:
    """Builds the process-wide and per-conversation pipelines."""

    def __init__(
        self,
        context: PruningContext,
        directory: ConversationDirectory,
        *,
        rewriter: RequestRewriter | None = None,
        transcripts: TranscriptSource | None = None,
        snapshots: SnapshotWriter | None = None,
        global_fast_path: bool = True,
    ) -> None:
        self._ctx = context
        self._directory = directory
        self._rewriter = rewriter or RequestRewriter(context)
        self._transcripts = transcripts
        self._snapshots = snapshots
        self._global_fast_path = global_fast_path

    def global_pipeline(self) -> Pipeline:
        stages: list[Stage] = [DecodeStage(), CaptureStage(self._rewriter)]
        if self._global_fast_path:
            stages.append(FilterStage(self._rewriter, self._global_ids, self._ctx))
        stages.extend(self._snapshot_stages())
        return Pipeline(stages, scope=GLOBAL_SCOPE)

    def conversation_pipeline(self, conversation_id: str) -> Pipeline:
        stages: list[Stage] = [
            DecodeStage(),
            CaptureStage(self._rewriter),
            FilterStage(self._rewriter, self._conversation_ids, self._ctx),
        ]
        stages.extend(self._snapshot_stages())
        return Pipeline(stages, scope=conversation_id, conversation_id=conversation_id)

    def wrap_global(self, sender: Sender) -> Sender:
        return self.global_pipeline().wrap(sender)

    async def wrap_conversation(
        self,
        conversation_id: str,
        sender: Sender,
        *,
        model: ModelInfo | None = None,
    ) -> Sender:
        """Wrap *sender* for one conversation. Subagents get *sender* back untouched."""
        try:
            conv = as_conversation(await self._directory.get(conversation_id))
        except Exception as exc:
            log.error("Conversation lookup failed for %s, not wrapping: %s", conversation_id, exc)
            return sender
        if conv.is_subagent:
            log.debug("Skipping subagent conversation %s (parent %s)", conversation_id, conv.parent_id)
            return sender
        if model is not None:
            self._ctx.models.put(conversation_id, model)
        log.debug("Wrapping sender for conversation %s", conversation_id)
        return self.conversation_pipeline(conversation_id).wrap(sender)

    async def _global_ids(self, request: InterceptedRequest) -> set[str]:
        return await self._ctx.pruned.global_union(self._directory)

    async def _conversation_ids(self, request: InterceptedRequest) -> list[str]:
        return await self._ctx.pruned.get(request.conversation_id)

    def _snapshot_stages(self) -> list[Stage]:
        if self._snapshots is None or not self._snapshots.enabled:
            return []
        return [SnapshotStage(self._snapshots, self._transcripts)]
