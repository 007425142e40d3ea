"""Staleness policies: decide which observed tool calls are superseded."""

from __future__ import annotations

import json
import logging
import re
from typing import Protocol, Sequence, runtime_checkable

from ..config import JanitorConfig
from ..state.types import ModelInfo, ToolCallRecord

log = logging.getLogger(__name__)


@runtime_checkable
class StalenessPolicy(Protocol):
    """Interface every staleness policy must satisfy.

    ``evaluate`` receives the conversation's tool calls in order and returns
    the call ids whose outputs no longer need to be sent. It runs off the
    event loop, so blocking I/O is fine.
    """

    def evaluate(
        self,
        calls: Sequence[ToolCallRecord],
        *,
        model: ModelInfo | None = None,
    ) -> set[str]: ...


class NoopPolicy:
    """Never prunes anything."""

    def evaluate(self, calls: Sequence[ToolCallRecord], *, model: ModelInfo | None = None) -> set[str]:
        return set()


class DuplicateCallPolicy:
    """An earlier call with the same tool and identical parameters is superseded by the latest."""

    def __init__(self, protected_tools: Sequence[str] = ()) -> None:
        self._protected = {t.lower() for t in protected_tools}

    def evaluate(self, calls: Sequence[ToolCallRecord], *, model: ModelInfo | None = None) -> set[str]:
        latest: dict[tuple[str, str], str] = {}
        superseded: set[str] = set()
        for call in calls:
            if call.tool.lower() in self._protected or call.parameters is None:
                continue
            key = (call.tool, _canonical(call.parameters))
            previous = latest.get(key)
            if previous is not None and previous != call.call_id:
                superseded.add(previous)
            latest[key] = call.call_id
        return superseded


class FallbackPolicy:
    """Tries policies in order, falling back on any exception."""

    def __init__(self, policies: list[StalenessPolicy]) -> None:
        if not policies:
            raise ValueError("FallbackPolicy requires at least one policy")
        self._policies = policies
        self._active: StalenessPolicy = policies[0]

    @property
    def active_policy(self) -> StalenessPolicy:
        """The policy that last succeeded."""
        return self._active

    def evaluate(self, calls: Sequence[ToolCallRecord], *, model: ModelInfo | None = None) -> set[str]:
        last_err: Exception | None = None
        for policy in self._policies:
            try:
                result = policy.evaluate(calls, model=model)
                self._active = policy
                return result
            except Exception as exc:
                log.warning("Policy %s failed: %s", type(policy).__name__, exc)
                last_err = exc
        raise last_err  # type: ignore[misc]


# -- LLM prompt helpers --


ANALYSIS_PROMPT = """You are pruning the context of a coding assistant conversation.
Below are the tool calls made so far, oldest first. Identify calls whose outputs are
obsolete: superseded by a later call that reads or produces the same information,
or no longer relevant to the work in progress. Be conservative: keep anything that
might still be needed.

Never select calls to these protected tools: {protected}

Tool calls:
{calls}

Reply with ONLY a JSON object: {{"pruned_tool_call_ids": ["<id>", ...]}}"""


def build_analysis_prompt(calls: Sequence[ToolCallRecord], protected_tools: Sequence[str]) -> str:
    lines = []
    for call in calls:
        params = _canonical(call.parameters) if call.parameters is not None else "(unknown)"
        lines.append(f"- id={call.call_id} tool={call.tool} params={params[:500]}")
    return ANALYSIS_PROMPT.format(
        protected=", ".join(protected_tools) or "(none)",
        calls="\n".join(lines),
    )


def parse_pruned_ids(
    text: str,
    calls: Sequence[ToolCallRecord],
    protected_tools: Sequence[str] = (),
) -> set[str]:
    """Extract ids from a model reply, keeping only known, unprotected calls."""
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if not match:
        raise ValueError(f"No JSON object in analysis reply: {text[:200]!r}")
    data = json.loads(match.group(0))
    ids = data.get("pruned_tool_call_ids", [])
    if not isinstance(ids, list):
        raise ValueError("pruned_tool_call_ids is not a list")
    protected = {t.lower() for t in protected_tools}
    known = {c.call_id.lower(): c for c in calls}
    result: set[str] = set()
    for raw in ids:
        call = known.get(str(raw).lower())
        if call is None or call.tool.lower() in protected:
            continue
        result.add(call.call_id)
    return result


def _canonical(value: object) -> str:
    return json.dumps(value, sort_keys=True, default=str)


# -- Factory --


def resolve_policy(cfg: JanitorConfig, protected_tools: Sequence[str] = ()) -> StalenessPolicy:
    """Build a staleness policy (with optional fallback) from config."""
    primary = _build_policy(cfg, cfg.policy, protected_tools)
    if cfg.fallback:
        fallback = _build_policy(cfg, cfg.fallback, protected_tools)
        return FallbackPolicy([primary, fallback])
    return primary


def _build_policy(cfg: JanitorConfig, name: str, protected_tools: Sequence[str]) -> StalenessPolicy:
    if name == "duplicates":
        return DuplicateCallPolicy(protected_tools)
    if name == "none":
        return NoopPolicy()
    if name == "bedrock":
        from .policy_bedrock import BedrockPolicy
        return BedrockPolicy(
            model_id=cfg.bedrock.model_id,
            region=cfg.bedrock.region,
            max_tokens=cfg.bedrock.max_tokens,
            protected_tools=protected_tools,
        )
    if name == "openrouter":
        from .policy_openrouter import OpenRouterPolicy
        return OpenRouterPolicy(
            api_key=cfg.openrouter.api_key,
            model=cfg.openrouter.model,
            base_url=cfg.openrouter.base_url,
            protected_tools=protected_tools,
        )
    raise ValueError(f"Unknown staleness policy: {name!r}")
