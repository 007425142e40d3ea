"""Pruning configuration dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

DEFAULT_PLACEHOLDER = (
    "[Output removed to save context - information superseded or no longer needed]"
)

PolicyName = Literal["duplicates", "bedrock", "openrouter", "none"]


@dataclass
class PlaceholderConfig:
    """Fixed replacement literals, one per payload format."""

    chat: str = DEFAULT_PLACEHOLDER
    structured: str = DEFAULT_PLACEHOLDER


@dataclass
class PruningConfig:
    """Request rewriting behavior."""

    debug: bool = False
    global_fast_path: bool = True
    placeholders: PlaceholderConfig = field(default_factory=PlaceholderConfig)
    protected_tools: list[str] = field(default_factory=list)


@dataclass
class BedrockPolicyConfig:
    model_id: str = "anthropic.claude-3-haiku-20240307-v1:0"
    region: str = "us-east-1"
    max_tokens: int = 1024


@dataclass
class OpenRouterPolicyConfig:
    api_key: str = ""
    model: str = ""
    base_url: str = "https://openrouter.ai/api/v1"


@dataclass
class JanitorConfig:
    """Idle-time analysis settings."""

    enabled: bool = True
    max_workers: int = 4
    policy: PolicyName = "duplicates"
    fallback: PolicyName | None = None
    bedrock: BedrockPolicyConfig = field(default_factory=BedrockPolicyConfig)
    openrouter: OpenRouterPolicyConfig = field(default_factory=OpenRouterPolicyConfig)


@dataclass
class HistoryConfig:
    """Where prune marks are persisted. ``dir=None`` keeps them in memory."""

    dir: str | None = None


@dataclass
class DiagnosticsConfig:
    log_dir: str | None = None
    snapshots: bool = False


@dataclass
class PrunerConfig:
    """Top-level configuration."""

    pruning: PruningConfig = field(default_factory=PruningConfig)
    janitor: JanitorConfig = field(default_factory=JanitorConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)

    @classmethod
    def from_dict(cls, data: dict) -> PrunerConfig:
        """Build from a config dict, filling defaults for missing keys."""
        pr = data.get("pruning") or {}
        ph = pr.get("placeholders") or {}
        jn = data.get("janitor") or {}
        br = jn.get("bedrock") or {}
        orr = jn.get("openrouter") or {}
        hs = data.get("history") or {}
        dg = data.get("diagnostics") or {}
        return cls(
            pruning=PruningConfig(
                debug=pr.get("debug", False),
                global_fast_path=pr.get("global_fast_path", True),
                placeholders=PlaceholderConfig(
                    chat=ph.get("chat", DEFAULT_PLACEHOLDER),
                    structured=ph.get("structured", DEFAULT_PLACEHOLDER),
                ),
                protected_tools=list(pr.get("protected_tools", [])),
            ),
            janitor=JanitorConfig(
                enabled=jn.get("enabled", True),
                max_workers=jn.get("max_workers", 4),
                policy=jn.get("policy", "duplicates"),
                fallback=jn.get("fallback"),
                bedrock=BedrockPolicyConfig(
                    model_id=br.get("model_id", BedrockPolicyConfig.model_id),
                    region=br.get("region", "us-east-1"),
                    max_tokens=br.get("max_tokens", 1024),
                ),
                openrouter=OpenRouterPolicyConfig(
                    api_key=orr.get("api_key", ""),
                    model=orr.get("model", ""),
                    base_url=orr.get("base_url", OpenRouterPolicyConfig.base_url),
                ),
            ),
            history=HistoryConfig(dir=hs.get("dir")),
            diagnostics=DiagnosticsConfig(
                log_dir=dg.get("log_dir"),
                snapshots=dg.get("snapshots", False),
            ),
        )
