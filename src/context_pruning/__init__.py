"""context-pruning: replace stale tool outputs in outgoing LLM requests."""

from pathlib import Path

import yaml

_CONFIG_PATH = Path(__file__).parent / "CONFIG.yaml"


def load_config(path: Path | None = None) -> dict:
    """Load and return the CONFIG.yaml as a dict."""
    p = path or _CONFIG_PATH
    with open(p) as f:
        return yaml.safe_load(f)


# Public API
from .config import DEFAULT_PLACEHOLDER, JanitorConfig, PrunerConfig, PruningConfig  # noqa: E402
from .facade import ContextPruner  # noqa: E402
from .intercept.chain import InterceptionChain, Pipeline  # noqa: E402
from .intercept.transport import HttpxSender  # noqa: E402
from .janitor.janitor import Janitor  # noqa: E402
from .janitor.policy import DuplicateCallPolicy, StalenessPolicy, resolve_policy  # noqa: E402
from .janitor.pool import JanitorPool  # noqa: E402
from .rewrite.payloads import PayloadFormat, detect_payload  # noqa: E402
from .rewrite.rewriter import RequestRewriter, RewriteResult  # noqa: E402
from .state.context import PruningContext  # noqa: E402
from .state.store import PrunedIdStore  # noqa: E402
from .state.types import ConversationInfo, ModelInfo, SessionStats, ToolCallRecord, TranscriptEntry  # noqa: E402

__all__ = [
    "ContextPruner",
    "load_config",
    "DEFAULT_PLACEHOLDER",
    "PrunerConfig",
    "PruningConfig",
    "JanitorConfig",
    "PruningContext",
    "PrunedIdStore",
    "RequestRewriter",
    "RewriteResult",
    "PayloadFormat",
    "detect_payload",
    "InterceptionChain",
    "Pipeline",
    "HttpxSender",
    "Janitor",
    "JanitorPool",
    "StalenessPolicy",
    "DuplicateCallPolicy",
    "resolve_policy",
    "ConversationInfo",
    "ModelInfo",
    "SessionStats",
    "ToolCallRecord",
    "TranscriptEntry",
]
