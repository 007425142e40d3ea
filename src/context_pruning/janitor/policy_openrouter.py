"""Staleness policy using OpenRouter (OpenAI-compatible chat completions)."""

from __future__ import annotations

from typing import Sequence

import httpx

from ..state.types import ModelInfo, ToolCallRecord
from .policy import build_analysis_prompt, parse_pruned_ids

_DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterPolicy:
    """Judge staleness with any chat model reachable through OpenRouter.

    When no model is configured, the conversation's own model is used.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "",
        base_url: str = _DEFAULT_BASE_URL,
        protected_tools: Sequence[str] = (),
        timeout: float = 60.0,
    ) -> None:
        self._model = model
        self._protected = list(protected_tools)
        self._client = httpx.Client(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    def evaluate(self, calls: Sequence[ToolCallRecord], *, model: ModelInfo | None = None) -> set[str]:
        if not calls:
            return set()
        model_name = self._model or (f"{model.provider_id}/{model.model_id}" if model else "")
        if not model_name:
            raise ValueError("OpenRouterPolicy has no model configured or known for this conversation")
        resp = self._client.post(
            "/chat/completions",
            json={
                "model": model_name,
                "messages": [{"role": "user", "content": build_analysis_prompt(calls, self._protected)}],
            },
        )
        resp.raise_for_status()
        data = resp.json()
        return parse_pruned_ids(data["choices"][0]["message"]["content"], calls, self._protected)
