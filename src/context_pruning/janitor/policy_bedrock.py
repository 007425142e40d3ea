"""Staleness policy that asks a Bedrock-hosted model which outputs are obsolete."""

from __future__ import annotations

import json
from typing import Sequence

import boto3

from ..state.types import ModelInfo, ToolCallRecord
from .policy import build_analysis_prompt, parse_pruned_ids


class BedrockPolicy:
    """Judge staleness with an Anthropic model on AWS Bedrock."""

    def __init__(
        self,
        model_id: str = "anthropic.claude-3-haiku-20240307-v1:0",
        region: str = "us-east-1",
        max_tokens: int = 1024,
        protected_tools: Sequence[str] = (),
    ) -> None:
        self._client = boto3.client("bedrock-runtime", region_name=region)
        self._model_id = model_id
        self._max_tokens = max_tokens
        self._protected = list(protected_tools)

    def evaluate(self, calls: Sequence[ToolCallRecord], *, model: ModelInfo | None = None) -> set[str]:
        if not calls:
            return set()
        prompt = build_analysis_prompt(calls, self._protected)
        body = json.dumps({
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        })
        response = self._client.invoke_model(modelId=self._model_id, body=body)
        result = json.loads(response["body"].read())
        return parse_pruned_ids(result["content"][0]["text"], calls, self._protected)
