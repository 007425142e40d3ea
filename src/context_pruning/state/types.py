"""Core data types for context-pruning."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# -- Conversation types --


class ConversationInfo(BaseModel):
    """A conversation as reported by the host's directory."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    parent_id: str | None = Field(default=None, alias="parentID")

    @property
    def is_subagent(self) -> bool:
        return bool(self.parent_id)


class TranscriptEntry(BaseModel):
    """One item of a conversation transcript, as seen by the janitor."""

    model_config = ConfigDict(populate_by_name=True)

    role: str
    content: str = ""
    tool: str | None = None
    call_id: str | None = Field(default=None, alias="callID")
    parameters: Any = None

    @property
    def is_tool_output(self) -> bool:
        return self.role == "tool" or self.tool is not None


# -- Correlation types --


class ToolParameterEntry(BaseModel):
    """Tool name and decoded arguments captured for one call id."""

    tool: str
    parameters: Any = None


class ModelInfo(BaseModel):
    """Provider/model pair a conversation is talking to."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    provider_id: str = Field(alias="providerID")
    model_id: str = Field(alias="modelID")


class ToolCallRecord(BaseModel):
    """An observed tool call handed to a staleness policy."""

    call_id: str
    tool: str
    parameters: Any = None
    order: int = 0


# -- Stats --


class SessionStats(BaseModel):
    """Janitor counters for one conversation. Observability only."""

    runs: int = 0
    last_seen: int = 0
    last_pruned: int = 0
    total_pruned: int = 0
