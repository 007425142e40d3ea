"""Host collaborator interfaces: conversation directory, transcripts, senders."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence, runtime_checkable

from .state.types import ConversationInfo, TranscriptEntry

# (target, options) -> response. ``options["body"]`` carries the request body.
Sender = Callable[[Any, dict], Awaitable[Any]]


@runtime_checkable
class ConversationDirectory(Protocol):
    """Lists and looks up conversations known to the host."""

    async def list(self) -> Sequence[ConversationInfo]: ...

    async def get(self, conversation_id: str) -> ConversationInfo: ...


@runtime_checkable
class TranscriptSource(Protocol):
    """Fetches the ordered entries of one conversation."""

    async def fetch(self, conversation_id: str) -> Sequence[TranscriptEntry | Mapping[str, Any]]: ...


def as_conversation(raw: ConversationInfo | Mapping[str, Any]) -> ConversationInfo:
    if isinstance(raw, ConversationInfo):
        return raw
    return ConversationInfo.model_validate(raw)


def as_transcript(raw: Sequence[TranscriptEntry | Mapping[str, Any]]) -> list[TranscriptEntry]:
    return [e if isinstance(e, TranscriptEntry) else TranscriptEntry.model_validate(e) for e in raw]
