"""
Conversation history management for calls.

Each call id accumulates the transcript of what the caller and the assistant said.
The history outlives any single media-stream connection: when Twilio closes and
reopens the stream (for example after a DTMF redirect) the next session is
primed with the prior messages so the conversation continues where it left off.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from call_agent.models.openai_schemas import MessageRole


@dataclass
class HistoryMessage:
    role: MessageRole
    text: str


@dataclass
class ConversationHistory:
    """Ordered transcript for one call plus the time it last changed."""

    call_id: str
    messages: List[HistoryMessage] = field(default_factory=list)
    last_updated_at: float = 0.0
    stream_started_at: float = 0.0

    def render(self) -> str:
        """Render the transcript as plain ``Role: text`` lines."""
        lines = []
        for message in self.messages:
            speaker = "Caller" if message.role == MessageRole.USER else "Assistant"
            lines.append(f"{speaker}: {message.text}")
        return "\n".join(lines)


class ConversationStore:
    """
    Holds ``ConversationHistory`` objects keyed by call id.

    Args:
        clock: Callable returning the current time in seconds; injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.histories: Dict[str, ConversationHistory] = {}

    def get(self, call_id: str) -> Optional[ConversationHistory]:
        return self.histories.get(call_id)

    def get_or_create(self, call_id: str) -> ConversationHistory:
        history = self.histories.get(call_id)
        if history is None:
            history = ConversationHistory(call_id=call_id, last_updated_at=self.clock())
            self.histories[call_id] = history
        return history

    def append(self, call_id: str, role: MessageRole, text: str) -> ConversationHistory:
        """Append a message in arrival order and refresh the activity timestamp."""
        history = self.get_or_create(call_id)
        history.messages.append(HistoryMessage(role=role, text=text))
        history.last_updated_at = self.clock()
        return history

    def mark_stream_started(self, call_id: str) -> ConversationHistory:
        """Record that a media stream (re)connected for the call."""
        history = self.get_or_create(call_id)
        history.stream_started_at = history.last_updated_at = self.clock()
        return history

    def has_messages(self, call_id: str) -> bool:
        history = self.histories.get(call_id)
        return bool(history and history.messages)

    def discard(self, call_id: str) -> None:
        self.histories.pop(call_id, None)

    def __contains__(self, call_id: str) -> bool:
        return call_id in self.histories
