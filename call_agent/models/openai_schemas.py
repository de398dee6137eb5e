"""
Pydantic models for OpenAI Realtime API message structures.

This module provides type-safe models for the client events the bridge sends to
the Realtime API and the few server event shapes it inspects.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from call_agent.config.constants import AUDIO_FORMAT_G711_ULAW, INPUT_TRANSCRIPTION_MODEL


class MessageRole(str, Enum):
    """Role of a participant in a conversation."""
    USER = "user"
    ASSISTANT = "assistant"


class RealtimeBaseMessage(BaseModel):
    """Base model for Realtime API messages."""
    type: str


class TurnDetection(BaseModel):
    type: str = "server_vad"


class InputAudioTranscription(BaseModel):
    model: str = INPUT_TRANSCRIPTION_MODEL


class NoiseReduction(BaseModel):
    type: Literal["near_field", "far_field"]


class FunctionTool(BaseModel):
    """Function tool definition advertised to the model."""
    type: str = "function"
    name: str
    description: str
    parameters: Dict[str, Any]


class SessionConfig(BaseModel):
    """Body of a ``session.update`` event."""
    instructions: str
    voice: Optional[str] = None
    tools: List[FunctionTool] = Field(default_factory=list)
    tool_choice: str = "auto"
    input_audio_format: str = AUDIO_FORMAT_G711_ULAW
    output_audio_format: str = AUDIO_FORMAT_G711_ULAW
    turn_detection: TurnDetection = Field(default_factory=TurnDetection)
    input_audio_transcription: InputAudioTranscription = Field(
        default_factory=InputAudioTranscription
    )
    input_audio_noise_reduction: Optional[NoiseReduction] = None
    temperature: Optional[float] = None
    modalities: List[str] = Field(default_factory=lambda: ["text", "audio"])


class SessionUpdateMessage(RealtimeBaseMessage):
    type: Literal["session.update"] = "session.update"
    session: SessionConfig


class InputAudioBufferAppendMessage(RealtimeBaseMessage):
    type: Literal["input_audio_buffer.append"] = "input_audio_buffer.append"
    audio: str


class ConversationItemTruncateMessage(RealtimeBaseMessage):
    """Tell the model how much of an assistant audio item the caller heard."""
    type: Literal["conversation.item.truncate"] = "conversation.item.truncate"
    item_id: str
    content_index: int = 0
    audio_end_ms: int = Field(..., ge=0)


class ResponseCancelMessage(RealtimeBaseMessage):
    type: Literal["response.cancel"] = "response.cancel"


class ResponseCreateMessage(RealtimeBaseMessage):
    type: Literal["response.create"] = "response.create"


class FunctionCallOutputItem(BaseModel):
    type: Literal["function_call_output"] = "function_call_output"
    call_id: str
    output: str


class ConversationItemCreateMessage(RealtimeBaseMessage):
    type: Literal["conversation.item.create"] = "conversation.item.create"
    item: FunctionCallOutputItem


class RealtimeErrorMessage(RealtimeBaseMessage):
    """Error message from OpenAI Realtime API."""
    type: str = "error"
    error: Dict[str, Any] = Field(default_factory=dict)
