"""
Pydantic models for Twilio Media Streams WebSocket frames.

Twilio wraps every frame in a JSON envelope discriminated by its ``event`` field.
The bridge consumes ``start``, ``media``, ``stop`` and ``mark`` frames and
produces ``media`` (assistant audio) and ``clear`` frames.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class TwilioBaseMessage(BaseModel):
    """Base model for all media stream frames."""

    model_config = ConfigDict(populate_by_name=True)

    event: str
    stream_sid: Optional[str] = Field(None, alias="streamSid")
    sequence_number: Optional[str] = Field(None, alias="sequenceNumber")


class StreamStartDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stream_sid: str = Field(..., alias="streamSid")
    call_sid: str = Field(..., alias="callSid")
    account_sid: Optional[str] = Field(None, alias="accountSid")
    tracks: List[str] = Field(default_factory=list)
    custom_parameters: Dict[str, Any] = Field(default_factory=dict, alias="customParameters")
    media_format: Optional[Dict[str, Any]] = Field(None, alias="mediaFormat")


class StartMessage(TwilioBaseMessage):
    event: Literal["start"]
    start: StreamStartDetails


class MediaPayload(BaseModel):
    track: Optional[str] = None
    chunk: Optional[str] = None
    timestamp: Optional[str] = None
    payload: str

    @property
    def timestamp_ms(self) -> Optional[int]:
        """Playback position reported by Twilio, in milliseconds."""
        if self.timestamp is None:
            return None
        try:
            return int(self.timestamp)
        except ValueError:
            return None


class OutboundMediaPayload(BaseModel):
    payload: str


class OutboundMediaMessage(TwilioBaseMessage):
    """Assistant audio sent back to the caller."""
    event: Literal["media"] = "media"
    media: OutboundMediaPayload


class ClearMessage(TwilioBaseMessage):
    """Drop any audio Twilio has buffered but not yet played."""
    event: Literal["clear"] = "clear"
