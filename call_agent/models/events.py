"""
Envelopes pushed to observer connections.

Domain events describe what happened on a call (transcripts, tool calls,
lifecycle changes); audio events carry raw caller audio for live listening.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class DomainEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    call_id: Optional[str] = Field(None, serialization_alias="callId")
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=utc_timestamp)


class AudioEvent(BaseModel):
    type: Literal["audio"] = "audio"
    source: Literal["inbound", "outbound"] = "inbound"
    payload: str
    codec: str
    timestamp: str = Field(default_factory=utc_timestamp)
