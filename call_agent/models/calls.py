"""
Pydantic models for call metadata and the outbound-call HTTP contract.

A ``CallRecord`` is the registry's view of one Twilio call: who was dialled, the
task the agent should carry out, optional agent tuning and credential overrides,
and the lifecycle status driven by the call session bridge.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional, Pattern

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from call_agent.config.constants import MAX_TEMPERATURE, MIN_TEMPERATURE

PHONE_PATTERN: Pattern = re.compile(r"^\+?[1-9]\d{1,14}$")

DEFAULT_INBOUND_PROMPT = (
    "You are a helpful AI assistant. Greet the caller and ask how you can help them."
)


class CallStatus(str, Enum):
    """Lifecycle status of a call in the registry."""
    INITIATED = "initiated"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskType(str, Enum):
    APPOINTMENT_REMINDER = "appointment_reminder"
    SURVEY = "survey"
    NOTIFICATION = "notification"
    CUSTOM = "custom"


class OutboundTask(BaseModel):
    """What the agent is supposed to accomplish on the call."""

    type: TaskType
    prompt: str = Field(..., description="Free-text instruction for the agent")
    context: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("prompt")
    def validate_prompt(cls, v):
        if not v.strip():
            raise ValueError("Task prompt cannot be empty")
        return v

    @field_validator("context", mode="before")
    def default_context(cls, v):
        return {} if v is None else v


class AgentConfig(BaseModel):
    """Optional tuning for the realtime model session."""

    model_config = ConfigDict(populate_by_name=True)

    voice: Optional[str] = None
    temperature: Optional[float] = None
    noise_reduction: Optional[Literal["near_field", "far_field", "off"]] = Field(
        None, alias="noiseReduction"
    )
    model: Optional[str] = None

    def clamped_temperature(self) -> Optional[float]:
        """Temperature limited to the range accepted by the realtime API."""
        if self.temperature is None:
            return None
        return max(MIN_TEMPERATURE, min(MAX_TEMPERATURE, self.temperature))


class CallCredentials(BaseModel):
    """Caller-supplied credentials overriding the process defaults."""

    model_config = ConfigDict(populate_by_name=True)

    openai_api_key: Optional[str] = Field(None, alias="openaiApiKey")
    twilio_account_sid: Optional[str] = Field(None, alias="twilioAccountSid")
    twilio_auth_token: Optional[str] = Field(None, alias="twilioAuthToken")
    twilio_phone_number: Optional[str] = Field(None, alias="twilioPhoneNumber")

    @property
    def has_twilio_credentials(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)


class CallRecord(BaseModel):
    """Identity and lifecycle of one telephony call."""

    call_id: str
    destination: str
    task: OutboundTask
    agent_config: Optional[AgentConfig] = None
    credentials: Optional[CallCredentials] = None
    status: CallStatus = CallStatus.INITIATED
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def summary(self) -> Dict[str, Any]:
        """Public representation used by listings; credentials are never included."""
        return {
            "callId": self.call_id,
            "destination": self.destination,
            "task": self.task.model_dump(mode="json"),
            "agentConfig": (
                self.agent_config.model_dump(mode="json", by_alias=True, exclude_none=True)
                if self.agent_config
                else None
            ),
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
        }


def default_inbound_task() -> OutboundTask:
    """Task used when a media stream arrives for a call nobody announced."""
    return OutboundTask(type=TaskType.CUSTOM, prompt=DEFAULT_INBOUND_PROMPT, context={})


class OutboundCallRequest(BaseModel):
    """Body of POST /twilio/outbound-call."""

    model_config = ConfigDict(populate_by_name=True)

    destination: str = Field(..., validation_alias=AliasChoices("destination", "to"))
    task: OutboundTask
    agent_config: Optional[AgentConfig] = Field(
        None, validation_alias=AliasChoices("agentConfig", "agent_config")
    )
    credentials: Optional[CallCredentials] = None

    @field_validator("destination")
    def validate_destination(cls, v):
        if not v.strip():
            raise ValueError("Destination cannot be empty")
        return v.strip()


class OutboundCallResponse(BaseModel):
    """Result of POST /twilio/outbound-call."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    call_id: Optional[str] = Field(None, serialization_alias="callId")
    status: Optional[str] = None
    estimated_duration: Optional[str] = Field(None, serialization_alias="estimatedDuration")
    error: Optional[str] = None
    code: Optional[str] = None
