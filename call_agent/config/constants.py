"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for protocol names, event types and defaults.
"""

# Logger name used throughout the application
LOGGER_NAME = "call_agent"

# Default OpenAI model for Realtime API
DEFAULT_REALTIME_MODEL = "gpt-realtime"
REALTIME_API_URL = "wss://api.openai.com/v1/realtime"
INPUT_TRANSCRIPTION_MODEL = "whisper-1"

# Audio format constants
AUDIO_FORMAT_G711_ULAW = "g711_ulaw"

# Route paths
MEDIA_STREAM_PATH = "/twilio/media-stream"
INCOMING_CALL_PATH = "/twilio/incoming-call"

# Twilio media stream events
TWILIO_EVENT_CONNECTED = "connected"
TWILIO_EVENT_START = "start"
TWILIO_EVENT_MEDIA = "media"
TWILIO_EVENT_STOP = "stop"
TWILIO_EVENT_MARK = "mark"

# Realtime API event types consumed by the bridge
RT_SPEECH_STARTED = "input_audio_buffer.speech_started"
RT_AUDIO_DELTA = "response.audio.delta"
RT_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
RT_INPUT_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
RT_ITEM_CREATED = "conversation.item.created"
RT_FUNCTION_ARGUMENTS_DONE = "response.function_call_arguments.done"
RT_ERROR = "error"

# Domain event types pushed to observers
EVENT_CALL_STARTED = "call.started"
EVENT_CALL_ENDING = "call.ending"
EVENT_CALL_ENDED = "call.ended"
EVENT_CALL_INTERRUPTED = "call.interrupted"
EVENT_TRANSCRIPT_AI = "transcript.ai"
EVENT_TRANSCRIPT_USER = "transcript.user"
EVENT_TOOL_CALLED = "tool.called"
EVENT_DTMF_SENT = "dtmf.sent"

# Tool names exposed to the model
TOOL_SEND_DTMF = "send_dtmf"
TOOL_END_CALL = "end_call"

# Scheduled task kinds
TASK_RECONNECT_CHECK = "reconnect_check"
TASK_END_CALL = "end_call"
TASK_END_CALL_FALLBACK = "end_call_fallback"

# Noise reduction modes
NOISE_REDUCTION_FAR_FIELD = "far_field"
NOISE_REDUCTION_OFF = "off"

# Temperature bounds accepted by the realtime API
MIN_TEMPERATURE = 0.6
MAX_TEMPERATURE = 1.2

ESTIMATED_CALL_DURATION = "60-120 seconds"
