"""
Call session bridge between a Twilio media stream and an OpenAI realtime session.

One ``CallSessionBridge`` serves one media stream connection. It identifies the
call from the first ``start`` frame, builds and connects a realtime session
bound to a Twilio protocol adapter over the same socket, and then relays frames
and model events until the call stops. Along the way it:

- tracks what assistant audio the caller has actually heard so a barge-in can
  truncate the model's record, cancel the response and clear Twilio's buffer
- records the transcript per call so a reconnecting stream can resume context
- dispatches the ``send_dtmf`` and ``end_call`` tools
- defers cleanup after ``stop`` for a reconnection window, because a DTMF
  redirect closes and reopens the stream for the same call

Shared state (registry, histories, fan-out, pending hang-ups, timers) lives in
a ``BridgeContext`` passed in at construction.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set, Tuple

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from call_agent.bot.agent import create_agent, with_reconnection_context
from call_agent.bot.realtime_api import RealtimeSession, build_session_config
from call_agent.bot.scheduler import TaskScheduler
from call_agent.bot.twilio_transport import TwilioRealtimeTransport
from call_agent.config.constants import (
    AUDIO_FORMAT_G711_ULAW,
    EVENT_CALL_ENDED,
    EVENT_CALL_ENDING,
    EVENT_CALL_INTERRUPTED,
    EVENT_CALL_STARTED,
    EVENT_DTMF_SENT,
    EVENT_TOOL_CALLED,
    EVENT_TRANSCRIPT_AI,
    EVENT_TRANSCRIPT_USER,
    LOGGER_NAME,
    RT_AUDIO_DELTA,
    RT_AUDIO_TRANSCRIPT_DONE,
    RT_FUNCTION_ARGUMENTS_DONE,
    RT_INPUT_TRANSCRIPTION_COMPLETED,
    RT_ITEM_CREATED,
    RT_SPEECH_STARTED,
    TASK_END_CALL,
    TASK_END_CALL_FALLBACK,
    TASK_RECONNECT_CHECK,
    TOOL_END_CALL,
    TOOL_SEND_DTMF,
    TWILIO_EVENT_CONNECTED,
    TWILIO_EVENT_MARK,
    TWILIO_EVENT_MEDIA,
    TWILIO_EVENT_START,
    TWILIO_EVENT_STOP,
)
from call_agent.config.settings import Settings
from call_agent.models.call_registry import CallRegistry
from call_agent.models.calls import CallRecord, CallStatus, default_inbound_task
from call_agent.models.conversation import ConversationStore
from call_agent.models.openai_schemas import MessageRole
from call_agent.models.twilio_schemas import MediaPayload, StartMessage
from call_agent.services.event_fanout import AudioBroadcaster, EventBroadcaster
from call_agent.services.twilio_client import CallControlClient, CallControlError

logger = logging.getLogger(LOGGER_NAME)

DTMF_PATTERN = re.compile(r"^[0-9*#w]+$")
INBOUND_DESTINATION = "inbound"
DEFAULT_END_REASON = "Task completed"

_CLOSED = object()


class BridgeState(str, Enum):
    AWAITING_START = "awaiting_start"
    ACTIVE = "active"
    INTERRUPTED = "interrupted"
    ENDING = "ending"
    RECONNECT_WINDOW = "reconnect_window"
    CLOSED = "closed"


@dataclass
class InterruptionState:
    """Playback bookkeeping for the response currently being spoken."""

    latest_media_timestamp_ms: int = 0
    response_start_timestamp_ms: Optional[int] = None
    active_response_item_id: Optional[str] = None

    @property
    def response_in_flight(self) -> bool:
        return self.response_start_timestamp_ms is not None and bool(self.active_response_item_id)

    def reset(self) -> None:
        self.response_start_timestamp_ms = None
        self.active_response_item_id = None


@dataclass(eq=False)
class PendingEndCall:
    """A hang-up requested by the model, waiting for its goodbye to finish."""

    call_id: str
    reason: str


@dataclass
class BridgeContext:
    """Stores and collaborators shared by every bridge in the process."""

    settings: Settings
    registry: CallRegistry
    conversations: ConversationStore
    events: EventBroadcaster
    audio: AudioBroadcaster
    call_control: CallControlClient
    scheduler: TaskScheduler
    pending_end_calls: Dict[str, PendingEndCall] = field(default_factory=dict)
    session_factory: Callable[..., Any] = RealtimeSession

    def resolve_pending_end_call(self, call_id: str) -> Optional[PendingEndCall]:
        """Forget a pending hang-up and cancel its timers."""
        self.scheduler.cancel((call_id, TASK_END_CALL))
        self.scheduler.cancel((call_id, TASK_END_CALL_FALLBACK))
        return self.pending_end_calls.pop(call_id, None)


def parse_tool_arguments(arguments: Any) -> Dict[str, Any]:
    """Decode tool arguments, falling back to an empty object on bad input."""
    if isinstance(arguments, dict):
        return arguments
    if not isinstance(arguments, str) or not arguments.strip():
        return {}
    try:
        parsed = json.loads(arguments)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Malformed tool arguments, using empty object: {arguments[:100]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class CallSessionBridge:
    """
    Bridge for a single Twilio media stream connection.

    Args:
        websocket: The accepted Twilio media stream connection
        context: Shared stores and collaborators
    """

    def __init__(self, websocket: WebSocket, context: BridgeContext):
        self.websocket = websocket
        self.context = context
        self.state = BridgeState.AWAITING_START
        self.call_id: Optional[str] = None
        self.stream_sid: Optional[str] = None
        self.record: Optional[CallRecord] = None
        self.session = None
        self.transport: Optional[TwilioRealtimeTransport] = None
        self.call_control: CallControlClient = context.call_control
        self.interruption = InterruptionState()
        self.function_calls: Dict[str, str] = {}
        self.is_reconnection = False
        self._interrupted_items: Set[str] = set()
        self._inbox: "asyncio.Queue[Tuple[str, Any]]" = asyncio.Queue()
        self._reader: Optional[asyncio.Task] = None

    # Connection lifecycle

    async def run(self) -> None:
        """Serve the connection until Twilio stops the stream or the socket closes."""
        try:
            first_message = await self._receive_first_message()
            if first_message is None or not await self.handle_first_message(first_message):
                await self._close_websocket()
                return

            self._reader = asyncio.create_task(self._read_telephony())
            while True:
                source, payload = await self._inbox.get()
                if payload is _CLOSED:
                    break
                if source == "twilio":
                    await self.handle_twilio_message(payload)
                else:
                    await self.handle_model_event(payload)
        except WebSocketDisconnect:
            logger.info(f"Media stream disconnected for call: {self.call_id}")
        except Exception as e:
            logger.error(f"Error in media stream for call {self.call_id}: {e}", exc_info=True)
            await self._close_websocket()
        finally:
            reader = self._reader
            if reader is not None and not reader.done():
                reader.cancel()
                try:
                    await reader
                except asyncio.CancelledError:
                    pass
            await self.handle_close()

    async def _receive_first_message(self) -> Optional[str]:
        """Wait for the first frame that is not Twilio's ``connected`` handshake."""
        while True:
            raw = await self.websocket.receive_text()
            try:
                event = json.loads(raw).get("event")
            except (json.JSONDecodeError, AttributeError):
                return raw
            if event != TWILIO_EVENT_CONNECTED:
                return raw
            logger.debug("Media stream handshake received")

    async def _read_telephony(self) -> None:
        try:
            while True:
                raw = await self.websocket.receive_text()
                self._inbox.put_nowait(("twilio", raw))
        except WebSocketDisconnect:
            logger.info(f"Media stream closed by Twilio for call: {self.call_id}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Media stream read failed for call {self.call_id}: {e}")
        self._inbox.put_nowait(("twilio", _CLOSED))

    async def enqueue_model_event(self, event: Dict[str, Any]) -> None:
        """Session callback: queue a model event behind pending telephony frames."""
        self._inbox.put_nowait(("model", event))

    async def handle_first_message(self, raw: str) -> bool:
        """
        Identify the call from the first frame and start the model session.

        Returns:
            bool: False if the frame was not a valid ``start`` frame
        """
        try:
            start_message = StartMessage.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"First media stream frame is not a start frame: {e}")
            return False

        self.call_id = start_message.start.call_sid
        self.stream_sid = start_message.start.stream_sid
        logger.info(f"Media stream started for call {self.call_id} (stream {self.stream_sid})")

        await self.start_session()
        # Replay the start frame now that the adapter is listening
        await self.handle_twilio_message(raw)

        if self.session is not None:
            self.context.registry.set_status(self.call_id, CallStatus.IN_PROGRESS)
        self.state = BridgeState.ACTIVE
        return True

    async def start_session(self) -> None:
        """Build and connect the realtime session for ``self.call_id``."""
        context = self.context
        call_id = self.call_id

        record = context.registry.get(call_id)
        if record is None:
            logger.info(f"No metadata for call {call_id}, using default inbound task")
            record = CallRecord(
                call_id=call_id, destination=INBOUND_DESTINATION, task=default_inbound_task()
            )
            context.registry.put(record)
        self.record = record
        self.call_control = context.call_control.with_credentials(record.credentials)

        reconnect_check = (call_id, TASK_RECONNECT_CHECK)
        if context.scheduler.is_pending(reconnect_check):
            context.scheduler.cancel(reconnect_check)
            logger.info(f"Call {call_id} reconnected within the reconnection window")

        task = record.task
        if context.conversations.has_messages(call_id):
            history = context.conversations.get(call_id)
            self.is_reconnection = True
            task = with_reconnection_context(task, history)
            logger.info(f"Resuming call {call_id} with {len(history.messages)} prior messages")
        context.conversations.mark_stream_started(call_id)

        agent = create_agent(task, record.agent_config)
        session_config = build_session_config(agent, record.agent_config)
        model = (record.agent_config.model if record.agent_config else None) or context.settings.realtime_model
        api_key = (
            record.credentials.openai_api_key if record.credentials else None
        ) or context.settings.openai_api_key

        self.transport = TwilioRealtimeTransport(self.websocket)
        try:
            session = context.session_factory(
                api_key=api_key,
                model=model,
                config=session_config,
                transport=self.transport,
                on_event=self.enqueue_model_event,
            )
            await session.connect()
        except Exception as e:
            logger.error(f"Failed to create realtime session for call {call_id}: {e}", exc_info=True)
            self.session = None
            return

        self.session = session
        logger.info(f"Realtime session ready for call {call_id} (model {model}, voice {agent.voice})")

    async def handle_close(self) -> None:
        """
        Release this connection's session.

        Registry and history state are left alone: if Twilio sent ``stop`` the
        reconnection check owns cleanup, and otherwise a reconnect is still possible.
        """
        if self.state != BridgeState.RECONNECT_WINDOW:
            self.state = BridgeState.CLOSED
        session, self.session = self.session, None
        if session is not None:
            try:
                await session.close()
            except Exception as e:
                logger.warning(f"Error closing realtime session for call {self.call_id}: {e}")
        logger.info(f"Media stream connection closed for call: {self.call_id}")

    async def _close_websocket(self) -> None:
        try:
            await self.websocket.close()
        except Exception as e:
            logger.debug(f"Error closing media stream socket: {e}")

    # Telephony side

    async def handle_twilio_message(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring unparseable media stream frame for call {self.call_id}")
            return
        if not isinstance(message, dict):
            return

        if self.transport is not None:
            try:
                await self.transport.handle_message(message)
            except Exception as e:
                logger.warning(f"Transport failed to handle {message.get('event')} frame: {e}")

        event = message.get("event")
        if event == TWILIO_EVENT_MEDIA:
            await self._handle_media(message.get("media") or {})
        elif event == TWILIO_EVENT_START:
            start = message.get("start") or {}
            await self.context.events.broadcast(
                EVENT_CALL_STARTED, self.call_id, {"streamSid": start.get("streamSid")}
            )
        elif event == TWILIO_EVENT_STOP:
            await self.handle_stop()
        elif event == TWILIO_EVENT_MARK:
            logger.debug(f"Mark reached for call {self.call_id}: {message.get('mark')}")

    async def _handle_media(self, media: Dict[str, Any]) -> None:
        try:
            payload = MediaPayload.model_validate(media)
        except ValidationError:
            logger.debug(f"Ignoring malformed media frame for call {self.call_id}")
            return
        if payload.timestamp_ms is not None:
            self.interruption.latest_media_timestamp_ms = payload.timestamp_ms

        if payload.payload and self.context.audio.has_listeners(self.call_id):
            await self.context.audio.broadcast(self.call_id, payload.payload, codec=AUDIO_FORMAT_G711_ULAW)

    async def handle_stop(self) -> None:
        """Enter the reconnection window instead of tearing the call down."""
        self.state = BridgeState.RECONNECT_WINDOW
        call_id = self.call_id
        stopped_at = self.context.conversations.clock()
        logger.info(f"Media stream stopped for call {call_id}, waiting for reconnection")
        self.context.scheduler.schedule(
            (call_id, TASK_RECONNECT_CHECK),
            self.context.settings.reconnect_window_seconds,
            lambda: self.check_reconnect_window(call_id, stopped_at),
        )

    async def check_reconnect_window(self, call_id: str, stopped_at: float) -> None:
        """
        Decide whether a stopped call is really over.

        A media stream started for the call after the stop means it reconnected.
        Otherwise the call is finished once it has been idle for the inactivity
        threshold. Transcripts that land after the stop only delay cleanup.
        """
        context = self.context
        history = context.conversations.get(call_id)
        if history is not None:
            if history.stream_started_at > stopped_at:
                logger.info(f"Call {call_id} reconnected, skipping cleanup")
                return
            idle = context.conversations.clock() - history.last_updated_at
            remaining = context.settings.inactivity_threshold_seconds - idle
            if remaining > 0:
                context.scheduler.schedule(
                    (call_id, TASK_RECONNECT_CHECK),
                    remaining,
                    lambda: self.check_reconnect_window(call_id, stopped_at),
                )
                return

        logger.info(f"Call {call_id} ended, cleaning up")
        context.registry.set_status(call_id, CallStatus.COMPLETED)
        context.registry.remove(call_id)
        context.conversations.discard(call_id)
        context.scheduler.cancel_call(call_id)
        context.pending_end_calls.pop(call_id, None)
        await context.events.broadcast(EVENT_CALL_ENDED, call_id, {})

    # Model side

    async def handle_model_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")

        if event_type == RT_AUDIO_DELTA:
            await self._handle_audio_delta(event)
        elif event_type == RT_SPEECH_STARTED:
            await self.handle_interruption()
        elif event_type == RT_AUDIO_TRANSCRIPT_DONE:
            await self._handle_assistant_transcript(event.get("transcript") or "")
        elif event_type == RT_INPUT_TRANSCRIPTION_COMPLETED:
            await self._handle_user_transcript(event.get("transcript") or "")
        elif event_type == RT_ITEM_CREATED:
            item = event.get("item") or {}
            if item.get("type") == "function_call" and item.get("call_id") and item.get("name"):
                self.function_calls[item["call_id"]] = item["name"]
                logger.info(f"Function call initiated on call {self.call_id}: {item['name']} ({item['call_id']})")
        elif event_type == RT_FUNCTION_ARGUMENTS_DONE:
            await self._handle_function_call(event)

    async def _handle_audio_delta(self, event: Dict[str, Any]) -> None:
        item_id = event.get("item_id")
        if item_id and item_id in self._interrupted_items:
            return

        state = self.interruption
        if state.response_start_timestamp_ms is None:
            state.response_start_timestamp_ms = state.latest_media_timestamp_ms
        if item_id:
            state.active_response_item_id = item_id

        delta = event.get("delta")
        if delta and self.transport is not None:
            try:
                await self.transport.send_audio(delta, item_id)
            except Exception as e:
                logger.warning(f"Failed to forward assistant audio for call {self.call_id}: {e}")

    async def handle_interruption(self) -> None:
        """
        Handle the caller talking over the assistant.

        Only acts when a response is being played. The truncate, cancel and
        clear actions are each attempted independently.
        """
        state = self.interruption
        if not state.response_in_flight:
            return

        previous_state = self.state
        self.state = BridgeState.INTERRUPTED
        item_id = state.active_response_item_id
        elapsed_ms = max(0, state.latest_media_timestamp_ms - state.response_start_timestamp_ms)
        logger.info(f"Caller interrupted on call {self.call_id} after {elapsed_ms}ms of item {item_id}")

        if self.session is not None:
            try:
                await self.session.truncate(item_id, elapsed_ms)
            except Exception as e:
                logger.warning(f"Truncate failed for call {self.call_id}: {e}")
            try:
                await self.session.cancel_response()
            except Exception as e:
                logger.warning(f"Response cancel failed for call {self.call_id}: {e}")
        if self.transport is not None:
            try:
                await self.transport.send_clear()
            except Exception as e:
                logger.warning(f"Buffer clear failed for call {self.call_id}: {e}")
            self.transport.discard_item(item_id)

        self._interrupted_items.add(item_id)
        state.reset()
        self.state = previous_state
        await self.context.events.broadcast(
            EVENT_CALL_INTERRUPTED, self.call_id, {"elapsedMs": elapsed_ms, "itemId": item_id}
        )

    async def _handle_assistant_transcript(self, transcript: str) -> None:
        logger.info(f"AI said on call {self.call_id}: {transcript}")
        if transcript.strip():
            self.context.conversations.append(self.call_id, MessageRole.ASSISTANT, transcript)
            await self.context.events.broadcast(EVENT_TRANSCRIPT_AI, self.call_id, {"text": transcript})

        # The response finished on its own
        self.interruption.reset()

        pending = self.context.pending_end_calls.get(self.call_id)
        if pending is not None:
            logger.info(f"Assistant finished speaking, ending call {self.call_id} shortly")
            self.context.scheduler.schedule(
                (self.call_id, TASK_END_CALL),
                self.context.settings.end_call_delay_seconds,
                lambda: self.execute_end_call(pending),
            )

    async def _handle_user_transcript(self, transcript: str) -> None:
        logger.info(f"User said on call {self.call_id}: {transcript}")
        if not transcript.strip():
            return
        self.context.conversations.append(self.call_id, MessageRole.USER, transcript)
        await self.context.events.broadcast(EVENT_TRANSCRIPT_USER, self.call_id, {"text": transcript})

    async def _handle_function_call(self, event: Dict[str, Any]) -> None:
        function_call_id = event.get("call_id")
        name = self.function_calls.get(function_call_id) if function_call_id else None
        name = name or event.get("name")
        arguments = parse_tool_arguments(event.get("arguments"))

        await self.context.events.broadcast(
            EVENT_TOOL_CALLED, self.call_id, {"name": name, "arguments": arguments}
        )

        if name == TOOL_SEND_DTMF:
            await self._handle_send_dtmf(function_call_id, arguments)
        elif name == TOOL_END_CALL:
            await self._handle_end_call(function_call_id, arguments)
        else:
            logger.warning(f"Unknown tool {name} requested on call {self.call_id}")
            await self._send_tool_output(function_call_id, {"success": False, "message": f"Unknown tool: {name}"})

    async def _handle_send_dtmf(self, function_call_id: Optional[str], arguments: Dict[str, Any]) -> None:
        """
        Play touch tones on the call.

        Twilio redirects the call to play the tones and then opens a new media
        stream, so this connection will stop and the next one resumes the call.
        """
        digits = str(arguments.get("digits") or "")
        reason = arguments.get("reason") or ""

        if not DTMF_PATTERN.match(digits):
            logger.warning(f"Rejecting invalid DTMF digits on call {self.call_id}: {digits!r}")
            await self._send_tool_output(
                function_call_id, {"success": False, "message": f"Invalid DTMF digits: {digits}"}
            )
            return

        logger.info(f"Sending DTMF {digits} on call {self.call_id}: {reason}")
        try:
            await self.call_control.send_dtmf(self.call_id, digits)
        except CallControlError as e:
            await self._send_tool_output(
                function_call_id, {"success": False, "message": f"Failed to send DTMF: {e}"}
            )
            return

        await self.context.events.broadcast(
            EVENT_DTMF_SENT, self.call_id, {"digits": digits, "reason": reason}
        )
        await self._send_tool_output(
            function_call_id, {"success": True, "digits": digits, "message": f"Sent DTMF: {digits}"}
        )

    async def _handle_end_call(self, function_call_id: Optional[str], arguments: Dict[str, Any]) -> None:
        """Defer the hang-up until the assistant's goodbye has been spoken."""
        reason = arguments.get("reason") or DEFAULT_END_REASON
        logger.info(f"AI requested to end call {self.call_id}: {reason}")

        pending = PendingEndCall(call_id=self.call_id, reason=reason)
        self.context.resolve_pending_end_call(self.call_id)
        self.context.pending_end_calls[self.call_id] = pending
        self.state = BridgeState.ENDING

        await self.context.events.broadcast(EVENT_CALL_ENDING, self.call_id, {"reason": reason})
        self.context.scheduler.schedule(
            (self.call_id, TASK_END_CALL_FALLBACK),
            self.context.settings.end_call_fallback_seconds,
            lambda: self.execute_end_call(pending),
        )
        await self._send_tool_output(function_call_id, {"success": True, "reason": reason})

    async def execute_end_call(self, pending: PendingEndCall) -> bool:
        """
        Hang up if ``pending`` is still the call's outstanding end request.

        Returns:
            bool: True if a terminate request was issued
        """
        context = self.context
        if context.pending_end_calls.get(pending.call_id) is not pending:
            logger.debug(f"Stale end-call request ignored for call {pending.call_id}")
            return False
        context.resolve_pending_end_call(pending.call_id)

        try:
            await self.call_control.end_call(pending.call_id)
            logger.info(f"Call {pending.call_id} ended by AI: {pending.reason}")
        except CallControlError as e:
            logger.error(f"Failed to end call {pending.call_id} from tool execution: {e}")
        return True

    async def _send_tool_output(self, function_call_id: Optional[str], output: Dict[str, Any]) -> None:
        if self.session is None or not function_call_id:
            return
        try:
            await self.session.send_function_output(function_call_id, output)
        except Exception as e:
            logger.warning(f"Could not return tool output on call {self.call_id}: {e}")
