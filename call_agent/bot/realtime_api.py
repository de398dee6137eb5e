"""
Client for the OpenAI Realtime API.

``RealtimeSession`` owns one WebSocket connection to the Realtime API. It is
bound to a transport (the Twilio protocol adapter) that feeds caller audio into
it, configures the model with a ``session.update`` on connect, and hands every
server event to an ``on_event`` callback in arrival order.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import websockets
from pydantic import BaseModel
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from call_agent.bot.agent import AgentDefinition
from call_agent.config.constants import (
    LOGGER_NAME,
    NOISE_REDUCTION_FAR_FIELD,
    NOISE_REDUCTION_OFF,
    REALTIME_API_URL,
    RT_ERROR,
)
from call_agent.models.calls import AgentConfig
from call_agent.models.openai_schemas import (
    ConversationItemCreateMessage,
    ConversationItemTruncateMessage,
    FunctionCallOutputItem,
    InputAudioBufferAppendMessage,
    NoiseReduction,
    RealtimeErrorMessage,
    ResponseCancelMessage,
    ResponseCreateMessage,
    SessionConfig,
    SessionUpdateMessage,
)

logger = logging.getLogger(LOGGER_NAME)

CONNECTION_TIMEOUT = 30  # seconds
SEND_TIMEOUT = 5.0  # seconds

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_PING_INTERVAL = 5

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class SessionError(Exception):
    """Raised when the realtime session cannot be created or used."""


def build_session_config(agent: AgentDefinition, agent_config: Optional[AgentConfig] = None) -> SessionConfig:
    """
    Session configuration for a phone call.

    Turn detection and input transcription are always on. Noise reduction
    defaults to the far-field profile unless explicitly turned off, and the
    temperature, when supplied, is clamped to the range the API accepts.
    """
    mode = NOISE_REDUCTION_FAR_FIELD
    temperature = None
    if agent_config is not None:
        mode = agent_config.noise_reduction or NOISE_REDUCTION_FAR_FIELD
        temperature = agent_config.clamped_temperature()

    return SessionConfig(
        instructions=agent.instructions,
        voice=agent.voice,
        tools=agent.tools,
        input_audio_noise_reduction=None if mode == NOISE_REDUCTION_OFF else NoiseReduction(type=mode),
        temperature=temperature,
    )


class RealtimeSession:
    """
    One conversation with the Realtime API.

    Args:
        api_key: OpenAI API key
        model: Realtime model identifier
        config: Session configuration sent on connect
        transport: Protocol adapter feeding caller audio to this session
        on_event: Coroutine called with every server event
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        config: SessionConfig,
        transport: Any = None,
        on_event: Optional[EventHandler] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.config = config
        self.transport = transport
        self.on_event = on_event
        self.ws = None
        self._recv_task: Optional[asyncio.Task] = None
        self._connection_active = False
        self._is_closing = False

    @property
    def connected(self) -> bool:
        return self._connection_active

    async def connect(self) -> None:
        """
        Open the WebSocket, bind the transport and configure the session.

        Raises:
            SessionError: if the API key is missing or the connection fails
        """
        if not self.api_key:
            raise SessionError("OPENAI_API_KEY is not set")
        if self._is_closing:
            raise SessionError("Cannot connect - session is closing")

        url = f"{REALTIME_API_URL}?model={self.model}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        try:
            logger.info(f"Connecting to OpenAI Realtime API with model: {self.model}")
            connection_start = time.time()
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    max_size=WS_MAX_SIZE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=10,
                    compression=None,
                    additional_headers=headers,
                ),
                timeout=CONNECTION_TIMEOUT,
            )
            logger.debug(f"WebSocket connection established in {time.time() - connection_start:.2f} seconds")
        except asyncio.TimeoutError as e:
            raise SessionError(
                f"Timeout while connecting to OpenAI Realtime API (after {CONNECTION_TIMEOUT}s)"
            ) from e
        except Exception as e:
            raise SessionError(f"Failed to connect to OpenAI Realtime API: {e}") from e

        self._connection_active = True
        if self.transport is not None:
            self.transport.bind(self)

        await self.send_event(SessionUpdateMessage(session=self.config))
        self._recv_task = asyncio.create_task(self._recv_loop())
        logger.info("Successfully connected to OpenAI Realtime API")

    async def send_event(self, message: Union[BaseModel, Dict[str, Any]]) -> None:
        """Send a client event to the Realtime API."""
        if not self.connected or self.ws is None:
            raise SessionError("Realtime session is not connected")

        if isinstance(message, BaseModel):
            payload = message.model_dump_json(exclude_none=True)
        else:
            payload = json.dumps(message)

        try:
            await asyncio.wait_for(self.ws.send(payload), timeout=SEND_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise SessionError("Timeout while sending to OpenAI Realtime API") from e
        except ConnectionClosed as e:
            self._connection_active = False
            raise SessionError(f"Realtime connection closed: {e}") from e

    async def append_input_audio(self, payload: str) -> None:
        """Forward base64 caller audio into the model's input buffer."""
        if not self.connected:
            return
        await self.send_event(InputAudioBufferAppendMessage(audio=payload))

    async def truncate(self, item_id: str, audio_end_ms: int) -> None:
        await self.send_event(
            ConversationItemTruncateMessage(item_id=item_id, audio_end_ms=audio_end_ms)
        )

    async def cancel_response(self) -> None:
        await self.send_event(ResponseCancelMessage())

    async def send_function_output(
        self, call_id: str, output: Dict[str, Any], create_response: bool = True
    ) -> None:
        """Return a tool result to the model, optionally asking it to respond."""
        item = FunctionCallOutputItem(call_id=call_id, output=json.dumps(output))
        await self.send_event(ConversationItemCreateMessage(item=item))
        if create_response:
            await self.send_event(ResponseCreateMessage())

    async def _recv_loop(self) -> None:
        """Read server events and hand them to ``on_event`` in order."""
        try:
            async for message in self.ws:
                if isinstance(message, bytes):
                    logger.debug(f"Ignoring binary frame of size {len(message)} bytes")
                    continue
                try:
                    event = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"Received invalid JSON: {message[:100]}...")
                    continue

                if event.get("type") == RT_ERROR:
                    error = RealtimeErrorMessage.model_validate(event).error
                    logger.error(f"Received error from OpenAI: {error.get('message', error)}")

                if self.on_event is not None:
                    try:
                        await self.on_event(event)
                    except Exception as e:
                        logger.error(f"Error handling realtime event {event.get('type')}: {e}", exc_info=True)
        except asyncio.CancelledError:
            raise
        except ConnectionClosedOK:
            logger.info("Realtime connection closed normally")
        except ConnectionClosed as e:
            logger.warning(f"Realtime connection closed unexpectedly: {e}")
        except Exception as e:
            logger.error(f"Error in realtime receive loop: {e}", exc_info=True)

        self._connection_active = False

    async def close(self) -> None:
        """Close the WebSocket connection and cancel the receive loop."""
        if self._is_closing:
            return
        logger.info("Closing OpenAI Realtime session")
        self._is_closing = True
        self._connection_active = False

        if self._recv_task and not self._recv_task.done():
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                pass

        if self.ws is not None:
            try:
                await self.ws.close()
            except Exception as e:
                logger.warning(f"Error closing realtime WebSocket: {e}")
        logger.info("OpenAI Realtime session closed")
