"""
WebSocket connection manager for the Twilio call agent.

This module owns the state shared by every connection in the process (the call
registry, conversation histories, the event and audio fan-out, pending hang-ups
and delayed tasks) and accepts the three WebSocket kinds the server exposes:

- Twilio media streams, each served by a ``CallSessionBridge``
- domain-event observers, who receive every call event
- audio listeners, who receive raw caller audio for one call

Observer and listener sockets are receive-only from the server's point of view;
anything they send is ignored and the connection is kept until they disconnect.
"""

import logging
import socket
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect

from call_agent.bot.call_session_bridge import BridgeContext, CallSessionBridge
from call_agent.bot.scheduler import TaskScheduler
from call_agent.config.constants import LOGGER_NAME
from call_agent.config.settings import Settings
from call_agent.models.call_registry import CallRegistry
from call_agent.models.conversation import ConversationStore
from call_agent.services.event_fanout import AudioBroadcaster, EventBroadcaster
from call_agent.services.twilio_client import CallControlClient

logger = logging.getLogger(LOGGER_NAME)


class WebSocketManager:
    """Shared call state plus the WebSocket entry points that use it.

    Args:
        settings: Runtime settings
        call_control: Call-control client; built from ``settings`` when omitted
    """

    def __init__(self, settings: Settings, call_control: Optional[CallControlClient] = None):
        self.settings = settings
        self.registry = CallRegistry()
        self.conversations = ConversationStore()
        self.events = EventBroadcaster()
        self.audio = AudioBroadcaster()
        self.scheduler = TaskScheduler()
        self.call_control = call_control or CallControlClient.from_settings(settings)
        self.context = BridgeContext(
            settings=settings,
            registry=self.registry,
            conversations=self.conversations,
            events=self.events,
            audio=self.audio,
            call_control=self.call_control,
            scheduler=self.scheduler,
        )

    async def _optimize_socket(self, websocket: WebSocket) -> None:
        """
        Optimize the WebSocket's underlying TCP socket for low-latency transmission.

        Args:
            websocket: The FastAPI WebSocket connection
        """
        try:
            client = websocket.client
            if hasattr(client, "sock") and client.sock is not None:
                # Disable Nagle's algorithm to send packets immediately
                client.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                logger.info("Optimized socket: TCP_NODELAY enabled for low latency")
        except Exception as e:
            logger.warning(f"Could not optimize socket: {e}")

    async def handle_media_stream(self, websocket: WebSocket) -> None:
        """Serve one Twilio media stream for its whole lifetime."""
        await websocket.accept()
        await self._optimize_socket(websocket)
        logger.info("Twilio media stream connected")
        bridge = CallSessionBridge(websocket, self.context)
        await bridge.run()

    async def handle_event_stream(self, websocket: WebSocket) -> None:
        """Register an observer for domain events until it disconnects."""
        await websocket.accept()
        self.events.add(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("Event observer disconnected")
        except Exception as e:
            logger.warning(f"Event observer connection failed: {e}")
        finally:
            self.events.remove(websocket)

    async def handle_audio_stream(self, websocket: WebSocket, call_id: str) -> None:
        """Register an audio listener for ``call_id`` until it disconnects."""
        await websocket.accept()
        self.audio.add(call_id, websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info(f"Audio listener disconnected for call: {call_id}")
        except Exception as e:
            logger.warning(f"Audio listener connection failed for call {call_id}: {e}")
        finally:
            self.audio.remove(call_id, websocket)

    async def close(self) -> None:
        """Cancel any delayed tasks still pending at shutdown."""
        await self.scheduler.close()
