"""
Broadcast channels for observer connections.

``EventBroadcaster`` pushes domain events to every connected UI observer.
``AudioBroadcaster`` relays raw caller audio to listeners subscribed to one
call. Delivery on both is best effort: a failed send drops that observer and
never affects the others or the call itself.
"""

import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from call_agent.config.constants import AUDIO_FORMAT_G711_ULAW, LOGGER_NAME
from call_agent.models.events import AudioEvent, DomainEvent

logger = logging.getLogger(LOGGER_NAME)


def _is_open(websocket: WebSocket) -> bool:
    return getattr(websocket, "application_state", None) != WebSocketState.DISCONNECTED


class EventBroadcaster:
    """Fan-out of domain events to all connected observers."""

    def __init__(self):
        self.clients: Set[WebSocket] = set()

    def add(self, websocket: WebSocket) -> None:
        self.clients.add(websocket)
        logger.info(f"Event observer connected ({len(self.clients)} total)")

    def remove(self, websocket: WebSocket) -> None:
        self.clients.discard(websocket)

    async def broadcast(
        self, event_type: str, call_id: Optional[str], data: Optional[Dict[str, Any]] = None
    ) -> DomainEvent:
        """Serialize an event with a timestamp and send it to every observer."""
        event = DomainEvent(type=event_type, call_id=call_id, data=data or {})
        message = event.model_dump_json(by_alias=True)

        for client in list(self.clients):
            if not _is_open(client):
                self.clients.discard(client)
                continue
            try:
                await client.send_text(message)
            except Exception as e:
                logger.warning(f"Dropping event observer after failed send: {e}")
                self.clients.discard(client)
        return event


class AudioBroadcaster:
    """Relay of inbound caller audio to listeners keyed by call id."""

    def __init__(self):
        self.clients: Dict[str, Set[WebSocket]] = {}

    def add(self, call_id: str, websocket: WebSocket) -> None:
        self.clients.setdefault(call_id, set()).add(websocket)
        logger.info(f"Audio listener connected for call: {call_id}")

    def remove(self, call_id: str, websocket: WebSocket) -> None:
        listeners = self.clients.get(call_id)
        if not listeners:
            return
        listeners.discard(websocket)
        if not listeners:
            del self.clients[call_id]

    def has_listeners(self, call_id: Optional[str]) -> bool:
        return bool(call_id and self.clients.get(call_id))

    async def broadcast(
        self, call_id: str, payload: str, codec: str = AUDIO_FORMAT_G711_ULAW, source: str = "inbound"
    ) -> None:
        listeners = self.clients.get(call_id)
        if not listeners:
            return

        message = AudioEvent(source=source, payload=payload, codec=codec).model_dump_json()
        for client in list(listeners):
            try:
                await client.send_text(message)
            except Exception as e:
                logger.warning(f"Dropping audio listener for call {call_id}: {e}")
                self.remove(call_id, client)
