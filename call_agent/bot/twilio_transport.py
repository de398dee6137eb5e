"""
Twilio Media Streams adapter for the realtime session.

Translates between the two streaming protocols on one call: caller audio in
Twilio ``media`` frames becomes ``input_audio_buffer.append`` events on the
bound realtime session, and assistant audio deltas become outbound ``media``
frames tagged with the stream id. It also emits the ``clear`` control frame used
on barge-in.
"""

import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from call_agent.config.constants import (
    LOGGER_NAME,
    TWILIO_EVENT_MEDIA,
    TWILIO_EVENT_START,
    TWILIO_EVENT_STOP,
)
from call_agent.models.twilio_schemas import (
    ClearMessage,
    OutboundMediaMessage,
    OutboundMediaPayload,
)

logger = logging.getLogger(LOGGER_NAME)


class TwilioRealtimeTransport:
    """
    Protocol adapter wrapping the Twilio media stream WebSocket.

    Args:
        websocket: The accepted Twilio media stream connection
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.session = None
        self.stream_sid: Optional[str] = None
        self.call_id: Optional[str] = None
        self.discarded_items: Set[str] = set()

    def bind(self, session: Any) -> None:
        """Attach the realtime session that receives caller audio."""
        self.session = session

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Apply one parsed Twilio frame to the adapter state and the session."""
        event = message.get("event")

        if event == TWILIO_EVENT_MEDIA:
            payload = (message.get("media") or {}).get("payload")
            if payload and self.session is not None:
                await self.session.append_input_audio(payload)
        elif event == TWILIO_EVENT_START:
            start = message.get("start") or {}
            self.stream_sid = start.get("streamSid") or message.get("streamSid")
            self.call_id = start.get("callSid")
            logger.info(f"Transport received start event for call {self.call_id} (stream {self.stream_sid})")
        elif event == TWILIO_EVENT_STOP:
            logger.info(f"Transport received stop event for call {self.call_id}")

    async def send_audio(self, payload: str, item_id: Optional[str] = None) -> bool:
        """
        Send base64 assistant audio to the caller.

        Returns:
            bool: False if the audio was dropped (no stream yet or item interrupted)
        """
        if not self.stream_sid:
            logger.debug("Dropping assistant audio: stream not started")
            return False
        if item_id and item_id in self.discarded_items:
            return False
        message = OutboundMediaMessage(
            stream_sid=self.stream_sid, media=OutboundMediaPayload(payload=payload)
        )
        await self.websocket.send_text(message.model_dump_json(by_alias=True, exclude_none=True))
        return True

    async def send_clear(self) -> None:
        """Ask Twilio to drop audio it has buffered but not yet played."""
        message = ClearMessage(stream_sid=self.stream_sid)
        await self.websocket.send_text(message.model_dump_json(by_alias=True, exclude_none=True))

    def discard_item(self, item_id: str) -> None:
        """Drop any further audio for an interrupted response item."""
        self.discarded_items.add(item_id)
