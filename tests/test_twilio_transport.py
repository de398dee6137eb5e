import json
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocket

from call_agent.bot.twilio_transport import TwilioRealtimeTransport


@pytest.fixture
def transport():
    return TwilioRealtimeTransport(AsyncMock(spec=WebSocket))


def start_frame(stream_sid="MZ1", call_sid="CA123"):
    return {"event": "start", "streamSid": stream_sid, "start": {"streamSid": stream_sid, "callSid": call_sid}}


@pytest.mark.asyncio
async def test_start_records_stream_and_call(transport):
    await transport.handle_message(start_frame())
    assert transport.stream_sid == "MZ1"
    assert transport.call_id == "CA123"


@pytest.mark.asyncio
async def test_media_is_forwarded_to_session(transport):
    session = AsyncMock()
    transport.bind(session)

    await transport.handle_message({"event": "media", "media": {"payload": "AAAA", "timestamp": "20"}})

    session.append_input_audio.assert_awaited_once_with("AAAA")


@pytest.mark.asyncio
async def test_media_without_session_is_ignored(transport):
    await transport.handle_message({"event": "media", "media": {"payload": "AAAA"}})


@pytest.mark.asyncio
async def test_send_audio_wraps_media_frame(transport):
    await transport.handle_message(start_frame())

    assert await transport.send_audio("BBBB", "item_1") is True

    frame = json.loads(transport.websocket.send_text.call_args[0][0])
    assert frame == {"event": "media", "streamSid": "MZ1", "media": {"payload": "BBBB"}}


@pytest.mark.asyncio
async def test_send_audio_before_start_is_dropped(transport):
    assert await transport.send_audio("BBBB") is False
    transport.websocket.send_text.assert_not_awaited()


@pytest.mark.asyncio
async def test_discarded_item_audio_is_dropped(transport):
    await transport.handle_message(start_frame())
    transport.discard_item("item_1")

    assert await transport.send_audio("BBBB", "item_1") is False
    assert await transport.send_audio("CCCC", "item_2") is True
    transport.websocket.send_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_send_clear(transport):
    await transport.handle_message(start_frame())
    await transport.send_clear()

    frame = json.loads(transport.websocket.send_text.call_args[0][0])
    assert frame == {"event": "clear", "streamSid": "MZ1"}
