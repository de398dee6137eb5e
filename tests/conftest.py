import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import WebSocket

from call_agent.bot.call_session_bridge import BridgeContext
from call_agent.bot.scheduler import TaskScheduler
from call_agent.config.settings import Settings
from call_agent.models.call_registry import CallRegistry
from call_agent.models.conversation import ConversationStore
from call_agent.services.event_fanout import AudioBroadcaster, EventBroadcaster
from call_agent.services.twilio_client import CallControlClient


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


@pytest.fixture
def settings():
    """Settings with short timings so delayed tasks fire quickly in tests."""
    return Settings(
        openai_api_key="sk-test",
        twilio_account_sid="ACtest",
        twilio_auth_token="token",
        twilio_phone_number="+15550000000",
        public_domain="example.ngrok.app",
        reconnect_window_seconds=0.05,
        inactivity_threshold_seconds=0.02,
        end_call_delay_seconds=0.01,
        end_call_fallback_seconds=0.2,
    )


@pytest.fixture
def call_control():
    client = MagicMock(spec=CallControlClient)
    client.with_credentials.return_value = client
    client.create_call = AsyncMock(return_value="CA123")
    client.end_call = AsyncMock()
    client.send_dtmf = AsyncMock()
    return client


@pytest.fixture
def fake_session_factory():
    """Session factory recording the sessions it builds."""
    sessions = []

    def factory(**kwargs):
        session = MagicMock()
        session.kwargs = kwargs
        session.connect = AsyncMock()
        session.close = AsyncMock()
        session.truncate = AsyncMock()
        session.cancel_response = AsyncMock()
        session.send_function_output = AsyncMock()
        session.append_input_audio = AsyncMock()
        sessions.append(session)
        return session

    factory.sessions = sessions
    return factory


@pytest.fixture
def bridge_context(settings, call_control, fake_session_factory):
    return BridgeContext(
        settings=settings,
        registry=CallRegistry(),
        conversations=ConversationStore(),
        events=EventBroadcaster(),
        audio=AudioBroadcaster(),
        call_control=call_control,
        scheduler=TaskScheduler(),
        session_factory=fake_session_factory,
    )


@pytest.fixture
def media_websocket():
    return AsyncMock(spec=WebSocket)
